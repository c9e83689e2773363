"""Values handed to and returned from user-defined functions."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

__all__ = ["DROP", "EPOCH", "Datum", "IntervalWindow", "Message", "Metadata"]

DROP = "U+005C__DROP__"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Message:
    """A result produced by a user-defined function."""

    value: bytes
    keys: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", bytes(self.value))
        object.__setattr__(self, "keys", tuple(self.keys))
        object.__setattr__(self, "tags", tuple(self.tags))

    @classmethod
    def to_drop(cls) -> Message:
        """A message telling the platform to drop the input."""
        return cls(value=b"", tags=(DROP,))

    def with_keys(self, keys: Iterable[str]) -> Message:
        return dataclasses.replace(self, keys=tuple(keys))

    def with_tags(self, tags: Iterable[str]) -> Message:
        """Return a copy with tags used for conditional forwarding."""
        return dataclasses.replace(self, tags=tuple(tags))


@dataclass(frozen=True)
class Datum:
    """One input element with its payload and timing information."""

    value: bytes
    event_time: datetime = EPOCH
    watermark: datetime = EPOCH
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IntervalWindow:
    """The time interval of a reduce window."""

    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class Metadata:
    """Metadata passed to reduce functions."""

    interval_window: IntervalWindow