"""Request and response messages exchanged with UDF services."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from .datum import EPOCH, Datum, IntervalWindow, Message

__all__ = [
    "MapRequest",
    "MapResponse",
    "MapResult",
    "MapStreamRequest",
    "MapStreamResponse",
    "ReadyResponse",
    "ReduceError",
    "ReducePayload",
    "ReduceRequest",
    "ReduceResponse",
    "ReduceResult",
    "Window",
    "WindowEvent",
    "WindowOperation",
    "window_key",
]

KEY_DELIMITER = ":"
_ONE_MS = timedelta(milliseconds=1)


class ReduceError(RuntimeError):
    """An internal error while serving a reduce stream."""


def _tuple(items: Iterable) -> tuple:
    return tuple(items)


@dataclass(frozen=True)
class ReadyResponse:
    ready: bool = True


@dataclass(frozen=True)
class _Input:
    keys: tuple[str, ...] = ()
    value: bytes = b""
    event_time: datetime = EPOCH
    watermark: datetime = EPOCH
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", _tuple(self.keys))
        object.__setattr__(self, "value", bytes(self.value))

    def to_datum(self) -> Datum:
        return Datum(self.value, self.event_time, self.watermark, self.headers)


@dataclass(frozen=True)
class _Result:
    keys: tuple[str, ...] = ()
    value: bytes = b""
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", _tuple(self.keys))
        object.__setattr__(self, "value", bytes(self.value))
        object.__setattr__(self, "tags", _tuple(self.tags))

    @classmethod
    def from_message(cls, message: Message):
        return cls(keys=message.keys, value=message.value, tags=message.tags)


@dataclass(frozen=True)
class MapRequest(_Input):
    """One element to be mapped."""


@dataclass(frozen=True)
class MapResult(_Result):
    """One output element of a map call."""


@dataclass(frozen=True)
class MapResponse:
    results: tuple[MapResult, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "results", _tuple(self.results))


@dataclass(frozen=True)
class MapStreamRequest(_Input):
    """One element to be mapped with streamed results."""


@dataclass(frozen=True)
class MapStreamResponse:
    result: MapResult


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime
    slot: str = ""

    def interval(self) -> IntervalWindow:
        return IntervalWindow(self.start, self.end)


@dataclass(frozen=True)
class ReducePayload(_Input):
    """The element carried by a reduce request."""


class WindowEvent(Enum):
    OPEN = "open"
    CLOSE = "close"
    APPEND = "append"


@dataclass(frozen=True)
class WindowOperation:
    event: WindowEvent
    windows: tuple[Window, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "windows", _tuple(self.windows))


@dataclass(frozen=True)
class ReduceRequest:
    payload: ReducePayload
    operation: WindowOperation


@dataclass(frozen=True)
class ReduceResult(_Result):
    """One output element of a reduce task."""


@dataclass(frozen=True)
class ReduceResponse:
    window: Window
    result: ReduceResult | None = None
    eof: bool = False


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // _ONE_MS


def window_key(window: Window, keys: Iterable[str]) -> str:
    """Identify a keyed window as ``start_ms:end_ms:key1:key2...``."""
    return (
        f"{_unix_millis(window.start)}:{_unix_millis(window.end)}:"
        f"{KEY_DELIMITER.join(keys)}"
    )