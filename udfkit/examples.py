"""Example user-defined functions for each kind of UDF server."""

from __future__ import annotations

import base64
import binascii
import json
import re
import threading
from collections.abc import Iterable, Iterator
from datetime import timedelta, timezone
from typing import Any

from .datum import EPOCH, Datum, Message, Metadata
from .mapper import Mapper
from .reducer import Reducer, ReducerCreator
from .reducestreamer import ReduceStreamer, ReduceStreamerCreator

__all__ = [
    "RetryMapper",
    "STREAM_COUNT_BATCH",
    "STREAM_SUM_THRESHOLD",
    "SUCCESS_ITERATION",
    "StreamSum",
    "StreamSumCreator",
    "SumReducer",
    "SumReducerCreator",
    "even_odd",
    "flatmap",
    "flatmap_stream",
    "forward_message",
    "reduce_counter",
    "stream_counter",
    "tickgen",
]

SUCCESS_ITERATION = 3
STREAM_COUNT_BATCH = 10
STREAM_SUM_THRESHOLD = 100

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1


def _atoi(data: bytes) -> int:
    """Parse a signed 64-bit decimal integer, rejecting anything else."""
    text = data.decode("utf-8", errors="replace")
    if not _INTEGER.fullmatch(text):
        raise ValueError(f'parsing "{text}": invalid syntax')
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f'parsing "{text}": value out of range')
    return number


def _to_bytes(number: int) -> bytes:
    return str(number).encode()


# ---------------------------------------------------------------- map examples


def even_odd(keys: list[str], datum: Datum) -> list[Message]:
    """Key integers as "even" or "odd"; drop anything that is not an integer."""
    try:
        number = _atoi(datum.value)
    except ValueError:
        return [Message.to_drop()]
    if number % 2 == 0:
        return [Message(datum.value).with_keys(["even"]).with_tags(["even-tag"])]
    return [Message(datum.value).with_keys(["odd"]).with_tags(["odd-tag"])]


def flatmap(keys: list[str], datum: Datum) -> list[Message]:
    """Split the value on commas into one message per part."""
    return [Message(part) for part in datum.value.split(b",")]


def forward_message(keys: list[str], datum: Datum) -> list[Message]:
    """Forward the input unchanged, keeping its keys."""
    return [Message(datum.value).with_keys(keys)]


class RetryMapper(Mapper):
    """Tags a message "retry" until it has been seen SUCCESS_ITERATION times."""

    def __init__(self) -> None:
        self._counts: dict[bytes, int] = {}
        self._lock = threading.Lock()

    def map(self, keys: list[str], datum: Datum) -> list[Message]:
        value = datum.value
        with self._lock:
            count = self._counts.get(value, 0) + 1
            self._counts[value] = count
            if count >= SUCCESS_ITERATION:
                del self._counts[value]
        text = value.decode("utf-8", errors="replace")
        print(f"count for {json.dumps(text, ensure_ascii=False)}={count}")
        if count >= SUCCESS_ITERATION:
            return [Message(value)]
        return [Message(value).with_tags(["retry"])]


def _field(obj: dict[str, Any], name: str) -> Any:
    """Look up a JSON field exactly, then case-insensitively."""
    if name in obj:
        return obj[name]
    lowered = name.lower()
    for key, value in obj.items():
        if key.lower() == lowered:
            return value
    return None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_tick(raw: bytes) -> tuple[int, int]:
    """Return (value, created nanoseconds) from a generator payload."""
    payload = json.loads(raw)
    if payload is None:
        return 0, 0
    if not isinstance(payload, dict):
        raise ValueError("payload is not an object")
    data = _field(payload, "Data")
    value = 0
    if data is not None:
        if not isinstance(data, dict):
            raise ValueError("Data is not an object")
        raw_value = _field(data, "value")
        if raw_value is not None:
            if not _is_int(raw_value) or not 0 <= raw_value <= _UINT64_MAX:
                raise ValueError("value is not an unsigned integer")
            value = raw_value
        padding = _field(data, "padding")
        if padding is not None:
            if not isinstance(padding, str):
                raise ValueError("padding is not a string")
            try:
                base64.b64decode(padding, validate=True)
            except binascii.Error as exc:
                raise ValueError("padding is not base64") from exc
    created = _field(payload, "Createdts")
    if created is None:
        created = 0
    elif not _is_int(created) or not _INT64_MIN <= created <= _INT64_MAX:
        raise ValueError("Createdts is not an integer")
    return value, created


def _rfc3339(nanoseconds: int) -> str:
    moment = (EPOCH + timedelta(seconds=nanoseconds // 1_000_000_000)).astimezone()
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        zone = "Z"
    else:
        sign = "+" if offset > timedelta(0) else "-"
        minutes = abs(int(offset.total_seconds())) // 60
        zone = f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + zone


def tickgen(keys: list[str], datum: Datum) -> list[Message]:
    """Turn a generator payload into its value and creation time.

    Payloads that cannot be decoded produce no messages.
    """
    try:
        value, created = _parse_tick(datum.value)
    except (ValueError, UnicodeDecodeError):
        return []
    body = json.dumps({"Value": value, "Time": _rfc3339(created)}, separators=(",", ":"))
    return [Message(body.encode()).with_keys(keys)]


# ---------------------------------------------------------- map stream example


def flatmap_stream(keys: list[str], datum: Datum) -> Iterator[Message]:
    """Split the value on commas, streaming one message per part."""
    for part in datum.value.split(b","):
        yield Message(part)


# ------------------------------------------------------------ reduce examples


def reduce_counter(
    keys: list[str], datums: Iterable[Datum], metadata: Metadata
) -> list[Message]:
    """Count the elements of a keyed window."""
    count = sum(1 for _ in datums)
    return [Message(_to_bytes(count)).with_keys(keys)]


class SumReducer(Reducer):
    """Sums the integer values of a keyed window, skipping the rest."""

    def __init__(self) -> None:
        self.sum = 0

    def reduce(
        self, keys: list[str], datums: Iterable[Datum], metadata: Metadata
    ) -> list[Message]:
        for datum in datums:
            try:
                self.sum += _atoi(datum.value)
            except ValueError as exc:
                print(f"unable to convert the value to int: {exc}")
        return [Message(_to_bytes(self.sum)).with_keys(keys)]


class SumReducerCreator(ReducerCreator):
    def create(self) -> SumReducer:
        return SumReducer()


# ----------------------------------------------------- reduce stream examples


def stream_counter(
    keys: list[str], datums: Iterable[Datum], metadata: Metadata
) -> Iterator[Message]:
    """Emit the count every STREAM_COUNT_BATCH elements, then the remainder."""
    counter = 0
    for _ in datums:
        counter += 1
        if counter >= STREAM_COUNT_BATCH:
            yield Message(_to_bytes(counter)).with_keys(keys)
            counter = 0
    yield Message(_to_bytes(counter)).with_keys(keys)


class StreamSum(ReduceStreamer):
    """Emits the running sum whenever it reaches STREAM_SUM_THRESHOLD, then the rest."""

    def reduce_stream(
        self, keys: list[str], datums: Iterable[Datum], metadata: Metadata
    ) -> Iterator[Message]:
        total = 0
        for datum in datums:
            try:
                total += _atoi(datum.value)
            except ValueError as exc:
                print(f"unable to convert the value to int: {exc}")
                continue
            if total >= STREAM_SUM_THRESHOLD:
                yield Message(_to_bytes(total)).with_keys(keys)
                total = 0
        yield Message(_to_bytes(total)).with_keys(keys)


class StreamSumCreator(ReduceStreamerCreator):
    def create(self) -> StreamSum:
        return StreamSum()


_UTC = timezone.utc