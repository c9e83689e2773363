"""Map service: applies a user function to each element and returns its results."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Union

from .datum import Datum, Message
from .protocol import MapRequest, MapResponse, MapResult, ReadyResponse

__all__ = ["MapHandler", "MapService", "Mapper"]


class Mapper(ABC):
    """A map function implementation."""

    @abstractmethod
    def map(self, keys: list[str], datum: Datum) -> Iterable[Message]:
        """Process one incoming element and return the resulting messages."""


MapHandler = Union[Mapper, Callable[[list[str], Datum], Iterable[Message]]]


def _as_callable(handler: MapHandler) -> Callable[[list[str], Datum], Iterable[Message]]:
    if isinstance(handler, Mapper):
        return handler.map
    if callable(handler):
        return handler
    raise TypeError(f"map handler must be a Mapper or a callable, not {type(handler).__name__}")


class MapService:
    """Serves map requests with a Mapper or a plain function."""

    def __init__(self, mapper: MapHandler) -> None:
        self.mapper = mapper
        self._handler = _as_callable(mapper)

    def is_ready(self) -> ReadyResponse:
        """Report that the service is ready to accept requests."""
        return ReadyResponse(ready=True)

    def map_fn(self, request: MapRequest) -> MapResponse:
        """Apply the map function to one request and collect its results."""
        messages = self._handler(list(request.keys), request.to_datum())
        return MapResponse(results=tuple(MapResult.from_message(m) for m in messages))