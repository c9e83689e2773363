"""Map stream service: streams each result of a user function as it is produced."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Union

from .datum import Datum, Message
from .protocol import MapResult, MapStreamRequest, MapStreamResponse, ReadyResponse

__all__ = ["MapStreamHandler", "MapStreamService", "MapStreamer"]


class MapStreamer(ABC):
    """A map stream function implementation."""

    @abstractmethod
    def map_stream(self, keys: list[str], datum: Datum) -> Iterable[Message]:
        """Process one incoming element, yielding messages as they are ready."""


MapStreamHandler = Union[MapStreamer, Callable[[list[str], Datum], Iterable[Message]]]


def _as_callable(
    handler: MapStreamHandler,
) -> Callable[[list[str], Datum], Iterable[Message]]:
    if isinstance(handler, MapStreamer):
        return handler.map_stream
    if callable(handler):
        return handler
    raise TypeError(
        f"map stream handler must be a MapStreamer or a callable, not {type(handler).__name__}"
    )


class MapStreamService:
    """Serves map stream requests with a MapStreamer or a plain generator function."""

    def __init__(self, map_streamer: MapStreamHandler) -> None:
        self.map_streamer = map_streamer
        self._handler = _as_callable(map_streamer)

    def is_ready(self) -> ReadyResponse:
        """Report that the service is ready to accept requests."""
        return ReadyResponse(ready=True)

    def map_stream_fn(
        self, request: MapStreamRequest, send: Callable[[MapStreamResponse], object]
    ) -> None:
        """Apply the function and pass each result to ``send`` as it arrives.

        An exception raised by ``send`` stops the stream and propagates.
        """
        messages = iter(self._handler(list(request.keys), request.to_datum()))
        try:
            for message in messages:
                send(MapStreamResponse(result=MapResult.from_message(message)))
        finally:
            close = getattr(messages, "close", None)
            if close is not None:
                close()