"""Reduce service: feeds each keyed window to its own reducer and returns the results."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from typing import Union

from .datum import Datum, Message, Metadata
from .protocol import (
    ReadyResponse,
    ReduceError,
    ReduceRequest,
    ReduceResponse,
    ReduceResult,
    Window,
    WindowEvent,
    window_key,
)

__all__ = [
    "ReduceFunction",
    "ReduceService",
    "Reducer",
    "ReducerCreator",
    "simple_creator",
]

ReduceFunction = Callable[[list[str], Iterator[Datum], Metadata], Iterable[Message]]

_CLOSE = object()


class Reducer(ABC):
    """A reduce function implementation."""

    @abstractmethod
    def reduce(
        self, keys: list[str], datums: Iterator[Datum], metadata: Metadata
    ) -> Iterable[Message]:
        """Consume all datums of one keyed window and return the results."""


class ReducerCreator(ABC):
    """Creates a fresh Reducer for every keyed window."""

    @abstractmethod
    def create(self) -> Union[Reducer, ReduceFunction]:
        """Return a new Reducer."""


class _FunctionReducer(Reducer):
    def __init__(self, fn: ReduceFunction) -> None:
        self._fn = fn

    def reduce(
        self, keys: list[str], datums: Iterator[Datum], metadata: Metadata
    ) -> Iterable[Message]:
        return self._fn(keys, datums, metadata)


class _SimpleReducerCreator(ReducerCreator):
    def __init__(self, fn: ReduceFunction) -> None:
        self._fn = fn

    def create(self) -> Reducer:
        return _FunctionReducer(self._fn)


def simple_creator(fn: ReduceFunction) -> ReducerCreator:
    """Return a ReducerCreator whose reducers call ``fn``."""
    if not callable(fn):
        raise TypeError(f"reduce function must be callable, not {type(fn).__name__}")
    return _SimpleReducerCreator(fn)


def _as_callable(reducer: Union[Reducer, ReduceFunction]) -> ReduceFunction:
    if isinstance(reducer, Reducer):
        return reducer.reduce
    if callable(reducer):
        return reducer
    raise TypeError(
        f"creator must return a Reducer or a callable, not {type(reducer).__name__}"
    )


class _ReduceTask:
    """One keyed window being reduced on its own thread."""

    def __init__(
        self,
        keys: Iterable[str],
        window: Window,
        reduce: ReduceFunction,
        emit: Callable[[ReduceResponse], None],
    ) -> None:
        self.keys = tuple(keys)
        self.window = window
        self.discarded = False
        self.error: BaseException | None = None
        self._reduce = reduce
        self._emit = emit
        self._inputs: queue.Queue = queue.Queue()
        self._metadata = Metadata(window.interval())
        self._thread = threading.Thread(
            target=self._run, name=f"reduce-{window_key(window, self.keys)}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def put(self, datum: Datum) -> None:
        self._inputs.put(datum)

    def close(self) -> None:
        self._inputs.put(_CLOSE)

    def discard(self) -> None:
        """Stop forwarding this task's output and end its input."""
        self.discarded = True
        self.close()

    def join(self) -> None:
        self._thread.join()

    def eof_response(self) -> ReduceResponse:
        return ReduceResponse(window=self.window, eof=True)

    def _datums(self) -> Iterator[Datum]:
        while True:
            item = self._inputs.get()
            if item is _CLOSE:
                return
            yield item

    def _run(self) -> None:
        try:
            for message in self._reduce(list(self.keys), self._datums(), self._metadata):
                if self.discarded:
                    continue
                self._emit(
                    ReduceResponse(
                        window=self.window, result=ReduceResult.from_message(message)
                    )
                )
        except BaseException as exc:  # reported by the service once all tasks end
            self.error = exc


class _TaskManager:
    """Routes requests to reduce tasks identified by window and keys."""

    def __init__(
        self, creator: ReducerCreator, emit: Callable[[ReduceResponse], None]
    ) -> None:
        self._creator = creator
        self._emit = emit
        self._tasks: dict[str, _ReduceTask] = {}

    def create_task(self, request: ReduceRequest) -> None:
        windows = request.operation.windows
        if len(windows) != 1:
            raise ReduceError("create operation error: invalid number of windows")
        task = _ReduceTask(
            request.payload.keys,
            windows[0],
            _as_callable(self._creator.create()),
            self._emit,
        )
        key = window_key(task.window, task.keys)
        replaced = self._tasks.get(key)
        if replaced is not None:
            replaced.discard()
        self._tasks[key] = task
        task.start()
        task.put(request.payload.to_datum())

    def append_to_task(self, request: ReduceRequest) -> None:
        windows = request.operation.windows
        if len(windows) != 1:
            raise ReduceError("append operation error: invalid number of windows")
        task = self._tasks.get(window_key(windows[0], request.payload.keys))
        if task is None:
            self.create_task(request)
            return
        task.put(request.payload.to_datum())

    def close_all(self) -> None:
        for task in self._tasks.values():
            task.close()

    def abort(self) -> None:
        for task in self._tasks.values():
            task.discard()

    def wait_all(self) -> None:
        """Wait for every task, then emit one end-of-stream response."""
        for task in self._tasks.values():
            task.join()
        if self._tasks:
            first = next(iter(self._tasks.values()))
            self._emit(first.eof_response())

    def first_error(self) -> BaseException | None:
        return next(
            (task.error for task in self._tasks.values() if task.error is not None), None
        )


class ReduceService:
    """Serves reduce streams with reducers made by a ReducerCreator."""

    def __init__(self, creator: ReducerCreator) -> None:
        if not callable(getattr(creator, "create", None)):
            raise TypeError(
                f"creator must have a create() method, not {type(creator).__name__}"
            )
        self.creator = creator

    def is_ready(self) -> ReadyResponse:
        """Report that the service is ready to accept requests."""
        return ReadyResponse(ready=True)

    def reduce_fn(
        self,
        requests: Iterable[ReduceRequest],
        send: Callable[[ReduceResponse], object],
    ) -> None:
        """Reduce a stream of requests, passing every response to ``send``.

        OPEN requests start a task for their keyed window, APPEND requests
        feed one (starting it if missing). When ``requests`` is exhausted all
        tasks are closed, their results are sent, and a final EOF response
        follows. Failures raise ReduceError; errors from ``requests`` propagate.
        """
        responses: queue.Queue = queue.Queue()
        send_errors: list[Exception] = []

        def forward() -> None:
            while True:
                response = responses.get()
                if response is _CLOSE:
                    return
                if send_errors:
                    continue
                try:
                    send(response)
                except Exception as exc:
                    send_errors.append(exc)

        sender = threading.Thread(target=forward, name="reduce-sender", daemon=True)
        sender.start()
        manager = _TaskManager(self.creator, responses.put)

        try:
            for request in requests:
                event = request.operation.event
                if event is WindowEvent.OPEN:
                    manager.create_task(request)
                elif event is WindowEvent.APPEND:
                    manager.append_to_task(request)
        except BaseException:
            manager.abort()
            responses.put(_CLOSE)
            sender.join()
            raise

        manager.close_all()
        manager.wait_all()
        responses.put(_CLOSE)
        sender.join()

        task_error = manager.first_error()
        if task_error is not None:
            raise ReduceError(str(task_error)) from task_error
        if send_errors:
            raise ReduceError(str(send_errors[0])) from send_errors[0]