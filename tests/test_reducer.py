from datetime import datetime, timezone

import pytest

from udfkit.datum import DROP, Message
from udfkit.protocol import (
    ReducePayload,
    ReduceError,
    ReduceRequest,
    ReduceResponse,
    ReduceResult,
    Window,
    WindowEvent,
    WindowOperation,
)
from udfkit.reducer import ReduceService, Reducer, ReducerCreator, simple_creator


def _ms(value):
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


WINDOW = Window(start=_ms(60000), end=_ms(120000), slot="slot-0")


def _request(keys, value, event, windows=(WINDOW,)):
    return ReduceRequest(
        payload=ReducePayload(keys=keys, value=str(value).encode()),
        operation=WindowOperation(event=event, windows=windows),
    )


def _sum_with_keys(keys, datums, metadata):
    total = sum(int(d.value) for d in datums)
    return [Message(str(total).encode()).with_keys([keys[0] + "_test"])]


def _sum_no_keys(keys, datums, metadata):
    total = sum(int(d.value) for d in datums)
    return [Message(str(total).encode())]


def _sum_then_drop(keys, datums, metadata):
    sum(int(d.value) for d in datums)
    return [Message.to_drop()]


def _run(service, requests):
    sent = []
    service.reduce_fn(requests, sent.append)
    return sent


def _results(sent):
    results = [r for r in sent if not r.eof]
    return sorted(results, key=lambda r: r.result.value)


OPEN = WindowEvent.OPEN
APPEND = WindowEvent.APPEND


@pytest.mark.parametrize(
    "handler, requests, expected",
    [
        pytest.param(
            _sum_with_keys,
            [
                _request(["client"], 10, OPEN),
                _request(["client"], 20, APPEND),
                _request(["client"], 30, APPEND),
            ],
            [
                ReduceResponse(
                    window=WINDOW,
                    result=ReduceResult(keys=("client_test",), value=b"60"),
                )
            ],
            id="reduce_fn_forward_msg_same_keys",
        ),
        pytest.param(
            _sum_with_keys,
            [
                _request(["client1"], 10, OPEN),
                _request(["client2"], 20, OPEN),
                _request(["client3"], 30, APPEND),
                _request(["client1"], 10, APPEND),
                _request(["client2"], 20, APPEND),
                _request(["client3"], 30, APPEND),
            ],
            [
                ReduceResponse(
                    window=WINDOW,
                    result=ReduceResult(keys=("client1_test",), value=b"20"),
                ),
                ReduceResponse(
                    window=WINDOW,
                    result=ReduceResult(keys=("client2_test",), value=b"40"),
                ),
                ReduceResponse(
                    window=WINDOW,
                    result=ReduceResult(keys=("client3_test",), value=b"60"),
                ),
            ],
            id="reduce_fn_forward_msg_multiple_keys",
        ),
        pytest.param(
            _sum_no_keys,
            [
                _request(["client"], 10, OPEN),
                _request(["client"], 20, APPEND),
                _request(["client"], 30, APPEND),
            ],
            [ReduceResponse(window=WINDOW, result=ReduceResult(value=b"60"))],
            id="reduce_fn_forward_msg_forward_to_all",
        ),
        pytest.param(
            _sum_then_drop,
            [
                _request(["client"], 10, OPEN),
                _request(["client"], 20, APPEND),
                _request(["client"], 30, OPEN),
            ],
            [
                ReduceResponse(
                    window=WINDOW, result=ReduceResult(value=b"", tags=(DROP,))
                )
            ],
            id="reduce_fn_forward_msg_drop_msg",
        ),
    ],
)
def test_reduce_fn(handler, requests, expected):
    service = ReduceService(simple_creator(handler))
    sent = _run(service, requests)
    assert _results(sent) == expected


def test_eof_response_is_sent_once_and_last():
    service = ReduceService(simple_creator(_sum_with_keys))
    sent = _run(
        service,
        [_request(["a"], 1, OPEN), _request(["b"], 2, OPEN), _request(["a"], 3, APPEND)],
    )
    eofs = [r for r in sent if r.eof]
    assert len(eofs) == 1
    assert sent[-1] == ReduceResponse(window=WINDOW, eof=True)
    assert len(sent) == 3


def test_empty_stream_sends_nothing():
    service = ReduceService(simple_creator(_sum_with_keys))
    assert _run(service, []) == []


def test_is_ready():
    service = ReduceService(simple_creator(_sum_with_keys))
    assert service.is_ready().ready is True


def test_append_without_open_creates_task():
    service = ReduceService(simple_creator(_sum_with_keys))
    sent = _run(service, [_request(["k"], 5, APPEND), _request(["k"], 7, APPEND)])
    assert [r.result.value for r in _results(sent)] == [b"12"]


def test_close_event_is_ignored():
    service = ReduceService(simple_creator(_sum_no_keys))
    sent = _run(
        service,
        [_request(["k"], 5, OPEN), _request(["k"], 100, WindowEvent.CLOSE)],
    )
    assert [r.result.value for r in _results(sent)] == [b"5"]


def test_metadata_carries_interval_window():
    seen = []

    def handler(keys, datums, metadata):
        list(datums)
        seen.append(metadata.interval_window)
        return []

    service = ReduceService(simple_creator(handler))
    _run(service, [_request(["k"], 1, OPEN)])
    assert len(seen) == 1
    assert seen[0].start_time == _ms(60000)
    assert seen[0].end_time == _ms(120000)


def test_class_based_creator_makes_fresh_reducer_per_window():
    class Counting(Reducer):
        def __init__(self):
            self.count = 0

        def reduce(self, keys, datums, metadata):
            for _ in datums:
                self.count += 1
            return [Message(str(self.count).encode()).with_keys(keys)]

    class CountingCreator(ReducerCreator):
        def create(self):
            return Counting()

    service = ReduceService(CountingCreator())
    sent = _run(
        service,
        [
            _request(["x"], 1, OPEN),
            _request(["y"], 1, OPEN),
            _request(["x"], 1, APPEND),
            _request(["x"], 1, APPEND),
        ],
    )
    by_key = {r.result.keys: r.result.value for r in _results(sent)}
    assert by_key == {("x",): b"3", ("y",): b"1"}


def test_invalid_window_count_on_open_raises():
    service = ReduceService(simple_creator(_sum_with_keys))
    with pytest.raises(ReduceError, match="create operation error: invalid number of windows"):
        _run(service, [_request(["k"], 1, OPEN, windows=())])


def test_invalid_window_count_on_append_raises():
    service = ReduceService(simple_creator(_sum_with_keys))
    with pytest.raises(ReduceError, match="append operation error: invalid number of windows"):
        _run(
            service,
            [
                _request(["k"], 1, OPEN),
                _request(["k"], 2, APPEND, windows=(WINDOW, WINDOW)),
            ],
        )


def test_send_error_raises_reduce_error():
    service = ReduceService(simple_creator(_sum_with_keys))

    def failing_send(response):
        raise RuntimeError("send error")

    with pytest.raises(ReduceError, match="send error"):
        service.reduce_fn([_request(["k"], 1, OPEN)], failing_send)


def test_reducer_error_raises_reduce_error():
    def broken(keys, datums, metadata):
        list(datums)
        raise ValueError("bad reduce")

    service = ReduceService(simple_creator(broken))
    with pytest.raises(ReduceError, match="bad reduce"):
        _run(service, [_request(["k"], 1, OPEN)])


def test_simple_creator_rejects_non_callable():
    with pytest.raises(TypeError):
        simple_creator(42)