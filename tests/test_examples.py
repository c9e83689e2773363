import json
from datetime import datetime, timedelta

import pytest

from udfkit.datum import DROP, EPOCH, Datum, IntervalWindow, Message, Metadata
from udfkit.examples import (
    STREAM_COUNT_BATCH,
    STREAM_SUM_THRESHOLD,
    SUCCESS_ITERATION,
    RetryMapper,
    StreamSum,
    StreamSumCreator,
    SumReducer,
    SumReducerCreator,
    even_odd,
    flatmap,
    flatmap_stream,
    forward_message,
    reduce_counter,
    stream_counter,
    tickgen,
)
from udfkit.mapper import MapService
from udfkit.mapstreamer import MapStreamService
from udfkit.protocol import (
    MapRequest,
    MapStreamRequest,
    ReducePayload,
    ReduceRequest,
    Window,
    WindowEvent,
    WindowOperation,
)
from udfkit.reducer import ReduceService
from udfkit.reducer import simple_creator as reduce_creator
from udfkit.reducestreamer import ReduceStreamService
from udfkit.reducestreamer import simple_creator as stream_creator

META = Metadata(IntervalWindow(EPOCH, EPOCH))
WINDOW = Window(EPOCH + timedelta(milliseconds=60000), EPOCH + timedelta(milliseconds=120000), "slot-0")


def datums(*values):
    return iter(Datum(v if isinstance(v, bytes) else str(v).encode()) for v in values)


def requests(keys, values):
    for i, value in enumerate(values):
        event = WindowEvent.OPEN if i == 0 else WindowEvent.APPEND
        yield ReduceRequest(
            payload=ReducePayload(keys=keys, value=str(value).encode()),
            operation=WindowOperation(event, (WINDOW,)),
        )


@pytest.mark.parametrize(
    "value,key,tag",
    [(b"12", "even", "even-tag"), (b"7", "odd", "odd-tag"), (b"+4", "even", "even-tag"), (b"-3", "odd", "odd-tag")],
)
def test_even_odd_keys_integers(value, key, tag):
    (msg,) = even_odd([], Datum(value))
    assert msg == Message(value, keys=(key,), tags=(tag,))


@pytest.mark.parametrize("value", [b"abc", b" 1", b"1.5", b""])
def test_even_odd_drops_non_integers(value):
    assert even_odd([], Datum(value)) == [Message.to_drop()]
    assert even_odd([], Datum(value))[0].tags == (DROP,)


def test_flatmap_splits_on_commas():
    msgs = flatmap([], Datum(b"a,b,,c"))
    assert [m.value for m in msgs] == b"a,b,,c".split(b",")
    assert b",".join(m.value for m in msgs) == b"a,b,,c"


def test_flatmap_via_service():
    response = MapService(flatmap).map_fn(MapRequest(keys=("k",), value=b"x,y"))
    assert [r.value for r in response.results] == [b"x", b"y"]


def test_forward_message_keeps_keys_and_value():
    (msg,) = forward_message(["k1", "k2"], Datum(b"payload"))
    assert msg.keys == ("k1", "k2")
    assert msg.value == b"payload"


def test_retry_mapper_tags_until_success(capsys):
    mapper = RetryMapper()
    tags = [mapper.map([], Datum(b"m"))[0].tags for _ in range(SUCCESS_ITERATION + 1)]
    assert tags[: SUCCESS_ITERATION - 1] == [("retry",)] * (SUCCESS_ITERATION - 1)
    assert tags[SUCCESS_ITERATION - 1] == ()
    assert tags[SUCCESS_ITERATION] == ("retry",)
    assert 'count for "m"=1' in capsys.readouterr().out


def test_retry_mapper_counts_messages_separately():
    mapper = RetryMapper()
    mapper.map([], Datum(b"a"))
    assert mapper.map([], Datum(b"b"))[0].tags == ("retry",)


def test_tickgen_decodes_payload():
    created = 1_700_000_000_000_000_000
    raw = json.dumps({"Data": {"value": 5}, "Createdts": created}).encode()
    (msg,) = tickgen(["k"], Datum(raw))
    assert msg.keys == ("k",)
    body = json.loads(msg.value)
    assert body["Value"] == 5
    moment = datetime.fromisoformat(body["Time"].replace("Z", "+00:00"))
    assert moment.timestamp() == created // 1_000_000_000


def test_tickgen_matches_fields_case_insensitively():
    raw = json.dumps({"data": {"Value": 9}, "createdts": 0}).encode()
    (msg,) = tickgen([], Datum(raw))
    assert json.loads(msg.value)["Value"] == 9


@pytest.mark.parametrize("raw", [b"not json", b'{"Data": {"value": -1}}', b'{"Createdts": "x"}', b"[1]"])
def test_tickgen_drops_bad_payloads(raw):
    assert tickgen([], Datum(raw)) == []


def test_flatmap_stream_yields_parts_via_service():
    sent = []
    MapStreamService(flatmap_stream).map_stream_fn(MapStreamRequest(value=b"1,2,3"), sent.append)
    assert [r.result.value for r in sent] == b"1,2,3".split(b",")


def test_reduce_counter_counts_window():
    (msg,) = reduce_counter(["k"], datums(1, 2, 3, 4), META)
    assert int(msg.value) == 4
    assert msg.keys == ("k",)


def test_sum_reducer_skips_non_integers(capsys):
    (msg,) = SumReducer().reduce(["k"], datums("10", "x", "20"), META)
    assert msg.value == b"30"
    assert "unable to convert the value to int" in capsys.readouterr().out


def test_sum_reducer_service_same_keys():
    sent = []
    ReduceService(SumReducerCreator()).reduce_fn(requests(("client",), [10, 20, 30]), sent.append)
    results = [r for r in sent if not r.eof]
    assert [r.result.value for r in results] == [b"60"]
    assert results[0].result.keys == ("client",)
    assert sent[-1].eof


def test_reduce_counter_service():
    sent = []
    ReduceService(reduce_creator(reduce_counter)).reduce_fn(requests(("k",), range(7)), sent.append)
    assert [int(r.result.value) for r in sent if not r.eof] == [7]


def test_stream_counter_batches():
    values = [int(m.value) for m in stream_counter([], datums(*range(25)), META)]
    assert sum(values) == 25
    assert all(v == STREAM_COUNT_BATCH for v in values[:-1])
    assert values[-1] < STREAM_COUNT_BATCH


def test_stream_counter_empty_window_emits_zero():
    assert [m.value for m in stream_counter([], datums(), META)] == [b"0"]


def test_stream_sum_emits_at_threshold():
    values = [int(m.value) for m in StreamSum().reduce_stream(["k"], datums(60, 50, "bad", 30), META)]
    assert sum(values) == 140
    assert all(v >= STREAM_SUM_THRESHOLD for v in values[:-1])
    assert values[-1] < STREAM_SUM_THRESHOLD


def test_stream_sum_service():
    sent = []
    ReduceStreamService(StreamSumCreator()).reduce_fn(requests(("k",), [60, 50, 30]), sent.append)
    values = [int(r.result.value) for r in sent if not r.eof]
    assert sum(values) == 140
    assert len(values) == 2
    assert sent[-1].eof


def test_stream_counter_service():
    sent = []
    ReduceStreamService(stream_creator(stream_counter)).reduce_fn(requests(("k",), range(12)), sent.append)
    values = [int(r.result.value) for r in sent if not r.eof]
    assert values[0] == STREAM_COUNT_BATCH
    assert sum(values) == 12