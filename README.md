# udfkit

`udfkit` holds the pieces for writing user-defined functions for a streaming
pipeline: services for map, map-stream, reduce and reduce-stream handlers, the
message and datum types they exchange, the request and response types of each
service, and the server-info file that tells a client how to talk to a
function. It has no dependencies beyond the standard library.

## Installing

```
pip install udfkit
```

The `test` extra adds pytest for running the test suite.

## Messages and datums (`udfkit.datum`)

A handler receives a `Datum` (`value`, `event_time`, `watermark`, `headers`)
and returns or yields `Message` objects. Messages are immutable; `with_keys`
and `with_tags` return copies:

```python
from udfkit.datum import Message

msg = Message(b"42").with_keys(["even"]).with_tags(["even-tag"])
dropped = Message.to_drop()   # empty value, tagged with DROP
```

Reduce handlers also receive a `Metadata` whose `interval_window` is an
`IntervalWindow` with `start_time` and `end_time`.

## Map (`udfkit.mapper`)

```python
from udfkit.datum import Message
from udfkit.mapper import MapService
from udfkit.protocol import MapRequest

def forward(keys, datum):
    return [Message(datum.value).with_keys(keys)]

service = MapService(forward)
response = service.map_fn(MapRequest(keys=["client"], value=b"test"))
# response.results == (MapResult(keys=("client",), value=b"test", tags=()),)
```

`MapService` accepts a `Mapper` subclass (implementing `map(keys, datum)`) or a
plain function with the same signature. `is_ready()` returns a
`ReadyResponse(ready=True)`.

## Map stream (`udfkit.mapstreamer`)

A map-stream handler returns an iterable, usually a generator; each message is
wrapped in a `MapStreamResponse` and passed to `send` as soon as it is
produced. An exception raised by `send` stops the stream and propagates.

```python
from udfkit.datum import Message
from udfkit.mapstreamer import MapStreamService

def split(keys, datum):
    for part in datum.value.split(b","):
        yield Message(part)

MapStreamService(split).map_stream_fn(request, send=print)
```

Handlers may also subclass `MapStreamer` and implement `map_stream(keys, datum)`.

## Reduce (`udfkit.reducer`)

`ReduceService.reduce_fn(requests, send)` consumes an iterable of
`ReduceRequest` objects. An `OPEN` request starts a task for its window and
keys; an `APPEND` request feeds the matching task, starting one if there is
none. Each task runs on its own thread with a fresh reducer from the creator,
and receives its datums as an iterator. When `requests` is exhausted every task
is closed, its results are sent as `ReduceResponse` objects, and one final
response with `eof=True` follows (only if at least one task ran).

```python
from udfkit.datum import Message
from udfkit.reducer import ReduceService, simple_creator

def count(keys, datums, metadata):
    return [Message(str(sum(1 for _ in datums)).encode()).with_keys(keys)]

responses = []
ReduceService(simple_creator(count)).reduce_fn(requests, send=responses.append)
```

Subclass `Reducer` and `ReducerCreator` for stateful reducers. A request whose
operation does not carry exactly one window, an exception in a reducer, or an
exception from `send` raises `udfkit.protocol.ReduceError`; an exception from
`requests` itself propagates unchanged.

## Reduce stream (`udfkit.reducestreamer`)

`ReduceStreamService` works like `ReduceService`, but its handlers
(`ReduceStreamer.reduce_stream` or a function passed to `simple_creator`)
yield messages while they consume the datums, and each one is sent as soon as
it is produced.

## Protocol types (`udfkit.protocol`)

`MapRequest`, `MapResponse`, `MapResult`, `MapStreamRequest`,
`MapStreamResponse`, `Window`, `ReducePayload`, `WindowEvent`,
`WindowOperation`, `ReduceRequest`, `ReduceResult`, `ReduceResponse`,
`ReadyResponse` and `ReduceError`. `window_key(window, keys)` builds the
`start_ms:end_ms:key1:key2` string that identifies a keyed window.

## Server info (`udfkit.info`)

```python
from udfkit import info

info.write(info.ServerInfo(protocol=info.ServerProtocol.UDS,
                           language=info.Language.PYTHON,
                           version=info.get_sdk_version()),
           "/tmp/server-info")
info.wait_until_ready("/tmp/server-info", timeout=5)
print(info.read("/tmp/server-info"))
```

`write` stores the info as JSON followed by an end marker. `wait_until_ready`
raises `TimeoutError` if the file is still missing or empty after `timeout`
seconds. `read` retries briefly while the end marker is missing, raises
`FileNotFoundError` for a missing file and `ServerInfoError` for an
incomplete or malformed one. `get_sdk_version` returns the installed version
of `udfkit`, or an empty string.

## Options (`udfkit.options`)

`default_options(kind, **overrides)` returns a `ServerOptions` with the socket
address and server-info path for the given `UdfKind` (`MAP`, `MAP_STREAM`,
`REDUCE`, `REDUCE_STREAM`) and a maximum message size of 64 MiB. Any field can
be overridden by keyword; unknown names raise `TypeError`.

## Examples (`udfkit.examples`)

Ready-made handlers: `even_odd`, `flatmap`, `forward_message`, `RetryMapper`
and `tickgen` for map; `flatmap_stream` for map stream; `reduce_counter` and
`SumReducerCreator` for reduce; `stream_counter` and `StreamSumCreator` for
reduce stream.

## What the package does not do

There is no network server and no command to start one. The services are
plain Python objects: you call `map_fn`, `map_stream_fn` and `reduce_fn`
yourself and deliver the responses through `send`. Nothing listens on the
socket addresses in `ServerOptions`, and no RPC transport or wire encoding of
the protocol types is included.