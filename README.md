# cfylrpc

A Python implementation of the LRPC2 local message protocol (protocol
version 4). LRPC2 carries small typed messages between processes on the
same machine over Unix domain sockets. The package has no dependencies
outside the standard library. Peer credentials rely on Linux `SO_PEERCRED`
and `/proc`.

## Modules

- `cfylrpc.codec`: `encode(cmd, args)` and `decode(data)` for LRPC2 message
  bodies. Bodies can carry booleans, 32-bit integers, strings, blobs, string
  sets, key/value sets and `None`.
- `cfylrpc.protocol`: the 34-byte message `Header` (`pack`, `verify`,
  `unpack_header`), the `MessageId` values, `command_id` and the protocol
  errors. All of the errors derive from `LrpcError`.
- `cfylrpc.network`: `start_listener`, `connect_to_server`, `recv_exact` and
  `send_all` for Unix domain sockets.
- `cfylrpc.client`: `Lrpc2Client`, with `ClientConfig` for the timeouts,
  plus `do_request` and `do_async_request`.
- `cfylrpc.server`: `create_message_server` returns a `MessageListener`.
  `MessageListener.accept()` returns a `ServerConnection`, which can read
  requests and write responses.
- `cfylrpc.session`: `SessionContext` holds per-session values through `get`
  and `set`. `PeerSession` adds `is_privileged`, `process_id`,
  `caller_user_id` and `program` for the calling process.
  `peer_credentials` returns a socket's `PeerCredentials`.
- `cfylrpc.logsupport`: levelled logging used by the protocol code. It
  provides `set_log_level`, `get_log_level`, `set_logger`, `get_logger`,
  `shutdown`, and `trace`/`debug`/`info`/`warn`/`error` along with their
  `...f` forms.
- `cfylrpc.cversion`: `parse` and `Version` for version strings such as
  `17.2.100-NotYet`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Calling a server

```python
from cfylrpc.client import ClientConfig, Lrpc2Client, do_request
from cfylrpc.codec import UInt32

with Lrpc2Client("/tmp/example.sock", ClientConfig()) as client:
    results = do_request(client, 100, ["hello", True, UInt32(42)])
```

Entering the `with` block connects and performs the handshake. Message IDs
must be integers in the range 0–65535. Any other kind of value raises
`NameNotSupportedError`, and a value outside that range raises
`CommandOutOfRangeError`.

Integers are sent with the LRPC2 type that matches their wrapper,
`cfylrpc.codec.Int32` or `cfylrpc.codec.UInt32`. A plain `int` is not
accepted; it raises `TypeNotSupportedError`. Decoded integers come back as
the same wrappers.

The following types map to their LRPC2 types without a wrapper:

- `str`
- `bytes`
- `bool`
- `list[str]`
- `dict[str, str]`
- `None`

A list of `UInt32` is sent as separate `UInt32` values.

## Serving connections

The server module works at the level of single connections:

```python
from cfylrpc.server import create_message_server

listener = create_message_server("/tmp/example.sock")
conn = listener.accept()          # handshake runs in a background thread
try:
    while True:
        try:
            header, cmd, args = conn.read_request()
        except EOFError:          # client closed the connection
            break
        peer = conn.session_context()
        conn.write_response(header, cmd, [peer.process_id(), *args])
finally:
    conn.close()
    listener.close()
```

## What the package does not do

It has no ready-made session server. There is no registry that maps
message IDs to handler functions, and no loop that accepts connections,
serves each one on its own thread, and shuts down cleanly. The caller
builds that from `MessageListener.accept()`, `ServerConnection.read_request()`
and `ServerConnection.write_response()`, as shown above.

The package also does not talk to any particular agent service for you.
The `MessageId` values name the messages such a service understands, but
fetching tokens or enrollment information is left to the caller.

## Logging

```python
from cfylrpc import logsupport

logsupport.set_log_level("DEBUG")   # TRACE, DEBUG, INFO, WARN, ERROR, DISABLED
```

An unknown level name raises `UnknownLogLevelError`. Messages go to stderr
unless `set_logger` is given another `logging.Logger`.

## Versions

```python
from cfylrpc.cversion import ComparisonResult, parse

v = parse("17.2-100-NotYet")
str(v)                                                 # "17.2.100-NotYet"
v.major_minor()                                        # "17.2"
v.compare(parse("17.3")) is ComparisonResult.EARLIER   # True
```

Strings such as `"17.2."` or `"17.2-NotYet"` raise `VersionFormatError`.