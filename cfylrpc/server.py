"""Server side of LRPC2: accepting connections and exchanging messages."""

from __future__ import annotations

import os
import socket
import struct
import threading
import time
from dataclasses import dataclass, field

from . import logsupport
from .codec import decode, encode
from .network import recv_exact, send_all, start_listener
from .protocol import (
    ACK,
    CONNECT_TIMEOUT,
    HANDSHAKE_REQUEST_SIZE,
    HEADER_LENGTH_V4,
    MAX_MESSAGE_LENGTH,
    NACK,
    RECEIVE_TIMEOUT,
    SEND_TIMEOUT,
    VERSION_4,
    BadContextError,
    BadHandshakeSizeError,
    BadVersionError,
    Header,
    NotConnectedError,
    unpack_header,
)
from .session import PeerSession

__all__ = [
    "ServerConfig",
    "ServerConnection",
    "MessageListener",
    "create_message_server",
]


@dataclass
class ServerConfig:
    """Timeouts, in seconds, used on the server side of a connection."""

    connect_timeout: float = CONNECT_TIMEOUT
    receive_timeout: float = RECEIVE_TIMEOUT
    send_timeout: float = SEND_TIMEOUT


class ServerConnection:
    """One accepted client connection.

    The protocol handshake runs in a background thread as soon as the
    connection is accepted; :meth:`read_request` waits for it to finish.
    Reads and writes on one connection are not serialised here.
    """

    def __init__(self, sock: socket.socket, endpoint: str, config: ServerConfig | None = None) -> None:
        self.endpoint = endpoint
        self.config = config if config is not None else ServerConfig()
        self.connected = False
        self._sock = sock
        self._handshake_done = threading.Event()
        self._handshake_error: BaseException | None = None
        self._handshake_thread = threading.Thread(
            target=self._handshake, name=f"lrpc-handshake-{id(self)}", daemon=True
        )
        self._handshake_thread.start()

    # handshake -----------------------------------------------------------

    def _reply(self, *words: int) -> None:
        send_all(self._sock, struct.pack(f"<{len(words)}I", *words))

    def _reply_nack(self) -> None:
        try:
            self._reply(NACK)
        except OSError as exc:
            logsupport.errorf("LRPC SERVER: Error in sending NACK in connection %s: %s", id(self), exc)

    def _fail_handshake(self, exc: BaseException) -> None:
        self.connected = False
        self._handshake_error = exc
        self._handshake_done.set()

    def _read_handshake_request(self) -> bytes:
        data = b""
        while len(data) < HANDSHAKE_REQUEST_SIZE:
            chunk = self._sock.recv(HANDSHAKE_REQUEST_SIZE - len(data))
            if not chunk:
                break
            data += chunk
        return data

    def _handshake(self) -> None:
        try:
            # the connect timeout covers the whole handshake
            self._sock.settimeout(self.config.connect_timeout)
        except OSError as exc:
            logsupport.infof("Failed to set timeout for LRPC2 connection [%s]: %s", id(self), exc)
            self._fail_handshake(exc)
            return

        logsupport.tracef(
            "LRPC SERVER: Start handshake for connection [%s] with timeout [%s]",
            id(self),
            self.config.connect_timeout,
        )
        try:
            request = self._read_handshake_request()
        except (TimeoutError, BrokenPipeError) as exc:
            logsupport.debugf(
                "LRPC SERVER: Connection not working. Not replying handshake for connection %s. Error: %s",
                id(self),
                exc,
            )
            self._fail_handshake(exc)
            return
        except OSError as exc:
            logsupport.debugf(
                "LRPC SERVER: Other connection error for connection %s: %s. Send NACK", id(self), exc
            )
            self._reply_nack()
            self._fail_handshake(exc)
            return

        if not request:
            logsupport.tracef("LRPC SERVER: Connection %s closed during handshake", id(self))
            self._fail_handshake(EOFError("Connection closed during handshake"))
            return

        if len(request) != HANDSHAKE_REQUEST_SIZE:
            logsupport.errorf(
                "LRPC SERVER: Handshake request size mismatched.  Expect %d, got %d",
                HANDSHAKE_REQUEST_SIZE,
                len(request),
            )
            self._reply_nack()
            self._fail_handshake(BadHandshakeSizeError())
            return

        (protocol_version,) = struct.unpack("<I", request)
        if protocol_version != VERSION_4:
            logsupport.errorf(
                "LRPC SERVER: Unknown LRPC version number for connection %s: %d",
                id(self),
                protocol_version,
            )
            self._reply_nack()
            self._fail_handshake(BadVersionError())
            return

        logsupport.tracef("LRPC SERVER: Accept handshake for connection %s.  Send ACK", id(self))
        try:
            self._reply(ACK, MAX_MESSAGE_LENGTH)
        except OSError as exc:
            logsupport.errorf("LRPC SERVER: Error in sending ack for connection %s: %s", id(self), exc)
            self._fail_handshake(exc)
            return

        logsupport.tracef("LRPC SERVER: connection %s is ready for requests", id(self))
        self.connected = True
        self._handshake_done.set()

    # message exchange ----------------------------------------------------

    def session_context(self) -> PeerSession:
        """Return the session context describing the calling process."""
        return PeerSession(self._sock)

    def supports_named_messages(self) -> bool:
        """LRPC2 only addresses messages by ID."""
        return False

    def read_request(self) -> tuple[Header, int, list]:
        """Read one request.

        Returns the request header, which must be handed back to
        :meth:`write_response`, the message ID and the argument values.
        Raises :class:`EOFError` when the client has closed the connection.
        """
        self._handshake_done.wait()
        if self._handshake_error is not None:
            logsupport.debugf(
                "LRPC SERVER: Connection %s has handshake error: %s", id(self), self._handshake_error
            )
            raise self._handshake_error
        if not self.connected:
            logsupport.debugf("LRPC SERVER: Connection %s is not connected.", id(self))
            raise NotConnectedError()

        try:
            self._sock.settimeout(self.config.receive_timeout)
        except OSError as exc:
            logsupport.infof("Failed to set timeout for LRPC2 connection [%s]: %s", id(self), exc)
            raise
        logsupport.tracef(
            "LRPC SERVER: read_request for connection [%s] with timeout [%s]",
            id(self),
            self.config.receive_timeout,
        )

        try:
            raw_header = recv_exact(self._sock, HEADER_LENGTH_V4)
        except EOFError:
            logsupport.tracef("LRPC SERVER: Get EOF for connection %s.", id(self))
            raise
        except OSError as exc:
            logsupport.errorf(
                "LRPC SERVER: Error in reading %d bytes. Connection %s: %s",
                HEADER_LENGTH_V4,
                id(self),
                exc,
            )
            raise

        header = unpack_header(raw_header)
        try:
            header.verify()
        except Exception as exc:
            logsupport.debugf("LRPC SERVER: Cannot verify header for connection %s: %s", id(self), exc)
            raise

        logsupport.tracef(
            "LRPC SERVER: Connection %s.  Header verified.  Try to read %d bytes for message body.",
            id(self),
            header.msg_data_len,
        )
        body = recv_exact(self._sock, header.msg_data_len)
        try:
            cmd, args = decode(body)
        except Exception as exc:
            logsupport.debugf(
                "LRPC SERVER: Connection %s.  Error in decoding incoming message: %s", id(self), exc
            )
            raise
        logsupport.tracef(
            "LRPC SERVER: Connection %s:  Read sequence number: %d", id(self), header.sequence_num
        )
        return header, cmd, args

    def write_response(self, msg, command, results) -> None:
        """Send ``results`` as the response to the request described by ``msg``."""
        if not self.connected:
            logsupport.debugf("LRPC SERVER: Connection %s is not connected.", id(self))
            raise NotConnectedError()
        if not isinstance(msg, Header):
            logsupport.errorf("LRPC SERVER:  Wrong message context for connection %s", id(self))
            raise BadContextError()
        if isinstance(command, bool) or not isinstance(command, int) or not 0 <= command <= 0xFFFF:
            logsupport.errorf(
                "LRPC SERVER: wrong command type %s. Value: %r", type(command).__name__, command
            )
            raise BadContextError()

        try:
            self._sock.settimeout(self.config.send_timeout)
        except OSError as exc:
            logsupport.infof("Failed to set timeout for LRPC2 connection [%s]: %s", id(self), exc)
            raise

        try:
            body = encode(command, results)
        except Exception as exc:
            logsupport.errorf("LRPC SERVER: Connection %s. Error in encoding results: %s", id(self), exc)
            raise

        header = Header(
            pid=msg.pid,
            sequence_num=msg.sequence_num,
            timestamp=int(time.time()),
            msg_data_len=len(body),
        )
        try:
            send_all(self._sock, header.pack() + body)
        except OSError as exc:
            logsupport.errorf(
                "LRPC SERVER: Connection %s.  Error in writing reply to network: %s", id(self), exc
            )
            raise
        logsupport.tracef("LRPC SERVER: Connection %s. Reply sent", id(self))

    def close(self) -> None:
        """Close the connection."""
        self.connected = False
        self._sock.close()


@dataclass
class MessageListener:
    """Listens on an endpoint and accepts :class:`ServerConnection` objects."""

    sock: socket.socket
    endpoint: str
    config: ServerConfig = field(default_factory=ServerConfig)

    def accept(self) -> ServerConnection:
        """Wait for a client and return its connection, with handshake under way.

        Raises :class:`OSError` once the listener has been closed.
        """
        conn, _ = self.sock.accept()
        connection = ServerConnection(conn, self.endpoint, self.config)
        logsupport.debugf("LRPC SERVER:  accept new connection %s", id(connection))
        return connection

    def close(self) -> None:
        """Stop listening and remove the endpoint."""
        try:
            # wakes any thread blocked in accept()
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
        try:
            os.remove(self.endpoint)
        except OSError:
            pass


def create_message_server(endpoint: str, acl=None) -> MessageListener:
    """Start listening on ``endpoint`` and return the listener."""
    try:
        sock = start_listener(endpoint, acl)
    except OSError as exc:
        logsupport.errorf(
            "LRPC Server: Cannot create message server session for endpoint %s: %s", endpoint, exc
        )
        raise
    listener = MessageListener(sock, endpoint, ServerConfig())
    logsupport.debugf("LRPC Server: New message server session created for endpoint %s", endpoint)
    return listener