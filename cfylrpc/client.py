"""LRPC2 client sessions and request helpers."""

from __future__ import annotations

import os
import random
import socket
import struct
import time
from dataclasses import dataclass

from . import logsupport
from .codec import decode, encode
from .network import connect_to_server, recv_exact, send_all
from .protocol import (
    CONNECT_TIMEOUT,
    HEADER_LENGTH_V4,
    NACK,
    RECEIVE_TIMEOUT,
    SEND_TIMEOUT,
    VERSION_4,
    Header,
    HandshakeRejectedError,
    LrpcError,
    MessageTooLongError,
    NotConnectedError,
    SequenceMismatchError,
    command_id,
    unpack_header,
)

__all__ = ["ClientConfig", "Lrpc2Client", "do_request", "do_async_request"]

_UINT32_MASK = 0xFFFFFFFF


@dataclass
class ClientConfig:
    """Timeouts, in seconds, used by a client session."""

    connect_timeout: float = CONNECT_TIMEOUT
    receive_timeout: float = RECEIVE_TIMEOUT
    send_timeout: float = SEND_TIMEOUT


class Lrpc2Client:
    """A client session to one LRPC2 endpoint.

    A session handles one request at a time; callers sharing it across
    threads must serialise access themselves.
    """

    def __init__(self, endpoint: str, config: ClientConfig | None = None) -> None:
        self.endpoint = endpoint
        self.config = config if config is not None else ClientConfig()
        self.max_msg_data_len = 0
        self.sequence_num = 0
        self.pid = 0
        self.session_pid = 0
        self._sock: socket.socket | None = None

    def __enter__(self) -> "Lrpc2Client":
        if self._sock is None:
            self.connect()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def supports_named_messages(self) -> bool:
        """LRPC2 only addresses messages by ID."""
        return False

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise NotConnectedError()
        return self._sock

    def connect(self) -> None:
        """Connect to the endpoint and perform the protocol handshake."""
        logsupport.tracef("LRPC2 client: Connecting to LRPC server %s...", self.endpoint)
        try:
            sock = connect_to_server(self.endpoint)
        except OSError as exc:
            logsupport.debugf("LRPC2 client: cannot connect to %s: %s", self.endpoint, exc)
            raise
        self._sock = sock
        try:
            self._handshake(sock)
        except BaseException:
            self._sock = None
            try:
                sock.close()
            except OSError as exc:
                logsupport.errorf(
                    "LRPC2 client: Failed to close LRPC connection after handshake failure: %s",
                    exc,
                )
            raise
        logsupport.tracef("%s", "LRPC2 client: Handshake completed successfully")

    def _handshake(self, sock: socket.socket) -> None:
        # the connect timeout covers the whole handshake
        sock.settimeout(self.config.connect_timeout)
        logsupport.tracef(
            "LRPC2 client: Handshaking with timeout %s...", self.config.connect_timeout
        )
        send_all(sock, struct.pack("<I", VERSION_4))
        logsupport.tracef("%s", "LRPC2 client: Sent handshake request, waiting for reply")

        (answer,) = struct.unpack("<I", recv_exact(sock, 4))
        if answer == NACK:
            logsupport.debugf("LRPC2 client: %s", HandshakeRejectedError.default_message)
            raise HandshakeRejectedError()
        (max_len,) = struct.unpack("<I", recv_exact(sock, 4))

        self.max_msg_data_len = max_len
        self.sequence_num = random.getrandbits(32)
        self.pid = os.getpid()
        self.session_pid = self.pid
        logsupport.tracef(
            "LRPC2 client handshake completed. MaxMsgDataLen: %d, seqNum: %d PID: %d",
            self.max_msg_data_len,
            self.sequence_num,
            self.pid,
        )

    def write_request(self, cmd, args) -> None:
        """Send request ``cmd`` with ``args`` to the server.

        The sequence number advances whether or not sending succeeds.
        """
        sock = self._require_socket()
        sock.settimeout(self.config.send_timeout)
        logsupport.tracef(
            "LRPC2 client: Sending request with timeout %s...", self.config.send_timeout
        )
        try:
            try:
                message_id = command_id(cmd)
            except LrpcError as exc:
                logsupport.errorf(
                    "LRPC2 client: Command %r of type %s cannot be sent: %s",
                    cmd,
                    type(cmd).__name__,
                    exc,
                )
                raise
            body = encode(message_id, args)
            if len(body) > self.max_msg_data_len:
                raise MessageTooLongError()
            header = Header(
                pid=self.pid,
                sequence_num=self.sequence_num,
                timestamp=int(time.time()),
                msg_data_len=len(body),
            )
            send_all(sock, header.pack() + body)
            logsupport.tracef("LRPC client: message sent. sequence number: %d", self.sequence_num)
        finally:
            self.sequence_num = (self.sequence_num + 1) & _UINT32_MASK

    def read_response(self) -> list:
        """Read the response to the request just sent and return its values."""
        sock = self._require_socket()
        sock.settimeout(self.config.receive_timeout)
        expected_seq = (self.sequence_num - 1) & _UINT32_MASK
        logsupport.tracef("LRPC client: Entering read_response for request ID: %d", expected_seq)

        try:
            header = unpack_header(recv_exact(sock, HEADER_LENGTH_V4))
            header.verify()
        except (LrpcError, EOFError, OSError) as exc:
            logsupport.errorf("LRPC client: Error in reading response header: %s", exc)
            raise

        if header.sequence_num != expected_seq:
            logsupport.errorf(
                "LRPC client: Expect response sequence number: %d, got %d",
                expected_seq,
                header.sequence_num,
            )
            raise SequenceMismatchError()

        try:
            body = recv_exact(sock, header.msg_data_len)
            _, values = decode(body)
        except (LrpcError, EOFError, OSError) as exc:
            logsupport.errorf("LRPC client: Error in reading response data: %s", exc)
            raise
        logsupport.tracef("LRPC client: Return %d values", len(values))
        return values

    def close(self) -> None:
        """Close the connection to the server."""
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()


def do_request(client: Lrpc2Client, cmd, args) -> list:
    """Send a request and wait for its response values."""
    client.write_request(cmd, args)
    return client.read_response()


def do_async_request(client: Lrpc2Client, cmd, args) -> None:
    """Send a request without waiting for any response."""
    client.write_request(cmd, args)