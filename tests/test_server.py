import os
import socket
import struct
import tempfile
from concurrent.futures import ThreadPoolExecutor

import pytest

from cfylrpc.client import Lrpc2Client, do_request
from cfylrpc.codec import Int32, UInt32, decode, encode
from cfylrpc.network import recv_exact
from cfylrpc.protocol import (
    HEADER_LENGTH_V4,
    MAX_MESSAGE_LENGTH,
    BadContextError,
    BadMagicNumberError,
    BadVersionError,
    Header,
    NotConnectedError,
    unpack_header,
)
from cfylrpc.server import create_message_server


@pytest.fixture
def endpoint():
    with tempfile.TemporaryDirectory(prefix="lrpc") as directory:
        yield os.path.join(directory, "ep")


@pytest.fixture
def listener(endpoint):
    server = create_message_server(endpoint)
    yield server
    server.close()


def _raw_client(endpoint):
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(5)
    sock.connect(endpoint)
    return sock


def _handshake(sock, version=4):
    sock.sendall(struct.pack("<I", version))


def _connected_pair(listener):
    client = _raw_client(listener.endpoint)
    conn = listener.accept()
    _handshake(client)
    reply = recv_exact(client, 8)
    return client, conn, reply


def test_handshake_ack_carries_max_length(listener):
    client, conn, reply = _connected_pair(listener)
    try:
        assert reply == struct.pack("<II", 1, MAX_MESSAGE_LENGTH)
    finally:
        client.close()
        conn.close()


def test_bad_version_is_nacked(listener):
    client = _raw_client(listener.endpoint)
    conn = listener.accept()
    _handshake(client, version=3)
    assert recv_exact(client, 4) == struct.pack("<I", 0)
    with pytest.raises(BadVersionError):
        conn.read_request()
    with pytest.raises(NotConnectedError):
        conn.write_response(Header(), 1, [])
    client.close()
    conn.close()


def test_request_and_response_share_sequence_and_pid(listener):
    client, conn, _ = _connected_pair(listener)
    try:
        body = encode(100, ["abc", UInt32(5)])
        header = Header(pid=42, sequence_num=7, msg_data_len=len(body))
        client.sendall(header.pack() + body)

        msg, cmd, args = conn.read_request()
        assert cmd == 100
        assert args == ["abc", UInt32(5)]
        assert msg.sequence_num == 7

        conn.write_response(msg, cmd, [True])
        reply = unpack_header(recv_exact(client, HEADER_LENGTH_V4))
        assert reply.sequence_num == 7
        assert reply.pid == 42
        assert decode(recv_exact(client, reply.msg_data_len)) == (100, [True])
    finally:
        client.close()
        conn.close()


def test_bad_magic_number_rejected(listener):
    client, conn, _ = _connected_pair(listener)
    try:
        body = encode(1, [])
        client.sendall(Header(magic_num=0, msg_data_len=len(body)).pack() + body)
        with pytest.raises(BadMagicNumberError):
            conn.read_request()
    finally:
        client.close()
        conn.close()


def test_eof_when_client_closes(listener):
    client, conn, _ = _connected_pair(listener)
    client.close()
    with pytest.raises(EOFError):
        conn.read_request()
    conn.close()


def test_session_context_reports_calling_process(listener):
    client, conn, _ = _connected_pair(listener)
    try:
        ctxt = conn.session_context()
        assert ctxt.process_id() == os.getpid()
        assert ctxt.caller_user_id() == str(os.getuid())
        assert ctxt.is_privileged() == (os.getuid() == 0)
    finally:
        client.close()
        conn.close()


def test_named_messages_not_supported(listener):
    client, conn, _ = _connected_pair(listener)
    try:
        assert conn.supports_named_messages() is False
    finally:
        client.close()
        conn.close()


def _serve_echo(listener):
    conn = listener.accept()
    try:
        msg, cmd, args = conn.read_request()
        conn.write_response(msg, cmd, args)
        return cmd
    finally:
        conn.close()


def test_echo_with_client(listener):
    request = [UInt32(12345), True, "test string", Int32(-3456)]
    with ThreadPoolExecutor(max_workers=1) as pool:
        served = pool.submit(_serve_echo, listener)
        client = Lrpc2Client(listener.endpoint)
        client.connect()
        try:
            result = do_request(client, 100, request)
        finally:
            client.close()
        assert served.result(timeout=5) == 100
    assert result == request


def test_existing_endpoint_file_is_replaced(endpoint):
    with open(endpoint, "w") as stale:
        stale.write("stale")
    server = create_message_server(endpoint)
    try:
        client = _raw_client(endpoint)
        conn = server.accept()
        _handshake(client)
        assert recv_exact(client, 4) == struct.pack("<I", 1)
        client.close()
        conn.close()
    finally:
        server.close()


def test_close_removes_endpoint_and_stops_accept(endpoint):
    server = create_message_server(endpoint)
    server.close()
    assert not os.path.exists(endpoint)
    with pytest.raises(OSError):
        server.accept()