"""Unix-domain socket endpoints and exact-size socket I/O for LRPC2."""

from __future__ import annotations

import os
import socket

from . import logsupport

__all__ = ["start_listener", "connect_to_server", "recv_exact", "send_all"]


def start_listener(endpoint: str, acl=None) -> socket.socket:
    """Listen on the Unix-domain socket ``endpoint``.

    An existing file at ``endpoint`` is removed first and the new socket is
    made accessible to everyone.  ``acl`` has no meaning on this platform.
    """
    if os.path.lexists(endpoint):
        try:
            os.remove(endpoint)
        except OSError as exc:
            raise OSError(f"Cannot remove existing endpoint: {exc}") from exc

    listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        listener.bind(endpoint)
        listener.listen()
    except OSError as exc:
        listener.close()
        raise OSError(f"Cannot create listen socket {endpoint}: {exc}") from exc
    try:
        os.chmod(endpoint, 0o777)
    except OSError:
        listener.close()
        raise
    return listener


def connect_to_server(endpoint: str) -> socket.socket:
    """Connect to the Unix-domain socket ``endpoint``."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(endpoint)
    except OSError as exc:
        sock.close()
        raise ConnectionError(f"Error in connecting to server: {exc}") from exc
    return sock


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes from ``sock``.

    Raises :class:`EOFError` if the peer closes the connection first.
    Message data is never logged, as it may hold sensitive values.
    """
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        try:
            chunk = sock.recv(remaining)
        except OSError as exc:
            logsupport.debugf("Failed to read from LRPC2 connection [%s]: %s", id(sock), exc)
            raise
        if not chunk:
            received = size - remaining
            logsupport.tracef(
                "No more to read from LRPC2 connection [%s] after %d of %d bytes",
                id(sock),
                received,
                size,
            )
            raise EOFError(f"Connection closed after {received} of {size} bytes")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def send_all(sock: socket.socket, data: bytes) -> None:
    """Write all of ``data`` to ``sock``."""
    if data is None:
        raise ValueError("Internal error: write without bytes")
    try:
        sock.sendall(data)
    except OSError as exc:
        logsupport.debugf("Failed to write to LRPC2 connection [%s]: %s", id(sock), exc)
        raise