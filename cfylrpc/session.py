"""Per-connection session state and peer information for LRPC sessions."""

from __future__ import annotations

import os
import socket
import struct
from dataclasses import dataclass

from .protocol import LrpcError

__all__ = ["SessionContext", "PeerCredentials", "PeerSession", "peer_credentials"]

_UCRED = struct.Struct("3i")


class SessionContext:
    """Holds values that command handlers share within one LRPC session."""

    def __init__(self) -> None:
        self._props: dict[str, object] = {}

    def get(self, key: str):
        """Return the value saved under ``key``, or ``None``."""
        return self._props.get(key)

    def set(self, key: str, value) -> None:
        """Save ``value`` under ``key`` for later calls to :meth:`get`."""
        self._props[key] = value


@dataclass(frozen=True)
class PeerCredentials:
    """Process and user identity of the peer of a Unix-domain socket."""

    pid: int
    uid: int
    gid: int


def peer_credentials(sock: socket.socket) -> PeerCredentials:
    """Return the credentials of the process at the other end of ``sock``."""
    option = getattr(socket, "SO_PEERCRED", None)
    if option is None:
        raise OSError("Cannot get socket information: peer credentials not available")
    try:
        raw = sock.getsockopt(socket.SOL_SOCKET, option, _UCRED.size)
    except OSError as exc:
        raise OSError(f"Cannot get socket information: {exc}") from exc
    pid, uid, gid = _UCRED.unpack(raw)
    return PeerCredentials(pid=pid, uid=uid, gid=gid)


def _executable_name(pid: int) -> str:
    try:
        with open(f"/proc/{pid}/stat", "rb") as stat:
            content = stat.read().decode("utf-8", "replace")
    except FileNotFoundError:
        raise LrpcError("Process is terminated already") from None
    start, end = content.find("("), content.rfind(")")
    if start < 0 or end < start:
        raise LrpcError(f"Cannot read process information for {pid}")
    return content[start + 1 : end]


class PeerSession(SessionContext):
    """Session context of an accepted connection, aware of the calling process."""

    def __init__(
        self,
        sock: socket.socket | None = None,
        credentials: PeerCredentials | None = None,
    ) -> None:
        super().__init__()
        self.sock = sock
        if credentials is None and sock is not None:
            credentials = peer_credentials(sock)
        self.credentials = credentials
        self._program: str | None = None
        if credentials is not None:
            self.set("_uid", credentials.uid)

    def _require_credentials(self) -> PeerCredentials:
        if self.credentials is None:
            raise LrpcError("No peer credential")
        return self.credentials

    def is_privileged(self) -> bool:
        """Return whether the calling process runs as root."""
        return self._require_credentials().uid == 0

    def process_id(self) -> int:
        """Return the PID of the calling process."""
        return self._require_credentials().pid

    def caller_user_id(self) -> str:
        """Return the UID of the calling process as a string."""
        return str(self._require_credentials().uid)

    def program(self) -> str:
        """Return the executable name of the calling process."""
        if self._program:
            return self._program
        self._program = _executable_name(self.process_id())
        return self._program