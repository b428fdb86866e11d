"""LRPC2 local message protocol over Unix domain sockets: codec, client, connection listener and utilities."""

__version__ = "0.1.0"

__all__ = [
    "client",
    "codec",
    "cversion",
    "logsupport",
    "network",
    "protocol",
    "server",
    "session",
]