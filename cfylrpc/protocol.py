"""LRPC2 protocol constants, errors and the version 4 message header."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

__all__ = [
    "NACK",
    "ACK",
    "MAGIC_NUMBER",
    "MAX_MESSAGE_LENGTH",
    "HANDSHAKE_REQUEST_SIZE",
    "VERSION_4",
    "HANDSHAKE_REPLY_V4_SIZE",
    "HEADER_LENGTH_V4",
    "CONNECT_TIMEOUT",
    "RECEIVE_TIMEOUT",
    "SEND_TIMEOUT",
    "MessageId",
    "LrpcError",
    "BadMagicNumberError",
    "BadHeaderLengthError",
    "VersionMismatchError",
    "BadMessageLengthError",
    "SequenceMismatchError",
    "NameNotSupportedError",
    "MessageTooLongError",
    "TypeNotSupportedError",
    "IncorrectTypeError",
    "InvalidMessageError",
    "BadHandshakeSizeError",
    "BadVersionError",
    "BadContextError",
    "HandshakeRejectedError",
    "CommandOutOfRangeError",
    "NotConnectedError",
    "AlreadyConnectedError",
    "Header",
    "unpack_header",
    "command_id",
]

NACK = 0
ACK = 1
MAGIC_NUMBER = 0xABCD8012
# Limit on request data; responses are not limited.
MAX_MESSAGE_LENGTH = 1024 * 1024
HANDSHAKE_REQUEST_SIZE = 4
VERSION_4 = 4
HANDSHAKE_REPLY_V4_SIZE = 8
HEADER_LENGTH_V4 = 34

CONNECT_TIMEOUT = 5.0
RECEIVE_TIMEOUT = 300.0
SEND_TIMEOUT = 60.0

_HEADER_STRUCT = struct.Struct("<IHIQIQI")


class MessageId(IntEnum):
    """Message IDs understood by the client agent."""

    CLIENT_INFO = 119
    ADMIN_CLIENT_GET_TOKEN = 1500
    GET_PUBLIC_KEY = 1501
    GET_RESOURCE_OWNER_CRED = 1502
    GET_HASHICORP_VAULT_TOKEN = 1503


class LrpcError(Exception):
    """Base class of all LRPC errors."""

    default_message = "LRPC error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class BadMagicNumberError(LrpcError):
    default_message = "Bad magic number"


class BadHeaderLengthError(LrpcError):
    default_message = "Bad header length"


class VersionMismatchError(LrpcError):
    default_message = "Message version mismatched"


class BadMessageLengthError(LrpcError):
    default_message = "Bad message length"


class SequenceMismatchError(LrpcError):
    default_message = "Sequence number mismatched"


class NameNotSupportedError(LrpcError):
    default_message = "Send command by name is not supported"


class MessageTooLongError(LrpcError):
    default_message = "Message length exceeds LRPC2 limit"


class TypeNotSupportedError(LrpcError):
    default_message = "Data type not supported"


class IncorrectTypeError(LrpcError):
    default_message = "Incorrect data type found in lrpc message"


class InvalidMessageError(LrpcError):
    default_message = "Lrpc Message is invalid"


class BadHandshakeSizeError(LrpcError):
    default_message = "LRPC2 handshake request size mismatched"


class BadVersionError(LrpcError):
    default_message = "Unknown LRPC2 version"


class BadContextError(LrpcError):
    default_message = "Incorrect response context"


class HandshakeRejectedError(LrpcError):
    default_message = "LRPC2 handshake rejected"


class CommandOutOfRangeError(LrpcError):
    default_message = "Command out of supported range"


class NotConnectedError(LrpcError):
    default_message = "Not connected"


class AlreadyConnectedError(LrpcError):
    default_message = "Already connected"


@dataclass
class Header:
    """The 34-byte little-endian header that precedes every LRPC2 v4 message."""

    magic_num: int = MAGIC_NUMBER
    header_len: int = HEADER_LENGTH_V4
    version: int = VERSION_4
    pid: int = 0
    sequence_num: int = 0
    timestamp: int = 0
    msg_data_len: int = 0

    def pack(self) -> bytes:
        """Return the wire form of the header."""
        return _HEADER_STRUCT.pack(
            self.magic_num,
            self.header_len,
            self.version,
            self.pid,
            self.sequence_num,
            self.timestamp,
            self.msg_data_len,
        )

    def verify(self) -> None:
        """Raise if the header is not a valid version 4 header."""
        if self.magic_num != MAGIC_NUMBER:
            raise BadMagicNumberError()
        if self.header_len != HEADER_LENGTH_V4:
            raise BadHeaderLengthError()
        if self.version != VERSION_4:
            raise VersionMismatchError()
        if self.msg_data_len > MAX_MESSAGE_LENGTH:
            raise BadMessageLengthError()


def unpack_header(data: bytes) -> Header:
    """Read a header from the first 34 bytes of ``data``."""
    if len(data) < HEADER_LENGTH_V4:
        raise InvalidMessageError(
            f"Header needs {HEADER_LENGTH_V4} bytes, got {len(data)}"
        )
    return Header(*_HEADER_STRUCT.unpack_from(data))


def command_id(cmd) -> int:
    """Check that a command is a message ID that fits in 16 bits and return it."""
    if isinstance(cmd, bool) or not isinstance(cmd, int):
        raise NameNotSupportedError()
    value = int(cmd)
    if not 0 <= value <= 0xFFFF:
        raise CommandOutOfRangeError()
    return value