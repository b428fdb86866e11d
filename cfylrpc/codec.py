"""Encoding and decoding of LRPC2 message bodies.

A body is a little-endian ``uint16`` message ID followed by tagged values and
an end marker.  Python integers carry no width, so 32-bit values are passed
as :class:`Int32` or :class:`UInt32`; decoding gives them back the same way.
"""

from __future__ import annotations

import struct
from enum import IntEnum

from . import logsupport
from .protocol import (
    IncorrectTypeError,
    InvalidMessageError,
    TypeNotSupportedError,
    command_id,
)

__all__ = ["DataType", "Int32", "UInt32", "encode", "decode"]

_TEXT_ENCODING = "utf-8"
_TEXT_ERRORS = "surrogateescape"


class DataType(IntEnum):
    """Type tags of values in a message body.

    The values from ``END`` to ``PROTECTED_BLOB`` are shared with the client
    agent and must not change.
    """

    END = 0
    BOOL = 1
    INT32 = 2
    UINT32 = 3
    STRING = 4
    PASSWORD = 5  # deprecated, never written
    BLOB = 6
    STRING_SET = 7
    KEY_VALUE_SET = 8
    PROTECTED_BLOB = 9  # not supported
    BYTE = 10
    UINT64 = 11
    INT64 = 12
    INT = 13
    NIL = 14


class Int32(int):
    """A signed 32-bit integer value."""

    _LOW, _HIGH = -(2**31), 2**31 - 1

    def __new__(cls, value: int = 0) -> "Int32":
        number = int.__new__(cls, value)
        if not cls._LOW <= number <= cls._HIGH:
            raise ValueError(f"{int(number)} does not fit in {cls.__name__}")
        return number

    def __repr__(self) -> str:
        return f"{type(self).__name__}({int(self)})"


class UInt32(Int32):
    """An unsigned 32-bit integer value."""

    _LOW, _HIGH = 0, 2**32 - 1


# UInt32 derives from Int32 only to share the range check; keep the
# two distinct when dispatching on type.
def _is_int32(value) -> bool:
    return type(value) is Int32


def _is_uint32(value) -> bool:
    return type(value) is UInt32


def _text(value: str) -> bytes:
    return value.encode(_TEXT_ENCODING, _TEXT_ERRORS)


def _sized(data: bytes) -> bytes:
    return struct.pack("<I", len(data)) + data


def _encode_value(cmd: int, value) -> bytes:
    if value is None:
        return struct.pack("<Bi", DataType.STRING, -1)
    if isinstance(value, bool):
        return struct.pack("<BB", DataType.BOOL, 1 if value else 0)
    if _is_int32(value):
        return struct.pack("<Bi", DataType.INT32, value)
    if _is_uint32(value):
        return struct.pack("<BI", DataType.UINT32, value)
    if isinstance(value, str):
        return bytes([DataType.STRING]) + _sized(_text(value))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes([DataType.BLOB]) + _sized(bytes(value))
    if isinstance(value, dict) and all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        body = b"".join(_sized(_text(k)) + _sized(_text(v)) for k, v in value.items())
        return struct.pack("<BI", DataType.KEY_VALUE_SET, len(value)) + body
    if isinstance(value, (list, tuple)):
        if value and all(_is_uint32(item) for item in value):
            # a sequence of uint32 goes out as separate uint32 values
            return b"".join(struct.pack("<BI", DataType.UINT32, item) for item in value)
        if all(isinstance(item, str) for item in value):
            body = b"".join(_sized(_text(item)) for item in value)
            return struct.pack("<BI", DataType.STRING_SET, len(value)) + body
    logsupport.infof(
        "Internal error. Failed to put bytes into LRPC2 message (ID: %s, value: %r, type: %s)",
        cmd,
        value,
        type(value).__name__,
    )
    raise TypeNotSupportedError()


def encode(cmd, args) -> bytes:
    """Encode a message ID and its arguments into a message body."""
    message_id = command_id(cmd)
    parts = [struct.pack("<H", message_id)]
    parts.extend(_encode_value(message_id, value) for value in (args or ()))
    parts.append(bytes([DataType.END]))
    return b"".join(parts)


class _Reader:
    """Sequential reader over a message body."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def take(self, size: int) -> bytes:
        if size < 0 or self._pos + size > len(self._data):
            raise InvalidMessageError()
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def unpack(self, fmt: str):
        layout = struct.Struct(fmt)
        return layout.unpack(self.take(layout.size))[0]

    def sized(self) -> bytes | None:
        length = self.unpack("<i")
        if length == -1:
            return None
        return self.take(length)

    def string(self) -> str:
        return self.take(self.unpack("<i")).decode(_TEXT_ENCODING, _TEXT_ERRORS)


def _decode_value(reader: _Reader, tag: int, cmd: int):
    if tag == DataType.BOOL:
        return reader.unpack("<B") != 0
    if tag == DataType.INT32:
        return Int32(reader.unpack("<i"))
    if tag == DataType.UINT32:
        return UInt32(reader.unpack("<I"))
    if tag == DataType.STRING:
        raw = reader.sized()
        return None if raw is None else raw.decode(_TEXT_ENCODING, _TEXT_ERRORS)
    if tag == DataType.BLOB:
        return reader.sized()
    if tag == DataType.STRING_SET:
        count = reader.unpack("<I")
        return [reader.string() for _ in range(count)]
    if tag == DataType.KEY_VALUE_SET:
        count = reader.unpack("<I")
        pairs = {}
        for _ in range(count):
            key = reader.string()
            pairs[key] = reader.string()
        return pairs
    logsupport.debugf(
        "Internal error. Unsupported message type found while processing LRPC2 message (ID: %s)",
        cmd,
    )
    raise IncorrectTypeError()


def decode(data: bytes) -> tuple[int, list]:
    """Decode a message body into its message ID and list of values.

    A string or blob sent as a null pointer comes back as ``None``.
    """
    reader = _Reader(data)
    try:
        cmd = reader.unpack("<H")
    except InvalidMessageError:
        message = "Failed to read LRPC2 message ID"
        logsupport.debugf("%s", message)
        raise InvalidMessageError(message) from None

    values = []
    while True:
        try:
            tag = reader.unpack("<B")
        except InvalidMessageError:
            message = f"Failed to read message type while processing LRPC2 message (ID: {cmd})"
            logsupport.debugf("%s", message)
            raise InvalidMessageError(message) from None
        if tag == DataType.END:
            return cmd, values
        values.append(_decode_value(reader, tag, cmd))