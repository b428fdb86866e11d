import struct

import pytest

from cfylrpc.codec import DataType, Int32, UInt32, decode, encode
from cfylrpc.protocol import (
    IncorrectTypeError,
    InvalidMessageError,
    NameNotSupportedError,
    TypeNotSupportedError,
)

MSG_ECHO = 100


def _round_trip(args):
    cmd, values = decode(encode(MSG_ECHO, args))
    assert cmd == MSG_ECHO
    return values


def test_echo_mixed_values():
    req = [UInt32(12345), True, "test string", Int32(-3456)]
    res = _round_trip(req)
    assert res == req
    assert [type(v) for v in res] == [UInt32, bool, str, Int32]


def test_key_value_set():
    data = {"key1": "value1", "key2": "value2", "null-value": "", "key3": "value3"}
    assert _round_trip([data]) == [data]


def test_string_set():
    data = ["value1", "value2", "", "preceeded by empty string"] + [""] * 6
    assert _round_trip([data]) == [data]


def test_blob():
    data = bytes((i * 2) % 255 for i in range(1024))
    res = _round_trip([data])
    assert res == [data]
    assert isinstance(res[0], bytes)


def test_nil():
    req = ["abc", None, UInt32(123)]
    assert _round_trip(req) == req


def test_unsupported_float():
    with pytest.raises(TypeNotSupportedError):
        encode(MSG_ECHO, [UInt32(123), 1.234])


def test_plain_int_is_not_supported():
    with pytest.raises(TypeNotSupportedError):
        encode(MSG_ECHO, [5])


def test_uint32_list_is_sent_as_separate_values():
    res = _round_trip([[UInt32(1), UInt32(2), UInt32(3)]])
    assert res == [1, 2, 3]
    assert all(type(v) is UInt32 for v in res)


def test_empty_message():
    assert encode(119, []) == b"\x77\x00\x00"
    assert decode(encode(119, None)) == (119, [])


def test_nil_wire_form():
    body = encode(MSG_ECHO, [None])
    assert body[2:] == bytes([DataType.STRING]) + struct.pack("<i", -1) + bytes([DataType.END])


def test_string_wire_form_has_length_prefix():
    body = encode(MSG_ECHO, ["abc"])
    assert body[2] == DataType.STRING
    assert struct.unpack_from("<I", body, 3)[0] == len("abc")
    assert body[7:10] == b"abc"


def test_command_name_rejected():
    with pytest.raises(NameNotSupportedError):
        encode("echo", [])


def test_decode_empty_data():
    with pytest.raises(InvalidMessageError):
        decode(b"")


def test_decode_missing_end_marker():
    body = encode(MSG_ECHO, ["abc"])
    with pytest.raises(InvalidMessageError):
        decode(body[:-1])


def test_decode_truncated_string():
    body = encode(MSG_ECHO, ["a longer string"])
    with pytest.raises(InvalidMessageError):
        decode(body[:10])


def test_decode_unknown_type():
    body = struct.pack("<HB", MSG_ECHO, DataType.PROTECTED_BLOB)
    with pytest.raises(IncorrectTypeError):
        decode(body)


def test_int32_range_checked():
    with pytest.raises(ValueError):
        Int32(2**31)
    with pytest.raises(ValueError):
        UInt32(-1)


def test_int32_extremes_round_trip():
    req = [Int32(-(2**31)), Int32(2**31 - 1), UInt32(0), UInt32(2**32 - 1)]
    assert _round_trip(req) == req


def test_non_ascii_string_round_trip():
    req = ["grüße", {"ключ": "значение"}, ["日本"]]
    assert _round_trip(req) == req