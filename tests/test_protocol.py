import pytest

from cfylrpc.protocol import (
    HEADER_LENGTH_V4,
    MAGIC_NUMBER,
    MAX_MESSAGE_LENGTH,
    BadHeaderLengthError,
    BadMagicNumberError,
    BadMessageLengthError,
    CommandOutOfRangeError,
    Header,
    InvalidMessageError,
    LrpcError,
    MessageId,
    NameNotSupportedError,
    VersionMismatchError,
    command_id,
    unpack_header,
)


def test_packed_header_has_fixed_length():
    assert len(Header().pack()) == HEADER_LENGTH_V4


def test_packed_header_starts_with_little_endian_magic():
    assert Header().pack()[:4] == bytes.fromhex("1280cdab")


def test_header_round_trip():
    header = Header(pid=4242, sequence_num=7, timestamp=1700000000, msg_data_len=512)
    assert unpack_header(header.pack()) == header


def test_unpack_ignores_trailing_bytes():
    header = Header(sequence_num=99)
    assert unpack_header(header.pack() + b"extra") == header


def test_unpack_short_data():
    with pytest.raises(InvalidMessageError):
        unpack_header(Header().pack()[:-1])


def test_default_header_verifies():
    header = Header(msg_data_len=MAX_MESSAGE_LENGTH)
    header.verify()
    assert header.magic_num == MAGIC_NUMBER


@pytest.mark.parametrize(
    "header, error, text",
    [
        (Header(magic_num=0), BadMagicNumberError, "Bad magic number"),
        (Header(header_len=HEADER_LENGTH_V4 + 1), BadHeaderLengthError, "Bad header length"),
        (Header(version=3), VersionMismatchError, "Message version mismatched"),
        (Header(msg_data_len=MAX_MESSAGE_LENGTH + 1), BadMessageLengthError, "Bad message length"),
    ],
)
def test_verify_rejects(header, error, text):
    with pytest.raises(error, match=text):
        header.verify()


def test_errors_share_base_class():
    with pytest.raises(LrpcError):
        Header(magic_num=1).verify()


@pytest.mark.parametrize("cmd", [0, 1500, 0xFFFF, MessageId.CLIENT_INFO])
def test_command_id_accepts_16_bit_values(cmd):
    assert command_id(cmd) == int(cmd)


@pytest.mark.parametrize("cmd", [-1, 0x10000, 2**32])
def test_command_id_out_of_range(cmd):
    with pytest.raises(CommandOutOfRangeError, match="Command out of supported range"):
        command_id(cmd)


@pytest.mark.parametrize("cmd", ["echo", 1.5, True, None])
def test_command_id_by_name_not_supported(cmd):
    with pytest.raises(NameNotSupportedError):
        command_id(cmd)