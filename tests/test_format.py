import sys
import os
import io
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from locker_core.errors import MalformedContainerError, UnsupportedFormatError
from locker_core.fileformat import (
    CIPHER_AES256_GCM,
    HEADER_SIZE,
    MAGIC,
    ContainerHeader,
    decode,
    encode,
    expected_container_size,
    is_container,
    read_container_header,
    read_header,
)
from locker_core.kdf import KDF_ARGON2ID, KdfParams


def make_header(plaintext_length=10, chunk_size=4096, encrypted_name=b""):
    return ContainerHeader(
        cipher_id=CIPHER_AES256_GCM,
        kdf=KdfParams(KDF_ARGON2ID, 3, 65536, 2),
        salt=b"\x01" * 16,
        nonce=b"\x02" * 12,
        chunk_size=chunk_size,
        plaintext_length=plaintext_length,
        encrypted_name=encrypted_name,
    )


def test_header_is_59_bytes_and_starts_with_magic():
    packed = make_header().pack()
    assert HEADER_SIZE == 59
    assert len(packed) == 59
    assert packed.startswith(MAGIC)
    assert packed[4] == 1


def test_read_header_restores_every_field():
    hdr = make_header(encrypted_name=b"\xaa" * 20)
    fp = io.BytesIO(hdr.pack() + b"corpo")
    parsed = read_header(fp)
    assert parsed == hdr
    assert fp.read() == b"corpo"


@pytest.mark.parametrize(
    "length, chunk, count",
    [(0, 4096, 1), (1, 4096, 1), (4096, 4096, 1), (4097, 4096, 2), (3 * 4096, 4096, 3)],
)
def test_chunk_count(length, chunk, count):
    hdr = make_header(plaintext_length=length, chunk_size=chunk)
    assert hdr.chunk_count == count
    assert hdr.total_length == HEADER_SIZE + length + 16 * count
    assert expected_container_size(hdr) == hdr.total_length


def test_encode_decode_preserves_header_and_body():
    hdr = make_header(plaintext_length=10)
    body = b"\x07" * hdr.body_length
    parsed, parsed_body = decode(encode(hdr, body))
    assert parsed == hdr
    assert parsed_body == body


def test_encode_rejects_wrong_body_length():
    with pytest.raises(ValueError):
        encode(make_header(plaintext_length=10), b"curto")


def test_bad_magic_is_malformed():
    data = b"XXXX" + make_header().pack()[4:]
    with pytest.raises(MalformedContainerError, match="magic"):
        read_header(io.BytesIO(data))


def test_future_version_is_unsupported():
    data = bytearray(make_header().pack())
    data[4] = 2
    with pytest.raises(UnsupportedFormatError, match="v2"):
        read_header(io.BytesIO(bytes(data)))


def test_unknown_cipher_is_unsupported():
    data = bytearray(make_header().pack())
    data[5] = 9
    with pytest.raises(UnsupportedFormatError, match="Cifra"):
        read_header(io.BytesIO(bytes(data)))


def test_truncated_header_is_malformed():
    with pytest.raises(MalformedContainerError, match="truncado"):
        read_header(io.BytesIO(make_header().pack()[:30]))


def test_inconsistent_name_flag_is_malformed():
    data = bytearray(make_header().pack())
    data[7] = 1  # flag de nome sem bloco de nome
    with pytest.raises(MalformedContainerError, match="nome"):
        read_header(io.BytesIO(bytes(data)))


def test_zero_chunk_size_is_malformed():
    data = bytearray(make_header().pack())
    data[45:49] = b"\x00\x00\x00\x00"
    with pytest.raises(MalformedContainerError, match="chunk_size"):
        read_header(io.BytesIO(bytes(data)))


def test_decode_rejects_trailing_and_missing_bytes():
    hdr = make_header(plaintext_length=10)
    blob = encode(hdr, b"\x00" * hdr.body_length)
    with pytest.raises(MalformedContainerError, match="excedentes"):
        decode(blob + b"\x00")
    with pytest.raises(MalformedContainerError, match="truncado"):
        decode(blob[:-1])


def test_read_container_header_checks_file_size(tmp_path):
    hdr = make_header(plaintext_length=10)
    path = tmp_path / "a.locked"
    path.write_bytes(encode(hdr, b"\x00" * hdr.body_length))
    assert read_container_header(path) == hdr
    assert is_container(path)

    path.write_bytes(path.read_bytes()[:-3])
    with pytest.raises(MalformedContainerError):
        read_container_header(path)


def test_is_container_false_for_plain_or_missing_files(tmp_path):
    plain = tmp_path / "texto.txt"
    plain.write_text("olá")
    assert not is_container(plain)
    assert not is_container(tmp_path / "nao-existe")


@pytest.mark.parametrize(
    "offset, value",
    [(6, 0x07), (8, 0xFF), (16, 0x00), (13, 0x00)],
)
def test_out_of_range_kdf_fields_are_malformed(offset, value):
    data = bytearray(make_header().pack())
    data[offset] = value
    with pytest.raises(MalformedContainerError, match="KDF"):
        read_header(io.BytesIO(bytes(data)))
