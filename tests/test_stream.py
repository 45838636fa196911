import sys
import os
import io
import threading
import tracemalloc
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from locker_core.aead import AesGcmCipher, ChaChaCipher, chunk_aad, chunk_nonce, make_cipher
from locker_core.errors import (
    AuthenticationError,
    LockerIOError,
    MalformedContainerError,
    OperationCancelledError,
    UnsupportedFormatError,
)
from locker_core.fileformat import CIPHER_AES256_GCM, CIPHER_CHACHA20_POLY1305, ContainerHeader
from locker_core.kdf import KDF_ARGON2ID, KdfParams
from locker_core.stream import (
    check_cancel,
    decrypt_bytes,
    decrypt_stream,
    encrypt_bytes,
    encrypt_stream,
    iter_chunk_lengths,
)

KEY = b"\x42" * 32
CHUNK = 4096


def make_header(length, cipher_id=CIPHER_AES256_GCM):
    return ContainerHeader(
        cipher_id=cipher_id,
        kdf=KdfParams(KDF_ARGON2ID, 1, 8192, 1),
        salt=b"\x01" * 16,
        nonce=os.urandom(12),
        chunk_size=CHUNK,
        plaintext_length=length,
    )


@pytest.mark.parametrize("cipher_id", [CIPHER_AES256_GCM, CIPHER_CHACHA20_POLY1305])
def test_stream_roundtrip_multi_chunk(cipher_id):
    data = os.urandom(3 * CHUNK + 17)
    hdr = make_header(len(data), cipher_id)
    cipher = make_cipher(cipher_id, KEY)
    body = encrypt_bytes(data, cipher, hdr)
    assert len(body) == hdr.body_length
    assert decrypt_bytes(body, cipher, hdr) == data


def test_empty_plaintext_still_has_authenticated_chunk():
    hdr = make_header(0)
    cipher = AesGcmCipher(KEY)
    body = encrypt_bytes(b"", cipher, hdr)
    assert len(body) == 16
    assert decrypt_bytes(body, cipher, hdr) == b""
    with pytest.raises(AuthenticationError):
        decrypt_bytes(bytes(16), cipher, hdr)


def test_iter_chunk_lengths_marks_only_last_chunk_final():
    lengths = list(iter_chunk_lengths(make_header(2 * CHUNK + 1)))
    assert lengths == [(0, CHUNK, False), (1, CHUNK, False), (2, 1, True)]


def test_chunk_nonces_are_unique():
    base = os.urandom(12)
    nonces = {chunk_nonce(base, i) for i in range(5000)}
    assert len(nonces) == 5000
    assert chunk_nonce(base, 0) == base


def test_chunk_aad_binds_index_and_final_flag():
    aad = b"h" * 59
    assert chunk_aad(aad, 1, False) != chunk_aad(aad, 1, True)
    assert chunk_aad(aad, 1, False) != chunk_aad(aad, 2, False)
    assert len(chunk_aad(aad, 0, True)) == 59 + 9


def test_reordered_chunks_fail_authentication():
    data = os.urandom(3 * CHUNK)
    hdr = make_header(len(data))
    cipher = AesGcmCipher(KEY)
    body = encrypt_bytes(data, cipher, hdr)
    rec = CHUNK + 16
    swapped = body[rec : 2 * rec] + body[:rec] + body[2 * rec :]
    with pytest.raises(AuthenticationError):
        decrypt_bytes(swapped, cipher, hdr)


def test_flipped_byte_fails_authentication():
    data = os.urandom(CHUNK + 5)
    hdr = make_header(len(data))
    cipher = ChaChaCipher(KEY)
    body = bytearray(encrypt_bytes(data, cipher, hdr))
    body[CHUNK + 20] ^= 0x01
    with pytest.raises(AuthenticationError):
        decrypt_bytes(bytes(body), cipher, hdr)


def test_header_change_breaks_every_chunk():
    data = os.urandom(100)
    hdr = make_header(len(data))
    cipher = AesGcmCipher(KEY)
    body = encrypt_bytes(data, cipher, hdr)
    other = ContainerHeader(
        cipher_id=hdr.cipher_id,
        kdf=KdfParams(KDF_ARGON2ID, 2, 8192, 1),
        salt=hdr.salt,
        nonce=hdr.nonce,
        chunk_size=hdr.chunk_size,
        plaintext_length=hdr.plaintext_length,
    )
    with pytest.raises(AuthenticationError):
        decrypt_bytes(body, cipher, other)


def test_wrong_key_fails_authentication():
    data = b"conteudo"
    hdr = make_header(len(data))
    body = encrypt_bytes(data, AesGcmCipher(KEY), hdr)
    with pytest.raises(AuthenticationError):
        decrypt_bytes(body, AesGcmCipher(b"\x43" * 32), hdr)


def test_truncated_body_is_malformed():
    data = os.urandom(2 * CHUNK)
    hdr = make_header(len(data))
    cipher = AesGcmCipher(KEY)
    body = encrypt_bytes(data, cipher, hdr)
    with pytest.raises(MalformedContainerError, match="truncado"):
        decrypt_bytes(body[: CHUNK + 16], cipher, hdr)


def test_trailing_bytes_are_malformed():
    hdr = make_header(10)
    cipher = AesGcmCipher(KEY)
    body = encrypt_bytes(b"0123456789", cipher, hdr)
    with pytest.raises(MalformedContainerError, match="excedentes"):
        decrypt_bytes(body + b"\x00", cipher, hdr)


def test_plaintext_released_only_after_verification():
    data = os.urandom(2 * CHUNK)
    hdr = make_header(len(data))
    cipher = AesGcmCipher(KEY)
    body = bytearray(encrypt_bytes(data, cipher, hdr))
    body[-1] ^= 0x80
    released = []
    with pytest.raises(AuthenticationError):
        for plain in decrypt_stream(io.BytesIO(bytes(body)), cipher, hdr):
            released.append(plain)
    assert released == [data[:CHUNK]]


def test_source_size_change_is_io_error():
    hdr = make_header(CHUNK + 10)
    with pytest.raises(LockerIOError, match="alterado"):
        encrypt_bytes(b"x" * CHUNK, AesGcmCipher(KEY), hdr)
    with pytest.raises(LockerIOError, match="alterado"):
        encrypt_bytes(b"x" * (CHUNK + 11), AesGcmCipher(KEY), hdr)


def test_progress_reports_monotonic_totals():
    data = os.urandom(2 * CHUNK + 1)
    hdr = make_header(len(data))
    seen = []
    list(encrypt_stream(io.BytesIO(data), AesGcmCipher(KEY), hdr, progress_cb=lambda d, t: seen.append((d, t))))
    assert seen == [(CHUNK, len(data)), (2 * CHUNK, len(data)), (len(data), len(data))]


def test_cancel_between_chunks():
    data = os.urandom(3 * CHUNK)
    hdr = make_header(len(data))
    event = threading.Event()
    stream = encrypt_stream(io.BytesIO(data), AesGcmCipher(KEY), hdr, cancel=event)
    next(stream)
    event.set()
    with pytest.raises(OperationCancelledError):
        next(stream)


def test_check_cancel_accepts_callable():
    check_cancel(None)
    check_cancel(lambda: False)
    with pytest.raises(OperationCancelledError):
        check_cancel(lambda: True)


def test_unknown_cipher_id_is_unsupported():
    with pytest.raises(UnsupportedFormatError):
        make_cipher(7, KEY)


class _MeteredReader(io.BytesIO):
    """BytesIO que guarda o maior pedido de ``read``."""

    def __init__(self, data):
        super().__init__(data)
        self.largest = 0

    def read(self, n=-1):
        self.largest = max(self.largest, n if n >= 0 else 1 << 62)
        return super().read(n)


def test_streams_read_at_most_one_record_per_call():
    data = os.urandom(64 * CHUNK + 100)
    hdr = make_header(len(data))
    cipher = AesGcmCipher(KEY)

    reader = _MeteredReader(data)
    records = list(encrypt_stream(reader, cipher, hdr))
    assert reader.largest <= CHUNK
    assert max(len(r) for r in records) == CHUNK + 16

    reader = _MeteredReader(b"".join(records))
    sizes = [len(p) for p in decrypt_stream(reader, cipher, hdr)]
    assert reader.largest <= CHUNK + 16
    assert sum(sizes) == len(data)
    assert max(sizes) == CHUNK


def test_stream_memory_does_not_grow_with_chunk_count():
    data = os.urandom(256 * CHUNK)
    hdr = make_header(len(data))
    cipher = AesGcmCipher(KEY)
    body = encrypt_bytes(data, cipher, hdr)

    def peak(run):
        tracemalloc.start()
        try:
            run()
            return tracemalloc.get_traced_memory()[1]
        finally:
            tracemalloc.stop()

    def drain(gen):
        for _ in gen:
            pass

    enc_reader, dec_reader = io.BytesIO(data), io.BytesIO(body)
    enc_peak = peak(lambda: drain(encrypt_stream(enc_reader, cipher, hdr)))
    dec_peak = peak(lambda: drain(decrypt_stream(dec_reader, cipher, hdr)))
    # 1 MiB atravessa o stream; o pico fica na ordem de poucos chunks
    assert enc_peak < 16 * (CHUNK + 16)
    assert dec_peak < 16 * (CHUNK + 16)
