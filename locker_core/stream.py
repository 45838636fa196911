"""
stream.py – criptografia AEAD em chunks de tamanho fixo.

• Memória limitada: um chunk por vez, nunca o arquivo inteiro
• Nonce por chunk derivado do nonce base + índice (aead.chunk_nonce)
• AAD de cada chunk = header fixo + índice + flag de último chunk
• Cancelamento verificado entre chunks
"""

from __future__ import annotations

import io
from collections.abc import Callable, Iterator
from typing import BinaryIO, Protocol, Union

from .aead import AeadCipher, chunk_aad, chunk_nonce
from .config import TAG_SIZE
from .errors import LockerIOError, MalformedContainerError, OperationCancelledError
from .fileformat import ContainerHeader

ProgressCallback = Callable[[int, int], None]


class _Event(Protocol):
    def is_set(self) -> bool: ...


CancelToken = Union[_Event, Callable[[], bool], None]


def _cancelled(cancel: CancelToken) -> bool:
    if cancel is None:
        return False
    is_set = getattr(cancel, "is_set", None)
    if callable(is_set):
        return bool(is_set())
    return bool(cancel())


def check_cancel(cancel: CancelToken) -> None:
    if _cancelled(cancel):
        raise OperationCancelledError()


def _read_exact(f: BinaryIO, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        piece = f.read(n - len(buf))
        if not piece:
            break
        buf += piece
    return bytes(buf)


def iter_chunk_lengths(header: ContainerHeader) -> Iterator[tuple[int, int, bool]]:
    """(índice, bytes de plaintext, é_último) para cada registro do container."""
    remaining = header.plaintext_length
    index = 0
    while True:
        n = min(header.chunk_size, remaining)
        remaining -= n
        final = remaining == 0
        yield index, n, final
        if final:
            return
        index += 1


def encrypt_stream(
    reader: BinaryIO,
    cipher: AeadCipher,
    header: ContainerHeader,
    *,
    cancel: CancelToken = None,
    progress_cb: ProgressCallback | None = None,
) -> Iterator[bytes]:
    """
    Gera os registros ``ct||tag`` para o plaintext lido de ``reader``.

    O tamanho total vem de ``header.plaintext_length``; se a origem encolher ou
    crescer durante a leitura a operação falha com ``LockerIOError``.
    """
    aad = header.aad()
    total = header.plaintext_length
    done = 0
    for index, n, final in iter_chunk_lengths(header):
        check_cancel(cancel)
        data = _read_exact(reader, n)
        if len(data) != n:
            raise LockerIOError("Arquivo de origem alterado durante a leitura")
        if final and reader.read(1):
            raise LockerIOError("Arquivo de origem alterado durante a leitura")
        yield cipher.seal(chunk_nonce(header.nonce, index), data, chunk_aad(aad, index, final))
        done += n
        if progress_cb:
            progress_cb(done, total)


def decrypt_stream(
    reader: BinaryIO,
    cipher: AeadCipher,
    header: ContainerHeader,
    *,
    cancel: CancelToken = None,
    progress_cb: ProgressCallback | None = None,
) -> Iterator[bytes]:
    """
    Gera o plaintext de cada chunk somente depois de verificar a tag dele.

    ``reader`` deve estar posicionado no primeiro registro (após ``read_header``).

    Raises:
        AuthenticationError: tag inválida (senha errada ou adulteração)
        MalformedContainerError: registros truncados ou dados excedentes
    """
    aad = header.aad()
    total = header.plaintext_length
    done = 0
    for index, n, final in iter_chunk_lengths(header):
        check_cancel(cancel)
        record = _read_exact(reader, n + TAG_SIZE)
        if len(record) != n + TAG_SIZE:
            raise MalformedContainerError("Container truncado")
        plain = cipher.open(chunk_nonce(header.nonce, index), record, chunk_aad(aad, index, final))
        if final and reader.read(1):
            raise MalformedContainerError("Dados excedentes após o último chunk")
        yield plain
        done += n
        if progress_cb:
            progress_cb(done, total)


def encrypt_bytes(plaintext: bytes, cipher: AeadCipher, header: ContainerHeader) -> bytes:
    """Conveniência em memória (testes/arquivos pequenos): corpo completo do container."""
    return b"".join(encrypt_stream(io.BytesIO(plaintext), cipher, header))


def decrypt_bytes(body: bytes, cipher: AeadCipher, header: ContainerHeader) -> bytes:
    return b"".join(decrypt_stream(io.BytesIO(body), cipher, header))


__all__ = [
    "ProgressCallback",
    "CancelToken",
    "check_cancel",
    "iter_chunk_lengths",
    "encrypt_stream",
    "decrypt_stream",
    "encrypt_bytes",
    "decrypt_bytes",
]
