from __future__ import annotations

import struct
from dataclasses import dataclass, replace
from pathlib import Path
from typing import BinaryIO

from .config import MAX_CHUNK_SIZE, NONCE_SIZE, SALT_SIZE, TAG_SIZE
from .errors import KeyDerivationError, MalformedContainerError, UnsupportedFormatError
from .kdf import KdfParams, validate_params

# Container header (big-endian, all 59 bytes are AAD)
# MAGIC(4) | VERSION(u8) | CIPHER_ID(u8) | KDF_ID(u8) | FLAGS(u8)
# | KDF_COST(u32) | KDF_MEM_KIB(u32) | KDF_PAR(u8) | SALT(16) | NONCE(12)
# | CHUNK_SIZE(u32) | PT_LEN(u64) | NAME_LEN(u16)
# followed by ENC_NAME(NAME_LEN) and the chunk records [ct | tag(16)] ...

MAGIC = b"FLK\x00"
VERSION = 0x01

CIPHER_AES256_GCM = 0x01
CIPHER_CHACHA20_POLY1305 = 0x02

CIPHER_NAMES = {
    "aes-256-gcm": CIPHER_AES256_GCM,
    "chacha20-poly1305": CIPHER_CHACHA20_POLY1305,
}

FLAG_HAS_NAME = 0x01

_HEADER_STRUCT = struct.Struct(f">4sBBBBIIB{SALT_SIZE}s{NONCE_SIZE}sIQH")
HEADER_SIZE = _HEADER_STRUCT.size  # 59
MAX_NAME_BLOCK = 1024 + TAG_SIZE


@dataclass(frozen=True)
class ContainerHeader:
    cipher_id: int
    kdf: KdfParams
    salt: bytes
    nonce: bytes
    chunk_size: int
    plaintext_length: int
    encrypted_name: bytes = b""
    version: int = VERSION

    @property
    def flags(self) -> int:
        return FLAG_HAS_NAME if self.encrypted_name else 0

    @property
    def chunk_count(self) -> int:
        """Número de registros; arquivo vazio ainda tem um chunk final autenticado."""
        if self.plaintext_length == 0:
            return 1
        return -(-self.plaintext_length // self.chunk_size)

    @property
    def body_length(self) -> int:
        return self.plaintext_length + TAG_SIZE * self.chunk_count

    @property
    def total_length(self) -> int:
        return HEADER_SIZE + len(self.encrypted_name) + self.body_length

    def with_name(self, encrypted_name: bytes) -> ContainerHeader:
        return replace(self, encrypted_name=encrypted_name)

    def aad(self) -> bytes:
        """Header fixo (59 bytes); é o AAD de todos os registros."""
        if len(self.salt) != SALT_SIZE:
            raise ValueError("Bad salt size")
        if len(self.nonce) != NONCE_SIZE:
            raise ValueError("Bad nonce size")
        if self.chunk_size <= 0:
            raise ValueError("Invalid chunk size")
        if not (0 <= len(self.encrypted_name) <= MAX_NAME_BLOCK):
            raise ValueError("Name block too large")
        return _HEADER_STRUCT.pack(
            MAGIC,
            self.version,
            self.cipher_id,
            self.kdf.kdf_id,
            self.flags,
            self.kdf.cost,
            self.kdf.memory_kib,
            self.kdf.parallelism,
            self.salt,
            self.nonce,
            self.chunk_size,
            self.plaintext_length,
            len(self.encrypted_name),
        )

    def pack(self) -> bytes:
        return self.aad() + self.encrypted_name


def _parse_fixed(buf: bytes) -> tuple[ContainerHeader, int]:
    """Valida magic e versão antes de qualquer outro campo."""
    if len(buf) < len(MAGIC) or not buf.startswith(MAGIC):
        raise MalformedContainerError("Não é um arquivo bloqueado (magic inválido)")
    if len(buf) < len(MAGIC) + 1:
        raise MalformedContainerError("Header truncado (version)")
    version = buf[len(MAGIC)]
    if version != VERSION:
        raise UnsupportedFormatError(f"Versão de formato não suportada: v{version}")
    if len(buf) < HEADER_SIZE:
        raise MalformedContainerError("Header truncado")

    (
        _magic,
        _ver,
        cipher_id,
        kdf_id,
        flags,
        kdf_cost,
        kdf_mem,
        kdf_par,
        salt,
        nonce,
        chunk_size,
        pt_len,
        name_len,
    ) = _HEADER_STRUCT.unpack_from(buf, 0)

    if cipher_id not in CIPHER_NAMES.values():
        raise UnsupportedFormatError(f"Cifra não suportada (id={cipher_id})")
    if flags & ~FLAG_HAS_NAME:
        raise MalformedContainerError("Flags desconhecidas no header")
    if bool(flags & FLAG_HAS_NAME) != (name_len > 0):
        raise MalformedContainerError("Flag de nome inconsistente")
    if name_len and not (TAG_SIZE < name_len <= MAX_NAME_BLOCK):
        raise MalformedContainerError("Tamanho do bloco de nome inválido")
    if not (0 < chunk_size <= MAX_CHUNK_SIZE):
        raise MalformedContainerError("chunk_size inválido")

    kdf = KdfParams(kdf_id, kdf_cost, kdf_mem, kdf_par)
    try:
        validate_params(kdf)
    except KeyDerivationError as exc:
        raise MalformedContainerError("Parâmetros de KDF inválidos no header") from exc

    hdr = ContainerHeader(
        cipher_id=cipher_id,
        kdf=kdf,
        salt=salt,
        nonce=nonce,
        chunk_size=chunk_size,
        plaintext_length=pt_len,
        version=version,
    )
    return hdr, name_len


def _read(fp: BinaryIO, n: int, what: str) -> bytes:
    b = fp.read(n)
    if b is None or len(b) < n:
        raise MalformedContainerError(f"Header truncado ({what})")
    return b


def read_header(fp: BinaryIO) -> ContainerHeader:
    """
    Lê o header de um stream binário posicionado no início do container.
    Deixa o stream posicionado no primeiro registro de chunk.
    """
    prefix = fp.read(len(MAGIC) + 1)
    if len(prefix) < len(MAGIC) or not prefix.startswith(MAGIC):
        raise MalformedContainerError("Não é um arquivo bloqueado (magic inválido)")
    if len(prefix) == len(MAGIC) + 1 and prefix[-1] != VERSION:
        raise UnsupportedFormatError(f"Versão de formato não suportada: v{prefix[-1]}")
    fixed = prefix + fp.read(HEADER_SIZE - len(prefix))
    hdr, name_len = _parse_fixed(fixed)
    if name_len:
        hdr = hdr.with_name(_read(fp, name_len, "nome"))
    return hdr


def read_container_header(path: str | Path) -> ContainerHeader:
    """Lê o header e confere o tamanho total do arquivo contra o header."""
    path = Path(path)
    with open(path, "rb") as fp:
        hdr = read_header(fp)
        fp.seek(0, 2)
        actual = fp.tell()
    check_container_size(hdr, actual)
    return hdr


def expected_container_size(hdr: ContainerHeader) -> int:
    """header + bloco de nome + plaintext + uma tag por chunk."""
    return hdr.total_length


def check_container_size(hdr: ContainerHeader, actual: int) -> None:
    expected = expected_container_size(hdr)
    if actual < expected:
        raise MalformedContainerError("Container truncado")
    if actual > expected:
        raise MalformedContainerError("Dados excedentes após o último chunk")


def encode(header: ContainerHeader, ciphertext: bytes) -> bytes:
    """Serializa header + corpo (registros ``ct||tag`` já concatenados)."""
    if len(ciphertext) != header.body_length:
        raise ValueError("Tamanho do ciphertext não confere com o header")
    return header.pack() + ciphertext


def decode(data: bytes) -> tuple[ContainerHeader, bytes]:
    """Inverso de ``encode``; não toca em material de chave."""
    hdr, name_len = _parse_fixed(data)
    end_name = HEADER_SIZE + name_len
    if len(data) < end_name:
        raise MalformedContainerError("Header truncado (nome)")
    if name_len:
        hdr = hdr.with_name(bytes(data[HEADER_SIZE:end_name]))
    check_container_size(hdr, len(data))
    return hdr, bytes(data[end_name:])


def is_container(path: str | Path) -> bool:
    """Checagem rápida pelo magic; não valida o resto."""
    try:
        with open(Path(path), "rb") as fp:
            return fp.read(len(MAGIC)) == MAGIC
    except OSError:
        return False


__all__ = [
    "MAGIC",
    "VERSION",
    "HEADER_SIZE",
    "CIPHER_AES256_GCM",
    "CIPHER_CHACHA20_POLY1305",
    "CIPHER_NAMES",
    "ContainerHeader",
    "read_header",
    "read_container_header",
    "expected_container_size",
    "check_container_size",
    "encode",
    "decode",
    "is_container",
]
