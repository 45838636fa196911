"""
Back-ends AEAD usados pelo stream de chunks.

- AES-256-GCM via ``cryptography`` (padrão)
- ChaCha20-Poly1305 IETF via PyNaCl/libsodium

Ambos usam nonce de 12 bytes e tag de 16 bytes anexada ao ciphertext.
"""

from __future__ import annotations

import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from nacl.bindings import (
    crypto_aead_chacha20poly1305_ietf_decrypt,
    crypto_aead_chacha20poly1305_ietf_encrypt,
)
from nacl.exceptions import CryptoError

from .config import KEY_SIZE, NONCE_SIZE, TAG_SIZE
from .errors import AuthenticationError, UnsupportedFormatError
from .fileformat import CIPHER_AES256_GCM, CIPHER_CHACHA20_POLY1305

MAX_CHUNK_INDEX = (1 << 64) - 1


class AeadCipher:
    """Interface mínima: ``seal`` devolve ct||tag, ``open`` devolve o plaintext."""

    cipher_id = 0

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise ValueError(f"Chave deve ter {KEY_SIZE} bytes, não {len(key)}")

    def seal(self, nonce: bytes, plaintext: bytes, aad: bytes) -> bytes:
        raise NotImplementedError

    def open(self, nonce: bytes, sealed: bytes, aad: bytes) -> bytes:
        raise NotImplementedError


class AesGcmCipher(AeadCipher):
    """AES-256-GCM (nonce 12 B, tag 16 B)."""

    cipher_id = CIPHER_AES256_GCM

    def __init__(self, key: bytes):
        super().__init__(key)
        self._aead = AESGCM(key)

    def seal(self, nonce: bytes, plaintext: bytes, aad: bytes) -> bytes:
        return self._aead.encrypt(nonce, plaintext, aad)

    def open(self, nonce: bytes, sealed: bytes, aad: bytes) -> bytes:
        try:
            return self._aead.decrypt(nonce, sealed, aad)
        except InvalidTag as exc:
            raise AuthenticationError() from exc


class ChaChaCipher(AeadCipher):
    """ChaCha20-Poly1305 IETF via libsodium."""

    cipher_id = CIPHER_CHACHA20_POLY1305

    def __init__(self, key: bytes):
        super().__init__(key)
        self._key = key

    def seal(self, nonce: bytes, plaintext: bytes, aad: bytes) -> bytes:
        return crypto_aead_chacha20poly1305_ietf_encrypt(plaintext, aad, nonce, self._key)

    def open(self, nonce: bytes, sealed: bytes, aad: bytes) -> bytes:
        try:
            return crypto_aead_chacha20poly1305_ietf_decrypt(sealed, aad, nonce, self._key)
        except CryptoError as exc:
            raise AuthenticationError() from exc


_BACKENDS: dict[int, type[AeadCipher]] = {
    CIPHER_AES256_GCM: AesGcmCipher,
    CIPHER_CHACHA20_POLY1305: ChaChaCipher,
}


def make_cipher(cipher_id: int, key: bytes) -> AeadCipher:
    try:
        backend = _BACKENDS[cipher_id]
    except KeyError as exc:
        raise UnsupportedFormatError(f"Cifra não suportada (id={cipher_id})") from exc
    return backend(key)


def chunk_nonce(base_nonce: bytes, index: int) -> bytes:
    """
    Nonce do chunk ``index``: nonce base XOR u64(index) nos 8 bytes finais.

    Injetivo em ``index`` para um mesmo nonce base.
    """
    if len(base_nonce) != NONCE_SIZE:
        raise ValueError(f"Nonce base deve ter {NONCE_SIZE} bytes")
    if not (0 <= index <= MAX_CHUNK_INDEX):
        raise ValueError("Índice de chunk fora da faixa")
    head, tail = base_nonce[:4], base_nonce[4:]
    (tail_int,) = struct.unpack(">Q", tail)
    return head + struct.pack(">Q", tail_int ^ index)


def chunk_aad(header_aad: bytes, index: int, final: bool) -> bytes:
    """AAD = header || u64(index) || u8(final); impede reordenação e truncamento."""
    return header_aad + struct.pack(">QB", index, 1 if final else 0)


__all__ = [
    "TAG_SIZE",
    "AeadCipher",
    "AesGcmCipher",
    "ChaChaCipher",
    "make_cipher",
    "chunk_nonce",
    "chunk_aad",
]
