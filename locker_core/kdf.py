"""
Derivação de chave a partir de senha (Argon2id ou PBKDF2-HMAC-SHA256).

Os parâmetros de custo viajam no header do container, então aumentar os
presets nunca quebra arquivos antigos. A validação aqui só rejeita
parâmetros malformados ou absurdos; nunca depende do conteúdo da senha.
"""

from __future__ import annotations

from dataclasses import dataclass

from argon2 import low_level as _argon
from argon2.exceptions import HashingError
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import (
    ARGON_PARAMS,
    KEY_SIZE,
    PBKDF2_ITERATIONS,
    PBKDF2_MIN_ITERATIONS,
    SALT_SIZE,
    SecurityProfile,
)
from .errors import KeyDerivationError
from .secure_bytes import SecureBytes

KDF_PBKDF2_SHA256 = 1
KDF_ARGON2ID = 2

KDF_NAMES = {
    "pbkdf2-sha256": KDF_PBKDF2_SHA256,
    "argon2id": KDF_ARGON2ID,
}

# Limites de leitura: protegem contra headers forjados pedindo custo absurdo
MAX_ARGON_T = 64
MIN_ARGON_M_KIB, MAX_ARGON_M_KIB = 8, 4 * 1024 * 1024  # .. 4 GiB
MAX_ARGON_P = 64
MAX_PBKDF2_ITERATIONS = 50_000_000

_HKDF_INFO_DATA = b"FileLocker/v1 data"
_HKDF_INFO_NAME = b"FileLocker/v1 name"


@dataclass(frozen=True)
class KdfParams:
    kdf_id: int
    cost: int
    memory_kib: int = 0
    parallelism: int = 1

    @property
    def name(self) -> str:
        for label, ident in KDF_NAMES.items():
            if ident == self.kdf_id:
                return label
        return f"unknown({self.kdf_id})"

    def validate(self) -> None:
        validate_params(self)

    @classmethod
    def for_profile(
        cls, profile: SecurityProfile = SecurityProfile.BALANCED, kdf: str | int = "argon2id"
    ) -> KdfParams:
        kdf_id = KDF_NAMES.get(kdf, kdf) if isinstance(kdf, str) else kdf
        if kdf_id == KDF_ARGON2ID:
            preset = ARGON_PARAMS[profile]
            return cls(KDF_ARGON2ID, preset["time_cost"], preset["memory_cost"], preset["parallelism"])
        if kdf_id == KDF_PBKDF2_SHA256:
            return cls(KDF_PBKDF2_SHA256, PBKDF2_ITERATIONS[profile], 0, 1)
        raise KeyDerivationError(f"KDF desconhecido: {kdf}")


def validate_params(params: KdfParams) -> None:
    """Levanta ``KeyDerivationError`` se os parâmetros forem malformados."""
    if params.kdf_id == KDF_ARGON2ID:
        t, m_kib, p = params.cost, params.memory_kib, params.parallelism
        if not (1 <= t <= MAX_ARGON_T):
            raise KeyDerivationError(f"Argon2id time_cost fora da faixa (t={t})")
        if not (1 <= p <= MAX_ARGON_P):
            raise KeyDerivationError(f"Argon2id parallelism fora da faixa (p={p})")
        if not (MIN_ARGON_M_KIB <= m_kib <= MAX_ARGON_M_KIB):
            raise KeyDerivationError(f"Argon2id memory_cost fora da faixa (m={m_kib} KiB)")
        if m_kib < 8 * p:
            raise KeyDerivationError("Argon2id memory_cost deve ser >= 8 * parallelism")
        return
    if params.kdf_id == KDF_PBKDF2_SHA256:
        if not (1 <= params.cost <= MAX_PBKDF2_ITERATIONS):
            raise KeyDerivationError(f"PBKDF2 iterations fora da faixa ({params.cost})")
        if params.memory_kib != 0 or params.parallelism != 1:
            raise KeyDerivationError("PBKDF2 não usa memory_cost/parallelism")
        return
    raise KeyDerivationError(f"KDF desconhecido (id={params.kdf_id})")


def validate_new_params(params: KdfParams) -> None:
    """Regras mais estritas para arquivos novos (pisos mínimos de custo)."""
    validate_params(params)
    if params.kdf_id == KDF_PBKDF2_SHA256 and params.cost < PBKDF2_MIN_ITERATIONS:
        raise KeyDerivationError(
            f"PBKDF2 exige no mínimo {PBKDF2_MIN_ITERATIONS} iterações para novos arquivos"
        )


def derive_key_sb(
    password: bytes | bytearray | SecureBytes, salt: bytes, params: KdfParams
) -> SecureBytes:
    """
    Deriva a chave mestre de 32 bytes.

    Args:
        password: Senha já codificada (UTF-8) ou SecureBytes
        salt: Salt aleatório (mínimo 16 bytes)
        params: Parâmetros do KDF gravados no header

    Returns:
        SecureBytes com a chave (o chamador deve chamar ``clear()``)

    Raises:
        KeyDerivationError: Parâmetros ou salt malformados
    """
    validate_params(params)
    if len(salt) < SALT_SIZE:
        raise KeyDerivationError(f"Salt deve ter no mínimo {SALT_SIZE} bytes")

    pwd = password if isinstance(password, SecureBytes) else SecureBytes(password)
    try:
        if params.kdf_id == KDF_ARGON2ID:
            raw = pwd.with_bytes(
                lambda secret: _argon.hash_secret_raw(
                    secret=secret,
                    salt=salt,
                    time_cost=params.cost,
                    memory_cost=params.memory_kib,
                    parallelism=params.parallelism,
                    hash_len=KEY_SIZE,
                    type=_argon.Type.ID,
                )
            )
        else:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_SIZE,
                salt=salt,
                iterations=params.cost,
            )
            raw = pwd.with_bytes(kdf.derive)
    except HashingError as exc:
        raise KeyDerivationError("Falha na derivação Argon2id") from exc
    finally:
        if pwd is not password:
            pwd.clear()

    key = SecureBytes(raw)
    del raw
    return key


def derive(password: bytes | bytearray | SecureBytes, salt: bytes, params: KdfParams) -> bytes:
    """Variante que devolve ``bytes`` (testes e integrações); prefira ``derive_key_sb``."""
    sb = derive_key_sb(password, salt, params)
    try:
        return sb.view()
    finally:
        sb.clear()


def derive_subkeys(master: SecureBytes, salt: bytes) -> tuple[SecureBytes, SecureBytes]:
    """
    Separa a chave mestre em (chave_dados, chave_nome) via HKDF-SHA256.

    Chaves distintas garantem que o nonce base nunca é reutilizado com a mesma
    chave entre o bloco de nome e os chunks.
    """

    def _expand(info: bytes) -> SecureBytes:
        hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_SIZE, salt=salt, info=info)
        return SecureBytes(master.with_bytes(hkdf.derive))

    return _expand(_HKDF_INFO_DATA), _expand(_HKDF_INFO_NAME)


__all__ = [
    "KDF_ARGON2ID",
    "KDF_PBKDF2_SHA256",
    "KDF_NAMES",
    "KdfParams",
    "validate_params",
    "validate_new_params",
    "derive_key_sb",
    "derive",
    "derive_subkeys",
]
