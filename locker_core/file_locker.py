"""
file_locker.py – transações de bloquear/desbloquear arquivos.

• Origem nunca é modificada
• Saída vai para um temporário no diretório de destino e só aparece no caminho
  final via commit atômico sem sobrescrever (securetemp.SecureTempFile)
• Qualquer falha antes do commit remove o temporário
• Chave derivada por chamada e zerada no final; nada é cacheado
"""

from __future__ import annotations

import os
import secrets
import stat
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .aead import make_cipher
from .config import (
    CHUNK_SIZE,
    DEFAULT_PROFILE,
    LOCKED_EXT,
    MAX_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    UNLOCKED_EXT,
    SecurityProfile,
)
from .errors import (
    AccessDeniedError,
    DestinationExistsError,
    FileLockerError,
    InputValidationError,
    SourceNotFoundError,
    translate_os_error,
)
from .fileformat import (
    CIPHER_NAMES,
    ContainerHeader,
    check_container_size,
    is_container,
    read_header,
)
from .kdf import KdfParams, derive_key_sb, derive_subkeys, validate_new_params
from .logger import log_context, logger
from .secure_bytes import SecureBytes
from .securetemp import SecureTempFile
from .stream import CancelToken, ProgressCallback, check_cancel, decrypt_stream, encrypt_stream

MAX_STORED_NAME = 1024
_TEMP_PREFIX = ".filelocker-"


@dataclass(frozen=True)
class ContainerInfo:
    """Resumo do header de um container (não exige senha)."""

    path: str
    version: int
    cipher: str
    kdf: str
    kdf_cost: int
    kdf_memory_kib: int
    kdf_parallelism: int
    chunk_size: int
    plaintext_length: int
    chunk_count: int
    has_original_name: bool
    container_size: int


# ───── helpers ───────────────────────────────────────────────────────────
def _coerce_password(password: str | bytes | bytearray | SecureBytes) -> SecureBytes:
    if isinstance(password, SecureBytes):
        if not len(password):
            raise InputValidationError("Senha não pode ser vazia")
        return password
    if not isinstance(password, str | bytes | bytearray):
        raise InputValidationError("Senha deve ser texto ou bytes")
    if not password:
        raise InputValidationError("Senha não pode ser vazia")
    return SecureBytes.from_password(password)


def _check_source(src: Path) -> os.stat_result:
    try:
        st = src.stat()
    except FileNotFoundError as exc:
        raise SourceNotFoundError("Arquivo de origem não encontrado") from exc
    except OSError as exc:
        raise translate_os_error(exc, "arquivo de origem") from exc
    if not stat.S_ISREG(st.st_mode):
        raise InputValidationError("A origem não é um arquivo regular")
    if not os.access(src, os.R_OK):
        raise AccessDeniedError("Sem permissão de leitura na origem")
    return st


def _dest_dir(src: Path, out_dir: str | os.PathLike | None) -> Path:
    target = Path(out_dir) if out_dir is not None else src.parent
    if not target.is_dir():
        raise InputValidationError("Diretório de destino inexistente")
    return target


def _refuse_existing(dst: Path) -> None:
    if dst.exists() or dst.is_symlink():
        raise DestinationExistsError(f"O arquivo de destino já existe: {dst.name}")


def _resolve_cipher(cipher: str | int) -> int:
    if isinstance(cipher, int):
        if cipher in CIPHER_NAMES.values():
            return cipher
    elif cipher.lower() in CIPHER_NAMES:
        return CIPHER_NAMES[cipher.lower()]
    raise InputValidationError(f"Cifra desconhecida: {cipher}")


def _resolve_chunk_size(chunk_size: int | None) -> int:
    size = CHUNK_SIZE if chunk_size is None else int(chunk_size)
    if not (MIN_CHUNK_SIZE <= size <= MAX_CHUNK_SIZE):
        raise InputValidationError(
            f"chunk_size deve estar entre {MIN_CHUNK_SIZE} e {MAX_CHUNK_SIZE} bytes"
        )
    return size


def locked_name(src: Path) -> str:
    return src.name + LOCKED_EXT


def unlocked_name(src: Path) -> str:
    """Remove o sufixo ``.locked``; sem sufixo, acrescenta ``.unlocked``."""
    name = src.name
    if name.lower().endswith(LOCKED_EXT) and len(name) > len(LOCKED_EXT):
        return name[: -len(LOCKED_EXT)]
    return name + UNLOCKED_EXT


def _safe_embedded_name(raw: str) -> str | None:
    """Reduz o nome embutido a um basename seguro dentro do diretório de destino."""
    candidate = raw.replace("\\", "/").split("/")[-1].replace("\x00", "").strip()
    if not candidate or candidate in (".", ".."):
        return None
    return candidate


@contextmanager
def _derived_keys(password: SecureBytes, salt: bytes, params: KdfParams) -> Iterator[tuple[bytes, bytes]]:
    """Deriva (chave_dados, chave_nome) e zera tudo ao sair."""
    master = derive_key_sb(password, salt, params)
    try:
        data_key, name_key = derive_subkeys(master, salt)
    finally:
        master.clear()
    try:
        yield data_key.view(), name_key.view()
    finally:
        data_key.clear()
        name_key.clear()


@contextmanager
def _os_errors(what: str) -> Iterator[None]:
    try:
        yield
    except FileLockerError:
        raise
    except OSError as exc:
        raise translate_os_error(exc, what) from exc


def _open_container(fp: BinaryIO) -> ContainerHeader:
    """Header validado + tamanho do arquivo conferido, antes de qualquer chave."""
    hdr = read_header(fp)
    check_container_size(hdr, os.fstat(fp.fileno()).st_size)
    return hdr


# ───── lock ──────────────────────────────────────────────────────────────
def lock(
    source: str | os.PathLike,
    password: str | bytes | SecureBytes,
    *,
    profile: SecurityProfile | None = None,
    kdf: str = "argon2id",
    kdf_params: KdfParams | None = None,
    cipher: str | int = "aes-256-gcm",
    chunk_size: int | None = None,
    store_name: bool = True,
    out_dir: str | os.PathLike | None = None,
    allow_relock: bool = False,
    cancel: CancelToken = None,
    progress_cb: ProgressCallback | None = None,
) -> str:
    """
    Criptografa ``source`` em ``<nome>.locked``.

    Returns:
        Caminho do container criado

    Raises:
        InputValidationError, LockerIOError, DestinationExistsError,
        KeyDerivationError, OperationCancelledError
    """
    src = Path(source)
    pwd = _coerce_password(password)
    try:
        _check_source(src)
        if not allow_relock and is_container(src):
            raise InputValidationError("O arquivo já está bloqueado")
        dst = _dest_dir(src, out_dir) / locked_name(src)
        _refuse_existing(dst)

        params = kdf_params or KdfParams.for_profile(profile or DEFAULT_PROFILE, kdf)
        validate_new_params(params)
        cipher_id = _resolve_cipher(cipher)
        size_chunk = _resolve_chunk_size(chunk_size)
        name_bytes = src.name.encode("utf-8") if store_name else b""
        if len(name_bytes) > MAX_STORED_NAME:
            logger.debug("Nome original longo demais; não será embutido")
            name_bytes = b""

        salt = secrets.token_bytes(SALT_SIZE)
        nonce = secrets.token_bytes(NONCE_SIZE)

        with _os_errors("arquivo"), open(src, "rb") as fin:
            size = os.fstat(fin.fileno()).st_size
            header = ContainerHeader(
                cipher_id=cipher_id,
                kdf=params,
                salt=salt,
                nonce=nonce,
                chunk_size=size_chunk,
                plaintext_length=size,
            )
            with _derived_keys(pwd, salt, params) as (data_key, name_key):
                if name_bytes:
                    # name_len entra no AAD, então o tamanho é fixado antes de cifrar
                    header = header.with_name(b"\x00" * (len(name_bytes) + TAG_SIZE))
                    sealed = make_cipher(cipher_id, name_key).seal(nonce, name_bytes, header.aad())
                    header = header.with_name(sealed)
                engine = make_cipher(cipher_id, data_key)

                with SecureTempFile(dst.parent, prefix=_TEMP_PREFIX) as tmp:
                    tmp.write(header.pack())
                    for record in encrypt_stream(
                        fin, engine, header, cancel=cancel, progress_cb=progress_cb
                    ):
                        tmp.write(record)
                    check_cancel(cancel)
                    tmp.commit(dst)
    except FileLockerError as exc:
        logger.warning("Falha ao bloquear %s: %s", src.name, exc.kind.value)
        raise
    finally:
        if pwd is not password:
            pwd.clear()

    logger.info(
        "Arquivo bloqueado %s",
        log_context(name=dst.name, size_mib=round(size / 1048576, 1), kdf=params.name, chunks=header.chunk_count),
    )
    return str(dst)


# ───── unlock / verify ───────────────────────────────────────────────────
def _open_name(hdr: ContainerHeader, name_key: bytes) -> str | None:
    if not hdr.encrypted_name:
        return None
    raw = make_cipher(hdr.cipher_id, name_key).open(hdr.nonce, hdr.encrypted_name, hdr.aad())
    return raw.decode("utf-8", errors="replace")


def unlock(
    source: str | os.PathLike,
    password: str | bytes | SecureBytes,
    *,
    out_dir: str | os.PathLike | None = None,
    use_embedded_name: bool = False,
    cancel: CancelToken = None,
    progress_cb: ProgressCallback | None = None,
) -> str:
    """
    Descriptografa um container para um novo arquivo.

    Destino: nome sem ``.locked`` (ou ``<nome>.unlocked``), ou o nome original
    embutido quando ``use_embedded_name=True``.

    Raises:
        MalformedContainerError, UnsupportedFormatError, AuthenticationError,
        DestinationExistsError, KeyDerivationError, LockerIOError,
        OperationCancelledError
    """
    src = Path(source)
    pwd = _coerce_password(password)
    try:
        _check_source(src)
        dst_dir = _dest_dir(src, out_dir)
        dst = dst_dir / unlocked_name(src)

        with _os_errors("arquivo"), open(src, "rb") as fin:
            hdr = _open_container(fin)
            if not use_embedded_name:
                _refuse_existing(dst)
            with _derived_keys(pwd, hdr.salt, hdr.kdf) as (data_key, name_key):
                original = _open_name(hdr, name_key)
                if use_embedded_name and original:
                    dst = dst_dir / (_safe_embedded_name(original) or dst.name)
                _refuse_existing(dst)
                engine = make_cipher(hdr.cipher_id, data_key)

                with SecureTempFile(dst_dir, prefix=_TEMP_PREFIX) as tmp:
                    for plain in decrypt_stream(fin, engine, hdr, cancel=cancel, progress_cb=progress_cb):
                        tmp.write(plain)
                    check_cancel(cancel)
                    tmp.commit(dst)
    except FileLockerError as exc:
        logger.warning("Falha ao desbloquear %s: %s", src.name, exc.kind.value)
        raise
    finally:
        if pwd is not password:
            pwd.clear()

    logger.info("Arquivo desbloqueado %s", log_context(name=dst.name, chunks=hdr.chunk_count))
    return str(dst)


def verify(
    source: str | os.PathLike,
    password: str | bytes | SecureBytes,
    *,
    cancel: CancelToken = None,
    progress_cb: ProgressCallback | None = None,
) -> None:
    """Autentica todos os chunks sem gravar plaintext em lugar nenhum."""
    src = Path(source)
    pwd = _coerce_password(password)
    try:
        _check_source(src)
        with _os_errors("arquivo"), open(src, "rb") as fin:
            hdr = _open_container(fin)
            with _derived_keys(pwd, hdr.salt, hdr.kdf) as (data_key, name_key):
                _open_name(hdr, name_key)
                engine = make_cipher(hdr.cipher_id, data_key)
                for _plain in decrypt_stream(fin, engine, hdr, cancel=cancel, progress_cb=progress_cb):
                    pass
    except FileLockerError as exc:
        logger.warning("Verificação falhou para %s: %s", src.name, exc.kind.value)
        raise
    finally:
        if pwd is not password:
            pwd.clear()
    logger.info("Container verificado %s", log_context(name=src.name))


def read_original_name(source: str | os.PathLike, password: str | bytes | SecureBytes) -> str | None:
    """Nome original embutido (ou ``None``), sem descriptografar o conteúdo."""
    src = Path(source)
    pwd = _coerce_password(password)
    try:
        _check_source(src)
        with _os_errors("arquivo"), open(src, "rb") as fin:
            hdr = _open_container(fin)
            if not hdr.encrypted_name:
                return None
            with _derived_keys(pwd, hdr.salt, hdr.kdf) as (_data_key, name_key):
                return _open_name(hdr, name_key)
    finally:
        if pwd is not password:
            pwd.clear()


def inspect(source: str | os.PathLike) -> ContainerInfo:
    """Lê apenas o header; útil para a UI decidir o modo antes de pedir senha."""
    src = Path(source)
    _check_source(src)
    with _os_errors("arquivo"), open(src, "rb") as fin:
        hdr = _open_container(fin)
        size = os.fstat(fin.fileno()).st_size
    cipher = next(k for k, v in CIPHER_NAMES.items() if v == hdr.cipher_id)
    return ContainerInfo(
        path=str(src),
        version=hdr.version,
        cipher=cipher,
        kdf=hdr.kdf.name,
        kdf_cost=hdr.kdf.cost,
        kdf_memory_kib=hdr.kdf.memory_kib,
        kdf_parallelism=hdr.kdf.parallelism,
        chunk_size=hdr.chunk_size,
        plaintext_length=hdr.plaintext_length,
        chunk_count=hdr.chunk_count,
        has_original_name=bool(hdr.encrypted_name),
        container_size=size,
    )


__all__ = [
    "ContainerInfo",
    "lock",
    "unlock",
    "verify",
    "inspect",
    "read_original_name",
    "locked_name",
    "unlocked_name",
]
