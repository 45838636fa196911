"""locker_core: API pública canônica do File Locker.

Exporta:
- lock_file / unlock_file / process_file (fachada usada pela UI)
- verify_file / inspect_file
- submit (executa uma operação em thread de trabalho)
- taxonomia de erros (FileLockerError e subclasses) e describe_error

A fachada revalida as pré-condições que a UI já deveria ter checado e
normaliza qualquer falha para a taxonomia de ``errors``.
"""

from __future__ import annotations

import hmac
import os
from collections.abc import Callable
from concurrent.futures import Executor, Future
from enum import Enum
from inspect import Parameter, signature
from typing import Any, TypeVar

from .config import LOG_PATH, SecurityProfile
from .errors import (
    AccessDeniedError,
    AuthenticationError,
    DestinationExistsError,
    ErrorKind,
    FileLockerError,
    InputValidationError,
    InsufficientSpaceError,
    KeyDerivationError,
    LockerIOError,
    MalformedContainerError,
    OperationCancelledError,
    SourceNotFoundError,
    UnsupportedFormatError,
    translate_os_error,
)
from .file_locker import ContainerInfo, inspect, lock, unlock, verify
from .logger import logger

__all__ = [
    "Operation",
    "lock_file",
    "unlock_file",
    "process_file",
    "verify_file",
    "inspect_file",
    "submit",
    "describe_error",
    "SecurityProfile",
    "ContainerInfo",
    "LOG_PATH",
    "ErrorKind",
    "FileLockerError",
    "InputValidationError",
    "LockerIOError",
    "SourceNotFoundError",
    "AccessDeniedError",
    "InsufficientSpaceError",
    "MalformedContainerError",
    "UnsupportedFormatError",
    "AuthenticationError",
    "DestinationExistsError",
    "KeyDerivationError",
    "OperationCancelledError",
]

T = TypeVar("T")


class Operation(str, Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"

    @classmethod
    def parse(cls, mode: str | Operation) -> Operation:
        if isinstance(mode, Operation):
            return mode
        aliases = {"lock": cls.ENCRYPT, "unlock": cls.DECRYPT}
        key = str(mode).strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError as exc:
            raise InputValidationError(f"Modo desconhecido: {mode}") from exc


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def _require_password(password: str | bytes | None) -> None:
    if password is None or not isinstance(password, str | bytes | bytearray) or len(password) == 0:
        raise InputValidationError("Informe uma senha")


def _require_path(path: str | os.PathLike | None) -> None:
    if path is None or not str(path).strip():
        raise InputValidationError("Selecione um arquivo")


def _check_options(fn: Callable[..., Any], options: dict[str, Any]) -> None:
    try:
        params = signature(fn).parameters
    except (TypeError, ValueError):
        return
    if any(p.kind is Parameter.VAR_KEYWORD for p in params.values()):
        return
    unknown = sorted(set(options) - set(params))
    if unknown:
        raise InputValidationError(f"Opção desconhecida: {', '.join(unknown)}")


def _guarded(operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Executa ``fn`` garantindo que só erros da taxonomia escapem."""
    _check_options(fn, kwargs)
    try:
        return fn(*args, **kwargs)
    except FileLockerError:
        raise
    except OSError as exc:
        raise translate_os_error(exc) from exc
    except Exception as exc:
        logger.error("Erro inesperado em %s: %s", operation, type(exc).__name__)
        raise LockerIOError("Erro interno ao processar o arquivo") from exc


def lock_file(
    path: str | os.PathLike,
    password: str | bytes,
    confirm_password: str | bytes | None = None,
    **options: Any,
) -> str:
    """
    Bloqueia ``path`` → ``<path>.locked`` e devolve o caminho criado.

    ``confirm_password`` (quando informado) precisa ser igual à senha.
    Opções repassadas a ``file_locker.lock`` (profile, kdf, cipher, chunk_size,
    store_name, out_dir, allow_relock, cancel, progress_cb).
    """
    _require_path(path)
    _require_password(password)
    if confirm_password is not None and not hmac.compare_digest(
        _as_bytes(password), _as_bytes(confirm_password)
    ):
        raise InputValidationError("As senhas não coincidem")
    return _guarded("lock", lock, path, password, **options)


def unlock_file(path: str | os.PathLike, password: str | bytes, **options: Any) -> str:
    """Desbloqueia um container e devolve o caminho do arquivo restaurado."""
    _require_path(path)
    _require_password(password)
    return _guarded("unlock", unlock, path, password, **options)


def verify_file(path: str | os.PathLike, password: str | bytes, **options: Any) -> None:
    _require_path(path)
    _require_password(password)
    _guarded("verify", verify, path, password, **options)


def inspect_file(path: str | os.PathLike) -> ContainerInfo:
    _require_path(path)
    return _guarded("inspect", inspect, path)


def process_file(
    path: str | os.PathLike,
    password: str | bytes,
    mode: str | Operation,
    confirm_password: str | bytes | None = None,
    **options: Any,
) -> str:
    """Ponto de entrada único: ``mode`` é resolvido uma vez para ``Operation``."""
    op = Operation.parse(mode)
    if op is Operation.ENCRYPT:
        return lock_file(path, password, confirm_password, **options)
    return unlock_file(path, password, **options)


def submit(
    executor: Executor,
    path: str | os.PathLike,
    password: str | bytes,
    mode: str | Operation,
    confirm_password: str | bytes | None = None,
    **options: Any,
) -> Future:
    """
    Agenda ``process_file`` num executor (thread de trabalho fora da UI).

    O ``Future`` resolve para o caminho de destino ou levanta a exceção
    tipada; para cancelar passe ``cancel=threading.Event()`` nas opções.
    """
    op = Operation.parse(mode)
    return executor.submit(process_file, path, password, op, confirm_password, **options)


def describe_error(exc: BaseException) -> tuple[ErrorKind, str]:
    """(kind, mensagem curta) para a UI; nunca inclui senha, chave ou caminho completo."""
    if isinstance(exc, FileLockerError):
        return exc.kind, exc.message
    return ErrorKind.IO, LockerIOError.default_message
