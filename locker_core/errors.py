"""
Taxonomia de erros do File Locker.

Toda falha que sai da API pública é uma subclasse de ``FileLockerError`` e
carrega um ``kind`` estável; a UI decide pelo ``kind``, nunca pelo texto.
"""

from __future__ import annotations

import errno
from enum import Enum


class ErrorKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    IO = "io"
    MALFORMED_CONTAINER = "malformed_container"
    UNSUPPORTED_FORMAT = "unsupported_format"
    AUTHENTICATION = "authentication"
    DESTINATION_EXISTS = "destination_exists"
    KEY_DERIVATION = "key_derivation"
    CANCELLED = "cancelled"


class FileLockerError(Exception):
    """Erro genérico do File Locker."""

    kind: ErrorKind = ErrorKind.IO
    default_message = "Falha na operação"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InputValidationError(FileLockerError):
    """Senha vazia, confirmação divergente, origem inválida."""

    kind = ErrorKind.INPUT_VALIDATION
    default_message = "Entrada inválida"


class LockerIOError(FileLockerError):
    """Falha de leitura/escrita no sistema de arquivos."""

    kind = ErrorKind.IO
    default_message = "Erro de E/S"


class SourceNotFoundError(LockerIOError):
    default_message = "Arquivo não encontrado"


class AccessDeniedError(LockerIOError):
    default_message = "Permissão negada"


class InsufficientSpaceError(LockerIOError):
    default_message = "Espaço em disco insuficiente"


class MalformedContainerError(FileLockerError):
    """Não é um arquivo bloqueado, ou está truncado/corrompido estruturalmente."""

    kind = ErrorKind.MALFORMED_CONTAINER
    default_message = "Arquivo não é um container válido"


class UnsupportedFormatError(FileLockerError):
    kind = ErrorKind.UNSUPPORTED_FORMAT
    default_message = "Versão de formato não suportada"


class AuthenticationError(FileLockerError):
    """Senha incorreta ou dados adulterados (indistinguíveis de propósito)."""

    kind = ErrorKind.AUTHENTICATION
    default_message = "Falha na autenticação: senha incorreta ou arquivo corrompido"


class DestinationExistsError(FileLockerError):
    kind = ErrorKind.DESTINATION_EXISTS
    default_message = "O arquivo de destino já existe"


class KeyDerivationError(FileLockerError):
    kind = ErrorKind.KEY_DERIVATION
    default_message = "Parâmetros de derivação de chave inválidos"


class OperationCancelledError(FileLockerError):
    kind = ErrorKind.CANCELLED
    default_message = "Operação cancelada"


_NO_SPACE = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}
_DENIED = {errno.EACCES, errno.EPERM, errno.EROFS}


def translate_os_error(exc: OSError, what: str = "arquivo") -> LockerIOError:
    """
    Mapeia um ``OSError`` para a taxonomia sem repassar o texto bruto do SO.

    Só o nome lógico (``what``) entra na mensagem; caminhos completos ficam no log.
    """
    if isinstance(exc, LockerIOError):
        return exc
    code = getattr(exc, "errno", None)
    if isinstance(exc, FileNotFoundError) or code == errno.ENOENT:
        return SourceNotFoundError(f"{what.capitalize()} não encontrado")
    if isinstance(exc, PermissionError) or code in _DENIED:
        return AccessDeniedError(f"Permissão negada ao acessar {what}")
    if code in _NO_SPACE:
        return InsufficientSpaceError()
    return LockerIOError(f"Erro de E/S ao acessar {what} (errno={code})")


__all__ = [
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
    "translate_os_error",
]
