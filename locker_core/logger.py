"""
Central logger for File Locker.

Goals:
- Rotate log file at LOG_PATH.
- Redact secrets (hex, base64, passwords, keys, salts).
- Remove full tracebacks (keep type+message only).

Public API: `logger`, `LOG_PATH`, `log_context`
"""

from __future__ import annotations

import contextlib
import logging
import os
import sys
from logging import Logger
from logging.handlers import RotatingFileHandler
from typing import Any

from .log_utils import log_best_effort
from .paths import LOG_PATH, ensure_base_dir
from .redactlog import NoLocalsFilter, RedactingFormatter

LOGGER_NAME = "locker_core"


class SecureRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler com permissões de arquivo seguras (POSIX)."""

    def _set_secure_mode(self, path: str) -> None:
        if os.name != "nt":
            with contextlib.suppress(OSError):
                os.chmod(path, 0o600)

    def _open(self):
        stream = super()._open()
        self._set_secure_mode(self.baseFilename)
        return stream

    def doRollover(self) -> None:
        super().doRollover()
        if os.name == "nt":
            return
        self._set_secure_mode(self.baseFilename)
        for idx in range(1, self.backupCount + 1):
            candidate = self.rotation_filename(f"{self.baseFilename}.{idx}")
            if os.path.exists(candidate):
                self._set_secure_mode(candidate)


_DEF_LEVEL = os.getenv("FILELOCKER_LOG_LEVEL", "INFO").upper()
_LEVEL = getattr(logging, _DEF_LEVEL, logging.INFO)
_FILE_LOGGING = str(os.getenv("FILELOCKER_LOG_FILE", "1")).lower() not in {"0", "false", "no", "off"}

_SENSITIVE_KEYS = {
    "password",
    "passwd",
    "pwd",
    "passphrase",
    "secret",
    "token",
    "key",
    "salt",
    "nonce",
}
_MAX_CONTEXT_VALUE_LEN = 120


def _truncate_value(value: Any, limit: int = _MAX_CONTEXT_VALUE_LEN) -> str:
    try:
        rendered = repr(value)
    except Exception:
        rendered = f"<{type(value).__name__}>"
    if len(rendered) > limit:
        return rendered[:limit] + "..."
    return rendered


def log_context(**context: Any) -> str:
    """Render keyword context for a log line, hiding anything secret-looking."""
    parts = []
    for key, value in context.items():
        if key.lower() in _SENSITIVE_KEYS or isinstance(value, bytes | bytearray | memoryview):
            parts.append(f"{key}=[REDACTED]")
        else:
            parts.append(f"{key}={_truncate_value(value)}")
    return " ".join(parts)


def _build_logger() -> Logger:
    lg = logging.getLogger(LOGGER_NAME)
    lg.setLevel(_LEVEL)
    lg.propagate = False

    if lg.handlers:
        return lg

    if _FILE_LOGGING:
        ensure_base_dir()
        try:
            fh = SecureRotatingFileHandler(
                LOG_PATH,
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
                delay=True,
            )
        except OSError as exc:
            log_best_effort(__name__, exc, message="File log unavailable")
        else:
            fh.setFormatter(
                RedactingFormatter(
                    fmt="%(asctime)s [%(levelname)s] %(message)s (%(module)s:%(lineno)d in %(funcName)s)",
                    datefmt="%Y-%m-%d %H:%M:%S%z",
                )
            )
            lg.addHandler(fh)

    if _LEVEL <= logging.DEBUG:
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(
            RedactingFormatter(
                fmt="%(asctime)s [%(levelname)s] %(message)s (%(module)s:%(lineno)d)",
                datefmt="%H:%M:%S",
                enable_colors=True,
            )
        )
        lg.addHandler(sh)

    if not lg.handlers:
        lg.addHandler(logging.NullHandler())

    # handlers also see records propagated from child loggers
    for handler in lg.handlers:
        handler.addFilter(NoLocalsFilter())
    return lg


logger: Logger = _build_logger()

__all__ = ["logger", "LOG_PATH", "LOGGER_NAME", "log_context", "log_best_effort"]
