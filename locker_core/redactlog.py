"""Filtro e formatter que mantêm segredos e caminhos completos fora dos logs."""

from __future__ import annotations

import logging
import re
from typing import Pattern


class NoLocalsFilter(logging.Filter):
    """Troca o traceback por ``tipo: mensagem`` na própria linha do log."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        if record.exc_info:
            etype, evalue, _tb = record.exc_info
            if etype is not None:
                record.msg = f"{record.msg} | {etype.__name__}: {evalue}"
            record.exc_info = None
            record.exc_text = None
        return True


_KEYVAL_RE: Pattern[str] = re.compile(
    r"(?i)\b(password|passwd|pwd|passphrase|senha|secret|token|key|chave|salt|nonce)\s*[=:]\s*([^\s,;|]+)"
)
_HEX_RE: Pattern[str] = re.compile(r"\b[0-9a-fA-F]{32,}\b")
_B64_RE: Pattern[str] = re.compile(r"\b[A-Za-z0-9+/]{32,}={0,2}")
# caminho absoluto POSIX ou Windows; só o último componente sobrevive
_PATH_RE: Pattern[str] = re.compile(r"(?:[A-Za-z]:\\|/)(?:[^\s/\\'\"]+[/\\])+([^\s/\\'\"]+)")


def redact(msg: str) -> str:
    msg = _KEYVAL_RE.sub(lambda m: f"{m.group(1)}=[redacted]", msg)
    msg = _HEX_RE.sub("[hex_redacted]", msg)
    msg = _B64_RE.sub("[b64_redacted]", msg)
    return _PATH_RE.sub(lambda m: f".../{m.group(1)}", msg)


_COLORS = (
    (logging.ERROR, "\x1b[31m"),
    (logging.WARNING, "\x1b[33m"),
    (logging.INFO, "\x1b[37m"),
)


class RedactingFormatter(logging.Formatter):
    """
    Formatter aplicado a todos os handlers do logger ``locker_core``:
      - pares chave=valor suspeitos (senha, key, salt, nonce...) → [redacted]
      - hex longo (>=32) → [hex_redacted]; base64 longo → [b64_redacted]
      - caminhos absolutos → ``.../<nome>``
    """

    def __init__(self, fmt: str, datefmt: str | None = None, enable_colors: bool = False):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._colors = enable_colors

    def format(self, record: logging.LogRecord) -> str:
        out = redact(super().format(record))
        if not self._colors:
            return out
        color = next((c for level, c in _COLORS if record.levelno >= level), "\x1b[90m")
        return f"{color}{out}\x1b[0m"


__all__ = ["NoLocalsFilter", "RedactingFormatter", "redact"]
