from __future__ import annotations

import logging

_ROOT = "locker_core"


def log_best_effort(channel: str, exc: BaseException, *, message: str | None = None) -> None:
    """Registra em DEBUG uma falha de manutenção (fsync, limpeza de temp) sem interromper o fluxo."""
    name = channel if channel.startswith(_ROOT) else f"{_ROOT}.{channel}"
    logging.getLogger(name).debug(
        "%s: %s (errno=%s)", message or "Falha ignorada", type(exc).__name__, getattr(exc, "errno", None)
    )
