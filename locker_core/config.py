"""
Parâmetros centrais do File Locker.
Inclui perfis de KDF, tamanho de chunk e overrides por ambiente/arquivo.
"""

from __future__ import annotations

import json
from enum import Enum, auto
import os
from typing import Any

from .log_utils import log_best_effort
from .paths import BASE_DIR, LOG_PATH, SETTINGS_PATH


# ───── perfis de segurança ──────────────────────────────────────────────
class SecurityProfile(Enum):
    FAST = auto()
    BALANCED = auto()
    SECURE = auto()


# Custos Argon2id (memória em KiB)
ARGON_PARAMS = {
    SecurityProfile.FAST: {"time_cost": 2, "memory_cost": 19 * 1024, "parallelism": 1},
    SecurityProfile.BALANCED: {"time_cost": 3, "memory_cost": 64 * 1024, "parallelism": 2},
    SecurityProfile.SECURE: {"time_cost": 4, "memory_cost": 256 * 1024, "parallelism": 4},
}

# PBKDF2-HMAC-SHA256 (apenas quando o chamador pede explicitamente)
PBKDF2_ITERATIONS = {
    SecurityProfile.FAST: 100_000,
    SecurityProfile.BALANCED: 310_000,
    SecurityProfile.SECURE: 600_000,
}
PBKDF2_MIN_ITERATIONS = 100_000

LOCKED_EXT = ".locked"
UNLOCKED_EXT = ".unlocked"

SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

MIN_CHUNK_SIZE = 4 * 1024
MAX_CHUNK_SIZE = 64 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 1024 * 1024


def _env_int(name: str, default: int, lo: int, hi: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(lo, min(hi, value))


def _env_profile(name: str, default: SecurityProfile) -> SecurityProfile:
    raw = (os.getenv(name) or "").strip().upper()
    return SecurityProfile.__members__.get(raw, default)


CHUNK_SIZE = _env_int("FILELOCKER_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, MIN_CHUNK_SIZE, MAX_CHUNK_SIZE)
DEFAULT_PROFILE = _env_profile("FILELOCKER_PROFILE", SecurityProfile.BALANCED)

DEFAULT_SETTINGS: dict[str, Any] = {
    "profile": DEFAULT_PROFILE.name,
    "cipher": "aes-256-gcm",
    "kdf": "argon2id",
    "chunk_size": CHUNK_SIZE,
    "store_original_name": True,
}


def load_settings(path: os.PathLike | str | None = None) -> dict[str, Any]:
    """
    Lê ``settings.json`` (se existir) por cima de ``DEFAULT_SETTINGS``.

    Chaves desconhecidas são ignoradas; arquivo ilegível cai nos defaults.
    """
    settings = dict(DEFAULT_SETTINGS)
    target = SETTINGS_PATH if path is None else path
    try:
        with open(target, encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return settings
    except (OSError, ValueError) as exc:
        log_best_effort(__name__, exc, message="settings.json ignorado")
        return settings

    if isinstance(data, dict):
        for key in DEFAULT_SETTINGS:
            if key in data:
                settings[key] = data[key]
    try:
        chunk = int(settings["chunk_size"])
    except (TypeError, ValueError) as exc:
        log_best_effort(__name__, exc, message="chunk_size inválido em settings.json")
        chunk = DEFAULT_SETTINGS["chunk_size"]
    settings["chunk_size"] = max(MIN_CHUNK_SIZE, min(MAX_CHUNK_SIZE, chunk))
    if str(settings["profile"]).upper() not in SecurityProfile.__members__:
        settings["profile"] = DEFAULT_PROFILE.name
    return settings


def profile_from_name(name: str | SecurityProfile | None) -> SecurityProfile:
    if isinstance(name, SecurityProfile):
        return name
    if not name:
        return DEFAULT_PROFILE
    try:
        return SecurityProfile[str(name).upper()]
    except KeyError as exc:
        raise ValueError(f"Perfil desconhecido: {name}") from exc


__all__ = [
    "SecurityProfile",
    "ARGON_PARAMS",
    "PBKDF2_ITERATIONS",
    "PBKDF2_MIN_ITERATIONS",
    "LOCKED_EXT",
    "UNLOCKED_EXT",
    "SALT_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "KEY_SIZE",
    "CHUNK_SIZE",
    "MIN_CHUNK_SIZE",
    "MAX_CHUNK_SIZE",
    "DEFAULT_PROFILE",
    "DEFAULT_SETTINGS",
    "load_settings",
    "profile_from_name",
    "BASE_DIR",
    "LOG_PATH",
    "SETTINGS_PATH",
]
