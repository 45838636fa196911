"""
CLI do File Locker.

Fornece comandos de linha de comando para bloquear, desbloquear, verificar e
inspecionar arquivos.
"""

from .locker_cli import main

__all__ = ["main"]
