#!/usr/bin/env python3
"""
CLI do File Locker.

Comandos:
  filelocker lock FILE [--profile FAST|BALANCED|SECURE] [--kdf ...] [--cipher ...]
  filelocker unlock FILE.locked [--use-original-name] [--out-dir DIR]
  filelocker verify FILE.locked
  filelocker inspect FILE.locked
"""

from __future__ import annotations

import argparse
import getpass
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path

from locker_core import (
    ErrorKind,
    FileLockerError,
    describe_error,
    inspect_file,
    lock_file,
    unlock_file,
    verify_file,
)
from locker_core.config import SecurityProfile, load_settings, profile_from_name
from locker_core.fileformat import CIPHER_NAMES
from locker_core.kdf import KDF_NAMES
from locker_core.logger import logger


def prompt_password(prompt: str = "Senha: ") -> str:
    """Solicita senha do usuário sem eco."""
    return getpass.getpass(prompt)


def read_password(args: argparse.Namespace, *, confirm: bool) -> tuple[str, str | None]:
    """Senha via --password-file (primeira linha) ou prompt interativo."""
    if args.password_file:
        text = Path(args.password_file).read_text(encoding="utf-8")
        password = text.splitlines()[0] if text else ""
        return password, (password if confirm else None)
    password = prompt_password("Digite a senha: ")
    confirmation = prompt_password("Confirme a senha: ") if confirm else None
    return password, confirmation


def _progress_printer(enabled: bool):
    if not enabled:
        return None

    def _cb(done: int, total: int) -> None:
        pct = 100 if total == 0 else int(done * 100 / total)
        print(f"\r  {pct:3d}%", end="", file=sys.stderr, flush=True)
        if done >= total:
            print(file=sys.stderr)

    return _cb


def run_cancellable(call, *args, **options):
    """
    Executa ``call`` numa thread de trabalho; Ctrl-C liga o evento de
    cancelamento, espera o fim do chunk corrente e repropaga o KeyboardInterrupt.
    """
    cancel = threading.Event()
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="filelocker") as pool:
        future = pool.submit(call, *args, cancel=cancel, **options)
        try:
            return future.result()
        except KeyboardInterrupt:
            cancel.set()
            wait([future])
            raise


def _interrupted() -> int:
    print("\nOperação cancelada.", file=sys.stderr)
    return 130


def _fail(exc: FileLockerError) -> int:
    kind, message = describe_error(exc)
    print(f"Erro ({kind.value}): {message}", file=sys.stderr)
    return 2 if kind is ErrorKind.AUTHENTICATION else 1


def cmd_lock(args: argparse.Namespace) -> int:
    """Comando: bloquear arquivo."""
    settings = load_settings()
    password, confirmation = read_password(args, confirm=True)
    try:
        out = run_cancellable(
            lock_file,
            args.file,
            password,
            confirmation,
            profile=profile_from_name(args.profile or settings["profile"]),
            kdf=args.kdf or settings["kdf"],
            cipher=args.cipher or settings["cipher"],
            chunk_size=settings["chunk_size"],
            store_name=settings["store_original_name"] and not args.hide_name,
            out_dir=args.out_dir,
            progress_cb=_progress_printer(args.progress),
        )
    except KeyboardInterrupt:
        return _interrupted()
    except FileLockerError as exc:
        return _fail(exc)
    print(f"Arquivo bloqueado: {out}")
    return 0


def cmd_unlock(args: argparse.Namespace) -> int:
    """Comando: desbloquear arquivo."""
    password, _ = read_password(args, confirm=False)
    try:
        out = run_cancellable(
            unlock_file,
            args.file,
            password,
            out_dir=args.out_dir,
            use_embedded_name=args.use_original_name,
            progress_cb=_progress_printer(args.progress),
        )
    except KeyboardInterrupt:
        return _interrupted()
    except FileLockerError as exc:
        return _fail(exc)
    print(f"Arquivo desbloqueado: {out}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Comando: verificar integridade e senha sem gravar saída."""
    password, _ = read_password(args, confirm=False)
    try:
        run_cancellable(verify_file, args.file, password)
    except KeyboardInterrupt:
        return _interrupted()
    except FileLockerError as exc:
        return _fail(exc)
    print("OK: container íntegro e senha correta.")
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    """Comando: mostrar o header do container."""
    try:
        info = inspect_file(args.file)
    except FileLockerError as exc:
        return _fail(exc)

    print(f"\nContainer: {info.path}")
    print(f"  Versão:          v{info.version}")
    print(f"  Cifra:           {info.cipher}")
    print(f"  KDF:             {info.kdf} (custo={info.kdf_cost}, mem={info.kdf_memory_kib} KiB, p={info.kdf_parallelism})")
    print(f"  Chunk:           {info.chunk_size} bytes x {info.chunk_count}")
    print(f"  Tamanho original:{info.plaintext_length:>12} bytes")
    print(f"  Nome embutido:   {'sim' if info.has_original_name else 'não'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filelocker",
        description="Bloqueio de arquivos com senha (AEAD + Argon2id/PBKDF2)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Comando")

    def _common(p: argparse.ArgumentParser) -> None:
        p.add_argument("file", help="Arquivo de entrada")
        p.add_argument("--password-file", help="Lê a senha da primeira linha deste arquivo")

    p_lock = subparsers.add_parser("lock", help="Bloquear arquivo")
    _common(p_lock)
    p_lock.add_argument("--profile", choices=[p.name for p in SecurityProfile], type=str.upper, help="Perfil KDF")
    p_lock.add_argument("--kdf", choices=sorted(KDF_NAMES), help="Algoritmo KDF")
    p_lock.add_argument("--cipher", choices=sorted(CIPHER_NAMES), help="Cifra AEAD")
    p_lock.add_argument("--hide-name", action="store_true", help="Não embutir o nome original")
    p_lock.add_argument("--out-dir", help="Diretório de saída")
    p_lock.add_argument("--progress", action="store_true", help="Mostrar progresso")

    p_unlock = subparsers.add_parser("unlock", help="Desbloquear arquivo")
    _common(p_unlock)
    p_unlock.add_argument("--use-original-name", action="store_true", help="Restaurar o nome original embutido")
    p_unlock.add_argument("--out-dir", help="Diretório de saída")
    p_unlock.add_argument("--progress", action="store_true", help="Mostrar progresso")

    p_verify = subparsers.add_parser("verify", help="Verificar container sem gravar saída")
    _common(p_verify)

    p_inspect = subparsers.add_parser("inspect", help="Mostrar header do container")
    p_inspect.add_argument("file", help="Container")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Ponto de entrada principal da CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    handlers = {
        "lock": cmd_lock,
        "unlock": cmd_unlock,
        "verify": cmd_verify,
        "inspect": cmd_inspect,
    }
    try:
        return handlers[args.command](args)
    except OSError as exc:
        logger.error("Falha lendo arquivo de senha: %s", type(exc).__name__)
        print("Erro: não foi possível ler o arquivo de senha.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
