import os
import sys
import tempfile

# Precisa valer antes do primeiro import de locker_core (paths/logger leem o ambiente)
os.environ.setdefault("FILELOCKER_LOG_FILE", "0")
os.environ.setdefault("FILELOCKER_HOME", tempfile.mkdtemp(prefix="filelocker-home-"))

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest

from locker_core.kdf import KDF_ARGON2ID, KdfParams

# Argon2id barato só para testes; arquivos reais usam os perfis de config
FAST_KDF = KdfParams(KDF_ARGON2ID, 1, 8192, 1)


@pytest.fixture
def fast_kdf():
    return FAST_KDF


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "relatorio.txt"
    path.write_bytes(os.urandom(10_000))
    return path
