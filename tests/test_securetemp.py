import sys
import os
import errno
import pytest
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from locker_core.errors import DestinationExistsError
from locker_core.securetemp import SecureTempFile


def leftovers(directory):
    return [p.name for p in directory.iterdir() if p.name.endswith(".part")]


def test_commit_publishes_file_and_removes_temp(tmp_path):
    dst = tmp_path / "saida.bin"
    with SecureTempFile(tmp_path, prefix=".filelocker-") as tmp:
        assert tmp.path.name.startswith(".filelocker-")
        tmp.write(b"dados")
        assert tmp.commit(dst) == dst
    assert dst.read_bytes() == b"dados"
    assert leftovers(tmp_path) == []


@pytest.mark.skipif(os.name == "nt", reason="permissões POSIX")
def test_temp_file_is_private(tmp_path):
    with SecureTempFile(tmp_path) as tmp:
        assert (tmp.path.stat().st_mode & 0o777) == 0o600


def test_commit_never_overwrites(tmp_path):
    dst = tmp_path / "saida.bin"
    dst.write_bytes(b"original")
    with SecureTempFile(tmp_path) as tmp:
        tmp.write(b"novo")
        with pytest.raises(DestinationExistsError):
            tmp.commit(dst)
    assert dst.read_bytes() == b"original"
    assert leftovers(tmp_path) == []


def test_close_without_commit_discards(tmp_path):
    tmp = SecureTempFile(tmp_path)
    tmp.write(b"parcial")
    path = tmp.path
    assert path.exists()
    tmp.close()
    assert not path.exists()


def test_exception_inside_block_discards(tmp_path):
    with pytest.raises(RuntimeError):
        with SecureTempFile(tmp_path) as tmp:
            tmp.write(b"parcial")
            raise RuntimeError("falha no meio")
    assert leftovers(tmp_path) == []


def test_rename_fallback_when_links_unsupported(tmp_path):
    dst = tmp_path / "saida.bin"
    with patch("os.link", side_effect=OSError(errno.EPERM, "Operation not permitted")):
        with SecureTempFile(tmp_path) as tmp:
            tmp.write(b"dados")
            tmp.commit(dst)
    assert dst.read_bytes() == b"dados"
    assert leftovers(tmp_path) == []


def test_rename_fallback_still_refuses_existing(tmp_path):
    dst = tmp_path / "saida.bin"
    dst.write_bytes(b"original")
    with patch("os.link", side_effect=OSError(errno.EPERM, "Operation not permitted")):
        with SecureTempFile(tmp_path) as tmp:
            tmp.write(b"novo")
            with pytest.raises(DestinationExistsError):
                tmp.commit(dst)
    assert dst.read_bytes() == b"original"
    assert leftovers(tmp_path) == []


def test_concurrent_temps_do_not_collide(tmp_path):
    with SecureTempFile(tmp_path) as a, SecureTempFile(tmp_path) as b:
        assert a.path != b.path
