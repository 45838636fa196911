"""Secure temporary file handling with no-clobber atomic commit."""

from __future__ import annotations

import contextlib
import errno
import os
import tempfile
from pathlib import Path

from .errors import DestinationExistsError
from .log_utils import log_best_effort

TEMP_SUFFIX = ".part"

# errnos meaning "this filesystem cannot hard-link", not "destination exists"
_LINK_UNSUPPORTED = {
    errno.EPERM,
    errno.EXDEV,
    errno.EMLINK,
    getattr(errno, "ENOTSUP", errno.EPERM),
    getattr(errno, "EOPNOTSUPP", errno.EPERM),
}


def _fsync_dir(path: Path) -> None:
    dir_flag = getattr(os, "O_DIRECTORY", None)
    if dir_flag is None:
        return
    try:
        dir_fd = os.open(str(path), dir_flag)
    except OSError as exc:
        log_best_effort(__name__, exc)
        return
    try:
        os.fsync(dir_fd)
    except OSError as exc:
        log_best_effort(__name__, exc)
    finally:
        os.close(dir_fd)


class SecureTempFile:
    """
    Temporary file in the destination directory, finalized without overwriting.

    The name carries a random component (``mkstemp``) so concurrent operations
    in the same directory never collide. If ``commit`` is not reached, ``close``
    removes the file.
    """

    def __init__(self, dir: str | os.PathLike, prefix: str = ".", suffix: str = TEMP_SUFFIX):
        fd, path = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=str(dir))
        self.path = Path(path)
        self._file = os.fdopen(fd, "wb")
        with contextlib.suppress(OSError):
            os.chmod(self.path, 0o600)
        self._finalized = False

    def write(self, b: bytes) -> None:
        self._file.write(b)

    def flush(self) -> None:
        self._file.flush()
        os.fsync(self._file.fileno())

    def commit(self, dst: str | os.PathLike) -> Path:
        """
        Move the temp file to ``dst`` atomically; fail if ``dst`` exists.

        Uses ``os.link`` + unlink where hard links work (atomic no-clobber on
        POSIX), otherwise ``os.rename`` after an existence check (Windows
        ``rename`` already refuses to overwrite).

        Raises:
            DestinationExistsError: if ``dst`` already exists
        """
        dst = Path(dst)
        self.flush()
        self._file.close()
        try:
            try:
                os.link(self.path, dst)
            except FileExistsError as exc:
                raise DestinationExistsError() from exc
            except (AttributeError, NotImplementedError):
                self._rename_no_clobber(dst)
            except OSError as exc:
                if exc.errno not in _LINK_UNSUPPORTED:
                    raise
                self._rename_no_clobber(dst)
            else:
                self._finalized = True
                self._discard()
            self._finalized = True
            _fsync_dir(dst.parent)
            return dst
        finally:
            if not self._finalized:
                self._discard()

    def _rename_no_clobber(self, dst: Path) -> None:
        if dst.exists():
            raise DestinationExistsError()
        try:
            os.rename(self.path, dst)
        except FileExistsError as exc:
            raise DestinationExistsError() from exc

    def _discard(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            log_best_effort(__name__, exc, message="Temp file removal failed")

    def close(self) -> None:
        try:
            self._file.close()
        except OSError as exc:
            log_best_effort(__name__, exc)
        if not self._finalized:
            self._discard()

    def __enter__(self) -> SecureTempFile:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


__all__ = ["SecureTempFile", "TEMP_SUFFIX"]
