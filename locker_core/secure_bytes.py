# secure_bytes.py
"""Secure bytes container with best-effort memory cleanup for passwords and keys."""
from __future__ import annotations

import ctypes
import threading
import weakref
from typing import Callable, TypeVar, Union

BytesLike = Union[bytes, bytearray, memoryview]

T = TypeVar("T")


def secure_memzero(buf: bytearray) -> None:
    """
    Zero a mutable buffer in place.

    Uses ctypes.memset on the buffer address and falls back to a manual loop
    when the address cannot be taken (e.g. exported buffers).

    Args:
        buf: Buffer to zero. Safe to pass empty buffer.
    """
    if not buf:
        return
    try:
        addr = ctypes.addressof(ctypes.c_char.from_buffer(buf))
        ctypes.memset(addr, 0, len(buf))
        return
    except (TypeError, ValueError, BufferError):
        pass
    for i in range(len(buf)):
        buf[i] = 0


class SecureBytes:
    """
    Container for sensitive byte data (derived keys, encoded passwords).

    - Internal mutable buffer (bytearray) so it can be zeroed
    - Context manager support for automatic cleanup
    - No information leakage through repr/str

    Usage:
        with SecureBytes(key) as sb:
            cipher = make_cipher(sb.view())
        # zeroed here
    """

    __slots__ = ("_buf", "_cleared", "_lock", "_finalizer", "__weakref__")

    def __init__(self, data: BytesLike) -> None:
        if isinstance(data, memoryview):
            data = data.tobytes()
        elif not isinstance(data, bytes | bytearray):
            raise TypeError(f"SecureBytes requires bytes/bytearray/memoryview, got {type(data).__name__}")
        if len(data) == 0:
            raise ValueError("SecureBytes cannot be empty")

        self._buf = bytearray(data)
        self._cleared = False
        self._lock = threading.RLock()
        self._finalizer = weakref.finalize(self, secure_memzero, self._buf)

    @classmethod
    def from_password(cls, password: str | BytesLike) -> SecureBytes:
        if isinstance(password, str):
            return cls(password.encode("utf-8"))
        return cls(password)

    def view(self) -> bytes:
        """
        Return an immutable copy for APIs that only accept ``bytes``.

        The copy cannot be zeroed; callers should drop it as soon as possible.

        Raises:
            ValueError: If already cleared
        """
        with self._lock:
            if self._cleared:
                raise ValueError("SecureBytes already cleared")
            return bytes(self._buf)

    def with_bytes(self, callback: Callable[[bytes], T]) -> T:
        """Execute callback with a temporary bytes copy and return its result."""
        temp = self.view()
        try:
            return callback(temp)
        finally:
            del temp

    def clear(self) -> None:
        """Zero the internal buffer. Idempotent."""
        with self._lock:
            if not self._cleared:
                secure_memzero(self._buf)
                self._buf.clear()
                self._cleared = True

    @property
    def cleared(self) -> bool:
        with self._lock:
            return self._cleared

    def __enter__(self) -> SecureBytes:
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        self.clear()

    def __len__(self) -> int:
        with self._lock:
            return 0 if self._cleared else len(self._buf)

    def __repr__(self) -> str:
        return "<SecureBytes ***>"

    __str__ = __repr__


__all__ = ["SecureBytes", "secure_memzero"]
