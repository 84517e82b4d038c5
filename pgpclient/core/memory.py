"""
Scoped handling of passphrases and unlocked key material.

Python cannot wipe ``str`` or ``bytes`` objects, so every secret that passes
through the pipeline is copied into a ``bytearray`` that is owned by a context
manager and overwritten on exit, whether the block returned or raised.
Where libc is available the buffer is also ``mlock``-ed so it is not paged
out while in use.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import sys
from contextlib import contextmanager
from typing import Iterator, Union

Secret = Union[str, bytes, bytearray, memoryview]

_libc_attempted = False
_mlock = None
_munlock = None


def _load_libc() -> None:
    """Resolve mlock/munlock once; failure leaves both as None."""
    global _libc_attempted, _mlock, _munlock
    if _libc_attempted:
        return
    _libc_attempted = True

    if sys.platform == "win32":
        return

    libc_name = ctypes.util.find_library("c")
    if not libc_name:
        return

    try:
        libc = ctypes.CDLL(libc_name, use_errno=True)
    except OSError:
        return

    for name in ("mlock", "munlock"):
        fn = getattr(libc, name)
        fn.argtypes = [ctypes.c_void_p, ctypes.c_size_t]
        fn.restype = ctypes.c_int
    _mlock = libc.mlock
    _munlock = libc.munlock


def _page_call(fn, buf: bytearray) -> bool:
    if fn is None or not buf:
        return False
    try:
        addr = ctypes.addressof((ctypes.c_char * len(buf)).from_buffer(buf))
        return fn(addr, len(buf)) == 0
    except (ValueError, TypeError):
        return False


def mlock_buffer(buf: bytearray) -> bool:
    """Pin *buf* in RAM. Returns False when the platform refuses (non-fatal)."""
    _load_libc()
    return _page_call(_mlock, buf)


def munlock_buffer(buf: bytearray) -> bool:
    """Release a buffer pinned by :func:`mlock_buffer`."""
    _load_libc()
    return _page_call(_munlock, buf)


def secure_zero(buf: bytearray) -> None:
    """Overwrite a bytearray in place with zeros."""
    for i in range(len(buf)):
        buf[i] = 0


class SecureBuffer:
    """
    A locked bytearray that is zeroed and unlocked on close.

    Usage:
        with SecureBuffer.copy_of(passphrase) as buf:
            use(buf.data)
        # buf.data is now all zeros
    """

    def __init__(self, size: int):
        self.data = bytearray(size)
        self._locked = mlock_buffer(self.data)

    @classmethod
    def copy_of(cls, secret: Secret) -> "SecureBuffer":
        raw = secret.encode("utf-8") if isinstance(secret, str) else secret
        buf = cls(len(raw))
        buf.data[:] = raw
        return buf

    def __enter__(self) -> "SecureBuffer":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def close(self) -> None:
        secure_zero(self.data)
        if self._locked:
            munlock_buffer(self.data)
            self._locked = False


@contextmanager
def secure_key(secret: Secret) -> Iterator[bytearray]:
    """
    Yield a private, locked ``bytearray`` copy of *secret* and zero it on exit.

    The caller's own object is left untouched; only the copy is wiped, so pass
    a ``bytearray`` and wipe it yourself if the original must not linger.
    """
    buf = SecureBuffer.copy_of(secret)
    try:
        yield buf.data
    finally:
        buf.close()


@contextmanager
def optional_secret(secret: Secret | None) -> Iterator[bytearray | None]:
    """Like :func:`secure_key` but passes ``None`` through unchanged."""
    if secret is None:
        yield None
        return
    with secure_key(secret) as buf:
        yield buf
