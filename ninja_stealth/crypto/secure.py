"""
Secure memory helpers — in-place zeroing and constant-time comparison.

Python cannot guarantee that no copy of a secret survives in memory, so
these helpers only cover what is under our control: sensitive values are
held in ``bytearray`` buffers which are overwritten before they are dropped.
"""
import hmac
from contextlib import contextmanager
from typing import Iterator, Union

BytesLike = Union[bytes, bytearray, memoryview]


def zeroize(buf: bytearray) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if isinstance(buf, bytearray):
        buf[:] = bytes(len(buf))


def is_all_zero(data: BytesLike) -> bool:
    """Return True when every byte of ``data`` is 0x00 (or data is empty)."""
    acc = 0
    for b in bytes(data):
        acc |= b
    return acc == 0


def constant_time_equal(a: BytesLike, b: BytesLike) -> bool:
    """Compare two byte sequences in time independent of their content."""
    return hmac.compare_digest(bytes(a), bytes(b))


@contextmanager
def secure_buffer(data: BytesLike) -> Iterator[bytearray]:
    """Yield a mutable copy of ``data`` that is zeroed on every exit path.

    Example::

        with secure_buffer(password_hash) as buf:
            key = derive_key(bytes(buf), 32)
    """
    buf = bytearray(data)
    try:
        yield buf
    finally:
        zeroize(buf)
