"""Password strength rules for newly chosen passwords."""

from __future__ import annotations

import math
import re

MINIMUM_LENGTH = 10
MINIMUM_ENTROPY_BITS = 60

_UPPERCASE_RE = re.compile(r"[A-Z]")
_LOWERCASE_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_SPECIAL_CHARS = "!@#$%^&*()-_=+{};:,.<>/?\\|\"'"
_SPECIAL_RE = re.compile("[" + re.escape(_SPECIAL_CHARS) + "]")

# Character pool sizes used for the entropy estimate
_POOLS = (
    (_LOWERCASE_RE, 26),
    (_UPPERCASE_RE, 26),
    (_DIGIT_RE, 10),
    (_SPECIAL_RE, len(_SPECIAL_CHARS)),
)
_OTHER_POOL = 32


class WeakPassword(ValueError):
    pass


class PasswordTooShort(WeakPassword):
    def __init__(self) -> None:
        super().__init__(f"password must be at least {MINIMUM_LENGTH} characters long")


class PasswordMissingClass(WeakPassword):
    pass


class PasswordTooWeak(WeakPassword):
    def __init__(self, bits: float) -> None:
        super().__init__(f"password is too weak ({bits:.0f} bits of estimated entropy)")
        self.bits = bits


def _effective_length(password: str) -> int:
    """Length with runs of repeated or consecutive characters (aaa, abc, 321) counted once."""
    length = 0
    prev: int | None = None
    step: int | None = None
    for ch in password:
        code = ord(ch)
        if prev is not None and abs(code - prev) <= 1 and (step is None or code - prev == step):
            step = code - prev
        else:
            length += 1
            step = None
        prev = code
    return length


def estimate_entropy(password: str) -> float:
    pool = sum(size for pattern, size in _POOLS if pattern.search(password))
    if any(not any(pattern.match(c) for pattern, _ in _POOLS) for c in password):
        pool += _OTHER_POOL
    if pool == 0:
        return 0.0
    return math.log2(pool) * _effective_length(password)


def validate_password(password: str) -> None:
    """Raise a WeakPassword subclass describing the first rule password breaks."""
    if len(password) < MINIMUM_LENGTH:
        raise PasswordTooShort()
    if not _UPPERCASE_RE.search(password):
        raise PasswordMissingClass("password must contain at least one uppercase letter")
    if not _LOWERCASE_RE.search(password):
        raise PasswordMissingClass("password must contain at least one lowercase letter")
    if not _DIGIT_RE.search(password):
        raise PasswordMissingClass("password must contain at least one digit")
    if not _SPECIAL_RE.search(password):
        raise PasswordMissingClass("password must contain at least one special character")
    bits = estimate_entropy(password)
    if bits < MINIMUM_ENTROPY_BITS:
        raise PasswordTooWeak(bits)
