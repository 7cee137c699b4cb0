"""User roles and their ordering."""

from __future__ import annotations

from enum import Enum

_RANKS = {"user": 100, "admin": 200}
UNKNOWN_RANK = -1


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self.value]

    @classmethod
    def parse(cls, value: str | None) -> Role | None:
        """Role for a claim or query value; None when unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


def has_at_least(role: Role | str | None, required: Role) -> bool:
    """True if role ranks at or above required. Unknown roles rank below every known one."""
    if not isinstance(role, Role):
        role = Role.parse(role)
    rank = role.rank if role is not None else UNKNOWN_RANK
    return rank >= required.rank
