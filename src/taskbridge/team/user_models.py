# src/taskbridge/team/user_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class UserRole(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]

    @classmethod
    def from_db(cls, raw: str | None) -> UserRole:
        if not raw:
            return cls.MEMBER
        try:
            return cls(raw)
        except ValueError:
            return cls.MEMBER


ROLE_RANK: dict[UserRole, int] = {
    UserRole.ADMIN: 3,
    UserRole.MANAGER: 2,
    UserRole.MEMBER: 1,
}


class Platform(StrEnum):
    """Chat platforms a user can link an account on."""

    DISCORD = "discord"
    TELEGRAM = "telegram"

    @property
    def column(self) -> str:
        return f"{self.value}_id"


@dataclass(slots=True)
class User:
    id: int
    username: str
    discord_id: str | None
    telegram_id: str | None
    role: UserRole
    created_at: float

    def account_id(self, platform: Platform) -> str | None:
        if platform == Platform.DISCORD:
            return self.discord_id
        return self.telegram_id

    def linked_accounts(self) -> dict[Platform, str]:
        """Linked channels: platform -> account id (only non-empty ones)."""
        out: dict[Platform, str] = {}
        for p in Platform:
            acc = self.account_id(p)
            if acc:
                out[p] = acc
        return out
