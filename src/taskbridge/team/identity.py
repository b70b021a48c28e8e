# src/taskbridge/team/identity.py

"""
Cross-platform identity resolution.

One human may talk to the bot from several chat platforms. Each platform
account reference is attached to exactly one User row; the resolver decides
whether an unseen account belongs to an existing user or needs a new one.

Merge policy (inherited from the first deployments of the bot):
an unseen account whose display name equals an existing username is linked
onto that user. Two different people sharing a display name across platforms
are merged by this rule. It can be switched off (merge_by_username=False),
in which case the newcomer gets a disambiguated username instead.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable

from ..core.ports import ReplicationSink, UserRepo
from ..core.sqlite import is_unique_violation
from .user_models import ROLE_RANK, Platform, User, UserRole

logger = logging.getLogger(__name__)


class IdentityError(RuntimeError):
    """Raised when a platform account cannot be mapped to a user row."""


class IdentityResolver:
    def __init__(
        self,
        users: UserRepo,
        *,
        replicator: ReplicationSink | None = None,
        merge_by_username: bool = True,
        admin_usernames: Iterable[str] = (),
    ) -> None:
        self._users = users
        self._replicator = replicator
        self._merge_by_username = merge_by_username
        self._admin_usernames = {u.strip() for u in admin_usernames if u and u.strip()}

    # ---- resolution ----

    def resolve_or_create(self, platform: Platform | str, account_id: str, display_name: str) -> User:
        platform = Platform(platform)
        account_id = str(account_id or "").strip()
        display_name = (display_name or "").strip()
        if not account_id:
            raise ValueError("account_id is required")
        if not display_name:
            raise ValueError("display_name is required")

        user = self._users.get_user_by_account(platform, account_id)
        if user is not None:
            return user

        if self._merge_by_username:
            existing = self._users.get_user_by_username(display_name)
            if existing is not None:
                linked = self._try_link(existing, platform, account_id)
                if linked is not None:
                    return linked

        return self._create(platform, account_id, display_name)

    def _try_link(self, user: User, platform: Platform, account_id: str) -> User | None:
        current = user.account_id(platform)
        if current and current != account_id:
            # Linking would orphan the account already attached on this platform.
            logger.warning(
                "Username %r already linked to another %s account; not merging %s",
                user.username,
                platform.value,
                account_id,
            )
            return None

        try:
            linked = self._users.link_account(user.id, platform, account_id)
        except sqlite3.IntegrityError as e:
            if not is_unique_violation(e):
                raise
            # Another front-end linked the same account concurrently.
            return self._reread(platform, account_id)

        if linked is None:
            # User row deleted between lookup and link.
            return None

        logger.info("Merged %s account %s into user id=%s (%s)", platform.value, account_id, linked.id, linked.username)
        self._replicate(linked)
        return linked

    def _create(self, platform: Platform, account_id: str, display_name: str) -> User:
        candidates = [
            display_name,
            f"{display_name}@{platform.value}",
            f"{display_name}@{platform.value}:{account_id}",
        ]
        if self._users.get_user_by_username(display_name) is not None:
            candidates = candidates[1:]

        for username in candidates:
            try:
                user = self._users.create_user(
                    username=username,
                    role=UserRole.ADMIN if username in self._admin_usernames else UserRole.MEMBER,
                    **{platform.column: account_id},
                )
            except sqlite3.IntegrityError as e:
                if not is_unique_violation(e):
                    raise
                raced = self._users.get_user_by_account(platform, account_id)
                if raced is not None:
                    return raced
                continue

            self._replicate(user)
            return user

        return self._reread(platform, account_id)

    def _reread(self, platform: Platform, account_id: str) -> User:
        user = self._users.get_user_by_account(platform, account_id)
        if user is None:
            raise IdentityError(f"could not resolve {platform.value} account {account_id!r}")
        return user

    def _replicate(self, user: User) -> None:
        if self._replicator is not None:
            self._replicator.submit_user(user)

    # ---- lookups / admin operations ----

    def get_user(self, user_id: int) -> User | None:
        return self._users.get_user(user_id)

    def get_user_by_username(self, username: str) -> User | None:
        return self._users.get_user_by_username(username)

    def get_user_by_account(self, platform: Platform | str, account_id: str) -> User | None:
        return self._users.get_user_by_account(Platform(platform), account_id)

    def list_users(self) -> list[User]:
        return self._users.list_users()

    def link_account(self, user_id: int, platform: Platform | str, account_id: str) -> User | None:
        user = self._users.link_account(user_id, Platform(platform), account_id)
        if user is not None:
            self._replicate(user)
        return user

    def set_role(self, user_id: int, role: UserRole | str) -> User | None:
        user = self._users.set_role(user_id, UserRole(role))
        if user is not None:
            self._replicate(user)
        return user

    def delete_user(self, user_id: int) -> bool:
        return self._users.delete_user(user_id)

    def has_permission(self, user_id: int, required_role: UserRole | str) -> bool:
        """Role hierarchy check: admin > manager > member. Unknown user -> False."""
        user = self._users.get_user(user_id)
        if user is None:
            return False
        return ROLE_RANK[user.role] >= ROLE_RANK[UserRole(required_role)]
