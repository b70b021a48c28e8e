# tests/test_identity.py

from __future__ import annotations

from taskbridge.team.identity import IdentityResolver
from taskbridge.team.user_models import Platform, UserRole
from taskbridge.team.user_store import UserStore


def _resolver(tmp_path, **kwargs) -> tuple[IdentityResolver, UserStore]:
    users = UserStore(tmp_path / "users.sqlite3")
    return IdentityResolver(users, **kwargs), users


def test_resolve_is_idempotent(tmp_path) -> None:
    identity, users = _resolver(tmp_path)

    first = identity.resolve_or_create(Platform.TELEGRAM, "42", "alice")
    second = identity.resolve_or_create("telegram", "42", "alice-renamed")

    assert first.id == second.id
    assert second.username == "alice"
    assert second.role == UserRole.MEMBER
    assert users.count_users() == 1


def test_same_username_on_other_platform_is_merged(tmp_path) -> None:
    identity, users = _resolver(tmp_path)

    tg = identity.resolve_or_create(Platform.TELEGRAM, "42", "alice")
    dc = identity.resolve_or_create(Platform.DISCORD, "9001", "alice")

    assert dc.id == tg.id
    assert dc.telegram_id == "42"
    assert dc.discord_id == "9001"
    assert users.count_users() == 1


def test_merge_never_steals_an_existing_link(tmp_path) -> None:
    identity, users = _resolver(tmp_path)

    alice = identity.resolve_or_create(Platform.TELEGRAM, "42", "alice")
    other = identity.resolve_or_create(Platform.TELEGRAM, "43", "alice")

    assert other.id != alice.id
    assert other.username == "alice@telegram"
    assert users.get_user(alice.id).telegram_id == "42"


def test_merge_disabled_creates_disambiguated_user(tmp_path) -> None:
    identity, users = _resolver(tmp_path, merge_by_username=False)

    tg = identity.resolve_or_create(Platform.TELEGRAM, "42", "alice")
    dc = identity.resolve_or_create(Platform.DISCORD, "9001", "alice")

    assert dc.id != tg.id
    assert dc.username == "alice@discord"
    assert dc.telegram_id is None


def test_has_permission_follows_role_hierarchy(tmp_path) -> None:
    identity, users = _resolver(tmp_path)
    admin = users.create_user(username="root", role=UserRole.ADMIN)
    manager = users.create_user(username="pm", role=UserRole.MANAGER)
    member = users.create_user(username="dev")

    assert identity.has_permission(admin.id, UserRole.MANAGER)
    assert identity.has_permission(admin.id, "admin")
    assert identity.has_permission(manager.id, UserRole.MANAGER)
    assert not identity.has_permission(manager.id, UserRole.ADMIN)
    assert identity.has_permission(member.id, UserRole.MEMBER)
    assert not identity.has_permission(member.id, UserRole.MANAGER)


def test_has_permission_unknown_user_is_false(tmp_path) -> None:
    identity, _ = _resolver(tmp_path)
    assert identity.has_permission(404, UserRole.MEMBER) is False


def test_set_role_and_link_are_replicated(tmp_path) -> None:
    submitted = []

    class Sink:
        def submit_user(self, user) -> None:
            submitted.append(user)

        def submit_task(self, task) -> None:
            pass

    identity, _ = _resolver(tmp_path, replicator=Sink())
    bob = identity.resolve_or_create(Platform.TELEGRAM, "7", "bob")
    identity.set_role(bob.id, UserRole.MANAGER)
    identity.link_account(bob.id, Platform.DISCORD, "55")

    assert [u.id for u in submitted] == [bob.id, bob.id, bob.id]
    assert submitted[-1].discord_id == "55"
    assert submitted[-1].role == UserRole.MANAGER


def test_bootstrap_admin_usernames(tmp_path) -> None:
    identity, _ = _resolver(tmp_path, admin_usernames=["owner"])

    owner = identity.resolve_or_create(Platform.TELEGRAM, "1", "owner")
    # a same-named account elsewhere that cannot be merged does not inherit admin
    twin = identity.resolve_or_create(Platform.TELEGRAM, "2", "owner")
    dev = identity.resolve_or_create(Platform.TELEGRAM, "3", "dev")

    assert owner.role == UserRole.ADMIN
    assert twin.role == UserRole.MEMBER
    assert dev.role == UserRole.MEMBER
