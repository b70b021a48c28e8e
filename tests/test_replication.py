# tests/test_replication.py

from __future__ import annotations

from taskbridge.mirrors.replication import MirrorReplicator
from taskbridge.team.user_models import User, UserRole

from .fakes import FakeMirror


def _user(uid: int = 1) -> User:
    return User(id=uid, username=f"u{uid}", discord_id=None, telegram_id=str(uid), role=UserRole.MEMBER, created_at=0.0)


def test_jobs_reach_every_mirror() -> None:
    a, b = FakeMirror(), FakeMirror()
    rep = MirrorReplicator([a, b])
    try:
        rep.submit_user(_user(1))
        rep.submit_checkin(user=_user(1), question="How are you?", answer="fine", timestamp=10.0)
        assert rep.flush(timeout=5.0)
    finally:
        rep.close()

    for mirror in (a, b):
        assert [u.id for u in mirror.users] == [1]
        assert mirror.checkins == [("u1", "How are you?", "fine")]


def test_failing_mirror_is_isolated() -> None:
    broken, healthy = FakeMirror(fail=True), FakeMirror()
    rep = MirrorReplicator([broken, healthy])
    try:
        rep.submit_user(_user(1))
        rep.submit_user(_user(2))
        assert rep.flush(timeout=5.0)
    finally:
        rep.close()

    assert [u.id for u in healthy.users] == [1, 2]


def test_without_mirrors_nothing_starts() -> None:
    rep = MirrorReplicator()
    rep.submit_user(_user(1))

    assert rep.enabled is False
    assert rep.flush(timeout=0.1) is True
    rep.close()


def test_submit_after_close_is_ignored() -> None:
    mirror = FakeMirror()
    rep = MirrorReplicator([mirror])
    rep.submit_user(_user(1))
    assert rep.flush(timeout=5.0)
    rep.close()

    rep.submit_user(_user(2))
    assert [u.id for u in mirror.users] == [1]


def test_close_releases_mirrors_after_worker_stops() -> None:
    mirror = FakeMirror()
    rep = MirrorReplicator([mirror])
    rep.submit_user(_user(1))
    rep.close(timeout=5.0)

    assert [u.id for u in mirror.users] == [1]
    assert mirror.closed is True


def test_close_without_worker_still_releases_mirrors() -> None:
    mirror = FakeMirror()
    MirrorReplicator([mirror]).close()

    assert mirror.closed is True
