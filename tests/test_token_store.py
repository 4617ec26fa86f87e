from datetime import timedelta
from uuid import uuid4
import logging

import pytest
from sqlalchemy.exc import OperationalError

from childcare_auth.entities.refresh_token import RefreshToken
from childcare_auth.exceptions import ConstraintViolation, PersistenceFailure


def _create(store, user, clock, token_hash=None, ttl=timedelta(days=30)):
    with store.atomic():
        return store.create(user.id, token_hash or uuid4().hex, clock() + ttl)


def test_create_and_find_by_hash(store, users, clock):
    parent, _, _ = users
    record = _create(store, parent, clock, token_hash="a" * 64)

    found = store.find_by_hash("a" * 64)
    assert found is not None
    assert found.id == record.id
    assert found.user_id == parent.id
    assert found.revoked is False
    assert found.revoked_at is None


def test_find_by_hash_unknown_returns_none(store, users):
    assert store.find_by_hash("f" * 64) is None


def test_create_duplicate_hash_is_constraint_violation(store, users, clock, db_session):
    parent, teacher, _ = users
    _create(store, parent, clock, token_hash="b" * 64)

    with pytest.raises(ConstraintViolation):
        _create(store, teacher, clock, token_hash="b" * 64)

    # The failed unit was rolled back; the original row is intact
    assert db_session.query(RefreshToken).count() == 1


def test_hash_collision_is_logged_as_critical(store, users, clock, caplog):
    parent, teacher, _ = users
    _create(store, parent, clock, token_hash="c" * 64)

    with caplog.at_level(logging.ERROR, logger="childcare_auth.auth.store"):
        with pytest.raises(ConstraintViolation):
            _create(store, teacher, clock, token_hash="c" * 64)

    assert [r.levelno for r in caplog.records] == [logging.CRITICAL]
    assert "collision" in caplog.records[0].getMessage()


def test_other_integrity_errors_are_not_reported_as_collisions(store, clock, caplog, db_session):
    with caplog.at_level(logging.ERROR, logger="childcare_auth.auth.store"):
        with pytest.raises(ConstraintViolation):
            with store.atomic():
                store.create(None, "d" * 64, clock() + timedelta(days=30))

    assert [r.levelno for r in caplog.records] == [logging.ERROR]
    assert "collision" not in caplog.records[0].getMessage()
    assert db_session.query(RefreshToken).count() == 0


def test_revoke_is_conditional_and_idempotent(store, users, clock):
    parent, _, _ = users
    record = _create(store, parent, clock)

    with store.atomic():
        first = store.revoke(record.id, clock())
    clock.advance(timedelta(minutes=5))
    with store.atomic():
        second = store.revoke(record.id, clock())

    assert first is True
    assert second is False

    found = store.get(record.id)
    assert found.revoked is True
    # The second call did not touch the row
    assert found.revoked_at.replace(tzinfo=None) == (clock() - timedelta(minutes=5)).replace(tzinfo=None)


def test_revoke_unknown_id_is_noop(store, users, clock):
    with store.atomic():
        assert store.revoke(uuid4(), clock()) is False


def test_revoke_all_for_user_only_touches_that_user(store, users, clock):
    parent, teacher, _ = users
    for _ in range(3):
        _create(store, parent, clock)
    other = _create(store, teacher, clock)

    with store.atomic():
        count = store.revoke_all_for_user(parent.id, clock())

    assert count == 3
    assert store.list_active_for_user(parent.id, clock()) == []
    assert store.get(other.id).revoked is False


def test_revoke_all_skips_already_revoked(store, users, clock):
    parent, _, _ = users
    first = _create(store, parent, clock)
    _create(store, parent, clock)
    with store.atomic():
        store.revoke(first.id, clock())

    with store.atomic():
        assert store.revoke_all_for_user(parent.id, clock()) == 1


def test_list_active_excludes_expired_and_revoked(store, users, clock):
    parent, _, _ = users
    live = _create(store, parent, clock)
    _create(store, parent, clock, ttl=timedelta(seconds=1))
    revoked = _create(store, parent, clock)
    with store.atomic():
        store.revoke(revoked.id, clock())

    clock.advance(timedelta(seconds=2))
    active = store.list_active_for_user(parent.id, clock())
    assert [r.id for r in active] == [live.id]


def test_purge_expired_before(store, users, clock, db_session):
    parent, _, _ = users
    _create(store, parent, clock, ttl=timedelta(days=1))
    _create(store, parent, clock, ttl=timedelta(days=2))
    keep = _create(store, parent, clock, ttl=timedelta(days=30))

    with store.atomic():
        purged = store.purge_expired_before(clock() + timedelta(days=3))

    assert purged == 2
    assert [r.id for r in db_session.query(RefreshToken).all()] == [keep.id]


def test_store_errors_surface_as_persistence_failure(store, users, monkeypatch):
    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is gone"))

    monkeypatch.setattr(store.db, "query", broken_query)
    with pytest.raises(PersistenceFailure):
        store.find_by_hash("c" * 64)


def test_atomic_rolls_back_everything_on_failure(store, users, clock, db_session):
    parent, _, _ = users
    with pytest.raises(RuntimeError):
        with store.atomic():
            store.create(parent.id, "d" * 64, clock() + timedelta(days=1))
            raise RuntimeError("boom")

    assert store.find_by_hash("d" * 64) is None
