from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from childcare_auth.auth.revocation import RevokeReason
from childcare_auth.entities.refresh_token import RefreshToken
from childcare_auth.exceptions import InvalidSession, PersistenceFailure, ReplayDetected
from childcare_auth.maintenance import purge_refresh_tokens


def _login(issuer, store, user):
    with store.atomic():
        return issuer.issue(user.id)


def test_revoke_session_twice_never_errors(revocation, issuer, store, users, db_session):
    parent, _, _ = users
    issued = _login(issuer, store, parent)

    assert revocation.revoke_session(issued.refresh_record_id) is True
    assert revocation.revoke_session(issued.refresh_record_id) is False
    assert db_session.get(RefreshToken, issued.refresh_record_id).revoked is True


def test_revoke_presented_logs_out_that_session_only(revocation, rotation, issuer, store, users):
    parent, _, _ = users
    phone = _login(issuer, store, parent)
    laptop = _login(issuer, store, parent)

    assert revocation.revoke_presented(phone.refresh_secret) is True
    assert revocation.revoke_presented("unknown-secret") is False

    assert rotation.rotate(laptop.refresh_secret).refresh_secret


def test_logged_out_secret_counts_as_replay(revocation, rotation, issuer, store, users):
    parent, _, _ = users
    issued = _login(issuer, store, parent)
    revocation.revoke_presented(issued.refresh_secret)

    with pytest.raises(ReplayDetected):
        rotation.rotate(issued.refresh_secret)


def test_revoke_all_is_effective_immediately(revocation, rotation, issuer, store, users):
    parent, _, _ = users
    sessions = [_login(issuer, store, parent) for _ in range(3)]

    assert revocation.revoke_all_for_user(parent.id, reason=RevokeReason.PASSWORD_CHANGE) == 3

    for issued in sessions:
        with pytest.raises(ReplayDetected):
            rotation.rotate(issued.refresh_secret)


def test_revoke_all_failure_is_not_reported_as_success(revocation, users, db_session, monkeypatch):
    parent, _, _ = users

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("connection reset"))

    monkeypatch.setattr(db_session, "commit", broken_commit)
    with pytest.raises(PersistenceFailure):
        revocation.revoke_all_for_user(parent.id)


def test_purge_keeps_rows_inside_retention(issuer, store, users, clock, db_session):
    parent, _, _ = users
    old = _login(issuer, store, parent)
    clock.advance(timedelta(days=45))
    recent = _login(issuer, store, parent)

    # `old` expired 15 days ago, `recent` is live
    assert purge_refresh_tokens(store, retention_days=10, now=clock()) == 1
    assert db_session.get(RefreshToken, old.refresh_record_id) is None
    assert db_session.get(RefreshToken, recent.refresh_record_id) is not None

    assert purge_refresh_tokens(store, retention_days=30, now=clock()) == 0


def test_purged_secret_is_invalid_session(rotation, issuer, store, users, clock):
    parent, _, _ = users
    issued = _login(issuer, store, parent)
    clock.advance(timedelta(days=90))
    purge_refresh_tokens(store, retention_days=30, now=clock())

    with pytest.raises(InvalidSession):
        rotation.rotate(issued.refresh_secret)
