from datetime import timedelta

import pytest

from childcare_auth.auth.rotation import RefreshTokenState, RotationProtocol
from childcare_auth.entities.refresh_token import RefreshToken
from childcare_auth.exceptions import (
    InvalidSession,
    PersistenceFailure,
    ReplayDetected,
    SessionExpired,
)


def _login(issuer, store, user):
    with store.atomic():
        return issuer.issue(user.id, email=user.email, role=user.role)


def test_valid_secret_rotates(rotation, issuer, store, codec, users, db_session):
    parent, _, _ = users
    issued = _login(issuer, store, parent)

    rotated = rotation.rotate(issued.refresh_secret)

    assert rotated.refresh_secret != issued.refresh_secret
    assert rotated.refresh_record_id != issued.refresh_record_id
    old = db_session.get(RefreshToken, issued.refresh_record_id)
    new = db_session.get(RefreshToken, rotated.refresh_record_id)
    assert old.revoked is True and old.revoked_at is not None
    assert new.revoked is False
    assert new.user_id == parent.id


def test_rotation_invalidates_the_old_secret(rotation, issuer, store, users):
    parent, _, _ = users
    issued = _login(issuer, store, parent)
    rotation.rotate(issued.refresh_secret)

    with pytest.raises(ReplayDetected):
        rotation.rotate(issued.refresh_secret)


def test_replay_burns_the_whole_family(rotation, issuer, store, users):
    parent, teacher, _ = users
    session_a = _login(issuer, store, parent)
    session_b = _login(issuer, store, parent)
    other_user = _login(issuer, store, teacher)

    rotated_a = rotation.rotate(session_a.refresh_secret)
    with pytest.raises(ReplayDetected):
        rotation.rotate(session_a.refresh_secret)

    # Both the legitimate child of A and the unrelated session B are dead
    with pytest.raises(ReplayDetected):
        rotation.rotate(rotated_a.refresh_secret)
    with pytest.raises(ReplayDetected):
        rotation.rotate(session_b.refresh_secret)

    # Another user's session is untouched
    assert rotation.rotate(other_user.refresh_secret).refresh_secret


def test_unknown_secret_is_invalid_session(rotation, users):
    with pytest.raises(InvalidSession):
        rotation.rotate("never-issued-secret")


def test_expiry_is_absolute(rotation, issuer, store, users, clock, settings):
    parent, _, _ = users
    issued = _login(issuer, store, parent)

    clock.advance(timedelta(days=settings.refresh_token_expire_days, seconds=1))
    with pytest.raises(SessionExpired):
        rotation.rotate(issued.refresh_secret)


def test_rotation_does_not_extend_the_family_expiry_window(rotation, issuer, store, users, clock, db_session):
    parent, _, _ = users
    issued = _login(issuer, store, parent)
    clock.advance(timedelta(days=1))

    rotated = rotation.rotate(issued.refresh_secret)
    old = db_session.get(RefreshToken, issued.refresh_record_id)
    new = db_session.get(RefreshToken, rotated.refresh_record_id)
    # The old record keeps its expiry; the new one gets its own fixed TTL
    assert old.expires_at.replace(tzinfo=None) == (clock() - timedelta(days=1) + issuer.refresh_token_ttl).replace(tzinfo=None)
    assert new.expires_at.replace(tzinfo=None) == (clock() + issuer.refresh_token_ttl).replace(tzinfo=None)


def test_expired_record_is_not_revoked_and_family_survives(rotation, issuer, store, users, clock, db_session):
    parent, _, _ = users
    short = _login(issuer, store, parent)
    clock.advance(timedelta(days=1))
    other = _login(issuer, store, parent)

    clock.advance(timedelta(days=29, seconds=1))
    with pytest.raises(SessionExpired):
        rotation.rotate(short.refresh_secret)

    assert db_session.get(RefreshToken, short.refresh_record_id).revoked is False
    # Presenting it again is still "expired", not a replay
    with pytest.raises(SessionExpired):
        rotation.rotate(short.refresh_secret)
    assert rotation.rotate(other.refresh_secret).refresh_secret


def test_classify_decision_table(clock):
    now = clock()
    live = RefreshToken(revoked=False, expires_at=now + timedelta(hours=1))
    expired = RefreshToken(revoked=False, expires_at=now - timedelta(seconds=1))
    revoked_and_expired = RefreshToken(revoked=True, expires_at=now - timedelta(seconds=1))

    assert RotationProtocol.classify(None, now) is RefreshTokenState.NOT_FOUND
    assert RotationProtocol.classify(live, now) is RefreshTokenState.VALID
    assert RotationProtocol.classify(expired, now) is RefreshTokenState.EXPIRED
    assert RotationProtocol.classify(revoked_and_expired, now) is RefreshTokenState.REVOKED


def test_losing_the_conditional_revoke_is_a_replay(rotation, issuer, store, users, monkeypatch):
    """A concurrent rotation flipped the row between our read and our write."""
    parent, _, _ = users
    issued = _login(issuer, store, parent)
    other = _login(issuer, store, parent)

    real_revoke = store.revoke

    def revoke_after_competitor(record_id, now):
        assert real_revoke(record_id, now) is True  # the competitor wins
        return real_revoke(record_id, now)          # our write affects nothing

    monkeypatch.setattr(store, "revoke", revoke_after_competitor)
    with pytest.raises(ReplayDetected):
        rotation.rotate(issued.refresh_secret)
    monkeypatch.undo()

    with pytest.raises(ReplayDetected):
        rotation.rotate(other.refresh_secret)


def test_failed_issue_rolls_back_the_revoke(rotation, issuer, store, users, db_session, monkeypatch):
    parent, _, _ = users
    issued = _login(issuer, store, parent)

    def broken_issue(*args, **kwargs):
        raise PersistenceFailure()

    monkeypatch.setattr(issuer, "issue", broken_issue)
    with pytest.raises(PersistenceFailure):
        rotation.rotate(issued.refresh_secret)

    # No half-rotated state: old row untouched and no orphan child
    assert db_session.get(RefreshToken, issued.refresh_record_id).revoked is False
    assert db_session.query(RefreshToken).count() == 1
