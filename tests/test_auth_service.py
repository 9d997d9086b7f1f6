"""Unit tests for auth/service.py -- credential and session lifecycle.

Covers:
- register: duplicate email (any case) -> ConflictError; password policy; disabled registration
- login: unknown email and wrong password share one message; inactive -> AccountDisabledError
- wrong password twice then success; earlier sessions stay valid
- refresh rotation: old value is single use, replay fails, expired -> AuthExpiredError
- concurrent refresh of one token: exactly one winner (file DB, real threads)
- logout one session vs all; change password revokes every refresh token
- authenticate(): deactivated user's access token is rejected
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from api.container import build_services
from auth.models import RefreshToken
from core.db import create_db_engine, to_iso
from core.errors import (
    AccountDisabledError,
    AuthExpiredError,
    AuthInvalidError,
    ConflictError,
    ForbiddenError,
    ValidationError,
)

PASSWORD = "correct-horse-9"


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def test_register_returns_user_and_tokens(services):
    user, pair = services.auth.register("Alice@Example.com", PASSWORD, "Alice")
    assert user.id is not None
    assert user.email == "alice@example.com"
    assert user.hashed_password != PASSWORD
    assert pair.access_token and pair.refresh_token
    assert pair.token_type == "bearer"
    assert services.identities.count_refresh_tokens(user.id) == 1


def test_register_duplicate_email_is_conflict(services, register):
    register("alice")
    with pytest.raises(ConflictError):
        services.auth.register("ALICE@example.com", PASSWORD, "Other Alice")


@pytest.mark.parametrize("password", ["short", "x" * 73, "é" * 37])
def test_register_password_policy(services, password):
    with pytest.raises(ValidationError):
        services.auth.register("bob@example.com", password, "Bob")


def test_register_disabled(services, settings, monkeypatch):
    monkeypatch.setattr(settings, "self_registration_enabled", False)
    with pytest.raises(ForbiddenError):
        services.auth.register("bob@example.com", PASSWORD, "Bob")


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def test_unknown_email_and_wrong_password_are_indistinguishable(services, register):
    register("alice")
    with pytest.raises(AuthInvalidError) as unknown:
        services.auth.login("ghost@example.com", PASSWORD)
    with pytest.raises(AuthInvalidError) as wrong:
        services.auth.login("alice@example.com", "nope-nope")
    assert unknown.value.message == wrong.value.message == "Invalid email or password."


def test_wrong_password_twice_then_success_keeps_sessions(services, register):
    user, first = register("alice")
    for _ in range(2):
        with pytest.raises(AuthInvalidError):
            services.auth.login("alice@example.com", "wrong-password")
    _, second = services.auth.login("alice@example.com", PASSWORD)
    assert services.identities.count_refresh_tokens(user.id) == 2
    # The session opened at registration is still usable.
    rotated = services.auth.refresh(first.refresh_token)
    assert rotated.refresh_token != first.refresh_token
    assert services.auth.authenticate(second.access_token).user_id == user.id


def test_login_inactive_account(services, register):
    user, _ = register("alice")
    services.auth.deactivate(user.id)
    with pytest.raises(AccountDisabledError):
        services.auth.login("alice@example.com", PASSWORD)
    # Wrong password on an inactive account still reads as bad credentials.
    with pytest.raises(AuthInvalidError):
        services.auth.login("alice@example.com", "wrong-password")


# ---------------------------------------------------------------------------
# Refresh rotation
# ---------------------------------------------------------------------------


def test_refresh_is_single_use(services, register):
    user, pair = register("alice")
    new_pair = services.auth.refresh(pair.refresh_token)
    assert new_pair.refresh_token != pair.refresh_token
    with pytest.raises(AuthInvalidError):
        services.auth.refresh(pair.refresh_token)
    # Rotation replaces, it does not add.
    assert services.identities.count_refresh_tokens(user.id) == 1


def test_refresh_unknown_token(services):
    with pytest.raises(AuthInvalidError):
        services.auth.refresh("never-issued")


def test_refresh_expired_token_is_consumed(services, register, settings):
    user, _ = register("alice")
    raw = "expired-raw-value"
    past = datetime.now(timezone.utc) - timedelta(seconds=5)
    services.identities.add_refresh_token(
        RefreshToken(user_id=user.id, token_hash=services.tokens._hash(raw), expires_at=to_iso(past))
    )
    with pytest.raises(AuthExpiredError):
        services.auth.refresh(raw)
    # The expired row is gone, so a retry is simply unknown.
    with pytest.raises(AuthInvalidError):
        services.auth.refresh(raw)


def test_refresh_for_deactivated_user(services, register):
    user, pair = register("alice")
    services.identities.update_user(user.id, is_active=False)
    with pytest.raises(AccountDisabledError):
        services.auth.refresh(pair.refresh_token)


def test_purge_expired_keeps_live_tokens(services, register):
    user, _ = register("alice")
    past = datetime.now(timezone.utc) - timedelta(days=1)
    services.identities.add_refresh_token(
        RefreshToken(user_id=user.id, token_hash="stale-hash", expires_at=to_iso(past))
    )
    assert services.tokens.purge_expired() == 1
    assert services.identities.count_refresh_tokens(user.id) == 1


def test_concurrent_refresh_has_exactly_one_winner(tmp_path, settings):
    """Several threads present the same refresh token at once; one rotation succeeds."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
    services = build_services(engine, settings)
    _, pair = services.auth.register("racer@example.com", PASSWORD, "Racer")

    barrier = threading.Barrier(4)
    winners, losers, unexpected = [], [], []

    def attempt():
        barrier.wait()
        try:
            winners.append(services.auth.refresh(pair.refresh_token))
        except AuthInvalidError:
            losers.append(1)
        except Exception as exc:  # surfaced through the assertion below
            unexpected.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    engine.dispose()

    assert unexpected == []
    assert len(winners) == 1
    assert len(losers) == 3


# ---------------------------------------------------------------------------
# Logout and password change
# ---------------------------------------------------------------------------


def test_logout_single_session(services, register):
    user, first = register("alice")
    _, second = services.auth.login("alice@example.com", PASSWORD)
    assert services.auth.logout(user.id, first.refresh_token) == 1
    with pytest.raises(AuthInvalidError):
        services.auth.refresh(first.refresh_token)
    services.auth.refresh(second.refresh_token)


def test_logout_all_sessions_is_idempotent(services, register):
    user, _ = register("alice")
    services.auth.login("alice@example.com", PASSWORD)
    assert services.auth.logout(user.id) == 2
    assert services.auth.logout(user.id) == 0


def test_logout_cannot_revoke_another_users_session(services, register):
    alice, _ = register("alice")
    _, bob_pair = register("bob")
    assert services.auth.logout(alice.id, bob_pair.refresh_token) == 0
    services.auth.refresh(bob_pair.refresh_token)


def test_change_password_revokes_all_refresh_tokens(services, register):
    user, first = register("alice")
    _, second = services.auth.login("alice@example.com", PASSWORD)
    services.auth.change_password(user.id, PASSWORD, "brand-new-secret")
    for raw in (first.refresh_token, second.refresh_token):
        with pytest.raises(AuthInvalidError):
            services.auth.refresh(raw)
    with pytest.raises(AuthInvalidError):
        services.auth.login("alice@example.com", PASSWORD)
    services.auth.login("alice@example.com", "brand-new-secret")


def test_change_password_wrong_current(services, register):
    user, pair = register("alice")
    with pytest.raises(AuthInvalidError):
        services.auth.change_password(user.id, "not-my-password", "brand-new-secret")
    services.auth.refresh(pair.refresh_token)


# ---------------------------------------------------------------------------
# Bearer resolution and profile
# ---------------------------------------------------------------------------


def test_authenticate_rejects_deactivated_user(services, register):
    user, pair = register("alice")
    assert services.auth.authenticate(pair.access_token).user_id == user.id
    services.auth.deactivate(user.id)
    with pytest.raises(AccountDisabledError):
        services.auth.authenticate(pair.access_token)
    assert services.identities.count_refresh_tokens(user.id) == 0


def test_update_profile_and_search(services, register):
    user, _ = register("alice")
    register("bob")
    updated = services.auth.update_profile(user.id, display_name="  Alice L. ", avatar_url="https://x/a.png")
    assert updated.display_name == "Alice L."
    assert updated.avatar_url == "https://x/a.png"
    assert [u.email for u in services.auth.search_users("alice")] == ["alice@example.com"]
    assert services.auth.search_users("   ") == []


def test_search_treats_wildcards_literally(services, register):
    register("alice")
    register("bob")
    services.auth.register("under_score@example.com", "correct-horse-9", "Under Score")
    assert services.auth.search_users("%") == []
    assert [u.email for u in services.auth.search_users("_")] == ["under_score@example.com"]
    assert [u.email for u in services.auth.search_users("r_s")] == ["under_score@example.com"]
    assert services.auth.search_users("u_d") == []
