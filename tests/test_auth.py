"""
Identity & auth tests.

Tests cover:
  - Password hashing (bcrypt)
  - LocalAuthBackend: sign-up, sign-in, refresh rotation, sign-out, listeners
  - IdentityProvider state machine (loading → authenticated / anonymous)
  - Profile auto-provisioning and update_profile validation
  - Sign-out clearing local state even when the backend fails
"""

import pytest

from app.core.exceptions import AuthError, NetworkError, ValidationError
from app.models import db
from app.models.auth import AuthSession, Profile, User
from app.repositories import get_backend
from app.repositories.auth_backend import LocalAuthBackend
from app.services.identity_service import (
    ANONYMOUS,
    AUTHENTICATED,
    ENTRY_PATH,
    LOADING,
    IdentityProvider,
    load_profile,
    update_profile,
    validate_password,
)
from app.utils.crypto import hash_password, verify_password


@pytest.fixture()
def auth():
    return LocalAuthBackend(get_backend(), ip_address="127.0.0.1", user_agent="pytest")


class _FailingSignOut(LocalAuthBackend):
    def sign_out(self):
        raise NetworkError("AuthSession.update")


# ═══════════════════════════════════════════════════════════════
# PASSWORDS
# ═══════════════════════════════════════════════════════════════


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_verify_rejects_missing_hash(self):
        assert not verify_password("anything", None)

    def test_validate_password_min_length(self):
        with pytest.raises(ValidationError):
            validate_password("abc")
        validate_password("abcdef")


# ═══════════════════════════════════════════════════════════════
# AUTH BACKEND
# ═══════════════════════════════════════════════════════════════


class TestLocalAuthBackend:
    def test_sign_up_creates_user_profile_and_session(self, auth):
        session = auth.sign_up("New.Person@Example.com", "secret123", full_name="New Person")
        user = User.query.filter_by(email="new.person@example.com").one()
        assert session.user_id == user.id
        assert session.access_token and session.refresh_token
        profile = Profile.query.filter_by(user_id=user.id).one()
        assert profile.global_role == "user"
        assert profile.full_name == "New Person"
        assert AuthSession.query.filter_by(user_id=user.id, is_active=True).count() == 1

    def test_sign_up_duplicate_email(self, auth, make_user):
        make_user("taken@example.com")
        with pytest.raises(AuthError, match="already registered"):
            auth.sign_up("taken@example.com", "secret123")

    def test_sign_up_short_password(self, auth):
        with pytest.raises(AuthError):
            auth.sign_up("short@example.com", "abc")
        assert User.query.count() == 0

    def test_sign_in_success(self, auth, make_user):
        user = make_user("dev@example.com")
        session = auth.sign_in_with_password("DEV@example.com", "secret123")
        assert session.user_id == user.id
        assert auth.get_session() is session

    def test_sign_in_wrong_password(self, auth, make_user):
        make_user("dev@example.com")
        with pytest.raises(AuthError, match="Invalid email or password"):
            auth.sign_in_with_password("dev@example.com", "nope-nope")

    def test_sign_in_unknown_email(self, auth):
        with pytest.raises(AuthError, match="Invalid email or password"):
            auth.sign_in_with_password("ghost@example.com", "secret123")

    def test_refresh_rotates_session(self, auth, make_user):
        make_user("dev@example.com")
        first = auth.sign_in_with_password("dev@example.com", "secret123")
        second = auth.refresh(first.refresh_token)
        assert second.refresh_token != first.refresh_token
        with pytest.raises(AuthError):
            auth.refresh(first.refresh_token)

    def test_sign_out_revokes_session(self, auth, make_user):
        user = make_user("dev@example.com")
        session = auth.sign_in_with_password("dev@example.com", "secret123")
        auth.sign_out()
        assert auth.get_session() is None
        assert AuthSession.query.filter_by(user_id=user.id, is_active=True).count() == 0
        with pytest.raises(AuthError):
            auth.refresh(session.refresh_token)

    def test_listeners_receive_events_until_unsubscribed(self, auth, make_user):
        make_user("dev@example.com")
        events = []
        unsubscribe = auth.on_auth_state_change(lambda event, session: events.append(event))
        auth.sign_in_with_password("dev@example.com", "secret123")
        auth.sign_out()
        unsubscribe()
        auth.sign_in_with_password("dev@example.com", "secret123")
        assert events == ["SIGNED_IN", "SIGNED_OUT"]

    def test_update_user_password(self, auth, make_user):
        user = make_user("dev@example.com")
        auth.sign_in_with_password("dev@example.com", "secret123")
        auth.update_user(password="brand-new-pass")
        assert verify_password("brand-new-pass", db.session.get(User, user.id).password_hash)

    def test_update_user_requires_session(self, auth):
        with pytest.raises(AuthError):
            auth.update_user(password="whatever1")


# ═══════════════════════════════════════════════════════════════
# IDENTITY PROVIDER
# ═══════════════════════════════════════════════════════════════


class TestIdentityProvider:
    def test_starts_loading_and_resolves_anonymous(self, auth):
        provider = IdentityProvider(auth)
        assert provider.state == LOADING
        assert provider.resolve() == ANONYMOUS
        assert provider.profile is None

    def test_sign_in_loads_profile(self, auth, make_user):
        make_user("dev@example.com", full_name="Dev One")
        provider = IdentityProvider(auth)
        provider.sign_in("dev@example.com", "secret123")
        assert provider.state == AUTHENTICATED
        assert provider.profile.full_name == "Dev One"

    def test_profile_is_provisioned_when_missing(self, auth, make_user):
        user = make_user("noprofile@example.com", with_profile=False)
        provider = IdentityProvider(auth)
        provider.sign_in("noprofile@example.com", "secret123")
        assert provider.profile.user_id == user.id
        assert provider.profile.global_role == "user"
        assert Profile.query.filter_by(user_id=user.id).count() == 1

    def test_sign_out_clears_state_and_redirects(self, auth, make_user):
        make_user("dev@example.com")
        provider = IdentityProvider(auth)
        provider.sign_in("dev@example.com", "secret123")
        provider.sign_out()
        assert provider.state == ANONYMOUS
        assert provider.session is None and provider.profile is None
        assert provider.redirect_to == ENTRY_PATH

    def test_sign_out_clears_state_when_backend_fails(self, make_user):
        make_user("dev@example.com")
        provider = IdentityProvider(_FailingSignOut(get_backend()))
        provider.sign_in("dev@example.com", "secret123")
        provider.sign_out()
        assert provider.state == ANONYMOUS
        assert provider.session is None
        assert provider.redirect_to == ENTRY_PATH

    def test_update_password_validates_before_calling_backend(self, auth, make_user):
        make_user("dev@example.com")
        provider = IdentityProvider(auth)
        provider.sign_in("dev@example.com", "secret123")
        with pytest.raises(ValidationError):
            provider.update_password("abc")

    def test_update_profile_requires_authentication(self, auth):
        provider = IdentityProvider(auth)
        with pytest.raises(AuthError):
            provider.update_profile("Name")


# ═══════════════════════════════════════════════════════════════
# PROFILE
# ═══════════════════════════════════════════════════════════════


class TestUpdateProfile:
    def test_empty_name_rejected_without_mutation(self, make_user):
        user = make_user("dev@example.com", full_name="Dev One")
        with pytest.raises(ValidationError):
            update_profile(user.id, "", None)
        profile = load_profile(user.id)
        assert profile.full_name == "Dev One"
        assert profile.timezone is None

    def test_whitespace_name_rejected(self, make_user):
        user = make_user("dev@example.com")
        with pytest.raises(ValidationError):
            update_profile(user.id, "   ")

    def test_updates_name_and_timezone(self, make_user):
        user = make_user("dev@example.com")
        profile = update_profile(user.id, "  Dev Renamed ", "Europe/Istanbul")
        assert profile.full_name == "Dev Renamed"
        assert profile.timezone == "Europe/Istanbul"
        assert db.session.get(User, user.id).display_name == "Dev Renamed"

    def test_unset_timezone_is_kept(self, make_user):
        user = make_user("dev@example.com")
        update_profile(user.id, "Dev", "UTC")
        profile = update_profile(user.id, "Dev Again")
        assert profile.timezone == "UTC"
