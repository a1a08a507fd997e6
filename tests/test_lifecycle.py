"""
BetScope - Lifecycle State Machine Tests

Session, Device and RefreshToken transitions, and the session and
device endpoints built on them.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import delete, func, text
from sqlmodel import select

from betscope.auth import refresh as refresh_service
from betscope.auth import sessions as session_service
from betscope.auth.database import get_engine
from betscope.auth.errors import InvalidTransitionError
from betscope.auth.models import (
    Device,
    DeviceStatus,
    RefreshToken,
    RefreshTokenStatus,
    Session,
    SessionStatus,
    User,
    utcnow,
)
from betscope.config import settings
from tests.conftest import bearer, login_user


FINGERPRINT = {"X-Device-Fingerprint": "fp-laptop-1", "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X)"}


def _session(expires_in: timedelta = timedelta(hours=1), status: SessionStatus = SessionStatus.ACTIVE) -> Session:
    return Session(
        user_id=uuid4(),
        token=uuid4().hex,
        status=status,
        expires_at=utcnow() + expires_in,
    )


def _refresh_token(expires_in: timedelta = timedelta(days=1)) -> RefreshToken:
    return RefreshToken(user_id=uuid4(), token=uuid4().hex, expires_at=utcnow() + expires_in)


# =============================================================================
# SESSION
# =============================================================================

class TestSessionLifecycle:

    def test_new_session_is_active(self):
        session = _session()

        assert session.is_active is True
        assert session.is_expired is False
        assert session.is_revoked is False

    def test_is_active_derived_from_expiry(self):
        """An ACTIVE row past its expiry reads as inactive without any write."""
        session = _session(expires_in=timedelta(seconds=-1))

        assert session.status == SessionStatus.ACTIVE
        assert session.is_active is False
        assert session.is_expired is True

    def test_expiry_equal_to_now_is_expired(self):
        session = _session(expires_in=timedelta(0))

        assert session.is_active is False

    def test_revoke(self):
        session = _session()
        session.revoke("suspicious")

        assert session.status == SessionStatus.REVOKED
        assert session.revoked_reason == "suspicious"
        assert session.revoked_at is not None
        assert session.is_active is False

    def test_revoke_after_expire_is_noop(self):
        session = _session()
        session.expire()
        session.revoke("late")

        assert session.status == SessionStatus.EXPIRED
        assert session.revoked_at is None

    def test_expire_after_revoke_is_noop(self):
        session = _session()
        session.revoke()
        session.expire()

        assert session.status == SessionStatus.REVOKED

    def test_extend_active_session(self):
        session = _session(expires_in=timedelta(minutes=1))
        session.extend(15)

        assert session.expires_at > utcnow() + timedelta(minutes=14)

    def test_extend_inactive_session_leaves_expiry_unchanged(self):
        revoked = _session()
        revoked.revoke()
        before = revoked.expires_at
        revoked.extend(15)
        assert revoked.expires_at == before

        lapsed = _session(expires_in=timedelta(seconds=-5))
        before = lapsed.expires_at
        lapsed.extend(15)
        assert lapsed.expires_at == before

    def test_update_activity(self):
        session = _session()
        session.update_activity(ip_address="10.0.0.1", location="Berlin")

        assert session.last_active_at is not None
        assert session.ip_address == "10.0.0.1"
        assert session.location == "Berlin"


# =============================================================================
# DEVICE
# =============================================================================

class TestDeviceLifecycle:

    def _device(self) -> Device:
        return Device(user_id=uuid4(), fingerprint=uuid4().hex)

    def test_initial_state_untrusted(self):
        device = self._device()

        assert device.status == DeviceStatus.UNTRUSTED
        assert device.is_trusted is False
        assert device.is_blocked is False

    def test_trust(self):
        device = self._device()
        device.trust()

        assert device.is_trusted is True
        assert device.trusted_at is not None

    def test_block_from_trusted(self):
        device = self._device()
        device.trust()
        device.block("suspicious")

        assert device.is_blocked is True
        assert device.blocked_reason == "suspicious"

    def test_block_is_irreversible(self):
        device = self._device()
        device.block("suspicious")

        with pytest.raises(InvalidTransitionError):
            device.trust()

        device.block("again")
        assert device.status == DeviceStatus.BLOCKED
        assert device.blocked_reason == "suspicious"

    def test_display_name(self):
        device = self._device()
        assert device.display_name == "Unknown Device"

        device.user_agent = "Mozilla/5.0"
        assert device.display_name == "Mozilla/5.0"

        device.name = "Work laptop"
        assert device.display_name == "Work laptop"


# =============================================================================
# REFRESH TOKEN
# =============================================================================

class TestRefreshTokenLifecycle:

    def test_use_marks_used(self):
        token = _refresh_token()
        token.use()

        assert token.status == RefreshTokenStatus.USED
        assert token.used_at is not None
        assert token.is_active is False

    def test_use_twice_raises(self):
        token = _refresh_token()
        token.use()

        with pytest.raises(InvalidTransitionError):
            token.use()

    def test_use_expired_raises(self):
        token = _refresh_token(expires_in=timedelta(seconds=-1))

        with pytest.raises(InvalidTransitionError):
            token.use()
        assert token.status == RefreshTokenStatus.ACTIVE

    def test_revoke_and_expire_only_from_active(self):
        token = _refresh_token()
        token.use()
        token.revoke("late")
        token.expire()

        assert token.status == RefreshTokenStatus.USED
        assert token.revoked_at is None


# =============================================================================
# SESSION SERVICE
# =============================================================================

class TestSessionService:

    @pytest.mark.asyncio
    async def test_validate_marks_lapsed_session_expired(self, db_session, test_user):
        session = await session_service.create_session(db_session, test_user.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.add(session)
        db_session.commit()

        assert await session_service.validate_session(db_session, session.id, test_user.id) is None
        assert db_session.get(Session, session.id).status == SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_validate_rejects_other_users_session(self, db_session, test_user, test_admin):
        session = await session_service.create_session(db_session, test_user.id)

        assert await session_service.validate_session(db_session, session.id, test_admin.id) is None

    @pytest.mark.asyncio
    async def test_cleanup_expired_sessions(self, db_session, test_user):
        live = await session_service.create_session(db_session, test_user.id)
        lapsed = await session_service.create_session(db_session, test_user.id)
        lapsed.expires_at = utcnow() - timedelta(minutes=1)
        db_session.add(lapsed)
        db_session.commit()

        assert await session_service.cleanup_expired_sessions(db_session) == 1
        assert db_session.get(Session, live.id).status == SessionStatus.ACTIVE
        assert db_session.get(Session, lapsed.id).status == SessionStatus.EXPIRED


# =============================================================================
# OWNERSHIP
# =============================================================================

class TestOwnership:
    """Deleting a user takes its records along; deleting a device orphans nothing."""

    @pytest.fixture
    def owned(self, db_session, make_user):
        async def _build():
            user = make_user("owner@test.com")
            device = Device(user_id=user.id, fingerprint="fp-owner-1")
            db_session.add(device)
            db_session.commit()
            session = await session_service.create_session(db_session, user.id, device_id=device.id)
            refresh, _ = await refresh_service.issue_refresh_token(db_session, user.id, session_id=session.id)
            return user, device, session, refresh
        return _build

    def _count(self, db_session, model, user_id) -> int:
        return db_session.exec(select(func.count()).select_from(model).where(model.user_id == user_id)).one()

    @pytest.mark.asyncio
    async def test_deleting_device_detaches_its_sessions(self, db_session, owned):
        user, device, session, _ = await owned()

        db_session.delete(device)
        db_session.commit()
        db_session.expire_all()

        kept = db_session.get(Session, session.id)
        assert kept is not None
        assert kept.device_id is None
        assert kept.status == SessionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_device_row_delete_sets_session_device_null(self, db_session, owned):
        user, device, session, _ = await owned()

        db_session.connection().execute(delete(Device).where(Device.id == device.id))
        db_session.commit()
        db_session.expire_all()

        assert db_session.get(Session, session.id).device_id is None

    @pytest.mark.asyncio
    async def test_session_row_delete_sets_refresh_session_null(self, db_session, owned):
        user, _, session, refresh = await owned()

        db_session.connection().execute(delete(Session).where(Session.id == session.id))
        db_session.commit()
        db_session.expire_all()

        assert db_session.get(RefreshToken, refresh.id).session_id is None

    @pytest.mark.asyncio
    async def test_deleting_user_cascades(self, db_session, owned, test_user):
        user, _, _, _ = await owned()
        await session_service.create_session(db_session, test_user.id)

        db_session.delete(user)
        db_session.commit()

        for model in (Device, Session, RefreshToken):
            assert self._count(db_session, model, user.id) == 0
        assert self._count(db_session, Session, test_user.id) == 1

    @pytest.mark.asyncio
    async def test_user_row_delete_cascades(self, db_session, owned):
        user, _, _, _ = await owned()
        user_id = user.id

        db_session.connection().execute(delete(User).where(User.id == user_id))
        db_session.commit()
        db_session.expire_all()

        for model in (Device, Session, RefreshToken):
            assert self._count(db_session, model, user_id) == 0

    def test_engine_factory_enforces_foreign_keys(self):
        engine = get_engine()
        try:
            assert str(engine.url) == settings.DATABASE_URL
            with engine.connect() as connection:
                assert connection.execute(text("PRAGMA foreign_keys")).scalar() == 1
        finally:
            engine.dispose()


# =============================================================================
# SESSION AND DEVICE ENDPOINTS
# =============================================================================

class TestSessionEndpoints:

    def test_list_sessions_marks_current(self, client, test_user):
        login_user(client, "fan@test.com")

        response = client.get("/auth/sessions")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["sessions"][0]["is_current"] is True

    def test_revoke_own_session(self, client, test_user):
        first = login_user(client, "fan@test.com")
        client.cookies.clear()
        login_user(client, "fan@test.com")

        sessions = client.get("/auth/sessions").json()["sessions"]
        other = next(s for s in sessions if not s["is_current"])

        response = client.delete(f"/auth/sessions/{other['id']}")

        assert response.status_code == 200
        client.cookies.clear()
        assert client.get("/auth/me", headers=bearer(first["access_token"])).status_code == 401

    def test_cannot_revoke_other_users_session(self, client, test_user, make_user):
        make_user("other@test.com", "other")
        login_user(client, "other@test.com")
        other_session = client.get("/auth/sessions").json()["sessions"][0]["id"]

        client.cookies.clear()
        login_user(client, "fan@test.com")
        response = client.delete(f"/auth/sessions/{other_session}")

        assert response.status_code == 403

    def test_admin_can_revoke_any_session(self, client, test_user, test_admin):
        login_user(client, "fan@test.com")
        user_session = client.get("/auth/sessions").json()["sessions"][0]["id"]

        client.cookies.clear()
        login_user(client, "admin@test.com")
        response = client.delete(f"/auth/sessions/{user_session}")

        assert response.status_code == 200
        assert response.json()["sessions_revoked"] == 1

    def test_revoke_unknown_session(self, client, test_user):
        login_user(client, "fan@test.com")

        assert client.delete(f"/auth/sessions/{uuid4()}").status_code == 404

    def test_revoke_all(self, client, test_user):
        tokens = [login_user(client, "fan@test.com")["access_token"] for _ in range(3)]

        response = client.post("/auth/sessions/revoke-all")

        assert response.status_code == 200
        assert response.json()["sessions_revoked"] == 3
        for token in tokens:
            assert client.get("/auth/me", headers=bearer(token)).status_code == 401


class TestDeviceEndpoints:

    def test_login_registers_device(self, client, test_user):
        login_user(client, "fan@test.com", headers=FINGERPRINT)

        devices = client.get("/auth/devices").json()
        assert devices["total"] == 1
        assert devices["devices"][0]["status"] == "UNTRUSTED"
        assert devices["devices"][0]["type"] == "DESKTOP"

    def test_same_fingerprint_reuses_device(self, client, test_user):
        login_user(client, "fan@test.com", headers=FINGERPRINT)
        login_user(client, "fan@test.com", headers=FINGERPRINT)

        assert client.get("/auth/devices").json()["total"] == 1

    def test_fingerprint_of_another_user_not_attached(self, client, test_user, make_user):
        make_user("other@test.com", "other")
        login_user(client, "other@test.com", headers=FINGERPRINT)
        client.cookies.clear()

        assert login_user(client, "fan@test.com", headers=FINGERPRINT) is not None
        assert client.get("/auth/devices").json()["total"] == 0

    def test_trust_then_block(self, client, test_user):
        login_user(client, "fan@test.com", headers=FINGERPRINT)
        device_id = client.get("/auth/devices").json()["devices"][0]["id"]

        trusted = client.post(f"/auth/devices/{device_id}/trust")
        assert trusted.status_code == 200
        assert trusted.json()["status"] == "TRUSTED"

        blocked = client.post(f"/auth/devices/{device_id}/block", json={"reason": "lost"})
        assert blocked.status_code == 200
        assert blocked.json()["status"] == "BLOCKED"
        assert blocked.json()["blocked_reason"] == "lost"

    def test_blocking_device_revokes_its_sessions(self, client, test_user):
        token = login_user(client, "fan@test.com", headers=FINGERPRINT)["access_token"]
        device_id = client.get("/auth/devices").json()["devices"][0]["id"]

        client.post(f"/auth/devices/{device_id}/block")

        assert client.get("/auth/me", headers=bearer(token)).status_code == 401

    def test_blocked_device_cannot_login_or_be_trusted(self, client, test_user):
        login_user(client, "fan@test.com", headers=FINGERPRINT)
        device_id = client.get("/auth/devices").json()["devices"][0]["id"]
        client.post(f"/auth/devices/{device_id}/block")

        client.cookies.clear()
        response = client.post(
            "/auth/login",
            json={"email": "fan@test.com", "password": "Abcd1234!"},
            headers=FINGERPRINT,
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "device_blocked"

        login_user(client, "fan@test.com")
        conflict = client.post(f"/auth/devices/{device_id}/trust")
        assert conflict.status_code == 409
        assert conflict.json()["error_code"] == "invalid_transition"

    def test_cannot_manage_other_users_device(self, client, test_user, make_user):
        make_user("other@test.com", "other")
        login_user(client, "other@test.com", headers=FINGERPRINT)
        device_id = client.get("/auth/devices").json()["devices"][0]["id"]

        client.cookies.clear()
        login_user(client, "fan@test.com")

        assert client.post(f"/auth/devices/{device_id}/block").status_code == 404
