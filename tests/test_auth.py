"""
Tests for session bootstrap and invite claiming
"""
import pytest
from unittest.mock import AsyncMock, patch

from chitfund.core.documents import COLLECTION_USERS
from chitfund.modules.auth.provider import IdentityError, IdentityErrorKind, LocalIdentityProvider
from chitfund.modules.auth.schemas import Identity
from chitfund.modules.auth.services import (
    ClaimRegistry,
    InvalidCredentialsError,
    LoginSystemError,
    SessionDeniedError,
    SessionManager,
    passwords_match,
)
from chitfund.modules.users.schemas import UserRole, UserStatus

from tests.conftest import ROOT_ADMIN_EMAIL, ROOT_ADMIN_PASSWORD


async def make_invite(user_service, email="a@x.com", password="a@x.com", role=UserRole.AGENT):
    return await user_service.invite_user(email, role, "Asha", initial_password=password)


class TestPasswordsMatch:
    """Tests for the invite password comparison"""

    @pytest.mark.unit
    def test_exact_match_after_trimming(self):
        assert passwords_match(" secret ", "secret")

    @pytest.mark.unit
    def test_case_insensitive_fallback(self):
        assert passwords_match("A@X.com", "a@x.com")

    @pytest.mark.unit
    def test_mismatch(self):
        assert not passwords_match("a@x.com", "wrongpass")


class TestClaimRegistry:
    """Tests for the per-email claim marker"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_marks_only_the_claiming_email(self):
        registry = ClaimRegistry()

        async with registry.claiming(" A@X.com"):
            assert registry.is_claiming("a@x.com")
            assert not registry.is_claiming("b@x.com")

        assert not registry.is_claiming("a@x.com")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nested_claims_release_last(self):
        registry = ClaimRegistry()

        async with registry.claiming("a@x.com"):
            async with registry.claiming("a@x.com"):
                pass
            assert registry.is_claiming("a@x.com")


class TestInviteClaim:
    """Tests for first login against an invite"""

    @pytest.mark.asyncio
    async def test_claim_success(self, session_manager, user_service, store, provider):
        """Mixed-case login claims the invite and replaces it with an owned record"""
        invite_id = await make_invite(user_service)

        session = await session_manager.login("A@X.com ", "a@x.com")

        assert session.role == UserRole.AGENT
        assert session.email == "a@x.com"
        record = await store.get(COLLECTION_USERS, session.uid)
        assert record["role"] == "AGENT"
        assert record["status"] == "ACTIVE"
        assert record["uid"] == session.uid
        assert "initialPassword" not in record
        assert await store.get(COLLECTION_USERS, invite_id) is None
        assert len(await store.query(COLLECTION_USERS, {"email": "a@x.com"})) == 1

    @pytest.mark.asyncio
    async def test_claimed_identity_stays_signed_in(self, session_manager, user_service, provider):
        """The identity-changed event fired mid-claim does not sign the new identity out"""
        await make_invite(user_service)

        session = await session_manager.login("a@x.com", "a@x.com")

        assert await provider.is_signed_in(session.uid)

    @pytest.mark.asyncio
    async def test_second_login_uses_standard_sign_in(self, session_manager, user_service, provider):
        """After the claim the same credentials sign in directly"""
        await make_invite(user_service)
        first = await session_manager.login("a@x.com", "a@x.com")

        with patch.object(session_manager, "_claim_invite", AsyncMock()) as claim:
            second = await session_manager.login("a@x.com", "a@x.com")

        claim.assert_not_called()
        assert second.uid == first.uid

    @pytest.mark.asyncio
    async def test_wrong_password_rolls_back_identity(self, session_manager, user_service, store, provider):
        """A mismatched invite password leaves no identity behind"""
        invite_id = await make_invite(user_service)

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await session_manager.login("a@x.com", "wrongpass")

        assert str(exc_info.value) == "Invalid Credentials"
        assert await provider.get_identity_by_email("a@x.com") is None
        # the invite is untouched and can still be claimed
        invite = await store.get(COLLECTION_USERS, invite_id)
        assert invite["initialPassword"] == "a@x.com"
        session = await session_manager.login("a@x.com", "a@x.com")
        assert session.role == UserRole.AGENT

    @pytest.mark.asyncio
    async def test_unknown_email_rolls_back_identity(self, session_manager, provider):
        """No invite at all behaves like bad credentials"""
        with pytest.raises(InvalidCredentialsError):
            await session_manager.login("stranger@x.com", "whatever")

        assert await provider.get_identity_by_email("stranger@x.com") is None

    @pytest.mark.asyncio
    async def test_wrong_password_for_existing_identity(self, session_manager, user_service, provider):
        """An existing identity with a wrong password is rejected without side effects"""
        await make_invite(user_service)
        session = await session_manager.login("a@x.com", "a@x.com")

        with pytest.raises(InvalidCredentialsError):
            await session_manager.login("a@x.com", "not-the-password")

        identity = await provider.get_identity_by_email("a@x.com")
        assert identity.uid == session.uid

    @pytest.mark.asyncio
    async def test_inactive_invite_is_not_claimable(self, session_manager, user_service, provider):
        """A deactivated invite cannot be turned into an active record"""
        invite_id = await make_invite(user_service)
        await user_service.update_status(invite_id, UserStatus.INACTIVE)

        with pytest.raises(InvalidCredentialsError):
            await session_manager.login("a@x.com", "a@x.com")

        assert await provider.get_identity_by_email("a@x.com") is None

    @pytest.mark.asyncio
    async def test_invite_lookup_failure_rolls_back(self, session_manager, user_service, store, provider):
        """A failed invite lookup is a system error and the identity is deleted"""
        await make_invite(user_service)

        with patch.object(store, "query", AsyncMock(side_effect=RuntimeError("permission denied"))):
            with pytest.raises(LoginSystemError):
                await session_manager.login("a@x.com", "a@x.com")

        assert await provider.get_identity_by_email("a@x.com") is None

    @pytest.mark.asyncio
    async def test_rollback_failure_is_logged(self, session_manager, provider, caplog):
        """A failed compensation is reported at critical level and the login still fails"""
        with patch.object(provider, "delete_identity", AsyncMock(side_effect=RuntimeError("offline"))):
            with pytest.raises(InvalidCredentialsError):
                await session_manager.login("stranger@x.com", "whatever")

        assert any(r.levelname == "CRITICAL" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_unavailable_provider_is_not_a_claim(self, session_manager, provider):
        """Sign-in failures outside the claimable set propagate untouched"""
        unavailable = IdentityError(IdentityErrorKind.UNAVAILABLE)
        with patch.object(provider, "sign_in", AsyncMock(side_effect=unavailable)):
            with patch.object(provider, "create_identity", AsyncMock()) as create:
                with pytest.raises(IdentityError) as exc_info:
                    await session_manager.login("a@x.com", "a@x.com")

        assert exc_info.value.kind == IdentityErrorKind.UNAVAILABLE
        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_password_is_rejected_early(self, session_manager, provider):
        with patch.object(provider, "sign_in", AsyncMock()) as sign_in:
            with pytest.raises(ValueError, match="Password required"):
                await session_manager.login("a@x.com", "")

        sign_in.assert_not_called()


class TestRootAdmin:
    """Tests for root admin bootstrap and bypass"""

    @pytest.mark.asyncio
    async def test_first_login_bootstraps_admin(self, session_manager, store):
        """The root admin gets an identity and an ADMIN record on first login"""
        session = await session_manager.login(ROOT_ADMIN_EMAIL.upper(), ROOT_ADMIN_PASSWORD)

        assert session.role == UserRole.ADMIN
        record = await store.get(COLLECTION_USERS, session.uid)
        assert record["role"] == "ADMIN"
        assert record["status"] == "ACTIVE"

    @pytest.mark.asyncio
    async def test_wrong_root_password_after_bootstrap(self, session_manager):
        """Once the root identity exists a wrong password is invalid credentials"""
        await session_manager.login(ROOT_ADMIN_EMAIL, ROOT_ADMIN_PASSWORD)

        with pytest.raises(InvalidCredentialsError):
            await session_manager.login(ROOT_ADMIN_EMAIL, "guess")

    @pytest.mark.asyncio
    async def test_short_wrong_root_password_after_bootstrap(self, session_manager, provider):
        """A wrong password below the minimum length is still invalid credentials"""
        session = await session_manager.login(ROOT_ADMIN_EMAIL, ROOT_ADMIN_PASSWORD)

        with pytest.raises(InvalidCredentialsError):
            await session_manager.login(ROOT_ADMIN_EMAIL, "abc")

        identity = await provider.get_identity_by_email(ROOT_ADMIN_EMAIL)
        assert identity.uid == session.uid

    @pytest.mark.asyncio
    async def test_weak_first_root_password(self, session_manager, provider):
        """A first root login with a too-short password creates nothing"""
        with pytest.raises(InvalidCredentialsError):
            await session_manager.login(ROOT_ADMIN_EMAIL, "abc")

        assert await provider.get_identity_by_email(ROOT_ADMIN_EMAIL) is None

    @pytest.mark.asyncio
    async def test_malformed_root_email_is_invalid_credentials(self, provider, store):
        """A root admin address the provider rejects fails like bad credentials"""
        manager = SessionManager(provider, store, root_admin_email="root-admin")

        with pytest.raises(InvalidCredentialsError):
            await manager.login("root-admin", ROOT_ADMIN_PASSWORD)

    @pytest.mark.asyncio
    async def test_missing_root_record_is_recreated(self, session_manager, store):
        """Resolution repairs a root admin whose role record was deleted"""
        session = await session_manager.login(ROOT_ADMIN_EMAIL, ROOT_ADMIN_PASSWORD)
        await store.delete(COLLECTION_USERS, session.uid)

        resolved = await session_manager.resolve_session(Identity(uid=session.uid, email=ROOT_ADMIN_EMAIL))

        assert resolved.role == UserRole.ADMIN
        assert await store.get(COLLECTION_USERS, session.uid) is not None

    @pytest.mark.asyncio
    async def test_bypass_when_provider_unconfigured(self, session_factory, store):
        """An unconfigured provider yields an in-memory admin session and writes nothing"""
        provider = LocalIdentityProvider(session_factory, bcrypt_rounds=4, password_sign_in_enabled=False)
        manager = SessionManager(provider, store, root_admin_email=ROOT_ADMIN_EMAIL)

        session = await manager.login(ROOT_ADMIN_EMAIL, "anything")

        assert session.bypass
        assert session.role == UserRole.ADMIN
        assert session.uid == "local-admin-bypass"
        assert await store.list(COLLECTION_USERS) == []
        assert await manager.resolve_bypass(ROOT_ADMIN_EMAIL) is not None

    @pytest.mark.asyncio
    async def test_unconfigured_provider_rejects_others(self, session_factory, store):
        """Only the root admin gets the bypass; others see the provider error"""
        provider = LocalIdentityProvider(session_factory, bcrypt_rounds=4, password_sign_in_enabled=False)
        manager = SessionManager(provider, store, root_admin_email=ROOT_ADMIN_EMAIL)

        with pytest.raises(IdentityError) as exc_info:
            await manager.login("a@x.com", "a@x.com")

        assert exc_info.value.kind == IdentityErrorKind.PROVIDER_MISCONFIGURED

    @pytest.mark.asyncio
    async def test_bypass_not_honoured_once_configured(self, session_manager):
        assert await session_manager.resolve_bypass(ROOT_ADMIN_EMAIL) is None


class TestSessionResolution:
    """Tests for joining identities to role records"""

    @pytest.mark.asyncio
    async def test_inactive_record_is_locked_out(self, session_manager, user_service, provider):
        """An INACTIVE record never yields a session and the identity is signed out"""
        await make_invite(user_service)
        session = await session_manager.login("a@x.com", "a@x.com")
        await user_service.update_status(session.uid, UserStatus.INACTIVE)

        with pytest.raises(SessionDeniedError):
            await session_manager.login("a@x.com", "a@x.com")

        assert not await provider.is_signed_in(session.uid)
        assert await session_manager.resolve_session(Identity(uid=session.uid, email="a@x.com")) is None

    @pytest.mark.asyncio
    async def test_orphan_identity_is_signed_out(self, session_factory, store):
        """An identity without a role record loses its sign-in"""
        provider = LocalIdentityProvider(session_factory, bcrypt_rounds=4)
        identity = await provider.create_identity("orphan@x.com", "orphan-pass")
        manager = SessionManager(provider, store, root_admin_email=ROOT_ADMIN_EMAIL)

        assert await manager.resolve_session(identity) is None
        assert not await provider.is_signed_in(identity.uid)

    @pytest.mark.asyncio
    async def test_orphan_kept_while_claim_in_flight(self, session_factory, store):
        """Resolution does not sign out an identity whose claim is still running"""
        provider = LocalIdentityProvider(session_factory, bcrypt_rounds=4)
        claims = ClaimRegistry()
        manager = SessionManager(provider, store, root_admin_email=ROOT_ADMIN_EMAIL, claims=claims)
        identity = await provider.create_identity("claimer@x.com", "claimer-pass")

        async with claims.claiming("claimer@x.com"):
            assert await manager.resolve_session(identity) is None

        assert await provider.is_signed_in(identity.uid)

    @pytest.mark.asyncio
    async def test_no_identity_no_session(self, session_manager):
        assert await session_manager.resolve_session(None) is None

    @pytest.mark.asyncio
    async def test_store_error_yields_no_session(self, session_manager, store):
        with patch.object(store, "get", AsyncMock(side_effect=RuntimeError("unavailable"))):
            assert await session_manager.resolve_session(Identity(uid="u1", email="a@x.com")) is None
