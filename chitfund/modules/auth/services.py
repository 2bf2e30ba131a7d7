"""
Session bootstrap and invite claiming.

The identity provider authenticates people but knows nothing about roles;
role records live in the `users` collection keyed by identity uid; and an
administrator may provision a role record (an invite) before the person has
ever signed in. `SessionManager` reconciles the three without a trusted
server-side intermediary:

- standard sign-in, then session resolution
- root admin bypass (provider not configured) and root admin bootstrap
- speculative registration that claims a matching invite, rolled back when
  no invite with the same initial password exists

None of the multi-step sequences are atomic. Failed steps are compensated
(the speculative identity is deleted) instead of relying on the store.
"""
from collections import Counter
from contextlib import asynccontextmanager
from redis import asyncio as aioredis
from typing import Any, AsyncIterator, Callable, Dict, Optional
import logging

from chitfund.core.config import settings
from chitfund.core.documents import DocumentStore, COLLECTION_USERS
from chitfund.core.security import normalize_email, create_access_token, decode_token, token_ttl_seconds
from chitfund.core.utils import now_ms
from chitfund.modules.auth.provider import IdentityProvider, IdentityError, IdentityErrorKind
from chitfund.modules.auth.schemas import Identity, IdentityChanged, Session, TokenResponse
from chitfund.modules.users.schemas import UserRole, UserStatus

logger = logging.getLogger(__name__)

# Sign-in failures after which the root admin identity is (re)created
ROOT_BOOTSTRAP_KINDS = frozenset({
    IdentityErrorKind.IDENTITY_NOT_FOUND,
    IdentityErrorKind.INVALID_CREDENTIAL,
    IdentityErrorKind.INVALID_EMAIL,
})

# Sign-in failures that may be a first login against an invite. The provider
# does not distinguish a wrong password from an unregistered email.
CLAIMABLE_KINDS = frozenset({
    IdentityErrorKind.IDENTITY_NOT_FOUND,
    IdentityErrorKind.INVALID_CREDENTIAL,
})

# Registration failures caused by what the user typed, reported as bad credentials
CREDENTIAL_KINDS = frozenset({
    IdentityErrorKind.ALREADY_IN_USE,
    IdentityErrorKind.WEAK_PASSWORD,
    IdentityErrorKind.INVALID_EMAIL,
})


class InvalidCredentialsError(Exception):
    """Generic login failure; never says which branch failed"""

    def __init__(self, message: str = "Invalid Credentials"):
        super().__init__(message)


class SessionDeniedError(InvalidCredentialsError):
    """Credentials were valid but no session may be established (inactive or missing role record)"""


class LoginSystemError(Exception):
    """Invite verification could not complete; the speculative identity was rolled back"""

    def __init__(self, message: str = "System error or Permission Denied during invite verification."):
        super().__init__(message)


class ClaimRegistry:
    """
    Emails with an invite claim in flight.

    Session resolution consults it so the identity created by a claim is not
    signed out before the claim has written its role record. Keyed per email,
    so concurrent claims for different people do not interfere.
    """

    def __init__(self):
        self._in_flight: Counter = Counter()

    @asynccontextmanager
    async def claiming(self, email: str) -> AsyncIterator[None]:
        email = normalize_email(email)
        self._in_flight[email] += 1
        try:
            yield
        finally:
            self._in_flight[email] -= 1
            if self._in_flight[email] <= 0:
                del self._in_flight[email]

    def is_claiming(self, email: str) -> bool:
        return self._in_flight.get(normalize_email(email), 0) > 0


def passwords_match(stored: Any, provided: str) -> bool:
    """Invite password check: trimmed exact match, else case-insensitive match"""
    expected = str(stored).strip()
    given = str(provided).strip()
    return expected == given or expected.lower() == given.lower()


class SessionManager:
    """Maps authenticated identities to ACTIVE role records"""

    def __init__(
        self,
        provider: IdentityProvider,
        store: DocumentStore,
        root_admin_email: str,
        bypass_uid: str = "local-admin-bypass",
        claims: Optional[ClaimRegistry] = None
    ):
        self.provider = provider
        self.store = store
        self.root_admin_email = normalize_email(root_admin_email)
        self.bypass_uid = bypass_uid
        self.claims = claims or ClaimRegistry()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ============================================================
    # Identity-changed stream
    # ============================================================

    def start(self) -> None:
        """Resolve the session on every identity change"""
        if self._unsubscribe is None:
            self._unsubscribe = self.provider.subscribe(self._on_identity_changed)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_identity_changed(self, event: IdentityChanged) -> None:
        logger.debug(f"Identity changed: {event.uid} signed_in={event.identity is not None}")
        await self.resolve_session(event.identity)

    # ============================================================
    # Login / logout
    # ============================================================

    async def login(self, email: str, password: Optional[str]) -> Session:
        """Authenticate and return the established session"""
        if not password:
            raise ValueError("Password required")

        email = normalize_email(email)
        try:
            identity = await self.provider.sign_in(email, password)
        except IdentityError as e:
            logger.info(f"Standard login failed for {email}: {e.kind.value}")
            return await self._recover_failed_sign_in(email, password, e)

        return await self._require_session(identity)

    async def logout(self, session: Session) -> None:
        if session.bypass:
            logger.info("Bypass session cleared")
            return
        await self.provider.sign_out(session.uid)

    async def _recover_failed_sign_in(self, email: str, password: str, error: IdentityError) -> Session:
        kind = error.kind

        if email == self.root_admin_email:
            if kind == IdentityErrorKind.PROVIDER_MISCONFIGURED:
                logger.warning("Identity provider not configured; using local admin bypass session")
                return self.bypass_session(email)
            if kind in ROOT_BOOTSTRAP_KINDS:
                return await self._bootstrap_root_admin(email, password)

        if kind in CLAIMABLE_KINDS:
            return await self._claim_invite(email, password)

        raise error

    # ============================================================
    # Root admin
    # ============================================================

    def bypass_session(self, email: str) -> Session:
        """In-memory admin session; nothing is persisted"""
        return Session(
            uid=self.bypass_uid,
            email=email,
            role=UserRole.ADMIN,
            display_name="Admin User (Dev)",
            bypass=True
        )

    async def resolve_bypass(self, email: str) -> Optional[Session]:
        """A bypass session stays valid only while the provider remains unconfigured"""
        if normalize_email(email) != self.root_admin_email:
            return None
        if await self.provider.password_sign_in_available():
            return None
        return self.bypass_session(self.root_admin_email)

    def _root_admin_record(self, identity: Identity) -> Dict[str, Any]:
        return {
            "uid": identity.uid,
            "email": normalize_email(identity.email),
            "displayName": "Admin User",
            "role": UserRole.ADMIN.value,
            "status": UserStatus.ACTIVE.value,
            "createdAt": now_ms(),
        }

    async def _bootstrap_root_admin(self, email: str, password: str) -> Session:
        logger.info("Bootstrapping root admin")
        try:
            identity = await self.provider.create_identity(email, password)
        except IdentityError as e:
            logger.error(f"Root admin bootstrap failed: {e.kind.value}")
            if e.kind in CREDENTIAL_KINDS:
                raise InvalidCredentialsError() from e
            raise

        await self.store.set(COLLECTION_USERS, identity.uid, self._root_admin_record(identity))
        return await self._require_session(identity)

    # ============================================================
    # Invite claim
    # ============================================================

    async def _claim_invite(self, email: str, password: str) -> Session:
        async with self.claims.claiming(email):
            logger.info(f"No usable identity for {email}; attempting invite claim")
            try:
                identity = await self.provider.create_identity(email, password)
            except IdentityError as e:
                if e.kind == IdentityErrorKind.ALREADY_IN_USE:
                    # the identity exists, so the standard sign-in failed on the password
                    raise InvalidCredentialsError() from e
                logger.error(f"Speculative registration failed for {email}: {e.kind.value}")
                raise InvalidCredentialsError() from e

            try:
                invites = await self.store.query(COLLECTION_USERS, {"email": email})
            except Exception as e:
                logger.error(f"Invite lookup failed for {email}: {e!r}")
                await self._rollback_identity(identity)
                raise LoginSystemError() from e

            invite = next((doc for doc in invites if doc.get("initialPassword") is not None), None)
            if (
                invite is None
                or invite.get("status", UserStatus.ACTIVE.value) != UserStatus.ACTIVE.value
                or not passwords_match(invite["initialPassword"], password)
            ):
                logger.warning(f"No valid invite for {email}; rolling back registration")
                await self._rollback_identity(identity)
                raise InvalidCredentialsError()

            try:
                record = await self._write_claimed_record(identity, invite)
            except Exception as e:
                logger.error(f"Invite claim write failed for {email}: {e!r}")
                await self._rollback_identity(identity)
                raise LoginSystemError() from e

            logger.info(f"Invite claimed by {email}")
            return self._session_from_record(record, identity)

    async def _write_claimed_record(self, identity: Identity, invite: Dict[str, Any]) -> Dict[str, Any]:
        record = {k: v for k, v in invite.items() if k not in ("id", "initialPassword")}
        record.update({
            "uid": identity.uid,
            "email": normalize_email(identity.email),
            "status": UserStatus.ACTIVE.value,
        })
        await self.store.set(COLLECTION_USERS, identity.uid, record)

        if invite["id"] != identity.uid:
            try:
                await self.store.delete(COLLECTION_USERS, invite["id"])
            except Exception:
                # keep a single role record per person
                await self.store.delete(COLLECTION_USERS, identity.uid)
                raise
        return record

    async def _rollback_identity(self, identity: Identity) -> None:
        try:
            await self.provider.delete_identity(identity.uid)
        except Exception as e:
            logger.critical(
                f"Rollback failed: identity {identity.uid} ({identity.email}) "
                f"has no role record: {e!r}"
            )

    # ============================================================
    # Session resolution
    # ============================================================

    async def resolve_session(self, identity: Optional[Identity]) -> Optional[Session]:
        """
        Join an identity to its role record.

        Runs after every sign-in, every identity-changed event and every
        authenticated request. Inactive records and orphaned identities are
        signed out, except while that identity's invite claim is in flight.
        """
        if identity is None:
            return None

        try:
            record = await self.store.get(COLLECTION_USERS, identity.uid)
        except Exception as e:
            logger.error(f"Error fetching role record for {identity.uid}: {e!r}")
            return None

        if record is not None:
            if record.get("status") != UserStatus.ACTIVE.value:
                logger.warning(f"Role record for {identity.uid} is not active; denying access")
                await self.provider.sign_out(identity.uid)
                return None
            return self._session_from_record(record, identity)

        email = normalize_email(identity.email)
        if email == self.root_admin_email:
            logger.info("Root admin has no role record; bootstrapping")
            record = self._root_admin_record(identity)
            await self.store.set(COLLECTION_USERS, identity.uid, record)
            return self._session_from_record(record, identity)

        if self.claims.is_claiming(email):
            logger.info(f"Invite claim in flight for {email}; not signing out")
            return None

        logger.warning(f"Identity {identity.uid} has no role record; access denied")
        await self.provider.sign_out(identity.uid)
        return None

    async def _require_session(self, identity: Identity) -> Session:
        session = await self.resolve_session(identity)
        if session is None:
            raise SessionDeniedError()
        return session

    @staticmethod
    def _session_from_record(record: Dict[str, Any], identity: Identity) -> Session:
        return Session(
            uid=identity.uid,
            email=record.get("email") or identity.email,
            role=record["role"],
            display_name=record.get("displayName"),
            status=record.get("status", UserStatus.ACTIVE.value)
        )



# ============================================================
# Bearer tokens
# ============================================================

def issue_access_token(session: Session) -> TokenResponse:
    """Access token carrying the session's uid; the session is re-resolved on every request"""
    token = create_access_token({
        "sub": session.uid,
        "email": session.email,
        "role": session.role.value,
        "bypass": session.bypass,
    })
    return TokenResponse(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        session=session
    )


async def revoke_token(redis: aioredis.Redis, token: str) -> None:
    """Blacklist a token until it would have expired"""
    payload = decode_token(token)
    await redis.setex(f"blacklist:{token}", token_ttl_seconds(payload), "1")


async def is_token_revoked(redis: aioredis.Redis, token: str) -> bool:
    return bool(await redis.get(f"blacklist:{token}"))
