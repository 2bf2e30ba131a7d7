"""
Email/password identity provider.

The provider knows identities and credentials only; it knows nothing about
roles. Role records live in the `users` document collection and are joined
to identities by the session manager.
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from passlib.context import CryptContext
from datetime import datetime
from typing import Awaitable, Callable, List, Optional
import abc
import enum
import logging
import re
import uuid

from chitfund.core.security import normalize_email
from chitfund.modules.auth.models import IdentityAccount
from chitfund.modules.auth.schemas import Identity, IdentityChanged

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

IdentityListener = Callable[[IdentityChanged], Awaitable[None]]


class IdentityErrorKind(str, enum.Enum):
    """Closed set of provider failure kinds"""
    IDENTITY_NOT_FOUND = "identity_not_found"
    INVALID_CREDENTIAL = "invalid_credential"
    INVALID_EMAIL = "invalid_email"
    ALREADY_IN_USE = "already_in_use"
    WEAK_PASSWORD = "weak_password"
    PROVIDER_MISCONFIGURED = "provider_misconfigured"
    UNAVAILABLE = "unavailable"


class IdentityError(Exception):
    """Failure reported by the identity provider"""

    def __init__(self, kind: IdentityErrorKind, message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or kind.value)


class IdentityProvider(abc.ABC):
    """Contract of an email/password identity provider with a change stream"""

    def __init__(self):
        self._listeners: List[IdentityListener] = []

    @abc.abstractmethod
    async def sign_in(self, email: str, password: str) -> Identity:
        ...

    @abc.abstractmethod
    async def create_identity(self, email: str, password: str) -> Identity:
        """Register a new identity; the new identity is signed in"""

    @abc.abstractmethod
    async def sign_out(self, uid: str) -> None:
        ...

    @abc.abstractmethod
    async def delete_identity(self, uid: str) -> None:
        ...

    @abc.abstractmethod
    async def get_identity(self, uid: str) -> Optional[Identity]:
        ...

    @abc.abstractmethod
    async def get_identity_by_email(self, email: str) -> Optional[Identity]:
        ...

    async def password_sign_in_available(self) -> bool:
        """False when the provider has no password-based accounts configured"""
        return True

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register an identity-changed listener; returns an unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, uid: str, identity: Optional[Identity]) -> None:
        event = IdentityChanged(uid=uid, identity=identity)
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception(f"Identity listener failed for {uid}")


class LocalIdentityProvider(IdentityProvider):
    """Identity provider backed by the `identities` table"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        bcrypt_rounds: int = 12,
        min_password_length: int = 6,
        password_sign_in_enabled: bool = True
    ):
        super().__init__()
        self._session_factory = session_factory
        self._pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=bcrypt_rounds)
        self.min_password_length = min_password_length
        self.password_sign_in_enabled = password_sign_in_enabled

    async def sign_in(self, email: str, password: str) -> Identity:
        email = self._check_request(email)
        async with self._session_factory() as session:
            try:
                account = await self._find_by_email(session, email)
            except SQLAlchemyError as e:
                logger.error(f"Identity lookup failed for {email}: {e!r}")
                raise IdentityError(IdentityErrorKind.UNAVAILABLE) from e
            if account is None:
                raise IdentityError(IdentityErrorKind.IDENTITY_NOT_FOUND)
            if not self._pwd_context.verify(password, account.hashed_password):
                raise IdentityError(IdentityErrorKind.INVALID_CREDENTIAL)

            account.signed_in = True
            account.last_sign_in_at = datetime.utcnow()
            await session.commit()
            identity = Identity(uid=account.uid, email=account.email)

        await self._emit(identity.uid, identity)
        return identity

    async def create_identity(self, email: str, password: str) -> Identity:
        email = self._check_request(email)
        async with self._session_factory() as session:
            # an existing email wins over a weak password
            if await self._find_by_email(session, email) is not None:
                raise IdentityError(IdentityErrorKind.ALREADY_IN_USE)
            if len(password or "") < self.min_password_length:
                raise IdentityError(
                    IdentityErrorKind.WEAK_PASSWORD,
                    f"Password should be at least {self.min_password_length} characters"
                )

            account = IdentityAccount(
                uid=uuid.uuid4().hex,
                email=email,
                hashed_password=self._pwd_context.hash(password),
                signed_in=True,
                last_sign_in_at=datetime.utcnow()
            )
            session.add(account)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise IdentityError(IdentityErrorKind.ALREADY_IN_USE)
            identity = Identity(uid=account.uid, email=account.email)

        await self._emit(identity.uid, identity)
        return identity

    async def sign_out(self, uid: str) -> None:
        async with self._session_factory() as session:
            account = await session.get(IdentityAccount, uid)
            if account is not None:
                account.signed_in = False
                await session.commit()
        await self._emit(uid, None)

    async def delete_identity(self, uid: str) -> None:
        async with self._session_factory() as session:
            account = await session.get(IdentityAccount, uid)
            if account is None:
                raise IdentityError(IdentityErrorKind.IDENTITY_NOT_FOUND)
            await session.delete(account)
            await session.commit()
        await self._emit(uid, None)

    async def get_identity(self, uid: str) -> Optional[Identity]:
        async with self._session_factory() as session:
            account = await session.get(IdentityAccount, uid)
            return Identity(uid=account.uid, email=account.email) if account else None

    async def get_identity_by_email(self, email: str) -> Optional[Identity]:
        async with self._session_factory() as session:
            account = await self._find_by_email(session, normalize_email(email))
            return Identity(uid=account.uid, email=account.email) if account else None

    async def password_sign_in_available(self) -> bool:
        return self.password_sign_in_enabled

    async def is_signed_in(self, uid: str) -> bool:
        async with self._session_factory() as session:
            account = await session.get(IdentityAccount, uid)
            return bool(account and account.signed_in)

    def _check_request(self, email: str) -> str:
        if not self.password_sign_in_enabled:
            raise IdentityError(
                IdentityErrorKind.PROVIDER_MISCONFIGURED,
                "Password sign-in is not enabled for this provider"
            )
        email = normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            raise IdentityError(IdentityErrorKind.INVALID_EMAIL)
        return email

    @staticmethod
    async def _find_by_email(session, email: str) -> Optional[IdentityAccount]:
        result = await session.execute(select(IdentityAccount).where(IdentityAccount.email == email))
        return result.scalar_one_or_none()
