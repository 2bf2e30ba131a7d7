from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from functools import lru_cache
from redis import asyncio as aioredis

from chitfund.core.config import settings
from chitfund.core.database import AsyncSessionLocal, get_redis
from chitfund.core.documents import DocumentStore
from chitfund.core.security import decode_token
from chitfund.modules.activities.services import ActivityService
from chitfund.modules.admin.services import AdminService
from chitfund.modules.auth.provider import IdentityProvider, LocalIdentityProvider
from chitfund.modules.auth.schemas import Session
from chitfund.modules.auth.services import SessionManager, is_token_revoked
from chitfund.modules.chit_groups.services import ChitGroupService
from chitfund.modules.collections.services import CollectionService
from chitfund.modules.customers.services import CustomerService
from chitfund.modules.investors.services import InvestorService
from chitfund.modules.loans.aggregation import CustomerAggregator
from chitfund.modules.loans.services import LoanService
from chitfund.modules.payments.services import PaymentService
from chitfund.modules.users.services import AgentService, UserService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


# ============================================================
# Process-wide components
# ============================================================

@lru_cache()
def get_document_store() -> DocumentStore:
    return DocumentStore(AsyncSessionLocal)


@lru_cache()
def get_identity_provider() -> IdentityProvider:
    return LocalIdentityProvider(
        AsyncSessionLocal,
        bcrypt_rounds=settings.BCRYPT_ROUNDS,
        min_password_length=settings.MIN_PASSWORD_LENGTH,
        password_sign_in_enabled=settings.PASSWORD_SIGN_IN_ENABLED
    )


@lru_cache()
def get_customer_aggregator() -> CustomerAggregator:
    # one instance per process so recomputes are coalesced across requests
    return CustomerAggregator(get_document_store())


@lru_cache()
def get_session_manager() -> SessionManager:
    manager = SessionManager(
        get_identity_provider(),
        get_document_store(),
        root_admin_email=settings.root_admin_email,
        bypass_uid=settings.BYPASS_ADMIN_UID
    )
    manager.start()
    return manager


# ============================================================
# Per-request services
# ============================================================

def get_activity_service(store: DocumentStore = Depends(get_document_store)) -> ActivityService:
    return ActivityService(store)


def get_loan_service(
    store: DocumentStore = Depends(get_document_store),
    aggregator: CustomerAggregator = Depends(get_customer_aggregator)
) -> LoanService:
    return LoanService(store, aggregator)


def get_payment_service(store: DocumentStore = Depends(get_document_store)) -> PaymentService:
    return PaymentService(store)


def get_customer_service(
    store: DocumentStore = Depends(get_document_store),
    loans: LoanService = Depends(get_loan_service),
    activities: ActivityService = Depends(get_activity_service)
) -> CustomerService:
    return CustomerService(store, loans, activities)


def get_collection_service(
    store: DocumentStore = Depends(get_document_store),
    payments: PaymentService = Depends(get_payment_service),
    loans: LoanService = Depends(get_loan_service),
    customers: CustomerService = Depends(get_customer_service),
    activities: ActivityService = Depends(get_activity_service)
) -> CollectionService:
    return CollectionService(store, payments, loans, customers, activities)


def get_user_service(
    store: DocumentStore = Depends(get_document_store),
    provider: IdentityProvider = Depends(get_identity_provider)
) -> UserService:
    return UserService(store, provider)


def get_agent_service(
    store: DocumentStore = Depends(get_document_store),
    users: UserService = Depends(get_user_service),
    loans: LoanService = Depends(get_loan_service),
    customers: CustomerService = Depends(get_customer_service),
    activities: ActivityService = Depends(get_activity_service)
) -> AgentService:
    return AgentService(store, users, loans, customers, activities)


def get_investor_service(store: DocumentStore = Depends(get_document_store)) -> InvestorService:
    return InvestorService(store)


def get_chit_group_service(store: DocumentStore = Depends(get_document_store)) -> ChitGroupService:
    return ChitGroupService(store)


def get_admin_service(store: DocumentStore = Depends(get_document_store)) -> AdminService:
    return AdminService(store, settings.root_admin_email)


# ============================================================
# Authentication
# ============================================================

async def get_current_session(
    token: str = Depends(oauth2_scheme),
    redis: aioredis.Redis = Depends(get_redis),
    provider: IdentityProvider = Depends(get_identity_provider),
    manager: SessionManager = Depends(get_session_manager)
) -> Session:
    """
    Resolve the session behind a bearer token.

    The role record is re-read on every request, so a deactivated user loses
    access immediately.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    uid = payload.get("sub")
    if uid is None or payload.get("type") != "access":
        raise credentials_exception

    # Check if token is blacklisted (logged out)
    if await is_token_revoked(redis, token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked"
        )

    if payload.get("bypass"):
        session = await manager.resolve_bypass(payload.get("email", ""))
    else:
        session = await manager.resolve_session(await provider.get_identity(uid))

    if session is None:
        raise credentials_exception
    return session


async def require_admin(session: Session = Depends(get_current_session)) -> Session:
    if not session.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required"
        )
    return session
