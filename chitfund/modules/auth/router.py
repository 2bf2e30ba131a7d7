from fastapi import APIRouter, Depends, HTTPException, status
from redis import asyncio as aioredis
import logging

from chitfund.core.database import get_redis
from chitfund.core.dependencies import get_current_session, get_session_manager, oauth2_scheme
from chitfund.modules.auth.provider import IdentityError
from chitfund.modules.auth.schemas import LoginRequest, Session, TokenResponse
from chitfund.modules.auth.services import (
    InvalidCredentialsError,
    LoginSystemError,
    SessionManager,
    issue_access_token,
    revoke_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    manager: SessionManager = Depends(get_session_manager)
):
    """
    Login with email and password.

    - Signs in an existing identity
    - Bootstraps the root admin on first use
    - Claims a pending invite on first login of an invited user
    """
    try:
        session = await manager.login(login_data.email, login_data.password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except InvalidCredentialsError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except LoginSystemError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except IdentityError as e:
        logger.error(f"Identity provider failure during login: {e.kind.value}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable"
        )

    return issue_access_token(session)


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_current_session),
    manager: SessionManager = Depends(get_session_manager),
    redis: aioredis.Redis = Depends(get_redis)
):
    """Sign out and revoke the bearer token"""
    await manager.logout(session)
    await revoke_token(redis, token)
    return {"message": "Successfully logged out"}


@router.get("/session", response_model=Session)
async def read_session(session: Session = Depends(get_current_session)):
    """Current session, re-resolved against the role record"""
    return session
