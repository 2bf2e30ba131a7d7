from pydantic import BaseModel, Field
from typing import Optional

from chitfund.core.schemas import DocumentModel
from chitfund.modules.users.schemas import UserRole, UserStatus


class Identity(BaseModel):
    """Authenticated identity as known to the identity provider"""
    uid: str
    email: str


class IdentityChanged(BaseModel):
    """Identity-changed event; `identity` is None when the uid signed out or was deleted"""
    uid: str
    identity: Optional[Identity] = None


class Session(DocumentModel):
    """An established session: an identity joined to an ACTIVE role record"""
    uid: str
    email: str
    role: UserRole
    display_name: Optional[str] = None
    status: UserStatus = UserStatus.ACTIVE
    bypass: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    session: Session
