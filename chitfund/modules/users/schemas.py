from pydantic import Field
from typing import Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    AGENT = "AGENT"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ThemePreference(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class UserResponse(DocumentModel):
    """Role record as returned to clients; never carries initialPassword"""
    uid: str
    email: str
    role: UserRole
    display_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: UserStatus = UserStatus.ACTIVE
    created_at: int
    theme_preference: Optional[ThemePreference] = None
    commission_percentage: Optional[float] = None
    pending_invite: bool = False


class InviteUserRequest(DocumentModel):
    email: str = Field(..., min_length=3)
    role: UserRole
    name: str = Field(..., min_length=1, max_length=100)
    initial_password: Optional[str] = None


class AgentSaveRequest(DocumentModel):
    """Create or edit an agent profile; `photo` is plain base64 and gets encrypted"""
    uid: Optional[str] = None
    email: str = Field(..., min_length=3)
    display_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None
    address: Optional[str] = None
    commission_percentage: Optional[float] = Field(None, ge=0, le=100)
    photo: Optional[str] = None


class StatusUpdateRequest(DocumentModel):
    status: UserStatus


class ThemeUpdateRequest(DocumentModel):
    theme: ThemePreference


class AssignLoanRequest(DocumentModel):
    loan_id: str


class ReassignCustomerRequest(DocumentModel):
    customer_id: str
    agent_id: str


class DeactivateAgentRequest(DocumentModel):
    reassign_to: Optional[str] = None
