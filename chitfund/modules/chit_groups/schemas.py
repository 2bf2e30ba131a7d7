from pydantic import Field
from typing import List, Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel

DEFAULT_FOREMAN_COMMISSION_PERCENT = 5.0


class ChitGroupStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    UPCOMING = "UPCOMING"


class ChitGroupCreate(DocumentModel):
    name: str = Field(..., min_length=1, max_length=200)
    value: float = Field(..., gt=0)
    duration_weeks: int = Field(..., gt=0)
    foreman_commission_percent: float = Field(DEFAULT_FOREMAN_COMMISSION_PERCENT, ge=0, le=100)
    status: ChitGroupStatus = ChitGroupStatus.UPCOMING
    members: List[str] = Field(default_factory=list)


class ChitGroupUpdate(DocumentModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[ChitGroupStatus] = None
    members: Optional[List[str]] = None
    foreman_commission_percent: Optional[float] = Field(None, ge=0, le=100)
