from pydantic import Field
from typing import Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel


class InvestorStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class InvestorCreate(DocumentModel):
    name: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0)
    monthly_interest_percent: float = Field(..., ge=0)
    expected_return: float = Field(0, ge=0)
    joined_at: Optional[int] = None
    status: InvestorStatus = InvestorStatus.ACTIVE


class InvestorUpdate(DocumentModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[float] = Field(None, ge=0)
    monthly_interest_percent: Optional[float] = Field(None, ge=0)
    expected_return: Optional[float] = Field(None, ge=0)
    status: Optional[InvestorStatus] = None
