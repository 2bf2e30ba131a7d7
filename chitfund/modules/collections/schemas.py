from pydantic import Field
from typing import Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel


class CollectionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class CollectionCreate(DocumentModel):
    agent_id: str
    customer_id: str
    loan_id: Optional[str] = None
    total_due: float = Field(0, ge=0)
    paid: float = Field(0, ge=0)
    outstanding: float = 0
    status: CollectionStatus = CollectionStatus.PENDING
    due_date: Optional[int] = None


class CollectionRecord(CollectionCreate):
    id: str


class OutstandingUpdate(DocumentModel):
    outstanding: float


class PaymentCollection(DocumentModel):
    """A payment collected against one loan"""
    loan_id: str
    amount: float = Field(..., gt=0)
    # Defaults to now
    date: Optional[int] = None
    description: Optional[str] = None


class PaymentRecorded(DocumentModel):
    payment_id: str
    collection_id: str
    loan_id: str
    paid_amount: float
    outstanding_amount: float
    loan_status: str
