from pydantic import Field
from typing import Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel


class PaymentType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class PaymentCreate(DocumentModel):
    customer_id: str
    loan_id: Optional[str] = None
    amount: float = Field(..., gt=0)
    date: int  # epoch ms
    type: PaymentType = PaymentType.CREDIT
    collected_by: str
    description: str = ""


class Payment(PaymentCreate):
    id: Optional[str] = None
