from pydantic import Field
from typing import List, Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    DEFAULTED = "DEFAULTED"
    SETTLED = "SETTLED"


class RepaymentType(str, Enum):
    WEEKLY = "WEEKLY"


UNASSIGNED_AGENT = "unassigned"
DEFAULT_TENURE_WEEKS = 20


class Loan(DocumentModel):
    id: Optional[str] = None
    customer_id: str
    agent_id: str = UNASSIGNED_AGENT
    amount: float = 0  # principal
    disbursed_amount: float = 0
    interest_rate: Optional[float] = None
    repayment_type: RepaymentType = RepaymentType.WEEKLY
    tenure: int = DEFAULT_TENURE_WEEKS
    paid_amount: float = 0
    outstanding_amount: float = 0
    status: LoanStatus = LoanStatus.ACTIVE
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    next_due_date: Optional[int] = None
    documents: Optional[List[str]] = None


class LoanCreate(DocumentModel):
    customer_id: str
    agent_id: str = UNASSIGNED_AGENT
    amount: float = Field(..., gt=0)
    disbursed_amount: float = Field(0, ge=0)
    interest_rate: Optional[float] = Field(None, ge=0)
    repayment_type: RepaymentType = RepaymentType.WEEKLY
    tenure: int = Field(DEFAULT_TENURE_WEEKS, gt=0)
    paid_amount: float = Field(0, ge=0)
    # Defaults to the principal
    outstanding_amount: Optional[float] = None
    status: LoanStatus = LoanStatus.ACTIVE
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    next_due_date: Optional[int] = None


class LoanUpdate(DocumentModel):
    customer_id: Optional[str] = None
    agent_id: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    disbursed_amount: Optional[float] = Field(None, ge=0)
    interest_rate: Optional[float] = Field(None, ge=0)
    tenure: Optional[int] = Field(None, gt=0)
    paid_amount: Optional[float] = Field(None, ge=0)
    outstanding_amount: Optional[float] = None
    status: Optional[LoanStatus] = None
    end_date: Optional[int] = None
    next_due_date: Optional[int] = None


class LoanCreatedResponse(DocumentModel):
    id: str


class CustomerAggregates(DocumentModel):
    """Customer fields derived from the customer's loans"""
    total_loan_amount: float = 0
    current_due_amount: float = 0
    total_disbursed_amount: float = 0
    total_paid_amount: float = 0
    active_loans_count: int = 0


AGGREGATE_FIELDS = frozenset(CustomerAggregates().to_document().keys())
