from pydantic import Field
from typing import Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel
from chitfund.modules.loans.schemas import RepaymentType, UNASSIGNED_AGENT


class KycStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class CustomerStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    CLOSED = "CLOSED"


class Customer(DocumentModel):
    """Customer document; image fields hold ciphertext"""
    id: Optional[str] = None
    agent_id: str = UNASSIGNED_AGENT
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    repayment_type: RepaymentType = RepaymentType.WEEKLY
    kyc_status: KycStatus = KycStatus.PENDING
    status: CustomerStatus = CustomerStatus.ACTIVE
    photo: Optional[str] = None
    aadhaar_image: Optional[str] = None
    pan_image: Optional[str] = None
    last_paid_date: Optional[int] = None
    created_at: Optional[int] = None

    # Derived from loans
    total_loan_amount: float = 0
    current_due_amount: float = 0
    total_disbursed_amount: float = 0
    total_paid_amount: float = 0
    active_loans_count: int = 0


class CustomerCreate(DocumentModel):
    agent_id: str = UNASSIGNED_AGENT
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=32)
    email: Optional[str] = None
    address: Optional[str] = None
    repayment_type: RepaymentType = RepaymentType.WEEKLY
    kyc_status: KycStatus = KycStatus.PENDING
    status: CustomerStatus = CustomerStatus.ACTIVE


class CustomerRegistration(DocumentModel):
    """
    New customer together with the first loan.

    Image fields carry plain base64 and are encrypted before storage.
    """
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=32)
    email: Optional[str] = None
    address: Optional[str] = None
    loan_amount: float = Field(..., gt=0)
    disbursed_amount: float = Field(0, ge=0)
    repayment_type: RepaymentType = RepaymentType.WEEKLY
    photo: Optional[str] = None
    aadhaar_image: Optional[str] = None
    pan_image: Optional[str] = None


class CustomerProfileUpdate(DocumentModel):
    """Profile edit; supplied images replace the stored ones"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, min_length=1, max_length=32)
    email: Optional[str] = None
    address: Optional[str] = None
    photo: Optional[str] = None
    aadhaar_image: Optional[str] = None
    pan_image: Optional[str] = None


class CustomerRegistered(DocumentModel):
    customer_id: str
    loan_id: str
