from typing import Any, Dict, Optional
from enum import Enum

from chitfund.core.schemas import DocumentModel


class ActivityType(str, Enum):
    ASSIGNMENT = "ASSIGNMENT"
    UNASSIGNMENT = "UNASSIGNMENT"
    LOAN_CREATED = "LOAN_CREATED"
    PAYMENT = "PAYMENT"
    STATUS_CHANGE = "STATUS_CHANGE"


class ActivityCreate(DocumentModel):
    type: ActivityType
    customer_id: str
    customer_name: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    description: str
    metadata: Optional[Dict[str, Any]] = None


class Activity(ActivityCreate):
    id: Optional[str] = None
    timestamp: int
