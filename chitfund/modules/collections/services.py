from typing import Any, Dict, List, Optional
import logging

from chitfund.core.documents import DocumentStore, COLLECTION_COLLECTIONS, COLLECTION_LOANS, COLLECTION_USERS
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.core.utils import DAY_MS, now_ms
from chitfund.modules.activities.schemas import ActivityCreate, ActivityType
from chitfund.modules.activities.services import ActivityService
from chitfund.modules.collections.schemas import CollectionCreate, CollectionStatus, PaymentRecorded
from chitfund.modules.customers.services import CustomerService
from chitfund.modules.loans.schemas import LoanStatus, LoanUpdate
from chitfund.modules.loans.services import LoanService
from chitfund.modules.payments.schemas import PaymentCreate, PaymentType
from chitfund.modules.payments.services import PaymentService

logger = logging.getLogger(__name__)

COLLECTION_DUE_DAYS = 7


class CollectionService:
    """Per (agent, customer, loan) collection trackers and the collect flow"""

    def __init__(
        self,
        store: DocumentStore,
        payments: PaymentService,
        loans: LoanService,
        customers: CustomerService,
        activities: ActivityService
    ):
        self.store = store
        self.payments = payments
        self.loans = loans
        self.customers = customers
        self.activities = activities

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.store.list(COLLECTION_COLLECTIONS)

    async def get_by_agent_id(self, agent_id: str) -> List[Dict[str, Any]]:
        return await self.store.query(COLLECTION_COLLECTIONS, {"agentId": agent_id})

    async def get_by_customer_id(self, customer_id: str, agent_id: Optional[str] = None) -> List[Dict[str, Any]]:
        where = {"customerId": customer_id}
        if agent_id:
            where["agentId"] = agent_id
        return await self.store.query(COLLECTION_COLLECTIONS, where)

    async def create(self, record: CollectionCreate) -> str:
        return await self.store.add(COLLECTION_COLLECTIONS, record.to_document())

    async def update_outstanding(self, collection_id: str, outstanding: float) -> None:
        await self.store.update(COLLECTION_COLLECTIONS, collection_id, {"outstanding": outstanding})

    async def ensure_collection_record(
        self,
        agent_id: str,
        customer_id: str,
        loan_id: str,
        initial_amount: float
    ) -> Dict[str, Any]:
        """Find the tracker for (agent, customer, loan), creating a PENDING one due in a week"""
        existing = await self.store.query(
            COLLECTION_COLLECTIONS,
            {"customerId": customer_id, "loanId": loan_id, "agentId": agent_id}
        )
        if existing:
            return existing[0]

        record = CollectionCreate(
            agent_id=agent_id,
            customer_id=customer_id,
            loan_id=loan_id,
            total_due=initial_amount,
            paid=0,
            outstanding=initial_amount,
            status=CollectionStatus.PENDING,
            due_date=now_ms() + COLLECTION_DUE_DAYS * DAY_MS,
        )
        record_id = await self.create(record)
        logger.debug(f"Collection record {record_id} opened for loan {loan_id}")
        return {**record.to_document(), "id": record_id}

    async def record_payment(
        self,
        loan_id: str,
        amount: float,
        date: Optional[int],
        collected_by: str,
        description: Optional[str] = None,
        assigned_only: bool = False
    ) -> PaymentRecorded:
        """
        Collect a payment against a loan.

        Steps run strictly in order and are not atomic: payment, collection
        tracker, loan balance (which refreshes the customer aggregates),
        customer lastPaidDate, activity. A loan whose outstanding reaches
        zero is CLOSED. With `assigned_only` the loan must be assigned to
        the collector; any other loan is reported as not found.
        """
        if amount <= 0:
            raise ValueError("Payment amount must be positive")

        loan = await self.loans.get(loan_id)
        if loan is None or (assigned_only and loan.get("agentId") != collected_by):
            raise DocumentNotFoundError(COLLECTION_LOANS, loan_id)

        customer_id = loan["customerId"]
        date = date or now_ms()
        outstanding = float(loan.get("outstandingAmount") or 0) - amount
        paid = float(loan.get("paidAmount") or 0) + amount

        payment_id = await self.payments.create(PaymentCreate(
            customer_id=customer_id,
            loan_id=loan_id,
            amount=amount,
            date=date,
            type=PaymentType.CREDIT,
            collected_by=collected_by,
            description=description or f"Collection - Loan {loan_id[:6]}",
        ))

        record = await self.ensure_collection_record(
            collected_by, customer_id, loan_id, float(loan.get("amount") or 0)
        )
        await self.update_outstanding(record["id"], outstanding)

        status = LoanStatus.CLOSED if outstanding <= 0 else LoanStatus(loan.get("status", LoanStatus.ACTIVE.value))
        await self.loans.update(loan_id, LoanUpdate(
            outstanding_amount=outstanding,
            paid_amount=paid,
            status=status,
        ))

        await self.customers.update(customer_id, {"lastPaidDate": date})

        customer = await self.customers.get(customer_id) or {}
        collector = await self.store.get(COLLECTION_USERS, collected_by) or {}
        await self.activities.log(ActivityCreate(
            type=ActivityType.PAYMENT,
            customer_id=customer_id,
            customer_name=customer.get("name", "Unknown"),
            agent_id=collected_by,
            agent_name=collector.get("displayName") or "Unknown",
            description=f"Payment of ₹{amount:g} collected for loan {loan_id[:8]}",
            metadata={"loanId": loan_id, "paymentId": payment_id, "outstanding": outstanding},
        ))

        return PaymentRecorded(
            payment_id=payment_id,
            collection_id=record["id"],
            loan_id=loan_id,
            paid_amount=paid,
            outstanding_amount=outstanding,
            loan_status=status.value,
        )
