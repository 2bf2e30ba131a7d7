from typing import Any, Dict, List, Optional
import logging

from chitfund.core.documents import DocumentStore, COLLECTION_LOANS
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.core.utils import now_ms
from chitfund.modules.loans.aggregation import CustomerAggregator
from chitfund.modules.loans.schemas import LoanCreate, LoanUpdate

logger = logging.getLogger(__name__)


class LoanService:
    """Loan CRUD; every mutation is followed by a customer aggregate refresh"""

    def __init__(self, store: DocumentStore, aggregator: CustomerAggregator):
        self.store = store
        self.aggregator = aggregator

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.store.list(COLLECTION_LOANS)

    async def get(self, loan_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(COLLECTION_LOANS, loan_id)

    async def get_by_customer_id(self, customer_id: str, agent_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Loans of a customer, optionally only those assigned to `agent_id`"""
        where = {"customerId": customer_id}
        if agent_id:
            where["agentId"] = agent_id
        return await self.store.query(COLLECTION_LOANS, where)

    async def get_by_agent_id(self, agent_id: str) -> List[Dict[str, Any]]:
        return await self.store.query(COLLECTION_LOANS, {"agentId": agent_id})

    async def create(self, loan_data: LoanCreate) -> str:
        """Create a loan and return its id"""
        doc = loan_data.to_document()
        doc.setdefault("outstandingAmount", loan_data.amount)
        doc.setdefault("startDate", now_ms())

        loan_id = await self.store.add(COLLECTION_LOANS, doc)
        logger.info(f"Loan {loan_id} created for customer {loan_data.customer_id}")

        await self.aggregator.refresh(loan_data.customer_id)
        return loan_id

    async def update(self, loan_id: str, loan_data: LoanUpdate) -> None:
        """
        Partially update a loan.

        When the loan moves to another customer both customers are refreshed.
        """
        before = await self.store.get(COLLECTION_LOANS, loan_id)
        if before is None:
            raise DocumentNotFoundError(COLLECTION_LOANS, loan_id)

        fields = loan_data.to_document(exclude_unset=True)
        await self.store.update(COLLECTION_LOANS, loan_id, fields)

        customer_id = fields.get("customerId") or before.get("customerId")
        if customer_id:
            await self.aggregator.refresh(customer_id)
        previous = before.get("customerId")
        if previous and previous != customer_id:
            await self.aggregator.refresh(previous)

    async def delete(self, loan_id: str) -> bool:
        """Delete a loan; returns False when it did not exist"""
        loan = await self.store.get(COLLECTION_LOANS, loan_id)
        if loan is None:
            return False

        await self.store.delete(COLLECTION_LOANS, loan_id)
        logger.info(f"Loan {loan_id} deleted")

        if loan.get("customerId"):
            await self.aggregator.refresh(loan["customerId"])
        return True
