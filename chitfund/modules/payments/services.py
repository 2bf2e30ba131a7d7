from typing import Any, Dict, List, Optional
import logging

from chitfund.core.documents import DocumentStore, COLLECTION_PAYMENTS
from chitfund.modules.payments.schemas import PaymentCreate

logger = logging.getLogger(__name__)


def _by_date_desc(payments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(payments, key=lambda p: p.get("date") or 0, reverse=True)


class PaymentService:
    """Payment ledger; entries are appended, never edited"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_by_customer_id(self, customer_id: str, collected_by: Optional[str] = None) -> List[Dict[str, Any]]:
        where = {"customerId": customer_id}
        if collected_by:
            where["collectedBy"] = collected_by
        return _by_date_desc(await self.store.query(COLLECTION_PAYMENTS, where))

    async def get_by_agent_id(self, agent_id: str) -> List[Dict[str, Any]]:
        return _by_date_desc(await self.store.query(COLLECTION_PAYMENTS, {"collectedBy": agent_id}))

    async def get_all(self) -> List[Dict[str, Any]]:
        return _by_date_desc(await self.store.list(COLLECTION_PAYMENTS))

    async def get_recent(self, limit: int) -> List[Dict[str, Any]]:
        return (await self.get_all())[:limit]

    async def create(self, payment: PaymentCreate) -> str:
        payment_id = await self.store.add(COLLECTION_PAYMENTS, payment.to_document())
        logger.info(f"Payment {payment_id} of {payment.amount} recorded for customer {payment.customer_id}")
        return payment_id

    async def delete(self, payment_id: str) -> None:
        await self.store.delete(COLLECTION_PAYMENTS, payment_id)
        logger.info(f"Payment {payment_id} deleted")
