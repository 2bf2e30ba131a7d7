from typing import Any, Dict, List
import logging

from chitfund.core.documents import DocumentStore, COLLECTION_INVESTORS
from chitfund.core.utils import now_ms
from chitfund.modules.investors.schemas import InvestorCreate, InvestorUpdate

logger = logging.getLogger(__name__)


class InvestorService:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.store.list(COLLECTION_INVESTORS)

    async def create(self, investor: InvestorCreate) -> str:
        doc = investor.to_document()
        doc.setdefault("joinedAt", now_ms())
        investor_id = await self.store.add(COLLECTION_INVESTORS, doc)
        logger.info(f"Investor {investor_id} added")
        return investor_id

    async def update(self, investor_id: str, investor: InvestorUpdate) -> None:
        await self.store.update(COLLECTION_INVESTORS, investor_id, investor.to_document(exclude_unset=True))

    async def delete(self, investor_id: str) -> None:
        await self.store.delete(COLLECTION_INVESTORS, investor_id)
