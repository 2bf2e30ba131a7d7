from typing import Any, Dict, List, Optional
import logging

from chitfund.core.documents import DocumentStore, COLLECTION_ACTIVITIES
from chitfund.core.utils import now_ms
from chitfund.modules.activities.schemas import ActivityCreate

logger = logging.getLogger(__name__)


def _newest_first(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(docs, key=lambda d: d.get("timestamp") or 0, reverse=True)


class ActivityService:
    """Append-only audit trail of customer events"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def log(self, activity: ActivityCreate) -> Optional[str]:
        """
        Record an activity.

        The trail is best effort: a failed write is logged and None is
        returned, so it never fails the operation being audited.
        """
        doc = activity.to_document()
        doc["timestamp"] = now_ms()
        try:
            return await self.store.add(COLLECTION_ACTIVITIES, doc)
        except Exception as e:
            logger.error(f"Error logging activity {activity.type.value} for {activity.customer_id}: {e!r}")
            return None

    async def get_customer_activities(self, customer_id: str) -> List[Dict[str, Any]]:
        return _newest_first(await self.store.query(COLLECTION_ACTIVITIES, {"customerId": customer_id}))

    async def get_agent_activities(self, agent_id: str) -> List[Dict[str, Any]]:
        return _newest_first(await self.store.query(COLLECTION_ACTIVITIES, {"agentId": agent_id}))

    async def get_all(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        docs = _newest_first(await self.store.list(COLLECTION_ACTIVITIES))
        return docs[:limit] if limit else docs
