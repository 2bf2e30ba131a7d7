from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from chitfund.core.documents import DocumentStore, COLLECTION_CHIT_GROUPS
from chitfund.modules.chit_groups.schemas import ChitGroupCreate, ChitGroupStatus, ChitGroupUpdate


class ChitGroupService:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_all(self, status: Optional[ChitGroupStatus] = None) -> List[Dict[str, Any]]:
        where = {"status": status.value} if status else None
        return await self.store.query(COLLECTION_CHIT_GROUPS, where)

    async def create(self, group: ChitGroupCreate, start: Optional[datetime] = None) -> str:
        """Open a group; the installment and end date follow from value and duration"""
        start = start or datetime.now(timezone.utc)
        doc = group.to_document()
        doc.update({
            "weeklyInstallment": group.value / group.duration_weeks,
            "membersCount": len(group.members),
            "startDate": start.isoformat(),
            "endDate": (start + timedelta(days=7 * group.duration_weeks)).isoformat(),
        })
        return await self.store.add(COLLECTION_CHIT_GROUPS, doc)

    async def update(self, group_id: str, group: ChitGroupUpdate) -> None:
        fields = group.to_document(exclude_unset=True)
        if "members" in fields:
            fields["membersCount"] = len(fields["members"])
        await self.store.update(COLLECTION_CHIT_GROUPS, group_id, fields)
