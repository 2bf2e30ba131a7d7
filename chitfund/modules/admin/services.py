"""
System purge.

Clears every business collection and every role record except the root
admin's. Deletes are attempted one by one and never stop at the first
failure; failures are logged and counted in the report.
"""
import asyncio
import logging

from chitfund.core.documents import (
    DocumentStore,
    COLLECTION_ACTIVITIES,
    COLLECTION_CHIT_GROUPS,
    COLLECTION_COLLECTIONS,
    COLLECTION_CUSTOMERS,
    COLLECTION_INVESTORS,
    COLLECTION_LOANS,
    COLLECTION_PAYMENTS,
    COLLECTION_USERS,
)
from chitfund.core.security import normalize_email
from chitfund.modules.admin.schemas import PurgeReport

logger = logging.getLogger(__name__)

PURGED_COLLECTIONS = (
    COLLECTION_ACTIVITIES,
    COLLECTION_CHIT_GROUPS,
    COLLECTION_COLLECTIONS,
    COLLECTION_PAYMENTS,
    COLLECTION_LOANS,
    COLLECTION_CUSTOMERS,
    COLLECTION_INVESTORS,
)


class AdminService:
    def __init__(self, store: DocumentStore, root_admin_email: str):
        self.store = store
        self.root_admin_email = normalize_email(root_admin_email)

    async def purge_system(self) -> PurgeReport:
        logger.warning("System purge started")
        deleted = {}
        failed = {}

        for collection in PURGED_COLLECTIONS:
            docs = await self.store.list(collection)
            deleted[collection], failed[collection] = await self._delete_all(collection, [d["id"] for d in docs])

        users = await self.store.list(COLLECTION_USERS)
        doomed = [u["id"] for u in users if normalize_email(u.get("email", "")) != self.root_admin_email]
        deleted[COLLECTION_USERS], failed[COLLECTION_USERS] = await self._delete_all(COLLECTION_USERS, doomed)

        report = PurgeReport(deleted=deleted, failed=failed)
        logger.warning(f"System purge finished: deleted={deleted} failed={failed}")
        return report

    async def _delete_all(self, collection: str, doc_ids):
        results = await asyncio.gather(
            *(self.store.delete(collection, doc_id) for doc_id in doc_ids),
            return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, Exception)]
        for error in errors:
            logger.error(f"Purge of {collection} document failed: {error!r}")
        return len(results) - len(errors), len(errors)
