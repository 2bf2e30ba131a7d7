"""
Schemaless document store.

Documents live in a single table keyed by (collection, id) with a JSON body,
which gives the service the same contract as a hosted document database:
insert with a generated id, get by id, equality-filter queries, partial
merge updates and deletes. Every call runs in its own short transaction;
there are no cross-document transactions.
"""
from sqlalchemy import Column, String, DateTime, JSON, select, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import func
from typing import Any, Dict, List, Mapping, Optional
import uuid

from chitfund.core.database import Base
from chitfund.core.exceptions import DocumentNotFoundError

# Collection names
COLLECTION_USERS = "users"
COLLECTION_CUSTOMERS = "customers"
COLLECTION_LOANS = "loans"
COLLECTION_PAYMENTS = "payments"
COLLECTION_COLLECTIONS = "collections"
COLLECTION_ACTIVITIES = "activities"
COLLECTION_INVESTORS = "investors"
COLLECTION_CHIT_GROUPS = "chitGroups"


class StoredDocument(Base):
    """One document of one collection"""
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<StoredDocument(collection={self.collection}, id={self.id})>"


def _as_dict(row: StoredDocument) -> Dict[str, Any]:
    return {**(row.data or {}), "id": row.id}


def _filter_clause(field: str, value: Any):
    """SQL equality test against one top-level JSON field"""
    element = StoredDocument.data[field]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, (int, float)):
        return element.as_float() == float(value)
    return element.as_string() == str(value)


class DocumentStore:
    """Async client over the documents table"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def new_id() -> str:
        """Generate a document id"""
        return uuid.uuid4().hex

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Insert a document under a generated id and return the id"""
        doc_id = self.new_id()
        async with self._session_factory() as session:
            session.add(StoredDocument(collection=collection, id=doc_id, data=self._clean(data)))
            await session.commit()
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        """Write a document under a known id, replacing it unless merge is set"""
        async with self._session_factory() as session:
            row = await self._get_row(session, collection, doc_id, for_update=True)
            if row is None:
                session.add(StoredDocument(collection=collection, id=doc_id, data=self._clean(data)))
            elif merge:
                row.data = {**(row.data or {}), **self._clean(data)}
            else:
                row.data = self._clean(data)
            await session.commit()

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by id"""
        async with self._session_factory() as session:
            row = await self._get_row(session, collection, doc_id)
            return _as_dict(row) if row is not None else None

    async def query(self, collection: str, where: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Fetch documents whose fields equal every value in `where`.

        A None value matches documents where the field is missing or null.
        """
        where = dict(where or {})
        stmt = select(StoredDocument).where(StoredDocument.collection == collection)
        null_fields = [field for field, value in where.items() if value is None]
        for field, value in where.items():
            if value is not None:
                stmt = stmt.where(_filter_clause(field, value))

        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(StoredDocument.created_at, StoredDocument.id))
            docs = [_as_dict(row) for row in result.scalars().all()]

        if null_fields:
            docs = [d for d in docs if all(d.get(field) is None for field in null_fields)]
        return docs

    async def list(self, collection: str) -> List[Dict[str, Any]]:
        """Fetch every document of a collection"""
        return await self.query(collection)

    async def update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Merge fields into an existing document; never creates one"""
        async with self._session_factory() as session:
            row = await self._get_row(session, collection, doc_id, for_update=True)
            if row is None:
                raise DocumentNotFoundError(collection, doc_id)
            row.data = {**(row.data or {}), **self._clean(data)}
            await session.commit()

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op"""
        async with self._session_factory() as session:
            await session.execute(
                delete(StoredDocument).where(
                    StoredDocument.collection == collection,
                    StoredDocument.id == doc_id
                )
            )
            await session.commit()

    @staticmethod
    async def _get_row(
        session: AsyncSession,
        collection: str,
        doc_id: str,
        for_update: bool = False
    ) -> Optional[StoredDocument]:
        stmt = select(StoredDocument).where(
            StoredDocument.collection == collection,
            StoredDocument.id == doc_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _clean(data: Mapping[str, Any]) -> Dict[str, Any]:
        # the id is the key, not part of the body
        return {k: v for k, v in dict(data).items() if k != "id"}
