from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from chitfund.core.dependencies import get_collection_service, get_current_session, require_admin
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.modules.auth.schemas import Session
from chitfund.modules.collections.schemas import (
    CollectionRecord, OutstandingUpdate, PaymentCollection, PaymentRecorded
)
from chitfund.modules.collections.services import CollectionService

router = APIRouter(prefix="/api/v1/collections", tags=["collections"])


@router.get("/", response_model=List[CollectionRecord])
async def read_collections(
    session: Session = Depends(get_current_session),
    service: CollectionService = Depends(get_collection_service)
):
    if session.is_admin:
        return await service.get_all()
    return await service.get_by_agent_id(session.uid)


@router.get("/customer/{customer_id}", response_model=List[CollectionRecord])
async def read_customer_collections(
    customer_id: str,
    session: Session = Depends(get_current_session),
    service: CollectionService = Depends(get_collection_service)
):
    """Trackers of a customer; an agent sees only their own"""
    return await service.get_by_customer_id(customer_id, agent_id=None if session.is_admin else session.uid)


@router.post("/record", response_model=PaymentRecorded, status_code=status.HTTP_201_CREATED)
async def record_payment(
    collection: PaymentCollection,
    session: Session = Depends(get_current_session),
    service: CollectionService = Depends(get_collection_service)
):
    """
    Collect a payment against a loan.

    - Records the payment under the collecting user
    - An agent may only collect on loans assigned to them
    - Updates the collection tracker and the loan balance
    - Closes the loan when nothing is outstanding
    """
    try:
        return await service.record_payment(
            collection.loan_id,
            collection.amount,
            collection.date,
            collected_by=session.uid,
            description=collection.description,
            assigned_only=not session.is_admin
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{collection_id}/outstanding", status_code=status.HTTP_204_NO_CONTENT)
async def update_outstanding(
    collection_id: str,
    update: OutstandingUpdate,
    session: Session = Depends(require_admin),
    service: CollectionService = Depends(get_collection_service)
):
    try:
        await service.update_outstanding(collection_id, update.outstanding)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Collection record not found")
