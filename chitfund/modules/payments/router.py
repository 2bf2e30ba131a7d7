from fastapi import APIRouter, Depends, Query, status
from typing import List

from chitfund.core.dependencies import get_current_session, get_payment_service, require_admin
from chitfund.modules.auth.schemas import Session
from chitfund.modules.payments.schemas import Payment
from chitfund.modules.payments.services import PaymentService

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.get("/", response_model=List[Payment])
async def read_payments(
    session: Session = Depends(get_current_session),
    service: PaymentService = Depends(get_payment_service)
):
    """Newest first; an agent sees the payments they collected"""
    if session.is_admin:
        return await service.get_all()
    return await service.get_by_agent_id(session.uid)


@router.get("/recent", response_model=List[Payment])
async def read_recent_payments(
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service)
):
    return await service.get_recent(limit)


@router.get("/customer/{customer_id}", response_model=List[Payment])
async def read_customer_payments(
    customer_id: str,
    session: Session = Depends(get_current_session),
    service: PaymentService = Depends(get_payment_service)
):
    """An agent sees only the payments they collected"""
    return await service.get_by_customer_id(customer_id, collected_by=None if session.is_admin else session.uid)


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: str,
    session: Session = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service)
):
    await service.delete(payment_id)
