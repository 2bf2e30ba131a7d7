from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from chitfund.core.dependencies import (
    get_current_session, get_customer_aggregator, get_loan_service, require_admin
)
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.modules.auth.schemas import Session
from chitfund.modules.loans.aggregation import CustomerAggregator
from chitfund.modules.loans.schemas import (
    CustomerAggregates, Loan, LoanCreate, LoanCreatedResponse, LoanUpdate
)
from chitfund.modules.loans.services import LoanService

router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


@router.get("/", response_model=List[Loan])
async def read_loans(
    session: Session = Depends(get_current_session),
    service: LoanService = Depends(get_loan_service)
):
    """All loans for admins; an agent sees the loans assigned to them"""
    if session.is_admin:
        return await service.get_all()
    return await service.get_by_agent_id(session.uid)


@router.get("/customer/{customer_id}", response_model=List[Loan])
async def read_customer_loans(
    customer_id: str,
    session: Session = Depends(get_current_session),
    service: LoanService = Depends(get_loan_service)
):
    return await service.get_by_customer_id(customer_id, agent_id=None if session.is_admin else session.uid)


@router.get("/{loan_id}", response_model=Loan)
async def read_loan(
    loan_id: str,
    session: Session = Depends(get_current_session),
    service: LoanService = Depends(get_loan_service)
):
    loan = await service.get(loan_id)
    if loan is None or (not session.is_admin and loan.get("agentId") != session.uid):
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan


@router.post("/", response_model=LoanCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_loan(
    loan: LoanCreate,
    session: Session = Depends(require_admin),
    service: LoanService = Depends(get_loan_service)
):
    loan_id = await service.create(loan)
    return LoanCreatedResponse(id=loan_id)


@router.patch("/{loan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_loan(
    loan_id: str,
    loan_in: LoanUpdate,
    session: Session = Depends(require_admin),
    service: LoanService = Depends(get_loan_service)
):
    try:
        await service.update(loan_id, loan_in)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Loan not found")


@router.delete("/{loan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_loan(
    loan_id: str,
    session: Session = Depends(require_admin),
    service: LoanService = Depends(get_loan_service)
):
    if not await service.delete(loan_id):
        raise HTTPException(status_code=404, detail="Loan not found")


@router.post("/customers/{customer_id}/recompute", response_model=CustomerAggregates)
async def recompute_customer_aggregates(
    customer_id: str,
    session: Session = Depends(require_admin),
    aggregator: CustomerAggregator = Depends(get_customer_aggregator)
):
    """Rebuild a customer's aggregates from their loans"""
    try:
        aggregates = await aggregator.recompute(customer_id)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Customer not found")
    return aggregates
