from fastapi import APIRouter, Depends, HTTPException, status
from typing import Dict, List

from chitfund.core.dependencies import get_current_session, get_customer_service, require_admin
from chitfund.core.exceptions import DocumentNotFoundError, UploadTimeoutError
from chitfund.modules.auth.schemas import Session
from chitfund.modules.customers.schemas import (
    Customer, CustomerCreate, CustomerProfileUpdate, CustomerRegistered, CustomerRegistration
)
from chitfund.modules.customers.services import CustomerService

router = APIRouter(prefix="/api/v1/customers", tags=["customers"])


def _timeout_response(e: UploadTimeoutError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=f"{e} Please try again.")


@router.get("/", response_model=List[Customer])
async def read_customers(
    session: Session = Depends(get_current_session),
    service: CustomerService = Depends(get_customer_service)
):
    """All customers for admins; an agent sees their assigned customers"""
    if session.is_admin:
        return await service.get_all()
    return await service.get_by_agent_id(session.uid)


@router.get("/overdue", response_model=List[Customer])
async def read_overdue_customers(
    session: Session = Depends(get_current_session),
    service: CustomerService = Depends(get_customer_service)
):
    return await service.get_overdue(agent_id=None if session.is_admin else session.uid)


@router.get("/{customer_id}", response_model=Customer)
async def read_customer(
    customer_id: str,
    session: Session = Depends(get_current_session),
    service: CustomerService = Depends(get_customer_service)
):
    customer = await service.get(customer_id)
    if customer is None or (not session.is_admin and customer.get("agentId") != session.uid):
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.get("/{customer_id}/images", response_model=Dict[str, str])
async def read_customer_images(
    customer_id: str,
    session: Session = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service)
):
    """Decrypted KYC images"""
    try:
        return await service.get_kyc_images(customer_id)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Customer not found")


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_customer(
    customer: CustomerCreate,
    session: Session = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service)
):
    return {"id": await service.create(customer)}


@router.post("/register", response_model=CustomerRegistered, status_code=status.HTTP_201_CREATED)
async def register_customer(
    registration: CustomerRegistration,
    session: Session = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service)
):
    """
    Register a customer with the first loan.

    - Encrypts KYC images
    - Marks KYC verified when an ID image is supplied
    - Returns 504 when the write does not finish in time
    """
    try:
        return await service.register(registration)
    except UploadTimeoutError as e:
        raise _timeout_response(e)


@router.patch("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_customer(
    customer_id: str,
    profile: CustomerProfileUpdate,
    session: Session = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service)
):
    try:
        await service.update_profile(customer_id, profile)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Customer not found")
    except UploadTimeoutError as e:
        raise _timeout_response(e)


@router.post("/{customer_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_customer(
    customer_id: str,
    session: Session = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service)
):
    try:
        await service.deactivate(customer_id)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Customer not found")


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(
    customer_id: str,
    session: Session = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service)
):
    await service.delete(customer_id)
