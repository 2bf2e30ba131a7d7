from fastapi import APIRouter, Depends, HTTPException, status

from chitfund.core.dependencies import get_investor_service, require_admin
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.modules.auth.schemas import Session
from chitfund.modules.investors.schemas import InvestorCreate, InvestorUpdate
from chitfund.modules.investors.services import InvestorService

router = APIRouter(prefix="/api/v1/investors", tags=["investors"])


@router.get("/")
async def read_investors(
    session: Session = Depends(require_admin),
    service: InvestorService = Depends(get_investor_service)
):
    return await service.get_all()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_investor(
    investor: InvestorCreate,
    session: Session = Depends(require_admin),
    service: InvestorService = Depends(get_investor_service)
):
    return {"id": await service.create(investor)}


@router.patch("/{investor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_investor(
    investor_id: str,
    investor: InvestorUpdate,
    session: Session = Depends(require_admin),
    service: InvestorService = Depends(get_investor_service)
):
    try:
        await service.update(investor_id, investor)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Investor not found")


@router.delete("/{investor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_investor(
    investor_id: str,
    session: Session = Depends(require_admin),
    service: InvestorService = Depends(get_investor_service)
):
    await service.delete(investor_id)
