from fastapi import APIRouter, Depends, HTTPException, status
from typing import Optional

from chitfund.core.dependencies import get_chit_group_service, get_current_session, require_admin
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.modules.auth.schemas import Session
from chitfund.modules.chit_groups.schemas import ChitGroupCreate, ChitGroupStatus, ChitGroupUpdate
from chitfund.modules.chit_groups.services import ChitGroupService

router = APIRouter(prefix="/api/v1/chit-groups", tags=["chit-groups"])


@router.get("/")
async def read_chit_groups(
    group_status: Optional[ChitGroupStatus] = None,
    session: Session = Depends(get_current_session),
    service: ChitGroupService = Depends(get_chit_group_service)
):
    return await service.get_all(group_status)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_chit_group(
    group: ChitGroupCreate,
    session: Session = Depends(require_admin),
    service: ChitGroupService = Depends(get_chit_group_service)
):
    return {"id": await service.create(group)}


@router.patch("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_chit_group(
    group_id: str,
    group: ChitGroupUpdate,
    session: Session = Depends(require_admin),
    service: ChitGroupService = Depends(get_chit_group_service)
):
    try:
        await service.update(group_id, group)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Chit group not found")
