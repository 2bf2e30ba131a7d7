from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from chitfund.core.dependencies import get_activity_service, get_current_session, require_admin
from chitfund.modules.activities.schemas import Activity
from chitfund.modules.activities.services import ActivityService
from chitfund.modules.auth.schemas import Session

router = APIRouter(prefix="/api/v1/activities", tags=["activities"])


@router.get("/", response_model=List[Activity])
async def read_activities(
    limit: Optional[int] = Query(None, ge=1, le=500),
    session: Session = Depends(get_current_session),
    service: ActivityService = Depends(get_activity_service)
):
    """Newest first; an agent sees their own trail"""
    if session.is_admin:
        return await service.get_all(limit)
    return (await service.get_agent_activities(session.uid))[:limit]


@router.get("/customer/{customer_id}", response_model=List[Activity])
async def read_customer_activities(
    customer_id: str,
    session: Session = Depends(require_admin),
    service: ActivityService = Depends(get_activity_service)
):
    return await service.get_customer_activities(customer_id)


@router.get("/agent/{agent_id}", response_model=List[Activity])
async def read_agent_activities(
    agent_id: str,
    session: Session = Depends(require_admin),
    service: ActivityService = Depends(get_activity_service)
):
    return await service.get_agent_activities(agent_id)
