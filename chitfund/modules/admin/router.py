from fastapi import APIRouter, Depends
import logging

from chitfund.core.dependencies import get_admin_service, require_admin
from chitfund.modules.admin.schemas import PurgeReport
from chitfund.modules.admin.services import AdminService
from chitfund.modules.auth.schemas import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post("/purge", response_model=PurgeReport)
async def purge_system(
    session: Session = Depends(require_admin),
    service: AdminService = Depends(get_admin_service)
):
    """
    Delete all business data and every role record except the root admin.

    Irreversible.
    """
    logger.warning(f"System purge requested by {session.email}")
    return await service.purge_system()
