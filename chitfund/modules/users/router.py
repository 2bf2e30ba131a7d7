from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from chitfund.core.dependencies import get_agent_service, get_current_session, get_user_service, require_admin
from chitfund.core.exceptions import DocumentNotFoundError
from chitfund.modules.auth.schemas import Session
from chitfund.modules.users import schemas
from chitfund.modules.users.services import (
    AgentHasCustomersError, AgentService, DuplicateUserError, UserService, to_user_response
)

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/", response_model=List[schemas.UserResponse])
async def read_users(
    session: Session = Depends(require_admin),
    service: UserService = Depends(get_user_service)
):
    """Admins, agents and pending invites"""
    return [to_user_response(doc) for doc in await service.get_all()]


@router.get("/agents", response_model=List[schemas.UserResponse])
async def read_agents(
    session: Session = Depends(require_admin),
    service: UserService = Depends(get_user_service)
):
    return [to_user_response(doc) for doc in await service.get_agents()]


@router.post("/invite", status_code=status.HTTP_201_CREATED)
async def invite_user(
    invite: schemas.InviteUserRequest,
    session: Session = Depends(require_admin),
    service: UserService = Depends(get_user_service)
):
    """
    Pre-provision a user.

    The invitee signs in with the initial password on first login, which
    claims the invite and removes the password from the record.
    """
    try:
        invite_id = await service.invite_user(
            invite.email, invite.role, invite.name, invite.initial_password
        )
    except DuplicateUserError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return {"id": invite_id}


@router.put("/agents", status_code=status.HTTP_200_OK)
async def save_agent(
    agent: schemas.AgentSaveRequest,
    session: Session = Depends(require_admin),
    service: UserService = Depends(get_user_service)
):
    try:
        uid = await service.save_agent(agent)
    except DuplicateUserError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return {"uid": uid}


@router.put("/me/theme", status_code=status.HTTP_204_NO_CONTENT)
async def update_my_theme(
    update: schemas.ThemeUpdateRequest,
    session: Session = Depends(get_current_session),
    service: UserService = Depends(get_user_service)
):
    if session.bypass:
        # nothing persisted for the bypass session
        return
    await service.update_theme(session.uid, update.theme)


@router.put("/{uid}/status", status_code=status.HTTP_204_NO_CONTENT)
async def update_user_status(
    uid: str,
    update: schemas.StatusUpdateRequest,
    session: Session = Depends(require_admin),
    service: UserService = Depends(get_user_service)
):
    try:
        await service.update_status(uid, update.status)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")


@router.delete("/{uid}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    uid: str,
    session: Session = Depends(require_admin),
    service: AgentService = Depends(get_agent_service)
):
    """Delete a role record; refused while customers are still assigned to it"""
    try:
        await service.delete_agent(uid)
    except AgentHasCustomersError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# ============================================================
# Agent assignment
# ============================================================

@router.post("/agents/{agent_uid}/loans", status_code=status.HTTP_204_NO_CONTENT)
async def assign_loan(
    agent_uid: str,
    request: schemas.AssignLoanRequest,
    session: Session = Depends(require_admin),
    service: AgentService = Depends(get_agent_service)
):
    try:
        await service.assign_loan(request.loan_id, agent_uid)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/agents/reassign", status_code=status.HTTP_204_NO_CONTENT)
async def reassign_customer(
    request: schemas.ReassignCustomerRequest,
    session: Session = Depends(require_admin),
    service: AgentService = Depends(get_agent_service)
):
    try:
        await service.reassign_customer(request.customer_id, request.agent_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/agents/{agent_uid}/deactivate")
async def deactivate_agent(
    agent_uid: str,
    request: schemas.DeactivateAgentRequest,
    session: Session = Depends(require_admin),
    service: AgentService = Depends(get_agent_service)
):
    try:
        moved = await service.deactivate_agent(agent_uid, request.reassign_to)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"customersMoved": moved}


@router.delete("/agents/{agent_uid}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(
    agent_uid: str,
    session: Session = Depends(require_admin),
    service: AgentService = Depends(get_agent_service)
):
    try:
        await service.delete_agent(agent_uid)
    except AgentHasCustomersError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
