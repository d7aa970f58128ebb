from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.capabilities import Action
from casework.auth.dependencies import RequireCapability, get_current_active_user
from casework.auth.models import User
from casework.database import get_db
from casework.proposals import schemas
from casework.proposals.models import ProposalStatus
from casework.proposals.service import ProposedChangeService

router = APIRouter(prefix="/proposed-changes", tags=["proposed-changes"])


@router.post("", response_model=schemas.ProposalResponse, status_code=201)
async def create_proposal(
    proposal_in: schemas.ProposalCreate,
    current_user: User = Depends(RequireCapability(Action.PROPOSE_CHANGE)),
    db: AsyncSession = Depends(get_db),
):
    return await ProposedChangeService(db).create(proposal_in, current_user)


@router.get("", response_model=schemas.ProposalListResponse)
async def list_proposals(
    status: Optional[ProposalStatus] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await ProposedChangeService(db).list_proposals(status, entity_type, entity_id, limit, offset)


@router.get("/{proposal_id}", response_model=schemas.ProposalDetailResponse)
async def get_proposal(
    proposal_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Proposal with the live original and an itemized diff."""
    return await ProposedChangeService(db).detail(proposal_id)


@router.patch("/{proposal_id}", response_model=schemas.ProposalActionResponse)
async def act_on_proposal(
    proposal_id: UUID,
    request: schemas.ProposalAction,
    current_user: User = Depends(RequireCapability(Action.REVIEW_PROPOSAL)),
    db: AsyncSession = Depends(get_db),
):
    return await ProposedChangeService(db).perform(proposal_id, request.action, current_user, request.notes)
