from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.capabilities import Action
from casework.auth.dependencies import RequireCapability, get_current_active_user
from casework.auth.models import User
from casework.database import get_db
from casework.verification_queue import schemas
from casework.verification_queue.service import VerificationQueueService, VerifierPoolService

router = APIRouter(tags=["verification-queue"])


@router.post(
    "/cases/{case_id}/verification-requests",
    response_model=schemas.VerificationRequestResponse,
    status_code=201,
)
async def request_verification(
    case_id: UUID,
    request_in: schemas.VerificationRequestCreate,
    current_user: User = Depends(RequireCapability(Action.REQUEST_VERIFICATION)),
    db: AsyncSession = Depends(get_db),
):
    return await VerificationQueueService(db).request_verification(case_id, request_in, current_user)


@router.get("/verifier/requests", response_model=List[schemas.VerificationRequestResponse])
async def list_claimable_requests(
    current_user: User = Depends(RequireCapability(Action.WORK_VERIFICATION)),
    db: AsyncSession = Depends(get_db),
):
    return await VerificationQueueService(db).list_claimable(current_user)


@router.get("/verifier/dashboard", response_model=schemas.VerifierDashboard)
async def verifier_dashboard(
    current_user: User = Depends(RequireCapability(Action.WORK_VERIFICATION)),
    db: AsyncSession = Depends(get_db),
):
    return await VerificationQueueService(db).dashboard(current_user)


@router.get("/verification-requests/{request_id}", response_model=schemas.VerificationRequestDetail)
async def get_verification_request(
    request_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await VerificationQueueService(db).detail(request_id)


@router.patch("/verification-requests/{request_id}", response_model=schemas.VerificationActionResponse)
async def act_on_verification_request(
    request_id: UUID,
    payload: schemas.VerificationRequestAction,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await VerificationQueueService(db).perform(request_id, payload, current_user)


@router.get("/verifiers", response_model=List[schemas.VerifierSummary])
async def list_verifiers(
    current_user: User = Depends(RequireCapability(Action.MANAGE_VERIFIERS)),
    db: AsyncSession = Depends(get_db),
):
    """Verifier pool with each verifier's current load and outcomes."""
    return await VerifierPoolService(db).list_verifiers()


@router.patch("/verifiers/{user_id}", response_model=schemas.VerifierSummary)
async def update_verifier(
    user_id: UUID,
    update: schemas.VerifierUpdate,
    current_user: User = Depends(RequireCapability(Action.MANAGE_VERIFIERS)),
    db: AsyncSession = Depends(get_db),
):
    return await VerifierPoolService(db).update_verifier(user_id, update, current_user)
