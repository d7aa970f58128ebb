from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casework.audit.schemas import HistoryEntryResponse
from casework.auth.capabilities import Action
from casework.auth.dependencies import RequireCapability, get_current_active_user
from casework.auth.models import User
from casework.cases import schemas
from casework.cases.models import CaseStatus, RecordType
from casework.cases.service import CaseService
from casework.database import get_db
from casework.shared.errors import ValidationError

router = APIRouter(prefix="/cases", tags=["cases"])


@router.post("", response_model=schemas.CaseResponse, status_code=201)
async def submit_case(
    case_in: schemas.CaseCreate,
    current_user: User = Depends(RequireCapability(Action.SUBMIT_CASE)),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).submit(case_in, current_user)


@router.get("", response_model=List[schemas.CaseResponse])
async def list_cases(
    status: Optional[CaseStatus] = None,
    record_type: Optional[RecordType] = None,
    skip: int = 0,
    limit: int = 100,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).list_cases(status, record_type, skip, limit)


@router.get("/{case_id}", response_model=schemas.CaseResponse)
async def get_case(
    case_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).get(case_id)


@router.get("/{case_id}/history", response_model=List[HistoryEntryResponse])
async def get_case_history(
    case_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).history_for(case_id)


@router.get("/{case_id}/validation-issues", response_model=List[schemas.ValidationIssueResponse])
async def get_validation_issues(
    case_id: UUID,
    include_resolved: bool = False,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).validation_issues(case_id, include_resolved)


@router.post("/{case_id}/review", response_model=schemas.CaseActionResponse)
async def review_case(
    case_id: UUID,
    request: schemas.CaseReviewRequest,
    current_user: User = Depends(RequireCapability(Action.REVIEW_CASE)),
    db: AsyncSession = Depends(get_db),
):
    service = CaseService(db)
    if request.action == "approve":
        return await service.review(case_id, current_user, notes=request.notes)
    if request.action == "reject":
        return await service.reject(case_id, current_user, request.rejection_reason)
    raise ValidationError("Invalid action. Must be approve or reject")


@router.post("/{case_id}/validate", response_model=schemas.CaseActionResponse)
async def validate_case(
    case_id: UUID,
    request: schemas.CaseValidateRequest,
    current_user: User = Depends(RequireCapability(Action.VALIDATE_CASE)),
    db: AsyncSession = Depends(get_db),
):
    service = CaseService(db)
    if request.action == "validate":
        return await service.validate(case_id, current_user, notes=request.notes, issues=request.issues)
    if request.action == "return_to_review":
        return await service.return_to_review(case_id, current_user, request.issues, notes=request.notes)
    if request.action == "reject":
        return await service.reject(case_id, current_user, request.rejection_reason)
    raise ValidationError("Invalid action. Must be validate, return_to_review, or reject")


@router.post("/{case_id}/unpublish", response_model=schemas.CaseActionResponse)
async def unpublish_case(
    case_id: UUID,
    request: schemas.UnpublishRequest,
    current_user: User = Depends(RequireCapability(Action.UNPUBLISH_CASE)),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).unpublish(case_id, current_user, request.reason)
