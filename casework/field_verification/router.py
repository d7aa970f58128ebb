from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.capabilities import Action
from casework.auth.dependencies import RequireCapability, get_current_active_user
from casework.auth.models import User
from casework.cases.repository import get_case
from casework.database import get_db
from casework.field_verification import schemas
from casework.field_verification.service import FieldVerificationService

router = APIRouter(prefix="/cases", tags=["field-verification"])


@router.post("/{case_id}/verify-field", response_model=schemas.VerifyFieldResponse)
async def verify_field(
    case_id: UUID,
    request: schemas.VerifyFieldRequest,
    current_user: User = Depends(RequireCapability(Action.VERIFY_FIELD)),
    db: AsyncSession = Depends(get_db),
):
    service = FieldVerificationService(db)
    return await service.verify_field(
        case_id, request.field_name, current_user, notes=request.notes, source_ids=request.source_ids
    )


@router.get("/{case_id}/field-verifications", response_model=List[schemas.FieldVerificationResponse])
async def list_field_verifications(
    case_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    await get_case(db, case_id)
    return await FieldVerificationService(db).list_for_case(case_id)
