from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.capabilities import Action
from casework.auth.dependencies import RequireCapability, get_current_active_user
from casework.auth.models import User
from casework.cases.repository import get_case
from casework.database import get_db
from casework.evidence import schemas
from casework.evidence.service import EvidenceLedger

router = APIRouter(tags=["evidence"])


@router.get("/cases/{case_id}/quotes", response_model=List[schemas.QuoteResponse])
async def list_case_quotes(
    case_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    await get_case(db, case_id)
    return await EvidenceLedger(db).list_quotes(case_id)


@router.post("/cases/{case_id}/quotes", response_model=schemas.QuoteResponse, status_code=201)
async def add_case_quote(
    case_id: UUID,
    quote_in: schemas.QuoteCreate,
    current_user: User = Depends(RequireCapability(Action.ADD_EVIDENCE)),
    db: AsyncSession = Depends(get_db),
):
    return await EvidenceLedger(db).add_quote(case_id, quote_in, current_user)


@router.get("/cases/{case_id}/sources", response_model=List[schemas.SourceResponse])
async def list_case_sources(
    case_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    await get_case(db, case_id)
    return await EvidenceLedger(db).list_sources(case_id)


@router.get("/cases/{case_id}/fields/{field_name}/evidence", response_model=List[schemas.FieldEvidence])
async def get_field_evidence(
    case_id: UUID,
    field_name: str,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """Quotes backing one field, used to check evidence coverage."""
    await get_case(db, case_id)
    return await EvidenceLedger(db).evidence_for_field(case_id, field_name)


@router.patch("/quotes/{quote_id}/verification", response_model=schemas.QuoteResponse)
async def update_quote_verification(
    quote_id: UUID,
    update: schemas.QuoteVerificationUpdate,
    current_user: User = Depends(RequireCapability(Action.VERIFY_FIELD)),
    db: AsyncSession = Depends(get_db),
):
    return await EvidenceLedger(db).set_quote_verified(quote_id, update.verified, current_user)
