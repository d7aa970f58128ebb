from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth.capabilities import Action
from casework.auth.dependencies import RequireCapability, get_current_active_user
from casework.auth.models import User
from casework.database import get_db
from casework.suggestions import schemas
from casework.suggestions.service import EditSuggestionService

router = APIRouter(prefix="/edit-suggestions", tags=["edit-suggestions"])


@router.post("", response_model=schemas.SuggestionResponse, status_code=201)
async def create_suggestion(
    suggestion_in: schemas.SuggestionCreate,
    current_user: User = Depends(RequireCapability(Action.SUGGEST_EDIT)),
    db: AsyncSession = Depends(get_db),
):
    return await EditSuggestionService(db).create(suggestion_in, current_user)


@router.get("", response_model=schemas.SuggestionListResponse)
async def list_suggestions(
    status: str = "needs_review",
    case_id: Optional[UUID] = None,
    skip: int = 0,
    limit: int = 100,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await EditSuggestionService(db).list_suggestions(status, case_id, skip, limit)


@router.get("/{suggestion_id}", response_model=schemas.SuggestionResponse)
async def get_suggestion(
    suggestion_id: UUID,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await EditSuggestionService(db).get(suggestion_id)


@router.post("/{suggestion_id}/review", response_model=schemas.SuggestionReviewResponse)
async def review_suggestion(
    suggestion_id: UUID,
    review: schemas.SuggestionReview,
    current_user: User = Depends(RequireCapability(Action.REVIEW_SUGGESTION)),
    db: AsyncSession = Depends(get_db),
):
    """Two-stage review; the second approval applies the value and needs evidence."""
    return await EditSuggestionService(db).review(suggestion_id, review, current_user)
