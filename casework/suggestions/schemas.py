from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from casework.suggestions.models import SuggestionStatus


class SuggestionCreate(BaseModel):
    case_id: UUID
    field_name: str
    suggested_value: Any = None
    reason: Optional[str] = None
    supporting_quote: Optional[str] = None
    source_url: Optional[str] = None
    source_title: Optional[str] = None


class SuggestionReview(BaseModel):
    approved: bool
    notes: Optional[str] = None
    quote_id: Optional[UUID] = None
    quote_text: Optional[str] = None
    source_url: Optional[str] = None
    source_title: Optional[str] = None


class SuggestionResponse(BaseModel):
    id: UUID
    case_id: UUID
    field_name: str
    current_value: Any = None
    suggested_value: Any = None
    reason: Optional[str] = None
    supporting_quote: Optional[str] = None
    source_url: Optional[str] = None
    source_title: Optional[str] = None
    suggested_by: Optional[UUID] = None
    status: SuggestionStatus
    first_reviewed_by: Optional[UUID] = None
    first_reviewed_at: Optional[datetime] = None
    first_review_decision: Optional[str] = None
    first_review_notes: Optional[str] = None
    second_reviewed_by: Optional[UUID] = None
    second_reviewed_at: Optional[datetime] = None
    second_review_decision: Optional[str] = None
    second_review_notes: Optional[str] = None
    applied_at: Optional[datetime] = None
    applied_by: Optional[UUID] = None
    evidence_quote_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SuggestionReviewResponse(BaseModel):
    message: str
    suggestion: SuggestionResponse


class SuggestionListResponse(BaseModel):
    suggestions: List[SuggestionResponse]
    stats: Dict[str, int]
