from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from casework.proposals.models import ProposalStatus


class ProposalCreate(BaseModel):
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    proposed_data: Optional[Dict[str, Any]] = None
    change_summary: Optional[str] = None


class ProposalAction(BaseModel):
    action: str  # approve_for_validation | validate | reject | reopen
    notes: Optional[str] = None


class ProposalResponse(BaseModel):
    id: UUID
    entity_type: str
    entity_id: UUID
    proposed_data: Dict[str, Any]
    changed_fields: List[str]
    change_summary: Optional[str] = None
    submitted_by: Optional[UUID] = None
    status: ProposalStatus
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    validated_by: Optional[UUID] = None
    validated_at: Optional[datetime] = None
    validation_notes: Optional[str] = None
    applied_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProposalListResponse(BaseModel):
    proposals: List[ProposalResponse]
    total: int
    limit: int
    offset: int


class ProposalDetailResponse(BaseModel):
    proposal: ProposalResponse
    original: Optional[Dict[str, Any]] = None
    original_deleted: bool = False
    diff: Optional[Dict[str, Any]] = None


class ProposalActionResponse(BaseModel):
    message: str
    proposal: ProposalResponse
