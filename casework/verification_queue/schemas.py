from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from casework.verification_queue.models import (
    RequestPriority,
    RequestStatus,
    ResultItemType,
    VerificationOutcome,
    VerificationScope,
)


class VerificationRequestCreate(BaseModel):
    verification_scope: str = VerificationScope.RECORD.value
    items_to_verify: Optional[List[Any]] = None
    priority: str = RequestPriority.NORMAL.value
    request_notes: Optional[str] = None


class ItemResult(BaseModel):
    item_type: str
    item_id: Optional[str] = None
    field_slug: Optional[str] = None
    verified: bool = False
    notes: Optional[str] = None
    caveats: Optional[str] = None
    issues: Optional[List[Any]] = None


class VerificationRequestAction(BaseModel):
    action: str  # assign | unassign | complete | reject | needs_revision | resubmit
    outcome: Optional[str] = None
    notes: Optional[str] = None
    issues: Optional[List[Any]] = None
    item_results: List[ItemResult] = []
    rejection_reason: Optional[str] = None


class VerificationRequestResponse(BaseModel):
    id: UUID
    case_id: UUID
    requested_by: Optional[UUID] = None
    verification_scope: VerificationScope
    items_to_verify: Optional[List[Any]] = None
    priority: RequestPriority
    request_notes: Optional[str] = None
    status: RequestStatus
    assigned_to: Optional[UUID] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    verification_result: Optional[VerificationOutcome] = None
    issues_found: Optional[List[Any]] = None
    verifier_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VerificationResultResponse(BaseModel):
    id: UUID
    request_id: UUID
    item_type: ResultItemType
    item_id: Optional[str] = None
    field_slug: Optional[str] = None
    verified: bool
    verified_by: Optional[UUID] = None
    notes: Optional[str] = None
    caveats: Optional[str] = None
    issues: Optional[List[Any]] = None

    model_config = ConfigDict(from_attributes=True)


class VerificationRequestDetail(BaseModel):
    request: VerificationRequestResponse
    results: List[VerificationResultResponse]


class VerificationActionResponse(BaseModel):
    message: str
    request: VerificationRequestResponse


class VerifierDashboard(BaseModel):
    current_assigned: int
    max_concurrent: int
    available_capacity: int
    claimable_count: int
    assigned: List[VerificationRequestResponse]


class VerifierUpdate(BaseModel):
    is_verifier: Optional[bool] = None
    verifier_max_concurrent: Optional[int] = Field(None, ge=0)


class VerifierSummary(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    is_verifier: bool
    verifier_max_concurrent: int
    current_assigned: int
    total_completed: int
    passed: int
    partial: int
    failed: int
