from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from casework.cases.models import (
    CaseStatus,
    FieldVerificationAggregate,
    IssueFieldType,
    RecordType,
)


class CaseCreate(BaseModel):
    record_type: RecordType
    title: Optional[str] = None
    fields: Dict[str, Any] = {}


class CaseResponse(BaseModel):
    id: UUID
    record_type: RecordType
    title: Optional[str] = None
    fields: Dict[str, Any]
    status: CaseStatus
    submitted_by: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    first_reviewed_by: Optional[UUID] = None
    first_reviewed_at: Optional[datetime] = None
    second_reviewed_by: Optional[UUID] = None
    second_reviewed_at: Optional[datetime] = None
    first_validated_by: Optional[UUID] = None
    first_validated_at: Optional[datetime] = None
    second_validated_by: Optional[UUID] = None
    second_validated_at: Optional[datetime] = None
    verified: bool
    rejection_reason: Optional[str] = None
    rejected_by: Optional[UUID] = None
    rejected_at: Optional[datetime] = None
    review_cycle: int
    field_verification_status: FieldVerificationAggregate
    verification_level: Optional[int] = None
    verification_scope: Optional[str] = None
    verification_date: Optional[datetime] = None
    verified_data_hash: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CaseReviewRequest(BaseModel):
    action: str = "approve"  # approve | reject
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None


class IssueInput(BaseModel):
    field_type: Optional[str] = None
    field_name: Optional[str] = None
    reason: Optional[str] = None


class CaseValidateRequest(BaseModel):
    action: str  # validate | return_to_review | reject
    notes: Optional[str] = None
    issues: List[IssueInput] = []
    rejection_reason: Optional[str] = None


class UnpublishRequest(BaseModel):
    reason: Optional[str] = None


class ValidationIssueResponse(BaseModel):
    id: UUID
    case_id: UUID
    validation_session_id: int
    field_type: IssueFieldType
    field_name: str
    issue_reason: str
    created_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CaseActionResponse(BaseModel):
    message: str
    case: CaseResponse
    validation_session_id: Optional[int] = None
