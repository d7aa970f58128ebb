from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from casework.cases.models import FieldVerificationAggregate
from casework.field_verification.models import FieldVerificationStatus


class VerifyFieldRequest(BaseModel):
    field_name: str
    notes: Optional[str] = None
    source_ids: List[UUID] = []


class FieldVerificationResponse(BaseModel):
    id: UUID
    case_id: UUID
    field_name: str
    field_value: Any = None
    first_verified_by: Optional[UUID] = None
    first_verified_at: Optional[datetime] = None
    first_verification_notes: Optional[str] = None
    first_verification_source_ids: Optional[List[str]] = None
    second_verified_by: Optional[UUID] = None
    second_verified_at: Optional[datetime] = None
    second_verification_notes: Optional[str] = None
    second_verification_source_ids: Optional[List[str]] = None
    verification_status: FieldVerificationStatus
    invalidated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VerifyFieldResponse(BaseModel):
    message: str
    verification: FieldVerificationResponse
    case_verification_status: FieldVerificationAggregate
