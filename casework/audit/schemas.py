from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from casework.audit.models import HistoryAction


class HistoryEntryResponse(BaseModel):
    id: UUID
    case_id: UUID
    verification_number: int
    action: HistoryAction
    performed_by: Optional[UUID] = None
    notes: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
