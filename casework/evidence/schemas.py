from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class SourceResponse(BaseModel):
    id: UUID
    case_id: UUID
    url: str
    title: Optional[str] = None
    publication: Optional[str] = None
    source_type: str
    author: Optional[str] = None
    published_date: Optional[str] = None
    archived_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class QuoteResponse(BaseModel):
    id: UUID
    case_id: UUID
    source_id: Optional[UUID] = None
    quote_text: str
    category: Optional[str] = None
    page_number: Optional[int] = None
    verified: bool
    verified_by: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    linked_fields: List[str] = []


class FieldEvidence(BaseModel):
    quote_id: UUID
    quote_text: str
    category: Optional[str] = None
    verified: bool
    source_id: Optional[UUID] = None
    source_url: Optional[str] = None
    source_title: Optional[str] = None
    publication: Optional[str] = None


class QuoteCreate(BaseModel):
    quote_text: str
    category: Optional[str] = None
    page_number: Optional[int] = None
    source_url: str
    source_title: Optional[str] = None
    publication: Optional[str] = None
    source_type: Optional[str] = None
    linked_fields: List[str] = []


class QuoteVerificationUpdate(BaseModel):
    verified: bool
