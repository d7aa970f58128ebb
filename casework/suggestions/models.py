from enum import Enum
from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from sqlalchemy import Enum as SAEnum
from casework.database import Base
from casework.shared.models import AuditMixin, JSONType


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    FIRST_REVIEW = "first_review"
    APPROVED = "approved"
    REJECTED = "rejected"


FINAL_STATUSES = (SuggestionStatus.APPROVED, SuggestionStatus.REJECTED)


class EditSuggestion(Base, AuditMixin):
    __tablename__ = "edit_suggestions"

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    field_name = Column(String, nullable=False)
    current_value = Column(JSONType, nullable=True)
    suggested_value = Column(JSONType, nullable=True)
    reason = Column(Text, nullable=True)

    # Evidence carried by the suggester, used when the approver supplies none
    supporting_quote = Column(Text, nullable=True)
    source_url = Column(String, nullable=True)
    source_title = Column(String, nullable=True)

    suggested_by = Column(ForeignKey("users.id"), nullable=True)
    status = Column(SAEnum(SuggestionStatus), default=SuggestionStatus.PENDING, nullable=False, index=True)

    first_reviewed_by = Column(ForeignKey("users.id"), nullable=True)
    first_reviewed_at = Column(DateTime, nullable=True)
    first_review_decision = Column(String, nullable=True)
    first_review_notes = Column(Text, nullable=True)
    second_reviewed_by = Column(ForeignKey("users.id"), nullable=True)
    second_reviewed_at = Column(DateTime, nullable=True)
    second_review_decision = Column(String, nullable=True)
    second_review_notes = Column(Text, nullable=True)

    applied_at = Column(DateTime, nullable=True)
    applied_by = Column(ForeignKey("users.id"), nullable=True)
    evidence_quote_id = Column(ForeignKey("quotes.id"), nullable=True)
