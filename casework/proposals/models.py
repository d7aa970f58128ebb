from enum import Enum
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Uuid
from sqlalchemy import Enum as SAEnum
from casework.database import Base
from casework.shared.models import AuditMixin, JSONType


class ProposalStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    PENDING_VALIDATION = "pending_validation"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProposedChange(Base, AuditMixin):
    __tablename__ = "proposed_changes"

    entity_type = Column(String, nullable=False, index=True)
    # No foreign key: the proposal outlives a deleted entity
    entity_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    proposed_data = Column(JSONType, nullable=False)
    changed_fields = Column(JSONType, nullable=False)
    change_summary = Column(Text, nullable=True)

    submitted_by = Column(ForeignKey("users.id"), nullable=True)
    status = Column(SAEnum(ProposalStatus), default=ProposalStatus.PENDING_REVIEW, nullable=False, index=True)

    reviewed_by = Column(ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_notes = Column(Text, nullable=True)
    validated_by = Column(ForeignKey("users.id"), nullable=True)
    validated_at = Column(DateTime, nullable=True)
    validation_notes = Column(Text, nullable=True)
    applied_at = Column(DateTime, nullable=True)
