from enum import Enum
from sqlalchemy import Column, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from casework.database import Base
from casework.shared.models import AuditMixin, JSONType


class HistoryAction(str, Enum):
    SUBMITTED = "submitted"
    FIRST_REVIEW = "first_review"
    SECOND_REVIEW = "second_review"
    FIRST_VALIDATION = "first_validation"
    VERIFIED = "verified"
    RETURNED_TO_REVIEW = "returned_to_review"
    REJECTED = "rejected"
    UNPUBLISHED = "unpublished"
    FIELD_VERIFIED = "field_verified"
    EDIT_APPROVED = "edit_approved"
    EDIT_REJECTED = "edit_rejected"
    PROPOSAL_APPLIED = "proposal_applied"
    VERIFICATION_REQUESTED = "verification_requested"
    VERIFICATION_ASSIGNED = "verification_assigned"
    VERIFICATION_PASSED = "verification_passed"
    VERIFICATION_PARTIAL = "verification_partial"
    VERIFICATION_FAILED = "verification_failed"
    VERIFICATION_REJECTED = "verification_rejected"
    VERIFICATION_NEEDS_REVISION = "verification_needs_revision"


class VerificationHistoryEntry(Base, AuditMixin):
    __tablename__ = "verification_history"
    __table_args__ = (
        UniqueConstraint("case_id", "verification_number", name="uq_history_case_number"),
    )

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    verification_number = Column(Integer, nullable=False)
    action = Column(SAEnum(HistoryAction), nullable=False)
    performed_by = Column(ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    detail = Column(JSONType, nullable=True)
