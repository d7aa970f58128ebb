from enum import Enum
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey
from sqlalchemy import Enum as SAEnum
from casework.database import Base
from casework.shared.models import AuditMixin, JSONType


class RecordType(str, Enum):
    INCIDENT = "incident"
    STATEMENT = "statement"


class CaseStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    FIRST_REVIEW = "first_review"
    SECOND_REVIEW = "second_review"
    FIRST_VALIDATION = "first_validation"
    VERIFIED = "verified"
    REJECTED = "rejected"


class FieldVerificationAggregate(str, Enum):
    PENDING = "pending"
    FIRST_REVIEW = "first_review"
    VERIFIED = "verified"


class IssueFieldType(str, Enum):
    FIELD = "field"
    QUOTE = "quote"
    TIMELINE = "timeline"
    SOURCE = "source"


class CaseRecord(Base, AuditMixin):
    __tablename__ = "case_records"

    record_type = Column(SAEnum(RecordType), nullable=False, index=True)
    title = Column(String, nullable=True)
    fields = Column(JSONType, nullable=False, default=dict)

    status = Column(SAEnum(CaseStatus), default=CaseStatus.PENDING_REVIEW, nullable=False, index=True)
    submitted_by = Column(ForeignKey("users.id"), nullable=True)
    submitted_at = Column(DateTime, nullable=True)

    first_reviewed_by = Column(ForeignKey("users.id"), nullable=True)
    first_reviewed_at = Column(DateTime, nullable=True)
    second_reviewed_by = Column(ForeignKey("users.id"), nullable=True)
    second_reviewed_at = Column(DateTime, nullable=True)
    first_validated_by = Column(ForeignKey("users.id"), nullable=True)
    first_validated_at = Column(DateTime, nullable=True)
    second_validated_by = Column(ForeignKey("users.id"), nullable=True)
    second_validated_at = Column(DateTime, nullable=True)

    verified = Column(Boolean, default=False, nullable=False)
    rejection_reason = Column(Text, nullable=True)
    rejected_by = Column(ForeignKey("users.id"), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    review_cycle = Column(Integer, default=1, nullable=False)

    field_verification_status = Column(
        SAEnum(FieldVerificationAggregate),
        default=FieldVerificationAggregate.PENDING,
        nullable=False,
    )

    # Third-party verification outcome
    verification_level = Column(Integer, nullable=True)
    verification_scope = Column(String, nullable=True)
    verification_date = Column(DateTime, nullable=True)
    verified_data_hash = Column(String, nullable=True)


class ValidationIssue(Base, AuditMixin):
    __tablename__ = "validation_issues"

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    validation_session_id = Column(Integer, nullable=False, index=True)
    field_type = Column(SAEnum(IssueFieldType), nullable=False)
    field_name = Column(String, nullable=False)
    issue_reason = Column(Text, nullable=False)
    created_by = Column(ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
