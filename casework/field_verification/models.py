from enum import Enum
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from casework.database import Base
from casework.shared.models import AuditMixin, JSONType


class FieldVerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    FIRST_REVIEW = "first_review"
    VERIFIED = "verified"


class FieldVerification(Base, AuditMixin):
    __tablename__ = "field_verifications"
    __table_args__ = (UniqueConstraint("case_id", "field_name", name="uq_field_verification"),)

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    field_name = Column(String, nullable=False)
    field_value = Column(JSONType, nullable=True)

    first_verified_by = Column(ForeignKey("users.id"), nullable=True)
    first_verified_at = Column(DateTime, nullable=True)
    first_verification_notes = Column(Text, nullable=True)
    first_verification_source_ids = Column(JSONType, nullable=True)

    second_verified_by = Column(ForeignKey("users.id"), nullable=True)
    second_verified_at = Column(DateTime, nullable=True)
    second_verification_notes = Column(Text, nullable=True)
    second_verification_source_ids = Column(JSONType, nullable=True)

    verification_status = Column(
        SAEnum(FieldVerificationStatus),
        default=FieldVerificationStatus.UNVERIFIED,
        nullable=False,
    )
    # Set when a review cycle-back or unpublish voids earlier verifications
    invalidated_at = Column(DateTime, nullable=True)
