from enum import Enum
from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy import Enum as SAEnum
from casework.database import Base
from casework.shared.models import AuditMixin, JSONType


class RequestStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    NEEDS_REVISION = "needs_revision"


OPEN_STATUSES = (RequestStatus.PENDING, RequestStatus.IN_PROGRESS, RequestStatus.NEEDS_REVISION)
# Requests that count against a verifier's concurrency cap
ASSIGNED_STATUSES = (RequestStatus.IN_PROGRESS, RequestStatus.NEEDS_REVISION)


class VerificationScope(str, Enum):
    RECORD = "record"
    DATA = "data"


class RequestPriority(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class VerificationOutcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


class ResultItemType(str, Enum):
    FIELD = "field"
    QUOTE = "quote"
    SOURCE = "source"


class VerificationRequest(Base, AuditMixin):
    __tablename__ = "verification_requests"

    case_id = Column(ForeignKey("case_records.id"), nullable=False, index=True)
    requested_by = Column(ForeignKey("users.id"), nullable=True)
    verification_scope = Column(SAEnum(VerificationScope), nullable=False)
    items_to_verify = Column(JSONType, nullable=True)
    priority = Column(SAEnum(RequestPriority), default=RequestPriority.NORMAL, nullable=False)
    request_notes = Column(Text, nullable=True)

    status = Column(SAEnum(RequestStatus), default=RequestStatus.PENDING, nullable=False, index=True)
    assigned_to = Column(ForeignKey("users.id"), nullable=True, index=True)
    assigned_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    verification_result = Column(SAEnum(VerificationOutcome), nullable=True)
    issues_found = Column(JSONType, nullable=True)
    verifier_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)


class VerificationResult(Base, AuditMixin):
    __tablename__ = "verification_results"

    request_id = Column(ForeignKey("verification_requests.id"), nullable=False, index=True)
    item_type = Column(SAEnum(ResultItemType), nullable=False)
    item_id = Column(String, nullable=True)
    field_slug = Column(String, nullable=True)
    verified = Column(Boolean, default=False, nullable=False)
    verified_by = Column(ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    caveats = Column(Text, nullable=True)
    issues = Column(JSONType, nullable=True)
