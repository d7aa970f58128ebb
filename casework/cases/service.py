import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from casework.audit.models import HistoryAction, VerificationHistoryEntry
from casework.audit.service import HistoryService
from casework.auth.capabilities import ensure_distinct
from casework.auth.models import User
from casework.cases import fields as field_registry
from casework.cases.models import CaseRecord, CaseStatus, IssueFieldType, RecordType, ValidationIssue
from casework.cases.repository import get_case
from casework.cases.schemas import CaseCreate, IssueInput
from casework.field_verification.service import FieldVerificationService
from casework.shared.errors import StateConflictError, ValidationError
from casework.shared.models import utcnow
from casework.shared.sequences import next_value
from casework.shared.transactions import atomic

logger = logging.getLogger(__name__)

VALIDATION_STATUSES = (CaseStatus.SECOND_REVIEW, CaseStatus.FIRST_VALIDATION)
REJECTABLE_STATUSES = (
    CaseStatus.PENDING_REVIEW,
    CaseStatus.FIRST_REVIEW,
    CaseStatus.SECOND_REVIEW,
    CaseStatus.FIRST_VALIDATION,
)


def apply_field_updates(case: CaseRecord, updates: Mapping[str, Any]) -> List[str]:
    """Write named values onto the case through the field registry.

    This is the only path by which workflows change case fields. Every name is
    resolved and coerced before anything is assigned, so an unknown name or a
    bad value leaves the case untouched.
    """
    new_fields = dict(case.fields or {})
    for name, value in updates.items():
        field_registry.get_field(case.record_type, name).setter(new_fields, value)
    case.fields = new_fields
    return list(updates)


def _clear_validation(case: CaseRecord) -> None:
    case.first_validated_by = None
    case.first_validated_at = None
    case.second_validated_by = None
    case.second_validated_at = None


class CaseService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.history = HistoryService(db)

    async def submit(self, case_in: CaseCreate, actor: User) -> CaseRecord:
        case_fields = field_registry.build_fields(case_in.record_type, case_in.fields)
        async with atomic(self.db, "submit_case", actor=actor.id):
            case = CaseRecord(
                record_type=case_in.record_type,
                title=case_in.title,
                fields=case_fields,
                status=CaseStatus.PENDING_REVIEW,
                submitted_by=actor.id,
                submitted_at=utcnow(),
                review_cycle=1,
            )
            self.db.add(case)
            await self.db.flush()
            await self.history.record(case.id, HistoryAction.SUBMITTED, actor.id)
        logger.info(f"Case {case.id} submitted by {actor.id}")
        return case

    async def get(self, case_id: UUID) -> CaseRecord:
        return await get_case(self.db, case_id)

    async def list_cases(
        self,
        status: Optional[CaseStatus] = None,
        record_type: Optional[RecordType] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[CaseRecord]:
        """Review queue: cases that came back from validation sort first."""
        stmt = select(CaseRecord)
        if status:
            stmt = stmt.where(CaseRecord.status == status)
        if record_type:
            stmt = stmt.where(CaseRecord.record_type == record_type)
        stmt = stmt.order_by(CaseRecord.review_cycle.desc(), CaseRecord.submitted_at).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def history_for(self, case_id: UUID) -> List[VerificationHistoryEntry]:
        await get_case(self.db, case_id)
        return await self.history.list_for_case(case_id)

    async def validation_issues(self, case_id: UUID, include_resolved: bool = False) -> List[ValidationIssue]:
        await get_case(self.db, case_id)
        stmt = select(ValidationIssue).where(ValidationIssue.case_id == case_id)
        if not include_resolved:
            stmt = stmt.where(ValidationIssue.resolved_at.is_(None))
        stmt = stmt.order_by(ValidationIssue.validation_session_id.desc(), ValidationIssue.created_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _resolve_open_issues(self, case_id: UUID) -> None:
        await self.db.execute(
            update(ValidationIssue)
            .where(ValidationIssue.case_id == case_id, ValidationIssue.resolved_at.is_(None))
            .values(resolved_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )

    async def review(self, case_id: UUID, actor: User, notes: Optional[str] = None) -> Dict[str, Any]:
        async with atomic(self.db, "review_case", case_id=case_id, actor=actor.id):
            case = await get_case(self.db, case_id, lock=True)
            ensure_distinct(actor, case.submitted_by, "Cannot review your own submission")
            now = utcnow()

            if case.status == CaseStatus.PENDING_REVIEW:
                case.first_reviewed_by = actor.id
                case.first_reviewed_at = now
                case.status = CaseStatus.FIRST_REVIEW
                action, message = HistoryAction.FIRST_REVIEW, "First review recorded. Awaiting second review."
            elif case.status == CaseStatus.FIRST_REVIEW:
                ensure_distinct(
                    actor,
                    case.first_reviewed_by,
                    "You have already reviewed this case. A different analyst must provide the second review.",
                )
                case.second_reviewed_by = actor.id
                case.second_reviewed_at = now
                case.status = CaseStatus.SECOND_REVIEW
                await self._resolve_open_issues(case.id)
                action, message = HistoryAction.SECOND_REVIEW, "Second review recorded. Ready for validation."
            else:
                raise StateConflictError(f"Cannot review a case in status {case.status.value}")

            await self.history.record(case.id, action, actor.id, notes=notes)
        logger.info(f"Case {case_id} moved to {case.status.value} by {actor.id}")
        return {"message": message, "case": case}

    async def validate(self, case_id: UUID, actor: User, notes: Optional[str] = None,
                       issues: Sequence[IssueInput] = ()) -> Dict[str, Any]:
        if issues:
            raise ValidationError("Issues can only be supplied when returning a case to review")

        async with atomic(self.db, "validate_case", case_id=case_id, actor=actor.id):
            case = await get_case(self.db, case_id, lock=True)
            if case.status not in VALIDATION_STATUSES:
                raise StateConflictError(
                    "Case must be in second_review or first_validation status to validate"
                )
            ensure_distinct(actor, case.submitted_by, "Cannot validate your own submission")
            now = utcnow()

            if case.status == CaseStatus.SECOND_REVIEW:
                case.first_validated_by = actor.id
                case.first_validated_at = now
                case.status = CaseStatus.FIRST_VALIDATION
                action, message = HistoryAction.FIRST_VALIDATION, "First validation recorded. Awaiting second validation."
            else:
                ensure_distinct(
                    actor,
                    case.first_validated_by,
                    "You have already validated this case. A different analyst must provide the second validation.",
                )
                case.second_validated_by = actor.id
                case.second_validated_at = now
                case.status = CaseStatus.VERIFIED
                case.verified = True
                action, message = HistoryAction.VERIFIED, "Case verified and published."

            await self.history.record(case.id, action, actor.id, notes=notes)
        logger.info(f"Case {case_id} moved to {case.status.value} by {actor.id}")
        return {"message": message, "case": case}

    @staticmethod
    def _check_issues(issues: Sequence[IssueInput]) -> List[IssueInput]:
        if not issues:
            raise ValidationError("At least one validation issue is required to return a case to review")
        allowed = {t.value for t in IssueFieldType}
        for issue in issues:
            if issue.field_type not in allowed:
                raise ValidationError(
                    f"Invalid field_type '{issue.field_type}'. Must be one of: {', '.join(sorted(allowed))}"
                )
            if not (issue.field_name or "").strip():
                raise ValidationError("Each issue requires a field_name")
            if not (issue.reason or "").strip():
                raise ValidationError("Each issue requires a reason")
        return list(issues)

    async def return_to_review(self, case_id: UUID, actor: User, issues: Sequence[IssueInput],
                               notes: Optional[str] = None) -> Dict[str, Any]:
        issues = self._check_issues(issues)

        async with atomic(self.db, "return_case_to_review", case_id=case_id, actor=actor.id):
            case = await get_case(self.db, case_id, lock=True)
            if case.status not in VALIDATION_STATUSES:
                raise StateConflictError(
                    "Case must be in second_review or first_validation status to return to review"
                )
            ensure_distinct(actor, case.submitted_by, "Cannot validate your own submission")

            highest = await self.db.execute(select(func.max(ValidationIssue.validation_session_id)))
            session_id = await next_value(self.db, "validation_session_id", floor=highest.scalar() or 0)
            for issue in issues:
                self.db.add(ValidationIssue(
                    case_id=case.id,
                    validation_session_id=session_id,
                    field_type=IssueFieldType(issue.field_type),
                    field_name=issue.field_name.strip(),
                    issue_reason=issue.reason.strip(),
                    created_by=actor.id,
                ))

            case.status = CaseStatus.FIRST_REVIEW
            case.second_reviewed_by = None
            case.second_reviewed_at = None
            _clear_validation(case)
            case.review_cycle = (case.review_cycle or 1) + 1
            await FieldVerificationService(self.db).invalidate_for_case(case)
            await self.history.record(
                case.id,
                HistoryAction.RETURNED_TO_REVIEW,
                actor.id,
                notes=notes,
                detail={"validation_session_id": session_id, "issue_count": len(issues)},
            )
        logger.info(f"Case {case_id} returned to review by {actor.id} (session {session_id})")
        return {
            "message": f"Returned to review with {len(issues)} issue(s)",
            "case": case,
            "validation_session_id": session_id,
        }

    async def reject(self, case_id: UUID, actor: User, reason: Optional[str]) -> Dict[str, Any]:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("rejection_reason is required")

        async with atomic(self.db, "reject_case", case_id=case_id, actor=actor.id):
            case = await get_case(self.db, case_id, lock=True)
            if case.status not in REJECTABLE_STATUSES:
                raise StateConflictError(f"Cannot reject a case in status {case.status.value}")
            case.status = CaseStatus.REJECTED
            case.verified = False
            case.rejection_reason = reason
            case.rejected_by = actor.id
            case.rejected_at = utcnow()
            await self.history.record(case.id, HistoryAction.REJECTED, actor.id, notes=reason)
        logger.info(f"Case {case_id} rejected by {actor.id}")
        return {"message": "Case rejected", "case": case}

    async def unpublish(self, case_id: UUID, actor: User, reason: Optional[str]) -> Dict[str, Any]:
        """Pull a verified case back into the review pipeline."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required to unpublish")

        async with atomic(self.db, "unpublish_case", case_id=case_id, actor=actor.id):
            case = await get_case(self.db, case_id, lock=True)
            if case.status != CaseStatus.VERIFIED:
                raise StateConflictError("Only verified cases can be unpublished")
            case.status = CaseStatus.PENDING_REVIEW
            case.verified = False
            case.review_cycle = (case.review_cycle or 1) + 1
            case.first_reviewed_by = None
            case.first_reviewed_at = None
            case.second_reviewed_by = None
            case.second_reviewed_at = None
            _clear_validation(case)
            await FieldVerificationService(self.db).invalidate_for_case(case)
            await self.history.record(case.id, HistoryAction.UNPUBLISHED, actor.id, notes=reason)
        logger.info(f"Case {case_id} unpublished by {actor.id}")
        return {"message": "Case unpublished and returned to review", "case": case}
