import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from casework.audit.models import HistoryAction
from casework.audit.service import HistoryService
from casework.auth.capabilities import ensure_distinct
from casework.auth.models import User
from casework.cases import fields as field_registry
from casework.cases.models import CaseRecord, CaseStatus
from casework.cases.repository import get_case
from casework.cases.service import apply_field_updates
from casework.diff.engine import values_effectively_equal
from casework.evidence.models import Quote
from casework.evidence.service import EvidenceLedger
from casework.field_verification.service import FieldVerificationService
from casework.shared.errors import EvidenceMissingError, NotFoundError, StateConflictError, ValidationError
from casework.shared.models import utcnow
from casework.shared.transactions import atomic
from casework.suggestions.models import EditSuggestion, FINAL_STATUSES, SuggestionStatus
from casework.suggestions.schemas import SuggestionCreate, SuggestionReview

logger = logging.getLogger(__name__)

STATUS_FILTERS = {
    "pending": [SuggestionStatus.PENDING],
    "first_review": [SuggestionStatus.FIRST_REVIEW],
    "needs_review": [SuggestionStatus.PENDING, SuggestionStatus.FIRST_REVIEW],
    "approved": [SuggestionStatus.APPROVED],
    "rejected": [SuggestionStatus.REJECTED],
    "all": list(SuggestionStatus),
}


class EditSuggestionService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = EvidenceLedger(db)

    async def _get_suggestion(self, suggestion_id: UUID, lock: bool = False) -> EditSuggestion:
        stmt = select(EditSuggestion).where(EditSuggestion.id == suggestion_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        suggestion = result.scalars().first()
        if suggestion is None:
            raise NotFoundError("Suggestion not found")
        return suggestion

    async def get(self, suggestion_id: UUID) -> EditSuggestion:
        return await self._get_suggestion(suggestion_id)

    async def create(self, suggestion_in: SuggestionCreate, actor: User) -> EditSuggestion:
        async with atomic(self.db, "create_edit_suggestion", case_id=suggestion_in.case_id):
            case = await get_case(self.db, suggestion_in.case_id)
            if case.status == CaseStatus.REJECTED:
                raise StateConflictError("Cannot suggest edits to a rejected case")
            spec = field_registry.get_field(case.record_type, suggestion_in.field_name)
            coerced: Dict[str, Any] = {}
            spec.setter(coerced, suggestion_in.suggested_value)

            current_value = (case.fields or {}).get(spec.name)
            if values_effectively_equal(current_value, coerced[spec.name]):
                raise ValidationError("Suggested value is identical to the current value")

            suggestion = EditSuggestion(
                case_id=case.id,
                field_name=spec.name,
                current_value=current_value,
                suggested_value=coerced[spec.name],
                reason=suggestion_in.reason,
                supporting_quote=suggestion_in.supporting_quote,
                source_url=suggestion_in.source_url,
                source_title=suggestion_in.source_title,
                suggested_by=actor.id,
                status=SuggestionStatus.PENDING,
            )
            self.db.add(suggestion)
            await self.db.flush()
        logger.info(f"Edit suggestion {suggestion.id} on {spec.name} for case {case.id} by {actor.id}")
        return suggestion

    async def list_suggestions(
        self,
        status: str = "needs_review",
        case_id: Optional[UUID] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Dict[str, Any]:
        if status not in STATUS_FILTERS:
            raise ValidationError(f"Invalid status filter. Must be one of: {', '.join(STATUS_FILTERS)}")

        stmt = select(EditSuggestion).where(EditSuggestion.status.in_(STATUS_FILTERS[status]))
        if case_id:
            stmt = stmt.where(EditSuggestion.case_id == case_id)
        stmt = stmt.order_by(EditSuggestion.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)

        counts_stmt = select(EditSuggestion.status, func.count()).group_by(EditSuggestion.status)
        if case_id:
            counts_stmt = counts_stmt.where(EditSuggestion.case_id == case_id)
        counts = {SuggestionStatus(s).value: n for s, n in (await self.db.execute(counts_stmt)).all()}
        stats = {s.value: counts.get(s.value, 0) for s in SuggestionStatus}
        return {"suggestions": list(result.scalars().all()), "stats": stats}

    async def _resolve_evidence(self, case: CaseRecord, suggestion: EditSuggestion,
                                review: SuggestionReview) -> Quote:
        """Find the one quote backing an approval.

        An explicit quote id wins, then quote text and source supplied with
        the approval, then the evidence carried on the suggestion itself.
        """
        if review.quote_id:
            return await self.ledger.get_quote(case.id, review.quote_id)

        candidates = [
            (review.quote_text, review.source_url, review.source_title),
            (suggestion.supporting_quote, suggestion.source_url, suggestion.source_title),
        ]
        for quote_text, source_url, source_title in candidates:
            if (quote_text or "").strip() and (source_url or "").strip():
                source = await self.ledger.upsert_source(case.id, source_url, title=source_title)
                return await self.ledger.create_quote(case.id, source.id, quote_text)

        raise EvidenceMissingError(
            "Evidence is required to approve an edit. Provide a quote or quote text with a source URL."
        )

    async def review(self, suggestion_id: UUID, review: SuggestionReview, actor: User) -> Dict[str, Any]:
        async with atomic(self.db, "review_edit_suggestion", suggestion_id=suggestion_id, actor=actor.id):
            suggestion = await self._get_suggestion(suggestion_id, lock=True)
            if suggestion.status in FINAL_STATUSES:
                raise StateConflictError("This suggestion has already been finalized")
            ensure_distinct(actor, suggestion.suggested_by, "You cannot review your own suggestion")
            if suggestion.status == SuggestionStatus.FIRST_REVIEW:
                ensure_distinct(actor, suggestion.first_reviewed_by, "You have already reviewed this suggestion")

            now = utcnow()
            decision = "approved" if review.approved else "rejected"
            is_first = suggestion.status == SuggestionStatus.PENDING
            if is_first:
                suggestion.first_reviewed_by = actor.id
                suggestion.first_reviewed_at = now
                suggestion.first_review_decision = decision
                suggestion.first_review_notes = review.notes
            else:
                suggestion.second_reviewed_by = actor.id
                suggestion.second_reviewed_at = now
                suggestion.second_review_decision = decision
                suggestion.second_review_notes = review.notes

            if not review.approved:
                case = await get_case(self.db, suggestion.case_id, lock=True)
                suggestion.status = SuggestionStatus.REJECTED
                await HistoryService(self.db).record(
                    case.id,
                    HistoryAction.EDIT_REJECTED,
                    actor.id,
                    notes=review.notes,
                    detail={"suggestion_id": str(suggestion.id), "field_name": suggestion.field_name},
                )
                message = "Suggestion rejected"
            elif is_first:
                suggestion.status = SuggestionStatus.FIRST_REVIEW
                message = "First approval recorded. Awaiting second analyst review."
            else:
                case = await get_case(self.db, suggestion.case_id, lock=True)
                quote = await self._resolve_evidence(case, suggestion, review)
                apply_field_updates(case, {suggestion.field_name: suggestion.suggested_value})
                await self.ledger.link_quote_to_field(case.id, quote.id, suggestion.field_name)
                await FieldVerificationService(self.db).invalidate_field(case, suggestion.field_name)

                suggestion.status = SuggestionStatus.APPROVED
                suggestion.applied_at = now
                suggestion.applied_by = actor.id
                suggestion.evidence_quote_id = quote.id
                await HistoryService(self.db).record(
                    case.id,
                    HistoryAction.EDIT_APPROVED,
                    actor.id,
                    notes=f"Applied edit to {suggestion.field_name}",
                    detail={
                        "suggestion_id": str(suggestion.id),
                        "field_name": suggestion.field_name,
                        "quote_id": str(quote.id),
                    },
                )
                message = f"Edit approved and applied to {suggestion.field_name}"

            await self.db.flush()
        logger.info(f"Suggestion {suggestion_id} -> {suggestion.status.value} by {actor.id}")
        return {"message": message, "suggestion": suggestion}
