import logging
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from casework.audit.models import HistoryAction
from casework.audit.service import HistoryService
from casework.auth.capabilities import ensure_distinct
from casework.auth.models import User
from casework.cases import fields as field_registry
from casework.cases.models import CaseRecord, RecordType
from casework.cases.repository import get_case
from casework.cases.service import apply_field_updates
from casework.diff.engine import EVIDENCE_COLLECTIONS, changed_fields, diff_preview, evidence_changes
from casework.evidence.models import Source
from casework.evidence.service import EvidenceLedger
from casework.field_verification.service import FieldVerificationService
from casework.proposals.models import ProposalStatus, ProposedChange
from casework.proposals.schemas import ProposalCreate
from casework.shared.errors import NotFoundError, StateConflictError, ValidationError
from casework.shared.models import utcnow
from casework.shared.transactions import atomic

logger = logging.getLogger(__name__)

ENTITY_TYPES = {t.value for t in RecordType}
PENDING_STATUSES = (ProposalStatus.PENDING_REVIEW, ProposalStatus.PENDING_VALIDATION)


def _as_uuid(value: Any, label: str) -> Optional[UUID]:
    if value in (None, ""):
        return None
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {label}: {value}")


class ProposedChangeService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = EvidenceLedger(db)

    async def _get_entity(self, entity_type: str, entity_id: UUID, lock: bool = False) -> CaseRecord:
        try:
            case = await get_case(self.db, entity_id, lock=lock)
        except NotFoundError:
            raise NotFoundError(f"{entity_type.capitalize()} not found")
        if case.record_type.value != entity_type:
            raise NotFoundError(f"{entity_type.capitalize()} not found")
        return case

    async def _snapshot(self, case: CaseRecord) -> Dict[str, Any]:
        """Live field map over the whole registry plus live evidence."""
        snapshot = {
            name: (case.fields or {}).get(name)
            for name in field_registry.FIELD_REGISTRY[case.record_type.value]
        }
        snapshot["quotes"] = await self.ledger.list_quotes(case.id)
        snapshot["sources"] = await self.ledger.list_sources(case.id)
        return snapshot

    @staticmethod
    def _changes(snapshot: Mapping[str, Any], proposed: Mapping[str, Any]) -> List[str]:
        scalar = {k: v for k, v in snapshot.items() if k not in EVIDENCE_COLLECTIONS}
        return changed_fields(scalar, proposed) + evidence_changes(
            snapshot["quotes"], snapshot["sources"], proposed
        )

    async def _get_proposal(self, proposal_id: UUID, lock: bool = False) -> ProposedChange:
        stmt = select(ProposedChange).where(ProposedChange.id == proposal_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        proposal = result.scalars().first()
        if proposal is None:
            raise NotFoundError("Proposed change not found")
        return proposal

    async def create(self, proposal_in: ProposalCreate, actor: User) -> ProposedChange:
        if not proposal_in.entity_type or not proposal_in.entity_id or not proposal_in.proposed_data:
            raise ValidationError("Missing required fields: entity_type, entity_id, proposed_data")
        if proposal_in.entity_type not in ENTITY_TYPES:
            raise ValidationError("entity_type must be incident or statement")

        proposed = field_registry.fold_legacy_aliases(proposal_in.proposed_data)
        for collection in EVIDENCE_COLLECTIONS:
            self._evidence_items(proposed, collection)
        async with atomic(self.db, "create_proposed_change", entity_id=proposal_in.entity_id):
            case = await self._get_entity(proposal_in.entity_type, proposal_in.entity_id)
            changed = self._changes(await self._snapshot(case), proposed)
            if not changed:
                raise ValidationError("No changes detected. Proposed data is identical to original.")
            await self._check_applicable(case, proposed, changed)

            proposal = ProposedChange(
                entity_type=proposal_in.entity_type,
                entity_id=case.id,
                proposed_data=proposed,
                changed_fields=changed,
                change_summary=proposal_in.change_summary,
                submitted_by=actor.id,
                status=ProposalStatus.PENDING_REVIEW,
            )
            self.db.add(proposal)
            await self.db.flush()
        logger.info(f"Proposed change {proposal.id} on {case.id} ({', '.join(changed)}) by {actor.id}")
        return proposal

    async def _check_applicable(self, case: CaseRecord, proposed: Mapping[str, Any], changed: List[str]) -> None:
        """Refuse a proposal that could never be applied.

        Changed values must coerce through the field registry, and evidence
        items must carry well-formed ids that belong to this case.
        """
        scratch: Dict[str, Any] = {}
        for name in changed:
            if name not in EVIDENCE_COLLECTIONS:
                field_registry.get_field(case.record_type, name).setter(scratch, proposed.get(name))

        if "sources" in changed:
            for item in self._evidence_items(proposed, "sources"):
                source_id = _as_uuid(item.get("id"), "source id")
                if source_id is not None:
                    await self._owned(self.ledger.get_source, case, source_id, "Source")

        if "quotes" in changed:
            for item in self._evidence_items(proposed, "quotes"):
                for field_name in item.get("linked_fields") or []:
                    field_registry.get_field(case.record_type, field_name)
                quote_id = _as_uuid(item.get("id"), "quote id")
                if quote_id is not None:
                    await self._owned(self.ledger.get_quote, case, quote_id, "Quote")
                source_id = _as_uuid(item.get("source_id"), "source id")
                if source_id is not None:
                    await self._owned(self.ledger.get_source, case, source_id, "Source")

    @staticmethod
    def _evidence_items(proposed: Mapping[str, Any], collection: str) -> List[Mapping[str, Any]]:
        items = proposed.get(collection) or []
        if not isinstance(items, list) or not all(isinstance(item, Mapping) for item in items):
            raise ValidationError(f"{collection} must be a list of objects")
        for item in items:
            if not isinstance(item.get("linked_fields") or [], list):
                raise ValidationError("linked_fields must be a list of field names")
        return items

    @staticmethod
    async def _owned(lookup, case: CaseRecord, item_id: UUID, label: str) -> None:
        try:
            await lookup(case.id, item_id)
        except NotFoundError:
            raise ValidationError(f"{label} {item_id} does not belong to this record")

    async def list_proposals(
        self,
        status: Optional[ProposalStatus] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        filters = []
        if status:
            filters.append(ProposedChange.status == status)
        if entity_type:
            filters.append(ProposedChange.entity_type == entity_type)
        if entity_id:
            filters.append(ProposedChange.entity_id == entity_id)

        result = await self.db.execute(
            select(ProposedChange)
            .where(*filters)
            .order_by(ProposedChange.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.execute(select(func.count()).select_from(ProposedChange).where(*filters))
        return {
            "proposals": list(result.scalars().all()),
            "total": total.scalar() or 0,
            "limit": limit,
            "offset": offset,
        }

    async def detail(self, proposal_id: UUID) -> Dict[str, Any]:
        proposal = await self._get_proposal(proposal_id)
        try:
            case = await self._get_entity(proposal.entity_type, proposal.entity_id)
        except NotFoundError:
            return {"proposal": proposal, "original": None, "original_deleted": True, "diff": None}
        original = await self._snapshot(case)
        return {
            "proposal": proposal,
            "original": original,
            "original_deleted": False,
            "diff": diff_preview(original, proposal.proposed_data, proposal.changed_fields),
        }

    async def perform(self, proposal_id: UUID, action: str, actor: User,
                      notes: Optional[str] = None) -> Dict[str, Any]:
        handlers = {
            "approve_for_validation": self._approve_for_validation,
            "validate": self._validate,
            "reject": self._reject,
            "reopen": self._reopen,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValidationError(f"Invalid action. Must be one of: {', '.join(handlers)}")

        async with atomic(self.db, f"{action}_proposed_change", proposal_id=proposal_id, actor=actor.id):
            proposal = await self._get_proposal(proposal_id, lock=True)
            message = await handler(proposal, actor, notes)
            await self.db.flush()
        logger.info(f"Proposed change {proposal_id} -> {proposal.status.value} by {actor.id}")
        return {"message": message, "proposal": proposal}

    async def _approve_for_validation(self, proposal: ProposedChange, actor: User, notes: Optional[str]) -> str:
        if proposal.status != ProposalStatus.PENDING_REVIEW:
            raise StateConflictError("Can only approve proposals that are pending review")
        ensure_distinct(actor, proposal.submitted_by, "Cannot review your own proposal")
        proposal.reviewed_by = actor.id
        proposal.reviewed_at = utcnow()
        proposal.review_notes = notes
        proposal.status = ProposalStatus.PENDING_VALIDATION
        return "Proposal approved for validation"

    async def _validate(self, proposal: ProposedChange, actor: User, notes: Optional[str]) -> str:
        if proposal.status != ProposalStatus.PENDING_VALIDATION:
            raise StateConflictError("Can only validate proposals that are pending validation")
        ensure_distinct(actor, proposal.submitted_by, "Cannot validate your own proposal")
        ensure_distinct(actor, proposal.reviewed_by, "The reviewer of a proposal cannot also validate it")

        await self._apply(proposal, actor)
        now = utcnow()
        proposal.validated_by = actor.id
        proposal.validated_at = now
        proposal.validation_notes = notes
        proposal.applied_at = now
        proposal.status = ProposalStatus.APPROVED
        return "Proposal validated and applied"

    async def _reject(self, proposal: ProposedChange, actor: User, notes: Optional[str]) -> str:
        if proposal.status not in PENDING_STATUSES:
            raise StateConflictError("Can only reject proposals that are pending review or validation")
        now = utcnow()
        if proposal.status == ProposalStatus.PENDING_REVIEW:
            proposal.reviewed_by = actor.id
            proposal.reviewed_at = now
            proposal.review_notes = notes
        else:
            proposal.validated_by = actor.id
            proposal.validated_at = now
            proposal.validation_notes = notes
        proposal.status = ProposalStatus.REJECTED
        return "Proposal rejected"

    async def _reopen(self, proposal: ProposedChange, actor: User, notes: Optional[str]) -> str:
        if proposal.status != ProposalStatus.REJECTED:
            raise StateConflictError("Can only reopen rejected proposals")
        note = f"[Reopened by {actor.email} at {utcnow().isoformat()}] {notes or ''}".rstrip()
        proposal.review_notes = f"{proposal.review_notes}\n{note}" if proposal.review_notes else note
        proposal.reviewed_by = None
        proposal.reviewed_at = None
        proposal.validated_by = None
        proposal.validated_at = None
        proposal.validation_notes = None
        proposal.status = ProposalStatus.PENDING_REVIEW
        return "Proposal reopened"

    async def _apply(self, proposal: ProposedChange, actor: User) -> None:
        """Write the proposal onto the live record.

        Only changed fields are touched. Evidence items are upserted by id;
        items missing from the proposal are left alone.
        """
        case = await self._get_entity(proposal.entity_type, proposal.entity_id, lock=True)
        proposed = proposal.proposed_data or {}
        changed = proposal.changed_fields or []

        updates = {name: proposed.get(name) for name in changed if name not in EVIDENCE_COLLECTIONS}
        if updates:
            apply_field_updates(case, updates)
            verifications = FieldVerificationService(self.db)
            for name in updates:
                await verifications.invalidate_field(case, name)

        if "sources" in changed:
            for item in proposed.get("sources") or []:
                await self._upsert_source(case, item)
        if "quotes" in changed:
            for item in proposed.get("quotes") or []:
                await self._upsert_quote(case, item)

        await HistoryService(self.db).record(
            case.id,
            HistoryAction.PROPOSAL_APPLIED,
            actor.id,
            notes=proposal.change_summary,
            detail={"proposal_id": str(proposal.id), "changed_fields": list(changed)},
        )

    async def _upsert_source(self, case: CaseRecord, item: Mapping[str, Any]) -> Optional[Source]:
        source_id = _as_uuid(item.get("id"), "source id")
        if source_id is None:
            if not (item.get("url") or "").strip():
                return None
            source = await self.ledger.upsert_source(case.id, item["url"], source_type=item.get("source_type"))
        else:
            source = await self.ledger.get_source(case.id, source_id)
            if item.get("url"):
                source.url = item["url"]
            source.source_type = item.get("source_type") or "news"
        source.title = item.get("title")
        source.publication = item.get("publication")
        await self.db.flush()
        return source

    async def _resolve_quote_source(self, case: CaseRecord, item: Mapping[str, Any]) -> Optional[UUID]:
        source_id = _as_uuid(item.get("source_id"), "source id")
        if source_id is not None:
            return (await self.ledger.get_source(case.id, source_id)).id
        if (item.get("source_url") or "").strip():
            return (await self.ledger.upsert_source(case.id, item["source_url"])).id
        return None

    async def _upsert_quote(self, case: CaseRecord, item: Mapping[str, Any]) -> None:
        linked_fields = item.get("linked_fields") or []
        for field_name in linked_fields:
            field_registry.get_field(case.record_type, field_name)

        quote_id = _as_uuid(item.get("id"), "quote id")
        if quote_id is None:
            if not (item.get("quote_text") or "").strip():
                return
            quote = await self.ledger.create_quote(
                case.id,
                await self._resolve_quote_source(case, item),
                item["quote_text"],
                category=item.get("category"),
                verified=bool(item.get("verified")),
            )
        else:
            quote = await self.ledger.get_quote(case.id, quote_id)
            if (item.get("quote_text") or "").strip():
                quote.quote_text = item["quote_text"]
            quote.category = item.get("category")
            quote.source_id = await self._resolve_quote_source(case, item)
            quote.verified = bool(item.get("verified"))
            await self.db.flush()

        for field_name in linked_fields:
            await self.ledger.link_quote_to_field(case.id, quote.id, field_name)
