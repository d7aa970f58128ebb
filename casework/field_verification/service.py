import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from casework.audit.models import HistoryAction
from casework.audit.service import HistoryService
from casework.auth.capabilities import ensure_distinct, is_elevated
from casework.auth.models import User
from casework.cases import fields as field_registry
from casework.cases.models import CaseRecord, CaseStatus, FieldVerificationAggregate
from casework.cases.repository import get_case
from casework.evidence.service import EvidenceLedger
from casework.field_verification.models import FieldVerification, FieldVerificationStatus
from casework.shared.errors import AuthorizationError, StateConflictError, ValidationError
from casework.shared.models import utcnow
from casework.shared.transactions import atomic

logger = logging.getLogger(__name__)


def aggregate_status(statuses: Sequence[FieldVerificationStatus]) -> FieldVerificationAggregate:
    if statuses and all(s == FieldVerificationStatus.VERIFIED for s in statuses):
        return FieldVerificationAggregate.VERIFIED
    if any(s == FieldVerificationStatus.FIRST_REVIEW for s in statuses):
        return FieldVerificationAggregate.FIRST_REVIEW
    return FieldVerificationAggregate.PENDING


class FieldVerificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, case_id: UUID, field_name: str) -> Optional[FieldVerification]:
        result = await self.db.execute(
            select(FieldVerification)
            .where(FieldVerification.case_id == case_id, FieldVerification.field_name == field_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_for_case(self, case_id: UUID) -> List[FieldVerification]:
        result = await self.db.execute(
            select(FieldVerification)
            .where(FieldVerification.case_id == case_id)
            .order_by(FieldVerification.field_name)
        )
        return list(result.scalars().all())

    async def refresh_aggregate(self, case: CaseRecord) -> FieldVerificationAggregate:
        result = await self.db.execute(
            select(FieldVerification.verification_status)
            .where(FieldVerification.case_id == case.id)
        )
        case.field_verification_status = aggregate_status(
            [FieldVerificationStatus(s) for s in result.scalars().all()]
        )
        await self.db.flush()
        return case.field_verification_status

    async def invalidate_for_case(self, case: CaseRecord) -> None:
        """Void every standing verification on the case; rows are kept."""
        await self.db.execute(
            update(FieldVerification)
            .where(
                FieldVerification.case_id == case.id,
                FieldVerification.verification_status != FieldVerificationStatus.UNVERIFIED,
            )
            .values(verification_status=FieldVerificationStatus.UNVERIFIED, invalidated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        case.field_verification_status = FieldVerificationAggregate.PENDING
        await self.db.flush()

    async def invalidate_field(self, case: CaseRecord, field_name: str) -> None:
        """Void the verification of one field whose value was just changed."""
        row = await self._get_row(case.id, field_name)
        if row is None or row.verification_status == FieldVerificationStatus.UNVERIFIED:
            return
        row.verification_status = FieldVerificationStatus.UNVERIFIED
        row.invalidated_at = utcnow()
        await self.db.flush()
        await self.refresh_aggregate(case)

    async def _check_sources(self, case_id: UUID, source_ids: Sequence[UUID]) -> List[str]:
        ledger = EvidenceLedger(self.db)
        for source_id in source_ids:
            await ledger.get_source(case_id, source_id)
        return [str(s) for s in source_ids]

    async def verify_field(
        self,
        case_id: UUID,
        field_name: str,
        actor: User,
        notes: Optional[str] = None,
        source_ids: Sequence[UUID] = (),
    ) -> Dict[str, Any]:
        """Record one half of the two-person verification of a field.

        The first call snapshots the current value; the second must come from
        a different actor unless elevated.
        """
        if not field_name:
            raise ValidationError("field_name is required")

        async with atomic(self.db, "verify_field", case_id=case_id, field=field_name):
            case = await get_case(self.db, case_id, lock=True)
            field_registry.get_field(case.record_type, field_name)
            if case.status == CaseStatus.REJECTED:
                raise StateConflictError("Cannot verify fields on a rejected case")
            ensure_distinct(actor, case.submitted_by, "Cannot verify fields on your own submission")

            refs = await self._check_sources(case_id, source_ids)
            row = await self._get_row(case_id, field_name)
            now = utcnow()

            if row is None or row.verification_status == FieldVerificationStatus.UNVERIFIED:
                if row is None:
                    row = FieldVerification(case_id=case_id, field_name=field_name)
                    self.db.add(row)
                row.field_value = (case.fields or {}).get(field_name)
                row.first_verified_by = actor.id
                row.first_verified_at = now
                row.first_verification_notes = notes
                row.first_verification_source_ids = refs
                row.second_verified_by = None
                row.second_verified_at = None
                row.second_verification_notes = None
                row.second_verification_source_ids = None
                row.verification_status = FieldVerificationStatus.FIRST_REVIEW
                stage, message = "first", "First verification recorded"
            elif row.verification_status == FieldVerificationStatus.FIRST_REVIEW:
                if row.first_verified_by == actor.id and not is_elevated(actor):
                    logger.warning(f"User {actor.id} attempted both verifications of {field_name} on case {case_id}")
                    raise AuthorizationError(
                        "Cannot provide both verifications. A different analyst must verify."
                    )
                row.second_verified_by = actor.id
                row.second_verified_at = now
                row.second_verification_notes = notes
                row.second_verification_source_ids = refs
                row.verification_status = FieldVerificationStatus.VERIFIED
                stage, message = "second", "Field fully verified"
            else:
                raise StateConflictError("Field is already fully verified")

            await self.db.flush()
            aggregate = await self.refresh_aggregate(case)
            await HistoryService(self.db).record(
                case.id,
                HistoryAction.FIELD_VERIFIED,
                actor.id,
                notes=notes,
                detail={"field_name": field_name, "stage": stage},
            )

        logger.info(f"{message} for {field_name} on case {case_id} by {actor.id}")
        return {"message": message, "verification": row, "case_verification_status": aggregate}
