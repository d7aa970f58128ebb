import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from casework.audit.models import HistoryAction, VerificationHistoryEntry

logger = logging.getLogger(__name__)


class HistoryService:
    """Append-only verification history, numbered per case."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        case_id: UUID,
        action: HistoryAction,
        performed_by: Optional[UUID],
        notes: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> VerificationHistoryEntry:
        """Append an entry with the next verification number.

        Callers hold the case row lock (``SELECT ... FOR UPDATE``) for the
        whole transaction, so the max+1 read cannot race; the unique
        (case, number) constraint rejects anything that slips through.
        """
        result = await self.db.execute(
            select(func.max(VerificationHistoryEntry.verification_number))
            .where(VerificationHistoryEntry.case_id == case_id)
        )
        number = (result.scalar() or 0) + 1
        entry = VerificationHistoryEntry(
            case_id=case_id,
            verification_number=number,
            action=action,
            performed_by=performed_by,
            notes=notes,
            detail=detail,
        )
        self.db.add(entry)
        await self.db.flush()
        logger.debug(f"History #{number} {action.value} on case {case_id}")
        return entry

    async def list_for_case(self, case_id: UUID) -> List[VerificationHistoryEntry]:
        result = await self.db.execute(
            select(VerificationHistoryEntry)
            .where(VerificationHistoryEntry.case_id == case_id)
            .order_by(VerificationHistoryEntry.verification_number)
        )
        return list(result.scalars().all())
