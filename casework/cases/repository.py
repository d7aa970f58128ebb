from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from casework.cases.models import CaseRecord
from casework.shared.errors import NotFoundError


async def get_case(db: AsyncSession, case_id: UUID, lock: bool = False) -> CaseRecord:
    """Load a case, optionally taking its row lock for the current transaction.

    Every state transition loads with ``lock=True`` so the guard checks and
    the writes that follow see a state no concurrent writer can change.
    """
    stmt = select(CaseRecord).where(CaseRecord.id == case_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    case = result.scalars().first()
    if case is None:
        raise NotFoundError("Case not found")
    return case
