"""One-time migration of superseded field names onto their canonical names.

Older records stored the subject under ``victim_name``. New intake folds the
alias automatically; this rewrites the stored rows so nothing downstream ever
sees the old name.
"""
import asyncio
import logging

from sqlalchemy import select

from casework.database import AsyncSessionLocal
from casework.cases.fields import LEGACY_ALIASES, fold_legacy_aliases
from casework.cases.models import CaseRecord

logger = logging.getLogger(__name__)


async def migrate_legacy_aliases(session) -> int:
    result = await session.execute(select(CaseRecord).with_for_update())
    migrated = 0
    for case in result.scalars().all():
        stored = case.fields or {}
        if not any(alias in stored for alias in LEGACY_ALIASES):
            continue
        case.fields = fold_legacy_aliases(stored)
        migrated += 1
    await session.commit()
    return migrated


async def main():
    logging.basicConfig(level=logging.INFO)
    async with AsyncSessionLocal() as session:
        migrated = await migrate_legacy_aliases(session)
    logger.info(f"Migrated legacy field aliases on {migrated} case(s)")

if __name__ == "__main__":
    asyncio.run(main())
