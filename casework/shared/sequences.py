from sqlalchemy import Column, String, Integer, select
from sqlalchemy.ext.asyncio import AsyncSession

from casework.database import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)


async def next_value(db: AsyncSession, name: str, floor: int = 0) -> int:
    """Allocate the next value of a named counter under a row lock.

    ``floor`` lets callers seed a fresh counter from data that predates it
    (e.g. the highest id already stored in the table it numbers).
    """
    result = await db.execute(
        select(SequenceCounter).where(SequenceCounter.name == name).with_for_update()
    )
    counter = result.scalar_one_or_none()
    if counter is None:
        counter = SequenceCounter(name=name, value=0)
        db.add(counter)
    counter.value = max(counter.value or 0, floor) + 1
    await db.flush()
    return counter.value
