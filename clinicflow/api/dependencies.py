from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.clock import Clock, IdGenerator, SystemClock
from clinicflow.db.session import AsyncSessionLocal


_clock = SystemClock()
_ids = IdGenerator(_clock)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; services own commit and rollback."""
    async with AsyncSessionLocal() as session:
        yield session


def get_clock() -> Clock:
    return _clock


def get_id_generator() -> IdGenerator:
    """Process-wide generator so its sequence stays monotonic across requests."""
    return _ids
