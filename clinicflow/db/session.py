from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from clinicflow.config.config import settings

engine = create_async_engine(
    settings.DATABASE_URL, future=True, echo=settings.DB_ECHO)
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)
