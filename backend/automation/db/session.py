from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import sessionmaker

from automation.core.config import settings


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    """Build an async session factory bound to ``engine``."""
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


# Create async engine
engine = create_async_engine(
    settings.DATABASE_URI,
    pool_pre_ping=True,
    echo=settings.DATABASE_ECHO,
)

# Create async session factory
SessionLocal = create_session_factory(engine)


async def get_db():
    """
    Dependency function to get a DB session.
    Yields a session that is automatically closed when the context ends.
    """
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
