from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

# The entity store opens one short-lived session per document operation, so
# instances must stay readable after their transaction commits.
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def create_schema(bind: AsyncEngine = engine) -> None:
    """Create every table known to ``Base.metadata`` (no-op for existing ones)."""
    import app.models  # noqa: F401  (registers the mapped classes)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
