import asyncio
import logging
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm import declarative_base
from squadbot.config import settings
from squadbot.errors import PersistenceFailure

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

engine = create_async_engine(DATABASE_URL, echo=settings.DEV_MODE, pool_pre_ping=True)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()

async def get_db():
    async with AsyncSessionLocal() as session:
        yield session

async def init_db(db_engine=None, retries: int = settings.DB_SETUP_RETRIES, delay: float = settings.DB_RETRY_DELAY_SECONDS):
    """Verify the connection and create missing tables, retrying on failure.

    Raises PersistenceFailure once every attempt has failed; the caller decides
    whether the bot keeps running without a database.
    """
    # Register the tables on Base.metadata before create_all
    from squadbot.models import SessionRecord, UserSessionRecord  # noqa: F401

    db_engine = db_engine or engine
    attempt = 0
    while True:
        try:
            async with db_engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                logger.info("Database connection verified")
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables verified/created successfully")
            return
        except Exception as e:
            logger.error(f"Database setup failed: {e}")
            if attempt >= retries:
                raise PersistenceFailure("Database setup failed after all retries") from e
            attempt += 1
            logger.info(f"Retrying database setup (attempt {attempt}/{retries}) in {delay} seconds...")
            await asyncio.sleep(delay)
