import asyncio
import logging
from squadbot.database import engine, Base
from squadbot.models import SessionRecord, UserSessionRecord

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

LFG_TABLES = [SessionRecord.__table__, UserSessionRecord.__table__]

async def reset_database():
    logger.info("Starting database reset...")
    try:
        async with engine.begin() as conn:
            logger.info("Dropping LFG tables...")
            await conn.run_sync(Base.metadata.drop_all, tables=LFG_TABLES)
            logger.info("LFG tables dropped.")

            logger.info("Creating LFG tables...")
            await conn.run_sync(Base.metadata.create_all, tables=LFG_TABLES)
            logger.info("LFG tables created successfully.")

    except Exception as e:
        logger.error(f"Error resetting database: {e}")
    finally:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(reset_database())
