import asyncio
from sqlalchemy import update
from squadbot.database import AsyncSessionLocal
from squadbot.models import SessionRecord
from squadbot.utils.clock import utcnow

async def cleanup():
    async with AsyncSessionLocal() as db:
        print("Cleaning up expired sessions...")
        # Soft delete: restore skips inactive rows
        result = await db.execute(
            update(SessionRecord)
            .where(SessionRecord.is_active.is_(True), SessionRecord.expires_at < utcnow())
            .values(is_active=False, updated_at=utcnow())
        )
        await db.commit()
        print(f"{result.rowcount} expired sessions deactivated.")

if __name__ == "__main__":
    asyncio.run(cleanup())
