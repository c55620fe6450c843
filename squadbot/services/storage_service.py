"""
Durable Store Adapter - persists LFG sessions and the user -> session index.

Every call is best-effort: database errors are logged and swallowed so the
in-memory registry stays authoritative. Rows are never hard-deleted, ending a
session flips `is_active` off.
"""
import logging
from typing import List, Optional

from sqlalchemy import update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from squadbot.database import AsyncSessionLocal
from squadbot.models import SessionRecord, UserSessionRecord
from squadbot.services.session_registry import Session
from squadbot.utils.clock import utcnow

logger = logging.getLogger(__name__)

# asyncpg surfaces refused connections as plain OSError
DB_ERRORS = (SQLAlchemyError, OSError)


class SessionStorage:
    def __init__(self, session_factory=None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def create_session(self, session: Session) -> bool:
        try:
            async with self.session_factory() as db:
                db.add(SessionRecord(
                    id=session.id,
                    creator_id=session.creator_id,
                    guild_id=session.guild_id,
                    channel_id=session.channel_id,
                    message_id=session.message_id,
                    game=session.game,
                    gamemode=session.gamemode,
                    players_needed=session.players_needed,
                    info=session.info,
                    status=session.status,
                    current_players=session.players_payload(),
                    confirmed_players=[],
                    voice_channel_id=session.voice_channel_id,
                    created_at=session.created_at,
                    updated_at=utcnow(),
                    expires_at=session.expires_at,
                    is_active=True,
                ))
                await db.commit()
            return True
        except DB_ERRORS as e:
            logger.error(f"Error creating session #{session.short_code} in database: {e}")
            return False

    async def update_session(self, session: Session) -> bool:
        """Write the mutable fields of a live session."""
        try:
            async with self.session_factory() as db:
                await db.execute(
                    update(SessionRecord)
                    .where(SessionRecord.id == session.id)
                    .values(
                        creator_id=session.creator_id,
                        message_id=session.message_id,
                        status=session.status,
                        current_players=session.players_payload(),
                        voice_channel_id=session.voice_channel_id,
                        updated_at=utcnow(),
                    )
                )
                await db.commit()
            return True
        except DB_ERRORS as e:
            logger.error(f"Error updating session #{session.short_code} in database: {e}")
            return False

    async def delete_session(self, session_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                await db.execute(
                    update(SessionRecord)
                    .where(SessionRecord.id == session_id)
                    .values(is_active=False, updated_at=utcnow())
                )
                await db.commit()
            return True
        except DB_ERRORS as e:
            logger.error(f"Error deleting session #{session_id[-6:]} from database: {e}")
            return False

    async def get_active_sessions(self) -> List[SessionRecord]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(SessionRecord)
                    .where(SessionRecord.is_active.is_(True))
                    .order_by(SessionRecord.created_at)
                )
                return list(result.scalars().all())
        except DB_ERRORS as e:
            logger.error(f"Error getting active sessions from database: {e}")
            return []

    async def set_user_session(self, user_id: str, session_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                existing = await db.get(UserSessionRecord, str(user_id))
                if existing is None:
                    db.add(UserSessionRecord(user_id=str(user_id), session_id=session_id))
                else:
                    existing.session_id = session_id
                    existing.updated_at = utcnow()
                await db.commit()
            return True
        except DB_ERRORS as e:
            logger.error(f"Error setting user session in database: {e}")
            return False

    async def remove_user_session(self, user_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                await db.execute(delete(UserSessionRecord).where(UserSessionRecord.user_id == str(user_id)))
                await db.commit()
            return True
        except DB_ERRORS as e:
            logger.error(f"Error removing user session from database: {e}")
            return False

    async def get_user_session(self, user_id: str) -> Optional[str]:
        try:
            async with self.session_factory() as db:
                record = await db.get(UserSessionRecord, str(user_id))
                return record.session_id if record else None
        except DB_ERRORS as e:
            logger.error(f"Error reading user session from database: {e}")
            return None
