"""
Restoration & Periodic Sweeper

At startup the registry is rebuilt from the rows still marked active; while
running, a low-frequency sweep expires anything whose timer was lost.
"""
import asyncio
import logging
from typing import Any, List, NamedTuple, Optional

from pydantic import ValidationError as PydanticValidationError

from squadbot.config import settings
from squadbot.models import PlayerSchema, SessionRecord
from squadbot.services.lobby_service import LobbyService
from squadbot.services.session_registry import FULL, WAITING, Player, Session
from squadbot.utils.clock import as_naive_utc
from squadbot.utils.timer import report_task_failure

logger = logging.getLogger(__name__)


class RestoreReport(NamedTuple):
    restored: int
    cleaned: int


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def players_from_record(raw: Any) -> List[Player]:
    """Parses a stored roster, dropping entries without a user id and repeats."""
    players: List[Player] = []
    seen = set()
    for entry in _as_list(raw):
        if not isinstance(entry, dict) or entry.get("id") in (None, ""):
            continue
        try:
            player = PlayerSchema.model_validate({"id": entry["id"], "username": entry.get("username") or ""})
        except PydanticValidationError:
            continue
        if player.id in seen:
            continue
        seen.add(player.id)
        players.append(Player(player.id, player.username))
    return players


def session_from_record(record: SessionRecord) -> Session:
    players = players_from_record(record.current_players)
    players_needed = int(record.players_needed)
    # Rows written by older builds stored "completed" for a filled session
    status = FULL if record.status in (FULL, "completed") or len(players) >= players_needed else WAITING
    return Session(
        id=record.id,
        creator_id=record.creator_id,
        guild_id=record.guild_id,
        channel_id=record.channel_id,
        game=record.game,
        gamemode=record.gamemode,
        players_needed=players_needed,
        info=record.info,
        players=players,
        status=status,
        message_id=record.message_id,
        voice_channel_id=record.voice_channel_id,
        created_at=as_naive_utc(record.created_at),
        expires_at=as_naive_utc(record.expires_at),
    )


class RestorationService:
    def __init__(self, lobby: LobbyService):
        self.lobby = lobby

    async def restore(self) -> RestoreReport:
        logger.info("Loading persistent sessions from database...")
        records = await self.lobby.storage.get_active_sessions()
        logger.info(f"Found {len(records)} active sessions in database")

        restored = 0
        cleaned = 0
        for record in records:
            try:
                if await self._restore_one(record):
                    restored += 1
                else:
                    cleaned += 1
            except Exception as e:
                # One bad row must not abort the whole restore
                logger.error(f"Error restoring session {record.id}: {e}")
                await self.lobby.storage.delete_session(record.id)
                cleaned += 1

        logger.info(f"Session restoration complete: restored {restored} active sessions, cleaned {cleaned} expired sessions")
        return RestoreReport(restored, cleaned)

    async def _restore_one(self, record: SessionRecord) -> bool:
        now = self.lobby.clock()
        if record.expires_at is None or now > as_naive_utc(record.expires_at):
            await self.lobby.storage.delete_session(record.id)
            return False

        session = session_from_record(record)
        registry = self.lobby.registry
        dropped = []
        for player in list(session.current_players):
            owner = registry.session_id_for_user(player.id)
            if owner is not None and owner != session.id:
                logger.warning(f"User {player.id} is already in session #{owner[-6:]}, dropping them from #{session.short_code}")
                dropped.append(session.remove_player(player.id))

        overflow = session.current_players[session.players_needed:]
        if overflow:
            # Latest joiners go first
            del session.current_players[session.players_needed:]
            dropped.extend(overflow)
            logger.warning(f"Session #{session.short_code} stored {len(session.current_players) + len(overflow)} players for {session.players_needed} slots, dropping {', '.join(p.id for p in overflow)}")

        if session.is_empty:
            await self.lobby.storage.delete_session(record.id)
            return False
        if session.creator_id not in session.player_ids:
            session.creator_id = session.current_players[0].id

        if not self.lobby.adopt(session):
            await self.lobby.storage.delete_session(record.id)
            return False
        for player in session.current_players:
            await self.lobby.storage.set_user_session(player.id, session.id)
        if dropped:
            for player in dropped:
                if await self.lobby.storage.get_user_session(player.id) == session.id:
                    await self.lobby.storage.remove_user_session(player.id)
            await self.lobby.storage.update_session(session)
        return True


class SessionSweeper:
    """Recurring safety net that expires sessions whose timer never fired."""

    def __init__(self, lobby: LobbyService, interval: Optional[float] = None):
        self.lobby = lobby
        self.interval = settings.SWEEP_INTERVAL_SECONDS if interval is None else interval
        self.task: Optional[asyncio.Task] = None

    async def sweep_once(self) -> int:
        now = self.lobby.clock()
        expired = [s.id for s in self.lobby.registry.all() if s.is_expired(now)]
        cleaned = 0
        for session_id in expired:
            logger.info(f"Cleaning expired session: {session_id[-6:]}")
            if await self.lobby.expire_session(session_id):
                cleaned += 1
        if cleaned > 0:
            logger.info(f"Periodic cleanup completed: {cleaned} expired sessions removed")
        return cleaned

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            logger.debug("Running periodic cleanup...")
            await self.sweep_once()

    def start(self) -> asyncio.Task:
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self._run(), name="session-sweeper")
            self.task.add_done_callback(report_task_failure)
        return self.task

    async def stop(self):
        if self.task is None:
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        self.task = None
