"""
Lobby Service - the LFG session state machine.

    waiting --(last slot taken)--> full --(end / expire / empty)--> removed

Registry and index mutations happen synchronously between awaits. Every await
(store, voice provisioning, card rendering) is a point where another event may
have removed the session, so anything that runs after one re-fetches the
session from the registry and quietly stops if it is gone.
"""
import logging
from datetime import timedelta
from typing import Callable, NamedTuple, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from squadbot.config import settings
from squadbot.errors import (
    CapacityError,
    DuplicateSessionError,
    NotFoundError,
    PermissionDeniedError,
    ProvisioningFailure,
    ValidationError,
)
from squadbot.games import get_game
from squadbot.models import SessionCreate
from squadbot.services.gateway import ProvisioningGateway, SessionPresenter
from squadbot.services.matchmaking_service import MatchmakingService
from squadbot.services.session_registry import FULL, Player, Session, SessionRegistry
from squadbot.services.storage_service import SessionStorage
from squadbot.services.timeout_service import TimeoutScheduler
from squadbot.utils.clock import utcnow

logger = logging.getLogger(__name__)


class LeaveOutcome(NamedTuple):
    session: Session
    player: Player
    destroyed: bool


def describe_validation_error(error: PydanticValidationError) -> str:
    messages = []
    for detail in error.errors():
        cause = detail.get("ctx", {}).get("error")
        if cause is not None:
            messages.append(str(cause))
        else:
            field = ".".join(str(part) for part in detail.get("loc", ()))
            messages.append(f"{field}: {detail['msg']}" if field else detail["msg"])
    return "\n".join(messages)


class LobbyService:
    def __init__(
        self,
        registry: SessionRegistry,
        storage: SessionStorage,
        scheduler: TimeoutScheduler,
        gateway: ProvisioningGateway,
        presenter: SessionPresenter,
        session_ttl: Optional[float] = None,
        room_cleanup_delay: Optional[float] = None,
        clock: Callable = utcnow,
    ):
        self.registry = registry
        self.storage = storage
        self.scheduler = scheduler
        self.gateway = gateway
        self.presenter = presenter
        self.session_ttl = settings.SESSION_TTL_SECONDS if session_ttl is None else session_ttl
        self.room_cleanup_delay = settings.EMPTY_ROOM_TIMEOUT_SECONDS if room_cleanup_delay is None else room_cleanup_delay
        self.clock = clock
        # Voice rooms this bot provisioned and has not deleted yet
        self._managed_rooms: Set[str] = set()

    # Create

    async def create_session(self, creator_id, creator_name: str, guild_id, channel_id, game: str, gamemode: str, players_needed: int, info: Optional[str] = None) -> Session:
        creator_id = str(creator_id)
        if self.registry.session_id_for_user(creator_id) is not None:
            raise DuplicateSessionError("Use `/endlfg` to end your current session before creating a new one.")

        try:
            data = SessionCreate(game=game, gamemode=gamemode, players_needed=players_needed, info=info)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

        now = self.clock()
        session = Session(
            id=MatchmakingService.generate_session_id(),
            creator_id=creator_id,
            guild_id=guild_id,
            channel_id=channel_id,
            game=data.game,
            gamemode=data.gamemode,
            players_needed=data.players_needed,
            info=data.info,
            players=[Player(creator_id, creator_name)],
            created_at=now,
            expires_at=now + timedelta(seconds=self.session_ttl),
        )
        self.registry.add(session)
        self._schedule_expiry(session.id, self.session_ttl)
        logger.info(f"LFG created: {creator_name} wants {session.players_needed} for {session.game_display} {session.gamemode} (Session #{session.short_code})")

        await self.storage.create_session(session)
        await self.storage.set_user_session(creator_id, session.id)
        # A quick-join may have landed while the row was being inserted
        current = self.registry.get(session.id)
        if current is not None and current.player_ids != [creator_id]:
            await self._persist(session.id)
        return session

    async def attach_message(self, session_id: str, message_id) -> Optional[Session]:
        """Records the id of the card posted for a freshly created session."""
        session = self.registry.get(session_id)
        if session is None:
            return None
        session.message_id = str(message_id)
        await self._persist(session_id)
        return session

    # Join

    async def join_session(self, session_id: str, user_id, username: str) -> Session:
        session = self.registry.get(session_id)
        if session is None:
            raise NotFoundError("This session may have expired or been ended.")

        user_id = str(user_id)
        if self.registry.session_id_for_user(user_id) is not None or session.has_player(user_id):
            if session.has_player(user_id):
                raise DuplicateSessionError("You're already part of this gaming session.", title="Already in session!")
            raise DuplicateSessionError("Leave your current session before joining another one.")
        if not session.is_waiting or session.reached_capacity():
            raise CapacityError("This session has reached its player limit.")

        session.add_player(Player(user_id, username))
        self.registry.index_user(user_id, session.id)
        filled = self._check_capacity(session)
        logger.info(f"Player joined: {username} joined session #{session.short_code} ({len(session.current_players)}/{session.players_needed})")

        await self.storage.set_user_session(user_id, session.id)
        await self._persist(session.id)
        if filled:
            await self._provision(session.id)
        else:
            await self._refresh(session.id)
        return session

    async def quick_join(self, game: str, guild_id, user_id, username: str, preferred_gamemode: Optional[str] = None) -> Session:
        game_info = get_game(game)
        if game_info is None:
            raise ValidationError(f"Unknown game '{game}'")
        if self.registry.session_id_for_user(user_id) is not None:
            raise DuplicateSessionError("Leave your current session before joining another one.")

        target = MatchmakingService.find_quick_match(self.registry.all(), game, guild_id, preferred_gamemode)
        if target is None:
            raise NotFoundError(
                "Try:\n• Using `/lfg` to create your own session\n• Checking other game modes\n• Waiting for someone else to create a session",
                title=f"No available {game_info.display} sessions found!",
            )
        logger.info(f"Quick Join: {username} matched {game_info.display} session #{target.short_code}")
        return await self.join_session(target.id, user_id, username)

    def _check_capacity(self, session: Session) -> bool:
        """The only place a session becomes full. Returns True on the waiting -> full edge."""
        if session.is_waiting and session.reached_capacity():
            session.status = FULL
            self.scheduler.cancel_session_timeout(session.id)
            return True
        return False

    async def _provision(self, session_id: str) -> Optional[str]:
        session = self.registry.get(session_id)
        if session is None or session.voice_channel_id:
            return None

        logger.info(f"Session #{session.short_code} is now full! Starting voice channel creation...")
        try:
            room_id = str(await self.gateway.provision_room(session))
        except ProvisioningFailure as e:
            logger.error(f"Voice channel creation failed for session #{session.short_code}: {e.message}")
            await self._refresh(session_id)
            return None

        current = self.registry.get(session_id)
        if current is None or current.voice_channel_id:
            logger.info(f"Session #{session.short_code} changed while its voice channel was created, removing channel {room_id}")
            await self._destroy_room(room_id)
            return None

        current.voice_channel_id = room_id
        self._managed_rooms.add(room_id)
        await self._persist(session_id)
        current = self.registry.get(session_id)
        if current is not None:
            await self.presenter.announce_room(current)
        return room_id

    # Leave

    async def leave_session(self, session_id: str, user_id) -> LeaveOutcome:
        session = self.registry.get(session_id)
        if session is None:
            raise NotFoundError("This session may have expired or been ended.")

        player = session.remove_player(user_id)
        if player is None:
            raise NotFoundError("You're not part of this gaming session.", title="Not in session!")
        self.registry.unindex_user(player.id)

        if session.creator_id == player.id and session.current_players:
            session.creator_id = session.current_players[0].id
            logger.info(f"Session #{session.short_code} ownership transferred to {session.current_players[0].username}")

        if session.is_empty:
            self._discard(session)
            logger.info(f"Session deleted: {player.username} left empty session #{session.short_code}")
            await self.storage.remove_user_session(player.id)
            await self.storage.delete_session(session.id)
            await self.presenter.delete_message(session)
            return LeaveOutcome(session, player, True)

        logger.info(f"Player left: {player.username} left session #{session.short_code} ({len(session.current_players)}/{session.players_needed})")
        await self.storage.remove_user_session(player.id)
        await self._persist(session.id)
        await self._refresh(session.id)
        return LeaveOutcome(session, player, False)

    # Terminate / expire

    async def terminate_session(self, user_id) -> Session:
        user_id = str(user_id)
        session_id = self.registry.session_id_for_user(user_id)
        if session_id is None:
            raise NotFoundError("You don't have any active LFG sessions to end.", title="No active session found!")

        session = self.registry.get(session_id)
        if session is None:
            self.registry.unindex_user(user_id)
            await self.storage.remove_user_session(user_id)
            raise NotFoundError("Your session reference was invalid and has been cleared.")

        if session.creator_id != user_id:
            raise PermissionDeniedError('Only the session creator can end the session. Use the "Leave Squad" button to leave instead.')

        await self._teardown(session)
        logger.info(f"Session ended: {user_id} terminated session #{session.short_code}")
        return session

    async def expire_session(self, session_id: str) -> bool:
        """Expires a session; a session that is already gone is a no-op."""
        session = self.registry.get(session_id)
        if session is None:
            return False
        await self._teardown(session)
        logger.info(f"Cleaned up expired session #{session.short_code}")
        return True

    async def _on_session_timeout(self, session_id: str):
        logger.info(f"Session #{session_id[-6:]} expired, cleaning up...")
        await self.expire_session(session_id)

    def _discard(self, session: Session):
        self.scheduler.cancel_session_timeout(session.id)
        self.registry.remove(session.id)

    async def _teardown(self, session: Session):
        self._discard(session)
        await self.storage.delete_session(session.id)
        for player_id in session.player_ids:
            # The player may already be in a new session by now
            if self.registry.session_id_for_user(player_id) is None:
                await self.storage.remove_user_session(player_id)
        await self.presenter.delete_message(session)
        if session.voice_channel_id:
            self.scheduler.cancel_room_cleanup(session.voice_channel_id)
            await self._destroy_room(session.voice_channel_id)

    async def _destroy_room(self, room_id: str):
        self._managed_rooms.discard(room_id)
        try:
            await self.gateway.destroy_room(room_id)
        except ProvisioningFailure as e:
            logger.error(f"Error deleting voice channel {room_id}: {e.message}")

    # Voice rooms

    def is_managed_room(self, room_id) -> bool:
        return str(room_id) in self._managed_rooms

    def room_vacated(self, room_id) -> bool:
        """A provisioned room dropped to zero occupants; start its cleanup timer."""
        room_id = str(room_id)
        if room_id not in self._managed_rooms:
            return False
        self.scheduler.schedule_room_cleanup(room_id, self.room_cleanup_delay, self._on_room_idle)
        return True

    def room_occupied(self, room_id) -> bool:
        return self.scheduler.cancel_room_cleanup(str(room_id))

    async def _on_room_idle(self, room_id: str):
        try:
            deleted = await self.gateway.cleanup_empty_room(room_id)
        except ProvisioningFailure as e:
            logger.error(f"Error during channel cleanup: {e.message}")
            return
        if deleted:
            self._managed_rooms.discard(room_id)
            logger.info(f"Deleted empty voice channel {room_id}")

    # Restoration support

    def adopt(self, session: Session) -> bool:
        """Puts a session rebuilt from storage back under management.

        Returns False when it has already run out of time.
        """
        remaining = (session.expires_at - self.clock()).total_seconds()
        if remaining <= 0:
            return False
        self.registry.add(session)
        if session.voice_channel_id:
            self._managed_rooms.add(session.voice_channel_id)
        if session.is_waiting:
            self._schedule_expiry(session.id, remaining)
        return True

    def _schedule_expiry(self, session_id: str, delay: float):
        self.scheduler.schedule_session_timeout(session_id, delay, self._on_session_timeout)

    async def _persist(self, session_id: str):
        session = self.registry.get(session_id)
        if session is not None:
            await self.storage.update_session(session)

    async def _refresh(self, session_id: str):
        session = self.registry.get(session_id)
        if session is not None:
            await self.presenter.refresh(session)

    def shutdown(self):
        self.scheduler.cancel_all()
