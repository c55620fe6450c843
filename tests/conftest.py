"""Shared fixtures: an in-memory lobby wired to recording fakes."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from squadbot.database import Base
from squadbot.errors import ProvisioningFailure
from squadbot.models import SessionRecord
from squadbot.services.gateway import ProvisioningGateway, SessionPresenter
from squadbot.services.lobby_service import LobbyService
from squadbot.services.session_registry import Session, SessionRegistry
from squadbot.services.timeout_service import TimeoutScheduler

GUILD = "900"
CHANNEL = "901"
START = datetime(2024, 5, 1, 12, 0, 0)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


def snapshot(session: Session) -> dict:
    return {
        "creator_id": session.creator_id,
        "message_id": session.message_id,
        "status": session.status,
        "current_players": session.players_payload(),
        "voice_channel_id": session.voice_channel_id,
    }


class FakeStorage:
    """Records what the lobby asked the store to do."""

    def __init__(self, records: Optional[List[SessionRecord]] = None, write_delay: float = 0):
        self.records = list(records or [])
        self.rows: Dict[str, dict] = {}
        self.user_sessions: Dict[str, str] = {}
        self.deleted: List[str] = []
        self.updates: List[str] = []
        self.write_delay = write_delay

    async def create_session(self, session: Session) -> bool:
        self.rows[session.id] = dict(snapshot(session), is_active=True)
        return True

    async def update_session(self, session: Session) -> bool:
        self.updates.append(session.id)
        if session.id in self.rows:
            self.rows[session.id].update(snapshot(session))
        return True

    async def delete_session(self, session_id: str) -> bool:
        self.deleted.append(session_id)
        if session_id in self.rows:
            self.rows[session_id]["is_active"] = False
        return True

    async def get_active_sessions(self) -> List[SessionRecord]:
        return list(self.records)

    async def set_user_session(self, user_id: str, session_id: str) -> bool:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        self.user_sessions[str(user_id)] = session_id
        return True

    async def remove_user_session(self, user_id: str) -> bool:
        self.user_sessions.pop(str(user_id), None)
        return True

    async def get_user_session(self, user_id: str) -> Optional[str]:
        return self.user_sessions.get(str(user_id))


class FakeGateway(ProvisioningGateway):
    def __init__(self):
        self.provisioned: List[str] = []
        self.destroyed: List[str] = []
        self.cleaned: List[str] = []
        self.occupied = set()
        self.fail = False
        self.during_provision = None
        self._next_room = 5000

    async def provision_room(self, session: Session) -> str:
        self.provisioned.append(session.id)
        if self.during_provision is not None:
            await self.during_provision(session)
        if self.fail:
            raise ProvisioningFailure('Bot needs "Manage Channels" permission to create voice channels.')
        self._next_room += 1
        return str(self._next_room)

    async def destroy_room(self, room_id: str) -> None:
        self.destroyed.append(room_id)

    async def cleanup_empty_room(self, room_id: str) -> bool:
        if room_id in self.occupied:
            return False
        self.cleaned.append(room_id)
        return True


class FakePresenter(SessionPresenter):
    def __init__(self):
        self.refreshed: List[str] = []
        self.announced: List[str] = []
        self.deleted: List[str] = []

    async def refresh(self, session: Session) -> None:
        self.refreshed.append(session.id)

    async def announce_room(self, session: Session) -> None:
        self.announced.append(session.id)

    async def delete_message(self, session: Session) -> None:
        self.deleted.append(session.id)


def build_lobby(storage=None, session_ttl: float = 1800, room_cleanup_delay: float = 60, clock=None) -> LobbyService:
    return LobbyService(
        registry=SessionRegistry(),
        storage=storage or FakeStorage(),
        scheduler=TimeoutScheduler(),
        gateway=FakeGateway(),
        presenter=FakePresenter(),
        session_ttl=session_ttl,
        room_cleanup_delay=room_cleanup_delay,
        clock=clock or FakeClock(),
    )


def make_record(id: str = "a" * 20 + "rec001", players=None, **overrides) -> SessionRecord:
    values = dict(
        id=id,
        creator_id="1",
        guild_id=GUILD,
        channel_id=CHANNEL,
        message_id="700",
        game="valorant",
        gamemode="Competitive",
        players_needed=5,
        info=None,
        status="waiting",
        current_players=[{"id": "1", "username": "alice"}] if players is None else players,
        confirmed_players=[],
        voice_channel_id=None,
        created_at=START - timedelta(minutes=5),
        updated_at=START - timedelta(minutes=5),
        expires_at=START + timedelta(minutes=25),
        is_active=True,
    )
    values.update(overrides)
    return SessionRecord(**values)


def assert_index_consistent(registry: SessionRegistry):
    index = registry.indexed_users()
    for session in registry.all():
        for user_id in session.player_ids:
            assert index.get(user_id) == session.id
    for user_id, session_id in index.items():
        session = registry.get(session_id)
        assert session is not None and session.has_player(user_id)


async def create_session(lobby: LobbyService, creator_id="1", name="alice", players_needed=3, gamemode="Competitive", game="valorant", guild_id=GUILD):
    return await lobby.create_session(
        creator_id=creator_id,
        creator_name=name,
        guild_id=guild_id,
        channel_id=CHANNEL,
        game=game,
        gamemode=gamemode,
        players_needed=players_needed,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lobby(clock) -> LobbyService:
    return build_lobby(clock=clock)


@pytest.fixture
def sqlite_engine():
    return create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


def run_with_db(engine, test):
    """Runs `test(session_factory)` against fresh tables, disposing the engine afterwards."""

    async def main():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        try:
            return await test(factory)
        finally:
            await engine.dispose()

    return asyncio.run(main())
