"""
Session Registry - the authoritative in-memory table of live LFG sessions
and the user -> session index that enforces "one active session per user".
"""
from datetime import datetime
from typing import Dict, List, Optional

from squadbot.errors import DuplicateSessionError
from squadbot.games import display_name

WAITING = "waiting"
FULL = "full"


class Player:
    __slots__ = ("id", "username")

    def __init__(self, id: str, username: str = ""):
        self.id = str(id)
        self.username = username

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "username": self.username}

    def __eq__(self, other):
        return isinstance(other, Player) and other.id == self.id and other.username == self.username

    def __repr__(self):
        return f"Player({self.id!r}, {self.username!r})"


class Session:
    """A single LFG post: game, mode, capacity and the current roster."""

    def __init__(
        self,
        id: str,
        creator_id: str,
        guild_id: str,
        channel_id: str,
        game: str,
        gamemode: str,
        players_needed: int,
        created_at: datetime,
        expires_at: datetime,
        players: Optional[List[Player]] = None,
        info: Optional[str] = None,
        status: str = WAITING,
        message_id: Optional[str] = None,
        voice_channel_id: Optional[str] = None,
    ):
        self.id = id
        self.creator_id = str(creator_id)
        self.guild_id = str(guild_id)
        self.channel_id = str(channel_id)
        self.game = game
        self.gamemode = gamemode
        self.players_needed = players_needed
        self.info = info
        self.current_players: List[Player] = list(players or [])
        self.status = status
        self.message_id = message_id
        self.voice_channel_id = voice_channel_id
        self.created_at = created_at
        self.expires_at = expires_at

    @property
    def short_code(self) -> str:
        return self.id[-6:]

    @property
    def game_display(self) -> str:
        return display_name(self.game)

    @property
    def player_ids(self) -> List[str]:
        return [p.id for p in self.current_players]

    @property
    def is_waiting(self) -> bool:
        return self.status == WAITING

    @property
    def is_empty(self) -> bool:
        return not self.current_players

    def reached_capacity(self) -> bool:
        return len(self.current_players) >= self.players_needed

    def has_player(self, user_id: str) -> bool:
        return str(user_id) in self.player_ids

    def add_player(self, player: Player):
        self.current_players.append(player)

    def remove_player(self, user_id: str) -> Optional[Player]:
        user_id = str(user_id)
        for index, player in enumerate(self.current_players):
            if player.id == user_id:
                return self.current_players.pop(index)
        return None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def players_payload(self) -> List[Dict[str, str]]:
        return [p.to_dict() for p in self.current_players]

    def __repr__(self):
        return f"<Session #{self.short_code} {self.game}/{self.gamemode} {len(self.current_players)}/{self.players_needed} {self.status}>"


class SessionRegistry:
    """
    Owns the live sessions and the user index. Every method is synchronous, so
    a mutation here is never interleaved with another handler.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._user_index: Dict[str, str] = {} # user_id -> session_id

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, session_id: str):
        return session_id in self._sessions

    def add(self, session: Session):
        """Insert a session and index every player already on its roster."""
        for user_id in session.player_ids:
            owner = self._user_index.get(user_id)
            if owner is not None and owner != session.id:
                raise DuplicateSessionError(f"User {user_id} is already in session #{owner[-6:]}")
        self._sessions[session.id] = session
        for user_id in session.player_ids:
            self._user_index[user_id] = session.id

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def all(self) -> List[Session]:
        return list(self._sessions.values())

    def remove(self, session_id: str) -> Optional[Session]:
        """Drop a session together with the index entries that point at it."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        for user_id in session.player_ids:
            if self._user_index.get(user_id) == session_id:
                del self._user_index[user_id]
        return session

    def session_id_for_user(self, user_id: str) -> Optional[str]:
        return self._user_index.get(str(user_id))

    def index_user(self, user_id: str, session_id: str):
        user_id = str(user_id)
        owner = self._user_index.get(user_id)
        if owner is not None and owner != session_id:
            raise DuplicateSessionError("Leave your current session before joining another one.")
        self._user_index[user_id] = session_id

    def unindex_user(self, user_id: str):
        self._user_index.pop(str(user_id), None)

    def indexed_users(self) -> Dict[str, str]:
        return dict(self._user_index)
