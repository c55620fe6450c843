import random
import string
from typing import Iterable, List, Optional

from squadbot.services.session_registry import Session

SESSION_ID_LENGTH = 26

class MatchmakingService:
    @staticmethod
    def generate_session_id():
        return ''.join(random.choices(string.ascii_lowercase + string.digits, k=SESSION_ID_LENGTH))

    @staticmethod
    def available_sessions(sessions: Iterable[Session], game: str, guild_id: str) -> List[Session]:
        """Open sessions of a game in one community, oldest first."""
        candidates = [
            s for s in sessions
            if s.game == game
            and s.is_waiting
            and not s.reached_capacity()
            and s.guild_id == str(guild_id)
        ]
        return sorted(candidates, key=lambda s: (s.created_at, s.id))

    @staticmethod
    def find_quick_match(sessions: Iterable[Session], game: str, guild_id: str, preferred_gamemode: Optional[str] = None) -> Optional[Session]:
        candidates = MatchmakingService.available_sessions(sessions, game, guild_id)
        if not candidates:
            return None
        if preferred_gamemode:
            for session in candidates:
                if session.gamemode == preferred_gamemode:
                    return session
        return candidates[0]
