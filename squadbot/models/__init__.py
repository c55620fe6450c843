from .session import SessionRecord, PlayerSchema, SessionCreate, MIN_PLAYERS, MAX_PLAYERS
from .user_session import UserSessionRecord
