from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON
from squadbot.utils.clock import utcnow
from squadbot.database import Base
from squadbot.games import get_game
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIN_PLAYERS = 2
MAX_PLAYERS = 10

class SessionRecord(Base):
    __tablename__ = "lfg_sessions"

    id = Column(String, primary_key=True)
    creator_id = Column(String, nullable=False)
    guild_id = Column(String, nullable=False)
    channel_id = Column(String, nullable=False)
    message_id = Column(String, nullable=True)
    game = Column(String, nullable=False)
    gamemode = Column(String, nullable=False)
    players_needed = Column(Integer, nullable=False)
    info = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="waiting") # waiting, full
    current_players = Column(JSON, nullable=False, default=list) # [{"id", "username"}] in join order
    confirmed_players = Column(JSON, nullable=False, default=list) # reserved, always empty
    voice_channel_id = Column(String, nullable=True)
    confirmation_start_time = Column(DateTime, nullable=True) # reserved
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

class PlayerSchema(BaseModel):
    id: str
    username: str = ""

    model_config = ConfigDict(from_attributes=True, coerce_numbers_to_str=True)

class SessionCreate(BaseModel):
    game: str
    gamemode: str
    players_needed: int = Field(ge=MIN_PLAYERS, le=MAX_PLAYERS)
    info: str | None = None

    @field_validator("game")
    @classmethod
    def known_game(cls, v: str):
        if get_game(v) is None:
            raise ValueError(f"Unknown game '{v}'")
        return v

    @model_validator(mode="after")
    def mode_belongs_to_game(self):
        game = get_game(self.game)
        if not game.has_mode(self.gamemode):
            raise ValueError(f"Invalid game mode! Available modes for {game.display}: {', '.join(game.modes)}")
        return self
