from .catalog import (
    GAMES,
    MAX_AUTOCOMPLETE_CHOICES,
    GameInfo,
    display_name,
    get_game,
    match_modes,
    register_game,
)
