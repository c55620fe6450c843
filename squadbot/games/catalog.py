from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

MAX_AUTOCOMPLETE_CHOICES = 25


@dataclass(frozen=True)
class GameInfo:
    key: str
    display: str
    modes: Tuple[str, ...]

    def has_mode(self, mode: str) -> bool:
        return mode in self.modes

    @property
    def category_name(self) -> str:
        """Name of the channel category voice rooms for this game live under."""
        return f"{self.display}-LFG"


GAMES: Dict[str, GameInfo] = {}


def register_game(key: str, display: str, modes: List[str]) -> GameInfo:
    game = GameInfo(key=key, display=display, modes=tuple(modes))
    GAMES[key] = game
    return game


def get_game(key: Optional[str]) -> Optional[GameInfo]:
    if not key:
        return None
    return GAMES.get(key)


def display_name(key: str) -> str:
    game = GAMES.get(key)
    return game.display if game else key


def match_modes(game_key: Optional[str], partial: Optional[str], limit: int = MAX_AUTOCOMPLETE_CHOICES) -> List[str]:
    """Case-insensitive substring match over a game's modes, in catalog order."""
    game = get_game(game_key)
    if game is None:
        return []
    needle = (partial or "").lower()
    return [mode for mode in game.modes if needle in mode.lower()][:limit]


register_game("valorant", "Valorant", ["Competitive", "Unrated", "Spike Rush", "Deathmatch"])
register_game("fortnite", "Fortnite", ["Battle Royale", "Zero Build", "Creative", "Save the World"])
register_game("brawlhalla", "Brawlhalla", ["1v1", "2v2", "Ranked", "Experimental"])
register_game("thefinals", "The Finals", ["Quick Cash", "Bank It", "Tournament"])
register_game("roblox", "Roblox", ["Various", "Roleplay", "Simulator", "Obby"])
register_game("minecraft", "Minecraft", ["Survival", "Creative", "PvP", "Minigames"])
register_game("marvelrivals", "Marvel Rivals", ["Quick Match", "Competitive", "Custom"])
register_game("rocketleague", "Rocket League", ["3v3", "2v2", "1v1", "Hoops"])
register_game("apexlegends", "Apex Legends", ["Trios", "Duos", "Ranked", "Arenas"])
register_game("callofduty", "Call of Duty", ["Multiplayer", "Warzone", "Search & Destroy"])
register_game("overwatch", "Overwatch", ["Competitive", "Quick Play", "Arcade"])
