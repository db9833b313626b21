"""Repository package — expose all concrete repositories from one import."""
from .base import BaseRepository
from .game_repository import GameRepository

__all__ = [
    'BaseRepository',
    'GameRepository',
]
