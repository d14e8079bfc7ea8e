"""Game lifecycle for Nightfall."""

from .service import GameService

__all__ = ["GameService"]
