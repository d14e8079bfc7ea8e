"""API routes module."""

from nightfall.api.routes.admin import router as admin_router
from nightfall.api.routes.games import router as games_router
from nightfall.api.routes.leaderboard import router as leaderboard_router
from nightfall.api.routes.transactions import router as transactions_router
from nightfall.api.routes.users import router as users_router
from nightfall.api.routes.websocket import router as websocket_router

__all__ = [
    "admin_router",
    "games_router",
    "leaderboard_router",
    "transactions_router",
    "users_router",
    "websocket_router",
]
