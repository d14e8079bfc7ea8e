"""
FastAPI dependencies.

Services are built once by ``create_app`` and stored on ``app.state``.
"""

from fastapi import Request

from nightfall.api.broadcast import ConnectionManager
from nightfall.config import Settings
from nightfall.games import GameService
from nightfall.services.rail import PaymentRail
from nightfall.storage import Repository


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def get_rail(request: Request) -> PaymentRail:
    return request.app.state.rail


def get_game_service(request: Request) -> GameService:
    return request.app.state.games


def get_connections(request: Request) -> ConnectionManager:
    return request.app.state.connections
