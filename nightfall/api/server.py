"""
FastAPI application for the Nightfall settlement service.

``create_app`` wires the repository, payment rail and game services onto
``app.state`` and registers the routers. Serve it with uvicorn's factory
mode: ``uvicorn nightfall.api.server:create_app --factory``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nightfall import __version__
from nightfall.api.broadcast import ConnectionManager
from nightfall.api.routes import (
    admin_router,
    games_router,
    leaderboard_router,
    transactions_router,
    users_router,
    websocket_router,
)
from nightfall.config import Settings, get_settings
from nightfall.exceptions import CancelCooldownError, NightfallError
from nightfall.games import GameService
from nightfall.observability import initialize_logfire
from nightfall.services.rail import PaymentRail, create_payment_rail
from nightfall.settlement import GameSettlement, RefundFlow
from nightfall.storage import Repository, create_repository

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "not_found": 404,
    "invalid_state": 409,
    "already_processed": 409,
    "invalid_input": 400,
    "forbidden": 403,
    "cancel_cooldown": 400,
    "storage_error": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the payment rail for the lifetime of the server."""
    rail: PaymentRail = app.state.rail
    logger.info(f"Starting Nightfall API ({type(rail).__name__})")
    async with rail:
        yield
    logger.info("Shutting down Nightfall API")


async def nightfall_error_handler(request: Request, exc: NightfallError) -> JSONResponse:
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, CancelCooldownError):
        content["remaining_seconds"] = exc.remaining_seconds
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(exc.code, 400),
        content=content,
    )


def create_app(
    settings: Settings | None = None,
    repository: Repository | None = None,
    rail: PaymentRail | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    repository = repository or create_repository(settings)
    rail = rail or create_payment_rail(settings.rail, settings.settlement.network_fee)

    settlement = GameSettlement(repository, rail, settings.settlement)
    refunds = RefundFlow(repository, rail, settings.settlement)

    app = FastAPI(
        title="Nightfall API",
        description="Payout, refund and ledger service for Nightfall Casino",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.repository = repository
    app.state.rail = rail
    app.state.settlement = settlement
    app.state.refunds = refunds
    app.state.games = GameService(repository, settlement, refunds, settings.games)
    app.state.connections = ConnectionManager()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(NightfallError, nightfall_error_handler)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "healthy",
            "service": "nightfall-api",
            "version": __version__,
            "storage": settings.storage_backend,
            "rail": type(rail).__name__,
        }

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        return {
            "name": "Nightfall API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(users_router)
    app.include_router(games_router)
    app.include_router(leaderboard_router)
    app.include_router(transactions_router)
    app.include_router(admin_router)
    app.include_router(websocket_router)

    initialize_logfire(settings, app)

    return app
