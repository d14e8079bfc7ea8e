"""Game lifecycle API routes."""

import logging

from fastapi import APIRouter, Depends

from nightfall.api.broadcast import ConnectionManager
from nightfall.api.dependencies import get_connections, get_game_service
from nightfall.api.schemas import (
    CancelGameRequest,
    CompleteGameRequest,
    CreateGameRequest,
    JoinGameRequest,
)
from nightfall.games import GameService
from nightfall.storage import GameStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/games", tags=["Games"])


@router.post("")
async def create_game(
    request: CreateGameRequest,
    games: GameService = Depends(get_game_service),
    connections: ConnectionManager = Depends(get_connections),
):
    """Open a new game; the creator is the first participant."""
    game = games.create_game(
        created_by=request.created_by,
        bet_amount=request.bet_amount,
        game_type=request.game_type,
        min_players=request.min_players,
        max_players=request.max_players,
        playing_fee=request.playing_fee,
    )
    await connections.broadcast_game_event("game_created", game.model_dump(mode="json"))
    return game


@router.get("")
async def list_games(
    status: GameStatus | None = None,
    games: GameService = Depends(get_game_service),
):
    """List games, newest first, optionally filtered by status."""
    return games.list_games(status)


@router.get("/{game_id}")
async def get_game(game_id: int, games: GameService = Depends(get_game_service)):
    return games.get_game(game_id)


@router.post("/{game_id}/join")
async def join_game(
    game_id: int,
    request: JoinGameRequest,
    games: GameService = Depends(get_game_service),
    connections: ConnectionManager = Depends(get_connections),
):
    game = games.join_game(game_id, request.wallet)
    await connections.broadcast_game_event("game_joined", game.model_dump(mode="json"))
    return game


@router.post("/{game_id}/complete")
async def complete_game(
    game_id: int,
    request: CompleteGameRequest,
    games: GameService = Depends(get_game_service),
    connections: ConnectionManager = Depends(get_connections),
):
    """
    Complete a game and pay the winner.

    The payout outcome is returned alongside the game; a rejected payout
    (for example a repeated completion) is reported in ``payout.error``.
    """
    game, payout = await games.complete_game(game_id, request.winner)
    if payout.success:
        await connections.broadcast_game_event(
            "game_completed",
            {
                "game_id": game.id,
                "winner": game.winner,
                "net_payout": payout.net_payout,
                "tx_hash": payout.tx_hash,
            },
        )
    return {"game": game, "payout": payout}


@router.post("/{game_id}/cancel")
async def cancel_game(
    game_id: int,
    request: CancelGameRequest,
    games: GameService = Depends(get_game_service),
    connections: ConnectionManager = Depends(get_connections),
):
    """Cancel a waiting game and refund every participant's stake."""
    game, refund = await games.cancel_game(game_id, request.wallet)
    await connections.broadcast_game_event(
        "game_cancelled",
        {
            "game_id": game.id,
            "refunded": refund.refunded,
            "success": refund.success,
        },
    )
    return {"game": game, "refund": refund}


@router.get("/{game_id}/transactions")
async def get_game_transactions(
    game_id: int,
    games: GameService = Depends(get_game_service),
):
    """Ledger rows for a game in insertion order."""
    return games.get_transactions(game_id)
