"""Game lifecycle: lobby, completion and cancellation."""

import logging
import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from nightfall.config import GamesConfig
from nightfall.exceptions import (
    CancelCooldownError,
    ForbiddenError,
    GameNotFoundError,
    InvalidAmountError,
    InvalidGameStateError,
    InvalidInputError,
)
from nightfall.money import format_sol, parse_sol
from nightfall.settlement import GameSettlement, PayoutResult, RefundFlow, RefundResult
from nightfall.storage import Game, GameStatus, GameTransaction, Repository
from nightfall.wallets import validate_wallet

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameService:
    """
    Drives a game from ``waiting`` to a terminal state.

    Lifecycle:
    - waiting -> in_progress once ``min_players`` have joined
    - in_progress -> completed with a winner, followed by the payout
    - waiting -> cancelled by the creator after the cooldown, followed by refunds
    """

    def __init__(
        self,
        repository: Repository,
        settlement: GameSettlement,
        refunds: RefundFlow,
        config: GamesConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.settlement = settlement
        self.refunds = refunds
        self.config = config or GamesConfig()
        self.clock = clock

    def get_game(self, game_id: int) -> Game:
        game = self.repository.get_game(game_id)
        if game is None:
            raise GameNotFoundError(f"Game {game_id} not found")
        return game

    def list_games(self, status: GameStatus | None = None) -> list[Game]:
        return self.repository.list_games(status)

    def get_transactions(self, game_id: int) -> list[GameTransaction]:
        self.get_game(game_id)
        return self.repository.get_game_transactions(game_id)

    def create_game(
        self,
        created_by: str,
        bet_amount: str,
        game_type: str = "coinflip",
        min_players: int | None = None,
        max_players: int | None = None,
        playing_fee: str | None = None,
    ) -> Game:
        validate_wallet(created_by, "creator wallet")

        stake = parse_sol(bet_amount)
        if stake <= 0:
            raise InvalidAmountError("Bet amount must be positive")
        fee = parse_sol(playing_fee, default=self.settlement.config.default_playing_fee)

        min_players = min_players if min_players is not None else self.config.default_min_players
        max_players = max_players if max_players is not None else self.config.default_max_players
        if min_players < 1:
            raise InvalidInputError("min_players must be at least 1")
        if max_players < min_players:
            raise InvalidInputError("max_players cannot be lower than min_players")

        now = self.clock()
        game = Game(
            game_type=game_type,
            created_by=created_by,
            status="in_progress" if min_players == 1 else "waiting",
            bet_amount=format_sol(stake),
            total_pool=format_sol(stake),
            playing_fee=format_sol(fee),
            min_players=min_players,
            max_players=max_players,
            game_data={"participants": [created_by]},
            can_cancel_after=now + timedelta(seconds=self.config.cancel_cooldown_seconds),
            created_at=now,
        )
        game = self.repository.create_game(game)
        logger.info(
            f"Created {game_type} game {game.id} by {created_by} "
            f"({game.bet_amount} SOL, {min_players}-{max_players} players)"
        )
        return game

    def join_game(self, game_id: int, wallet: str) -> Game:
        validate_wallet(wallet, "player wallet")
        game = self.get_game(game_id)

        if game.status != "waiting":
            raise InvalidGameStateError(f"Game {game_id} is not accepting players")

        participants = game.participants
        if wallet in participants:
            raise InvalidInputError("Player already joined this game")
        if len(participants) >= game.max_players:
            raise InvalidGameStateError(f"Game {game_id} is full")

        participants.append(wallet)
        game.game_data["participants"] = participants
        game.total_pool = format_sol(parse_sol(game.total_pool) + parse_sol(game.bet_amount))

        if len(participants) >= game.min_players:
            game.status = "in_progress"
            logger.info(f"Game {game_id} started with {len(participants)} players")

        return self.repository.save_game(game)

    async def complete_game(self, game_id: int, winner: str) -> tuple[Game, PayoutResult]:
        """Mark the game completed and pay the winner.

        A game that is already completed is left untouched and the payout is
        retried for the recorded winner, whoever the caller names; the
        ledger's double-payment guard decides whether anything is sent.
        """
        game = self.get_game(game_id)

        if game.status == "in_progress":
            validate_wallet(winner, "winner wallet")
            if winner not in game.participants:
                raise InvalidInputError("Winner is not a participant of this game")

            game.status = "completed"
            game.winner = winner
            game.completed_at = self.clock()
            game = self.repository.save_game(game)
            self._update_player_stats(game)
            logger.info(f"Game {game_id} completed, winner {winner}")
        elif game.status == "completed":
            if winner != game.winner:
                logger.warning(
                    f"Game {game_id} already won by {game.winner}; ignoring winner {winner}"
                )
        else:
            raise InvalidGameStateError(
                f"Game {game_id} cannot be completed from status '{game.status}'"
            )

        payout = await self.settlement.process_game_payout(game_id, game.winner)
        return game, payout

    async def cancel_game(self, game_id: int, wallet: str) -> tuple[Game, RefundResult]:
        game = self.get_game(game_id)

        if wallet != game.created_by:
            raise ForbiddenError("Only the game creator can cancel this game")
        if game.status != "waiting":
            raise InvalidGameStateError(
                f"Game {game_id} cannot be cancelled from status '{game.status}'"
            )

        now = self.clock()
        if now < game.can_cancel_after:
            remaining = math.ceil((game.can_cancel_after - now).total_seconds())
            raise CancelCooldownError(
                f"Game can be cancelled in {remaining} seconds",
                remaining_seconds=remaining,
            )

        game.status = "cancelled"
        game.cancelled_at = now
        game = self.repository.save_game(game)
        logger.info(f"Game {game_id} cancelled by {wallet}")

        refund = await self.refunds.process_game_refund(game_id)
        return game, refund

    def _update_player_stats(self, game: Game) -> None:
        stake = parse_sol(game.bet_amount)
        try:
            net_payout, _ = self.settlement.calculate_payout(game)
        except InvalidAmountError:
            net_payout = Decimal("0")

        for wallet in game.participants:
            is_win = wallet == game.winner
            self.repository.update_user_stats(
                wallet,
                is_win=is_win,
                bet_amount=stake,
                win_amount=net_payout if is_win else Decimal("0"),
            )
