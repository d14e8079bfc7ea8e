"""Winner payouts for completed games."""

import logging
from decimal import Decimal

import logfire

from nightfall.config import SettlementConfig
from nightfall.exceptions import (
    GameNotFoundError,
    InvalidAmountError,
    InvalidGameStateError,
    InvalidInputError,
    NightfallError,
)
from nightfall.money import format_sol, parse_sol
from nightfall.services.rail import PaymentRail, RailUnconfirmedError
from nightfall.settlement.audit import AuditTrail
from nightfall.settlement.models import PayoutResult
from nightfall.storage import Game, GameTransaction, Repository
from nightfall.wallets import validate_wallet

logger = logging.getLogger(__name__)


class GameSettlement:
    """Computes and records the final fund distribution for a finished game.

    The winner receives ``total_pool - playing_fee``; the fee goes to the
    platform wallet. Both ledger rows are claimed in one repository call, so
    a game can hold at most one active payout.
    """

    def __init__(
        self,
        repository: Repository,
        rail: PaymentRail,
        config: SettlementConfig | None = None,
    ):
        self.repository = repository
        self.rail = rail
        self.config = config or SettlementConfig()
        self.audit = AuditTrail(repository, self.config.fee_wallet)

    async def process_game_payout(self, game_id: int, winner_wallet: str) -> PayoutResult:
        """
        Pay the winner of a completed game.

        Process:
        1. Validate game, status, amounts and addresses
        2. Check the wallet is the winner on the game record
        3. Claim the payout and fee ledger rows
        4. Send the net payout, then the fee
        5. Credit the winner's cached balance
        6. Record the audit entry
        """
        with logfire.span("settlement.payout", game_id=game_id, winner=winner_wallet):
            return await self._pay(game_id, winner_wallet)

    async def _pay(self, game_id: int, winner_wallet: str) -> PayoutResult:
        try:
            game = self._get_completed_game(game_id)
            net_payout, playing_fee = self.calculate_payout(game)
            validate_wallet(winner_wallet, "winner wallet")
            validate_wallet(self.config.fee_wallet, "fee wallet")
            if winner_wallet != game.winner:
                raise InvalidInputError(
                    f"Wallet {winner_wallet} is not the recorded winner of game {game_id}"
                )

            rows = [
                GameTransaction(
                    game_id=game_id,
                    type="payout",
                    to_address=winner_wallet,
                    amount=format_sol(net_payout),
                )
            ]
            if playing_fee > 0:
                rows.append(
                    GameTransaction(
                        game_id=game_id,
                        type="fee",
                        to_address=self.config.fee_wallet,
                        amount=format_sol(playing_fee),
                    )
                )
            claimed = self.repository.claim_transactions(game_id, rows, claim_type="payout")
        except NightfallError as e:
            return self._fail(game_id, e, winner_wallet)

        payout_row = claimed[0]
        fee_row = claimed[1] if len(claimed) > 1 else None

        try:
            receipt = await self.rail.send(net_payout, winner_wallet)
        except RailUnconfirmedError as e:
            return self._hold_unconfirmed(game_id, e, payout_row, fee_row, winner_wallet)
        except Exception as e:
            logger.error(f"Payout send failed for game {game_id}: {e}", exc_info=True)
            self._release(game_id, claimed, str(e))
            return self._fail(game_id, e, winner_wallet)

        try:
            self.repository.complete_transaction(payout_row.id, receipt.tx_hash)

            fee_tx_hash = None
            if fee_row is not None:
                fee_tx_hash = await self._send_fee(game_id, fee_row, playing_fee)

            user = self.repository.credit_balance(winner_wallet, net_payout)
            if user is None:
                logger.warning(
                    f"Winner {winner_wallet} is not a registered user; balance cache not updated"
                )
        except NightfallError as e:
            # Funds have moved; whatever could not be written stays pending.
            logger.error(
                f"Game {game_id}: payout {receipt.tx_hash} sent but ledger update failed: {e}"
            )
            result = self._fail(game_id, e, winner_wallet)
            result.tx_hash = receipt.tx_hash
            return result

        self.audit.record(
            "PAYOUT_PROCESSED",
            f"Game {game_id}: Paid {format_sol(net_payout)} SOL to winner, "
            f"{format_sol(playing_fee)} SOL fee collected",
            target_user=winner_wallet,
        )
        logger.info(
            f"Settled game {game_id}: {format_sol(net_payout)} SOL to {winner_wallet} "
            f"(fee {format_sol(playing_fee)} SOL)"
        )

        return PayoutResult(
            success=True,
            tx_hash=receipt.tx_hash,
            fee_tx_hash=fee_tx_hash,
            net_payout=format_sol(net_payout),
        )

    def calculate_payout(self, game: Game) -> tuple[Decimal, Decimal]:
        """Return ``(net_payout, playing_fee)``; net must be strictly positive."""
        total_pool = parse_sol(game.total_pool, default="0")
        playing_fee = parse_sol(game.playing_fee, default=self.config.default_playing_fee)
        net_payout = total_pool - playing_fee

        if net_payout <= 0:
            raise InvalidAmountError(
                f"Invalid payout calculation: pool {format_sol(total_pool)} "
                f"does not cover fee {format_sol(playing_fee)}"
            )
        return net_payout, playing_fee

    def _get_completed_game(self, game_id: int) -> Game:
        game = self.repository.get_game(game_id)
        if game is None:
            raise GameNotFoundError("Game not found")
        if game.status != "completed" or not game.winner:
            raise InvalidGameStateError("Game is not completed or has no winner")
        return game

    async def _send_fee(
        self,
        game_id: int,
        fee_row: GameTransaction,
        playing_fee: Decimal,
    ) -> str | None:
        try:
            receipt = await self.rail.send(playing_fee, fee_row.to_address)
        except RailUnconfirmedError as e:
            logger.warning(f"Fee transfer for game {game_id} unconfirmed: {e}")
            self.repository.record_submission(fee_row.id, e.tx_hash)
            self.audit.record(
                "TRANSFER_UNCONFIRMED",
                f"Game {game_id}: fee transfer {e.tx_hash} awaiting confirmation",
            )
            return None
        except Exception as e:
            # Winner is already paid; leave the fee row failed for reconciliation.
            logger.error(f"Fee send failed for game {game_id}: {e}", exc_info=True)
            self.repository.fail_transaction(fee_row.id, str(e))
            self.audit.record(
                "FEE_FAILED",
                f"Game {game_id}: fee of {format_sol(playing_fee)} SOL not collected: {e}",
            )
            return None

        self.repository.complete_transaction(fee_row.id, receipt.tx_hash)
        return receipt.tx_hash

    def _hold_unconfirmed(
        self,
        game_id: int,
        error: RailUnconfirmedError,
        payout_row: GameTransaction,
        fee_row: GameTransaction | None,
        winner_wallet: str,
    ) -> PayoutResult:
        """Keep the payout claim active while its signature is unresolved."""
        logger.error(f"Payout for game {game_id} unconfirmed: {error}")
        try:
            self.repository.record_submission(payout_row.id, error.tx_hash)
            if fee_row is not None:
                self.repository.fail_transaction(fee_row.id, "Not sent: payout unconfirmed")
        except NightfallError as e:
            logger.error(f"Game {game_id}: could not record unconfirmed payout: {e}")
        self.audit.record(
            "TRANSFER_UNCONFIRMED",
            f"Game {game_id}: payout {error.tx_hash} awaiting confirmation",
            target_user=winner_wallet,
        )
        return PayoutResult(
            success=False,
            tx_hash=error.tx_hash,
            error=str(error),
            error_code=error.code,
        )

    def _release(self, game_id: int, rows: list[GameTransaction], error: str) -> None:
        try:
            for row in rows:
                self.repository.fail_transaction(row.id, error)
        except NightfallError as e:
            logger.error(f"Game {game_id}: could not release payout claim: {e}")

    def _fail(self, game_id: int, error: Exception, winner_wallet: str | None) -> PayoutResult:
        message = str(error) or "Unknown error"
        code = getattr(error, "code", "send_failed")
        logger.warning(f"Payout failed for game {game_id}: {message}")
        self.audit.record(
            "PAYOUT_FAILED",
            f"Game {game_id}: {message}",
            target_user=winner_wallet,
        )
        return PayoutResult(success=False, error=message, error_code=code)
