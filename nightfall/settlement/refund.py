"""Stake refunds for cancelled games."""

import logging

import logfire

from nightfall.config import SettlementConfig
from nightfall.exceptions import (
    AlreadyProcessedError,
    GameNotFoundError,
    InvalidGameStateError,
    NightfallError,
)
from nightfall.money import format_sol, parse_sol
from nightfall.services.rail import PaymentRail, RailUnconfirmedError
from nightfall.settlement.audit import AuditTrail
from nightfall.settlement.models import RefundResult
from nightfall.storage import Game, GameTransaction, Repository

logger = logging.getLogger(__name__)


class RefundFlow:
    """Returns each participant's stake when a game is cancelled.

    Refund rows are claimed per participant, so running the flow again only
    refunds participants without an active refund row.
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

    async def process_game_refund(self, game_id: int) -> RefundResult:
        """Refund every participant without an active refund row.

        Any error, including a storage failure, stops the run and is reported
        in the result; participants already refunded stay refunded.
        """
        with logfire.span("settlement.refund", game_id=game_id):
            return await self._refund(game_id)

    async def _refund(self, game_id: int) -> RefundResult:
        tx_hashes: list[str] = []
        refunded: list[str] = []

        try:
            game = self._get_cancelled_game(game_id)
            participants = game.participants
            refund_amount = parse_sol(game.bet_amount, default="0")

            if refund_amount > 0:
                skipped = 0
                for participant_wallet in participants:
                    try:
                        (row,) = self.repository.claim_transactions(
                            game_id,
                            [
                                GameTransaction(
                                    game_id=game_id,
                                    type="refund",
                                    to_address=participant_wallet,
                                    amount=format_sol(refund_amount),
                                )
                            ],
                            claim_type="refund",
                            claim_address=participant_wallet,
                        )
                    except AlreadyProcessedError:
                        logger.info(f"Game {game_id}: {participant_wallet} already refunded")
                        skipped += 1
                        continue

                    try:
                        receipt = await self.rail.send(refund_amount, participant_wallet)
                    except RailUnconfirmedError as e:
                        # Claim stays active until the signature is resolved.
                        logger.error(
                            f"Refund to {participant_wallet} for game {game_id} unconfirmed: {e}"
                        )
                        self.repository.record_submission(row.id, e.tx_hash)
                        self.audit.record(
                            "TRANSFER_UNCONFIRMED",
                            f"Game {game_id}: refund {e.tx_hash} awaiting confirmation",
                            target_user=participant_wallet,
                        )
                        raise
                    except Exception as e:
                        logger.error(
                            f"Refund send failed for game {game_id} to {participant_wallet}: {e}",
                            exc_info=True,
                        )
                        self.repository.fail_transaction(row.id, str(e))
                        raise

                    tx_hashes.append(receipt.tx_hash)
                    self.repository.complete_transaction(row.id, receipt.tx_hash)
                    if self.repository.credit_balance(participant_wallet, refund_amount) is None:
                        logger.warning(
                            f"Participant {participant_wallet} is not a registered user; "
                            "balance cache not updated"
                        )
                    refunded.append(participant_wallet)

                if participants and skipped == len(participants):
                    raise AlreadyProcessedError(
                        f"Refund already processed for game {game_id}"
                    )

        except Exception as e:
            if not isinstance(e, NightfallError):
                logger.error(f"Refund processing error for game {game_id}: {e}")
            message = str(e) or "Unknown error"
            self.audit.record("REFUND_FAILED", f"Game {game_id}: {message}")
            return RefundResult(
                success=False,
                tx_hashes=tx_hashes,
                refunded=refunded,
                error=message,
                error_code=getattr(e, "code", "send_failed"),
            )

        self.audit.record(
            "REFUND_PROCESSED",
            f"Game {game_id}: Refunded {len(refunded)} participants "
            f"{format_sol(refund_amount)} SOL each",
        )
        logger.info(f"Refunded game {game_id}: {len(refunded)} participants")

        return RefundResult(success=True, tx_hashes=tx_hashes, refunded=refunded)

    def _get_cancelled_game(self, game_id: int) -> Game:
        game = self.repository.get_game(game_id)
        if game is None:
            raise GameNotFoundError("Game not found")
        if game.status != "cancelled":
            raise InvalidGameStateError("Game is not cancelled")
        return game
