"""
Unit Tests: Cancelled game refunds

Test cases:
- Every participant receives exactly the stake
- Running the refund again credits nobody twice
- A failed send is recorded and only the missing refunds are retried
- An unconfirmed refund is never sent again
- A storage failure is reported as a result
"""

import asyncio

from nightfall.config import SettlementConfig
from nightfall.services.rail import (
    PaperRail,
    RailSendError,
    RailUnconfirmedError,
    generate_paper_signature,
)
from nightfall.settlement import RefundFlow
from nightfall.storage import Game


class FailingOnceRail(PaperRail):
    def __init__(self, wallet: str):
        super().__init__()
        self.wallet = wallet
        self.failed = False

    async def send(self, amount, to_address):
        if to_address == self.wallet and not self.failed:
            self.failed = True
            raise RailSendError("Blockhash expired", to_address)
        return await super().send(amount, to_address)


class StuckRail(PaperRail):
    """Paper rail whose transfers to one wallet never confirm."""

    def __init__(self, wallet: str):
        super().__init__()
        self.wallet = wallet
        self.attempts: list[str] = []

    async def send(self, amount, to_address):
        self.attempts.append(to_address)
        if to_address == self.wallet:
            tx_hash = generate_paper_signature()
            raise RailUnconfirmedError("Transfer not confirmed", to_address, tx_hash=tx_hash)
        return await super().send(amount, to_address)


def test_refund_returns_stake_to_each_participant(repository, refunds, rail, register_user, make_game, make_wallet) -> None:
    players = [make_wallet() for _ in range(3)]
    for wallet in players:
        register_user(wallet, balance="0.5")
    game = make_game(players, status="cancelled", bet_amount="0.25")

    result = asyncio.run(refunds.process_game_refund(game.id))

    assert result.success
    assert result.refunded == players
    assert len(result.tx_hashes) == 3

    rows = repository.get_game_transactions(game.id)
    assert [(r.type, r.to_address, r.amount, r.status) for r in rows] == [
        ("refund", wallet, "0.25", "completed") for wallet in players
    ]
    for wallet in players:
        assert repository.get_user_by_wallet(wallet).sol_balance == "0.75"

    (entry,) = repository.get_audit_logs()
    assert entry.action == "REFUND_PROCESSED"
    assert entry.details == f"Game {game.id}: Refunded 3 participants 0.25 SOL each"


def test_second_refund_credits_nobody(repository, refunds, rail, register_user, make_game, make_wallet) -> None:
    players = [make_wallet(), make_wallet()]
    for wallet in players:
        register_user(wallet)
    game = make_game(players, status="cancelled", bet_amount="0.1")

    async def run():
        first = await refunds.process_game_refund(game.id)
        second = await refunds.process_game_refund(game.id)
        return first, second

    first, second = asyncio.run(run())

    assert first.success
    assert not second.success
    assert second.error_code == "already_processed"
    assert len(rail.receipts) == 2
    for wallet in players:
        assert repository.get_user_by_wallet(wallet).sol_balance == "0.1"
    assert len(repository.get_game_transactions(game.id)) == 2


def test_refund_requires_cancelled_game(repository, refunds, make_game, make_wallet) -> None:
    game = make_game([make_wallet(), make_wallet()], status="waiting")

    result = asyncio.run(refunds.process_game_refund(game.id))

    assert not result.success
    assert result.error == "Game is not cancelled"
    assert result.error_code == "invalid_state"
    assert repository.get_game_transactions(game.id) == []
    assert repository.get_audit_logs()[0].action == "REFUND_FAILED"


def test_refund_missing_game(refunds) -> None:
    result = asyncio.run(refunds.process_game_refund(42))

    assert not result.success
    assert result.error == "Game not found"


def test_participants_fall_back_to_creator(repository, refunds, make_wallet) -> None:
    creator = make_wallet()
    game = repository.create_game(
        Game(created_by=creator, status="cancelled", bet_amount="0.3", total_pool="0.3")
    )

    result = asyncio.run(refunds.process_game_refund(game.id))

    assert result.success
    assert result.refunded == [creator]


def test_failed_send_retries_only_missing_refunds(repository, register_user, make_game, make_wallet) -> None:
    alice, bob, carol = make_wallet(), make_wallet(), make_wallet()
    for wallet in (alice, bob, carol):
        register_user(wallet)
    game = make_game([alice, bob, carol], status="cancelled", bet_amount="0.2")
    rail = FailingOnceRail(bob)
    refunds = RefundFlow(repository, rail, SettlementConfig())

    async def run():
        first = await refunds.process_game_refund(game.id)
        retry = await refunds.process_game_refund(game.id)
        return first, retry

    first, retry = asyncio.run(run())

    assert not first.success
    assert first.refunded == [alice]
    assert "Blockhash expired" in first.error
    assert retry.success
    assert retry.refunded == [bob, carol]

    for wallet in (alice, bob, carol):
        assert repository.get_user_by_wallet(wallet).sol_balance == "0.2"

    bob_rows = [r.status for r in repository.get_game_transactions(game.id) if r.to_address == bob]
    assert bob_rows == ["failed", "completed"]


def test_unconfirmed_refund_is_not_sent_again(repository, register_user, make_game, make_wallet) -> None:
    alice, bob, carol = make_wallet(), make_wallet(), make_wallet()
    for wallet in (alice, bob, carol):
        register_user(wallet)
    game = make_game([alice, bob, carol], status="cancelled", bet_amount="0.2")
    rail = StuckRail(bob)
    refunds = RefundFlow(repository, rail, SettlementConfig())

    async def run():
        first = await refunds.process_game_refund(game.id)
        retry = await refunds.process_game_refund(game.id)
        return first, retry

    first, retry = asyncio.run(run())

    assert not first.success
    assert first.error_code == "unconfirmed"
    assert first.refunded == [alice]
    assert retry.success
    assert retry.refunded == [carol]
    assert rail.attempts == [alice, bob, carol]

    (bob_row,) = [r for r in repository.get_game_transactions(game.id) if r.to_address == bob]
    assert bob_row.status == "pending"
    assert bob_row.tx_hash
    assert repository.get_user_by_wallet(bob).sol_balance == "0"


def test_storage_failure_is_reported(broken_disk, make_wallet) -> None:
    creator = make_wallet()
    game = broken_disk.create_game(
        Game(created_by=creator, status="cancelled", bet_amount="0.5")
    )
    rail = PaperRail()
    refunds = RefundFlow(broken_disk, rail, SettlementConfig())

    broken_disk.broken = True
    result = asyncio.run(refunds.process_game_refund(game.id))

    assert not result.success
    assert result.error_code == "storage_error"
    assert broken_disk.get_game_transactions(game.id) == []
    assert rail.receipts == []
