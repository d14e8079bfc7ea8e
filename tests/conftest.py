"""Shared fixtures for Nightfall tests."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from solders.keypair import Keypair

from nightfall.config import GamesConfig, SettlementConfig
from nightfall.exceptions import StorageError
from nightfall.games import GameService
from nightfall.money import format_sol
from nightfall.services.rail import PaperRail
from nightfall.settlement import GameSettlement, RefundFlow
from nightfall.storage import Game, InMemoryRepository, User


def new_wallet() -> str:
    return str(Keypair().pubkey())


@pytest.fixture
def make_wallet():
    return new_wallet


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


class BrokenDiskRepository(InMemoryRepository):
    """In-memory repository whose commits fail while ``broken`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.broken = False

    def _commit(self) -> None:
        if self.broken:
            raise StorageError("Failed to save ledger: [Errno 28] No space left on device")


@pytest.fixture
def broken_disk() -> BrokenDiskRepository:
    return BrokenDiskRepository()


@pytest.fixture
def rail() -> PaperRail:
    return PaperRail()


@pytest.fixture
def settlement(repository, rail) -> GameSettlement:
    return GameSettlement(repository, rail, SettlementConfig())


@pytest.fixture
def refunds(repository, rail) -> RefundFlow:
    return RefundFlow(repository, rail, SettlementConfig())


@pytest.fixture
def register_user(repository):
    """Register a user for a wallet and return the stored record."""

    def _register(wallet: str, username: str | None = None, balance: str = "0") -> User:
        return repository.create_user(
            User(
                username=username or f"player_{wallet[:8]}",
                wallet_address=wallet,
                sol_balance=balance,
            )
        )

    return _register


@pytest.fixture
def make_game(repository):
    """Store a game directly, bypassing the lobby flow."""

    def _make(
        participants: list[str],
        status: str = "completed",
        bet_amount: str = "0.1001",
        total_pool: str | None = None,
        playing_fee: str = "0.0001",
        winner: str | None = None,
    ) -> Game:
        if total_pool is None:
            total_pool = format_sol(Decimal(bet_amount) * len(participants))
        return repository.create_game(
            Game(
                created_by=participants[0],
                status=status,
                winner=winner if winner is not None else (
                    participants[0] if status == "completed" else None
                ),
                bet_amount=bet_amount,
                total_pool=total_pool,
                playing_fee=playing_fee,
                min_players=len(participants),
                max_players=len(participants),
                game_data={"participants": participants},
                created_at=datetime.now(timezone.utc),
            )
        )

    return _make


class FakeClock:
    """Settable clock for lifecycle tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def game_service(repository, settlement, refunds, clock) -> GameService:
    return GameService(repository, settlement, refunds, GamesConfig(), clock=clock)
