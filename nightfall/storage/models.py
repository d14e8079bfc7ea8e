"""Records held by the repository."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from nightfall.money import canonical_sol

GameStatus = Literal["waiting", "in_progress", "completed", "cancelled"]
TransactionType = Literal["payout", "fee", "refund"]
TransactionStatus = Literal["pending", "completed", "failed"]
AuditAction = Literal[
    "PAYOUT_PROCESSED",
    "PAYOUT_FAILED",
    "REFUND_PROCESSED",
    "REFUND_FAILED",
    "FEE_FAILED",
    "TRANSFER_UNCONFIRMED",
]
LeaderboardMetric = Literal["wins", "streak", "volume"]

TERMINAL_STATUSES: tuple[GameStatus, ...] = ("completed", "cancelled")
ACTIVE_TX_STATUSES: tuple[TransactionStatus, ...] = ("pending", "completed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    """Registered player with a cached SOL balance."""

    id: int = 0
    username: str
    wallet_address: str
    avatar: str = "U"
    sol_balance: str = "0"
    total_wagered: str = "0"
    total_won: str = "0"
    current_streak: int = 0
    max_streak: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)

    @field_validator("sol_balance", "total_wagered", "total_won", mode="before")
    @classmethod
    def canonical_amount(cls, v: Any) -> str:
        return canonical_sol(v, default="0")


class Game(BaseModel):
    """A match record, from lobby to terminal state."""

    id: int = 0
    game_type: str = "coinflip"
    created_by: str
    status: GameStatus = "waiting"
    winner: str | None = None
    bet_amount: str = "0"
    total_pool: str = "0"
    playing_fee: str = "0.0001"
    min_players: int = 2
    max_players: int = 2
    game_data: dict[str, Any] = Field(default_factory=dict)
    can_cancel_after: datetime = Field(default_factory=_utcnow)
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @field_validator("bet_amount", "total_pool", "playing_fee", mode="before")
    @classmethod
    def canonical_amount(cls, v: Any) -> str:
        return canonical_sol(v, default="0")

    @property
    def participants(self) -> list[str]:
        """Participant wallets, falling back to the creator alone."""
        participants = self.game_data.get("participants")
        if not participants:
            return [self.created_by]
        return list(participants)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class GameTransaction(BaseModel):
    """One ledger row describing a single fund movement."""

    id: int = 0
    game_id: int
    type: TransactionType
    to_address: str
    amount: str
    status: TransactionStatus = "pending"
    tx_hash: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def canonical_amount(cls, v: Any) -> str:
        return canonical_sol(v)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TX_STATUSES


class AuditLogEntry(BaseModel):
    """Append-only trace of a system action."""

    id: int = 0
    admin_wallet: str
    action: AuditAction
    target_user: str | None = None
    details: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
