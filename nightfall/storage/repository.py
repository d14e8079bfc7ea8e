"""Repository interface and the in-memory store.

Every public method runs under one re-entrant lock, so each call is atomic
with respect to every other call. Ledger claims check and insert in a single
call, which is what guards against paying a game twice.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator

from nightfall.exceptions import (
    AlreadyProcessedError,
    GameNotFoundError,
    InvalidInputError,
    UserNotFoundError,
)
from nightfall.money import format_sol, parse_sol
from nightfall.storage.models import (
    AuditLogEntry,
    Game,
    GameStatus,
    GameTransaction,
    LeaderboardMetric,
    TransactionType,
    User,
)

logger = logging.getLogger(__name__)

LEADERBOARD_KEYS = {
    "wins": lambda u: parse_sol(u.total_won),
    "streak": lambda u: u.max_streak,
    "volume": lambda u: parse_sol(u.total_wagered),
}


class Repository(ABC):
    """Persistence boundary for users, games, ledger rows and audit entries."""

    # Users

    @abstractmethod
    def create_user(self, user: User) -> User: ...

    @abstractmethod
    def get_user(self, user_id: int) -> User | None: ...

    @abstractmethod
    def get_user_by_wallet(self, wallet_address: str) -> User | None: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    def update_user(self, user: User) -> User: ...

    @abstractmethod
    def credit_balance(self, wallet_address: str, amount: Decimal) -> User | None:
        """Increment a user's cached balance. Returns None for unknown wallets."""

    @abstractmethod
    def update_user_stats(
        self,
        wallet_address: str,
        is_win: bool,
        bet_amount: Decimal,
        win_amount: Decimal,
    ) -> User | None: ...

    @abstractmethod
    def get_leaderboard(self, metric: LeaderboardMetric, limit: int = 10) -> list[User]:
        """Top users by total won, best streak or total wagered."""

    # Games

    @abstractmethod
    def create_game(self, game: Game) -> Game: ...

    @abstractmethod
    def get_game(self, game_id: int) -> Game | None: ...

    @abstractmethod
    def save_game(self, game: Game) -> Game: ...

    @abstractmethod
    def list_games(self, status: GameStatus | None = None) -> list[Game]: ...

    # Ledger

    @abstractmethod
    def claim_transactions(
        self,
        game_id: int,
        rows: list[GameTransaction],
        claim_type: TransactionType,
        claim_address: str | None = None,
    ) -> list[GameTransaction]:
        """Insert ``rows`` unless an active ``claim_type`` row already exists.

        When ``claim_address`` is given the claim is scoped to that recipient.
        Raises AlreadyProcessedError without writing anything on conflict.
        """

    @abstractmethod
    def complete_transaction(self, tx_id: int, tx_hash: str) -> GameTransaction: ...

    @abstractmethod
    def record_submission(self, tx_id: int, tx_hash: str) -> GameTransaction:
        """Attach the signature of a submitted but unconfirmed transfer.

        The row stays pending, so its claim stays active.
        """

    @abstractmethod
    def fail_transaction(self, tx_id: int, error: str) -> GameTransaction: ...

    @abstractmethod
    def get_game_transactions(self, game_id: int) -> list[GameTransaction]: ...

    @abstractmethod
    def get_transaction_by_hash(self, tx_hash: str) -> list[GameTransaction]: ...

    # Audit

    @abstractmethod
    def create_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry: ...

    @abstractmethod
    def get_audit_logs(self, limit: int = 100) -> list[AuditLogEntry]: ...


class InMemoryRepository(Repository):
    """Dict-backed repository. State is lost when the process exits."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: dict[int, User] = {}
        self._games: dict[int, Game] = {}
        self._transactions: dict[int, GameTransaction] = {}
        self._audit_logs: dict[int, AuditLogEntry] = {}
        self._next_ids = {"users": 1, "games": 1, "transactions": 1, "audit_logs": 1}

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        """Hold the lock for a write and persist once it succeeds.

        If the write or its commit raises, the in-memory state is restored
        to what it was before the write began.
        """
        with self._lock:
            saved = self._snapshot()
            try:
                yield
                self._commit()
            except Exception:
                self._restore(saved)
                raise

    def _commit(self) -> None:
        """Hook for durable subclasses. Raises StorageError on failure."""

    def _snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "users": self._users,
                "games": self._games,
                "transactions": self._transactions,
                "audit_logs": self._audit_logs,
                "next_ids": self._next_ids,
            }
        )

    def _restore(self, saved: dict[str, Any]) -> None:
        self._users = saved["users"]
        self._games = saved["games"]
        self._transactions = saved["transactions"]
        self._audit_logs = saved["audit_logs"]
        self._next_ids = saved["next_ids"]

    def _next_id(self, table: str) -> int:
        value = self._next_ids[table]
        self._next_ids[table] = value + 1
        return value

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        with self._mutation():
            if self._find_user(username=user.username):
                raise InvalidInputError("Username already taken")
            if self._find_user(wallet_address=user.wallet_address):
                raise InvalidInputError("Wallet address already registered")

            stored = user.model_copy(update={"id": self._next_id("users")})
            self._users[stored.id] = stored
            logger.info(f"Registered user {stored.username} ({stored.wallet_address})")
            return stored.model_copy()

    def get_user(self, user_id: int) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_wallet(self, wallet_address: str) -> User | None:
        with self._lock:
            user = self._find_user(wallet_address=wallet_address)
            return user.model_copy() if user else None

    def get_user_by_username(self, username: str) -> User | None:
        with self._lock:
            user = self._find_user(username=username)
            return user.model_copy() if user else None

    def update_user(self, user: User) -> User:
        with self._mutation():
            if user.id not in self._users:
                raise UserNotFoundError(f"User {user.id} not found")
            clash = self._find_user(wallet_address=user.wallet_address)
            if clash is not None and clash.id != user.id:
                raise InvalidInputError("Wallet address already registered")
            self._users[user.id] = user.model_copy()
            return user

    def credit_balance(self, wallet_address: str, amount: Decimal) -> User | None:
        with self._mutation():
            user = self._find_user(wallet_address=wallet_address)
            if user is None:
                return None
            user.sol_balance = format_sol(parse_sol(user.sol_balance) + amount)
            user.last_activity = datetime.now(timezone.utc)
            return user.model_copy()

    def update_user_stats(
        self,
        wallet_address: str,
        is_win: bool,
        bet_amount: Decimal,
        win_amount: Decimal,
    ) -> User | None:
        with self._mutation():
            user = self._find_user(wallet_address=wallet_address)
            if user is None:
                return None

            user.total_wagered = format_sol(parse_sol(user.total_wagered) + bet_amount)
            user.total_won = format_sol(parse_sol(user.total_won) + win_amount)
            if is_win:
                user.current_streak += 1
                user.max_streak = max(user.max_streak, user.current_streak)
            else:
                user.current_streak = 0
            user.last_activity = datetime.now(timezone.utc)
            return user.model_copy()

    def get_leaderboard(self, metric: LeaderboardMetric, limit: int = 10) -> list[User]:
        if metric not in LEADERBOARD_KEYS:
            raise InvalidInputError("Invalid leaderboard type")
        with self._lock:
            users = sorted(self._users.values(), key=LEADERBOARD_KEYS[metric], reverse=True)
            return [u.model_copy() for u in users[:limit]]

    def _find_user(
        self,
        username: str | None = None,
        wallet_address: str | None = None,
    ) -> User | None:
        for user in self._users.values():
            if username is not None and user.username == username:
                return user
            if wallet_address is not None and user.wallet_address == wallet_address:
                return user
        return None

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def create_game(self, game: Game) -> Game:
        with self._mutation():
            stored = game.model_copy(deep=True, update={"id": self._next_id("games")})
            self._games[stored.id] = stored
            return stored.model_copy(deep=True)

    def get_game(self, game_id: int) -> Game | None:
        with self._lock:
            game = self._games.get(game_id)
            return game.model_copy(deep=True) if game else None

    def save_game(self, game: Game) -> Game:
        with self._mutation():
            if game.id not in self._games:
                raise GameNotFoundError(f"Game {game.id} not found")
            self._games[game.id] = game.model_copy(deep=True)
            return game

    def list_games(self, status: GameStatus | None = None) -> list[Game]:
        with self._lock:
            games = [
                g.model_copy(deep=True)
                for g in self._games.values()
                if status is None or g.status == status
            ]
        return sorted(games, key=lambda g: g.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def claim_transactions(
        self,
        game_id: int,
        rows: list[GameTransaction],
        claim_type: TransactionType,
        claim_address: str | None = None,
    ) -> list[GameTransaction]:
        with self._mutation():
            for existing in self._transactions.values():
                if (
                    existing.game_id == game_id
                    and existing.type == claim_type
                    and existing.is_active
                    and (claim_address is None or existing.to_address == claim_address)
                ):
                    target = f" to {claim_address}" if claim_address else ""
                    raise AlreadyProcessedError(
                        f"{claim_type.capitalize()}{target} already processed for game {game_id}"
                    )

            stored_rows = []
            for row in rows:
                stored = row.model_copy(
                    update={
                        "id": self._next_id("transactions"),
                        "game_id": game_id,
                        "status": "pending",
                    }
                )
                self._transactions[stored.id] = stored
                stored_rows.append(stored.model_copy())
            return stored_rows

    def complete_transaction(self, tx_id: int, tx_hash: str) -> GameTransaction:
        with self._mutation():
            tx = self._get_transaction(tx_id)
            tx.status = "completed"
            tx.tx_hash = tx_hash
            tx.completed_at = datetime.now(timezone.utc)
            return tx.model_copy()

    def record_submission(self, tx_id: int, tx_hash: str) -> GameTransaction:
        with self._mutation():
            tx = self._get_transaction(tx_id)
            if tx.status != "pending":
                raise InvalidInputError(f"Transaction {tx_id} is not pending")
            tx.tx_hash = tx_hash
            return tx.model_copy()

    def fail_transaction(self, tx_id: int, error: str) -> GameTransaction:
        with self._mutation():
            tx = self._get_transaction(tx_id)
            if tx.status == "completed":
                raise InvalidInputError(f"Transaction {tx_id} is already completed")
            tx.status = "failed"
            tx.error = error
            return tx.model_copy()

    def get_game_transactions(self, game_id: int) -> list[GameTransaction]:
        with self._lock:
            return [
                tx.model_copy()
                for tx in sorted(self._transactions.values(), key=lambda t: t.id)
                if tx.game_id == game_id
            ]

    def get_transaction_by_hash(self, tx_hash: str) -> list[GameTransaction]:
        with self._lock:
            return [
                tx.model_copy()
                for tx in self._transactions.values()
                if tx.tx_hash == tx_hash
            ]

    def _get_transaction(self, tx_id: int) -> GameTransaction:
        tx = self._transactions.get(tx_id)
        if tx is None:
            raise InvalidInputError(f"Transaction {tx_id} not found")
        return tx

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def create_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        with self._mutation():
            stored = entry.model_copy(update={"id": self._next_id("audit_logs")})
            self._audit_logs[stored.id] = stored
            return stored.model_copy()

    def get_audit_logs(self, limit: int = 100) -> list[AuditLogEntry]:
        with self._lock:
            entries = sorted(
                self._audit_logs.values(),
                key=lambda e: (e.timestamp, e.id),
                reverse=True,
            )
            return [e.model_copy() for e in entries[:limit]]


def require_user(repository: Repository, wallet_address: str) -> User:
    user = repository.get_user_by_wallet(wallet_address)
    if user is None:
        raise UserNotFoundError("User not found")
    return user
