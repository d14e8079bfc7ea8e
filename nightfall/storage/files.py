"""YAML-backed repository with atomic writes to data/ledger.yaml."""

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from nightfall.exceptions import StorageError
from nightfall.storage.models import AuditLogEntry, Game, GameTransaction, User
from nightfall.storage.repository import InMemoryRepository

logger = logging.getLogger(__name__)

LEDGER_FILENAME = "ledger.yaml"


class LedgerSnapshot(BaseModel):
    """On-disk layout of the ledger file."""

    last_updated: datetime | None = None
    next_ids: dict[str, int] = Field(default_factory=dict)
    users: list[User] = Field(default_factory=list)
    games: list[Game] = Field(default_factory=list)
    transactions: list[GameTransaction] = Field(default_factory=list)
    audit_logs: list[AuditLogEntry] = Field(default_factory=list)


class YamlRepository(InMemoryRepository):
    """Repository that survives restarts.

    Reads the snapshot once at start-up and rewrites it after every
    successful mutation. A failed write raises StorageError and the
    mutation is rolled back in memory. Writes go to a temp file in the same directory and
    are renamed into place, so a crash mid-write leaves the previous file
    intact.
    """

    def __init__(self, data_dir: Path) -> None:
        super().__init__()
        self.path = Path(data_dir) / LEDGER_FILENAME
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.info(f"Ledger file not found: {self.path}. Starting empty.")
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Corrupted YAML in ledger file: {e}")
            raise

        if not raw_data:
            logger.warning(f"Empty ledger file: {self.path}. Starting empty.")
            return

        snapshot = LedgerSnapshot(**raw_data)
        self._users = {u.id: u for u in snapshot.users}
        self._games = {g.id: g for g in snapshot.games}
        self._transactions = {t.id: t for t in snapshot.transactions}
        self._audit_logs = {a.id: a for a in snapshot.audit_logs}
        self._next_ids.update(snapshot.next_ids)
        logger.debug(
            f"Loaded ledger from {self.path}: {len(self._games)} games, "
            f"{len(self._transactions)} transactions"
        )

    def _commit(self) -> None:
        snapshot = LedgerSnapshot(
            last_updated=datetime.now(timezone.utc),
            next_ids=dict(self._next_ids),
            users=list(self._users.values()),
            games=list(self._games.values()),
            transactions=list(self._transactions.values()),
            audit_logs=list(self._audit_logs.values()),
        )
        snapshot_dict = snapshot.model_dump(mode="json")

        temp_path: Path | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=self.path.parent,
                delete=False,
                suffix=".yaml",
                encoding="utf-8",
            ) as temp_file:
                temp_path = Path(temp_file.name)
                yaml.dump(
                    snapshot_dict,
                    temp_file,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                )

            shutil.move(str(temp_path), str(self.path))
            logger.debug(f"Saved ledger to {self.path}")

        except Exception as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            logger.error(f"Failed to save ledger: {e}")
            raise StorageError(f"Failed to save ledger: {e}") from e
