"""Storage layer for Nightfall - repository interface and backends.

This package provides:
- Record models (games, users, ledger rows, audit entries)
- InMemoryRepository: volatile store for development and tests
- YamlRepository: durable store persisted to data/ledger.yaml with atomic writes
"""

from nightfall.config import Settings

from .files import YamlRepository
from .models import (
    AuditAction,
    AuditLogEntry,
    Game,
    GameStatus,
    GameTransaction,
    TransactionStatus,
    TransactionType,
    User,
)
from .repository import InMemoryRepository, Repository, require_user


def create_repository(settings: Settings) -> Repository:
    """Build the repository selected by ``settings.storage_backend``."""
    if settings.storage_backend == "yaml":
        return YamlRepository(settings.data_dir)
    return InMemoryRepository()


__all__ = [
    # Models
    "AuditAction",
    "AuditLogEntry",
    "Game",
    "GameStatus",
    "GameTransaction",
    "TransactionStatus",
    "TransactionType",
    "User",
    # Repositories
    "Repository",
    "InMemoryRepository",
    "YamlRepository",
    "create_repository",
    "require_user",
]
