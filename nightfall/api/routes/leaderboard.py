"""Leaderboard API routes."""

from fastapi import APIRouter, Depends, Query

from nightfall.api.dependencies import get_repository
from nightfall.storage import Repository

router = APIRouter(prefix="/api/leaderboard", tags=["Leaderboard"])


@router.get("/{metric}")
async def get_leaderboard(
    metric: str,
    limit: int = Query(10, ge=1, le=100),
    repository: Repository = Depends(get_repository),
):
    """Top users by ``wins`` (total won), ``streak`` (best streak) or ``volume`` (total wagered)."""
    return repository.get_leaderboard(metric, limit=limit)
