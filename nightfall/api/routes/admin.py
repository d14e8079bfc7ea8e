"""Admin API routes."""

from fastapi import APIRouter, Depends, Query

from nightfall.api.dependencies import get_repository
from nightfall.storage import Repository

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/audit-logs")
async def get_audit_logs(
    limit: int = Query(default=100, ge=1, le=1000),
    repository: Repository = Depends(get_repository),
):
    """Audit entries, newest first."""
    logs = repository.get_audit_logs(limit)
    return {"count": len(logs), "logs": logs}
