"""Transaction verification and network fee routes."""

from fastapi import APIRouter, Depends

from nightfall.api.dependencies import get_rail, get_repository
from nightfall.money import format_sol
from nightfall.services.rail import PaymentRail
from nightfall.storage import Repository

router = APIRouter(prefix="/api", tags=["Transactions"])


@router.get("/transactions/{tx_hash}/verify")
async def verify_transaction(
    tx_hash: str,
    rail: PaymentRail = Depends(get_rail),
    repository: Repository = Depends(get_repository),
):
    """Check a signature against the rail and list matching ledger rows."""
    verified = await rail.verify(tx_hash)
    return {
        "tx_hash": tx_hash,
        "verified": verified,
        "ledger": repository.get_transaction_by_hash(tx_hash),
    }


@router.get("/network/fee")
async def get_network_fee(rail: PaymentRail = Depends(get_rail)):
    return {"network_fee": format_sol(rail.estimate_network_fee())}
