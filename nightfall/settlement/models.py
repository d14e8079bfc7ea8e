from pydantic import BaseModel, Field


class PayoutResult(BaseModel):
    """Outcome of a payout attempt. Errors are reported, never raised."""

    success: bool
    tx_hash: str | None = None
    fee_tx_hash: str | None = None
    net_payout: str | None = None
    error: str | None = None
    error_code: str | None = None


class RefundResult(BaseModel):
    """Outcome of a refund attempt."""

    success: bool
    tx_hashes: list[str] = Field(default_factory=list)
    refunded: list[str] = Field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
