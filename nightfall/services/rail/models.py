from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class TxReceipt(BaseModel):
    tx_hash: str
    to_address: str
    amount: str
    lamports: int
    paper: bool = False
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
