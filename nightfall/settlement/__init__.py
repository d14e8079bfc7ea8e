"""Settlement of finished games: winner payouts and cancellation refunds."""

from .audit import AuditTrail
from .models import PayoutResult, RefundResult
from .payout import GameSettlement
from .refund import RefundFlow

__all__ = [
    "AuditTrail",
    "GameSettlement",
    "PayoutResult",
    "RefundFlow",
    "RefundResult",
]
