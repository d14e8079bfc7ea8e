from .client import (
    PaperRail,
    PaymentRail,
    SolanaRail,
    create_payment_rail,
    generate_paper_signature,
    is_signature_shaped,
)
from .config import RailConfig
from .exceptions import RailConfigError, RailError, RailSendError, RailUnconfirmedError
from .models import TxReceipt

__all__ = [
    "PaymentRail",
    "PaperRail",
    "SolanaRail",
    "create_payment_rail",
    "generate_paper_signature",
    "is_signature_shaped",
    "RailConfig",
    "RailError",
    "RailConfigError",
    "RailSendError",
    "RailUnconfirmedError",
    "TxReceipt",
]
