class RailError(Exception):
    """Base exception for payment rail errors."""

    code = "send_failed"

    def __init__(self, message: str, to_address: str | None = None):
        super().__init__(message)
        self.to_address = to_address


class RailConfigError(RailError):
    """Rail is missing configuration required to move funds."""

    pass


class RailSendError(RailError):
    """The transfer definitely did not land; it is safe to release the claim."""

    pass


class RailUnconfirmedError(RailError):
    """The transfer was signed and submitted but its outcome is unknown.

    It may still land, so the claim must stay active until the signature is
    checked.
    """

    code = "unconfirmed"

    def __init__(self, message: str, to_address: str | None = None, tx_hash: str = ""):
        super().__init__(message, to_address)
        self.tx_hash = tx_hash
