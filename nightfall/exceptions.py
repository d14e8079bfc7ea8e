class NightfallError(Exception):
    """Base exception for game, settlement and ledger errors."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GameNotFoundError(NightfallError):
    """Game does not exist."""

    code = "not_found"


class UserNotFoundError(NightfallError):
    """User does not exist."""

    code = "not_found"


class InvalidGameStateError(NightfallError):
    """Operation is not allowed in the game's current status."""

    code = "invalid_state"


class InvalidInputError(NightfallError):
    """Caller supplied malformed or out-of-range input."""

    code = "invalid_input"


class InvalidWalletError(InvalidInputError):
    """Wallet address is not a valid Solana public key."""

    pass


class InvalidAmountError(InvalidInputError):
    """Amount is not a valid SOL decimal."""

    pass


class AlreadyProcessedError(NightfallError):
    """Ledger already holds an active row for this claim."""

    code = "already_processed"


class ForbiddenError(NightfallError):
    """Caller is not allowed to perform the operation."""

    code = "forbidden"


class CancelCooldownError(InvalidGameStateError):
    """Game cannot be cancelled until its cooldown elapses."""

    code = "cancel_cooldown"

    def __init__(self, message: str, remaining_seconds: int):
        super().__init__(message)
        self.remaining_seconds = remaining_seconds


class StorageError(NightfallError):
    """Repository could not persist a write; the write was rolled back."""

    code = "storage_error"
