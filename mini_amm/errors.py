"""
Error kinds raised by liquidity pools.

Every error class carries a stable ``code`` so callers and tests can assert
on the exact failure cause instead of matching messages.
"""


class ValidationError(Exception):
    """Raised when validation fails."""
    code = "VALIDATION_ERROR"


class InvalidAssetPair(ValidationError):
    """Asset identifiers are missing, malformed or identical."""
    code = "INVALID_ASSET_PAIR"


class InvalidAmount(ValidationError):
    """Amount is negative or not an integer."""
    code = "INVALID_AMOUNT"


class ZeroAmount(ValidationError):
    """A required amount is zero."""
    code = "ZERO_AMOUNT"


class RatioMismatch(ValidationError):
    """Deposit does not match the current reserve ratio exactly."""
    code = "RATIO_MISMATCH"


class NoLiquidity(ValidationError):
    """Pool has not received its first deposit yet."""
    code = "NO_LIQUIDITY"


class AmbiguousDirection(ValidationError):
    """Both swap inputs are positive."""
    code = "AMBIGUOUS_DIRECTION"


class InsufficientLiquidity(ValidationError):
    """Swap input exceeds what the pool accepts from its current reserves."""
    code = "INSUFFICIENT_LIQUIDITY"


class PoolExists(ValidationError):
    code = "POOL_EXISTS"


class PoolNotFound(ValidationError):
    code = "POOL_NOT_FOUND"


class TransferFailed(ValidationError):
    """The asset ledger refused or failed a transfer."""
    code = "TRANSFER_FAILED"

    def __init__(self, asset: bytes, sender: bytes, recipient: bytes,
                 amount: int, reason: str):
        self.asset = asset
        self.sender = sender
        self.recipient = recipient
        self.amount = amount
        self.reason = reason
        super().__init__(
            f"Transfer of {amount} {asset.hex()[:8]} from {sender.hex()[:8]} "
            f"to {recipient.hex()[:8]} failed: {reason}"
        )
