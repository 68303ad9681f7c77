"""
Core Exception Classes
---------------------
Swap-pipeline exceptions following fail-fast principles.

Every error carries a human-readable message plus the structured fields needed
to render it; the CLI decides how to present them. Nothing here is retried.
"""

from typing import Any


class VaultSwapError(Exception):
    """Base exception for all vaultswap errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(VaultSwapError):
    """Raised when configuration is invalid or missing."""
    pass


class NetworkError(VaultSwapError):
    """Raised when network/RPC operations fail."""
    pass


class ChainMismatchError(VaultSwapError):
    """Raised when the RPC endpoint reports a different chain than configured."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Wrong chain: got {actual}, expected {expected}",
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class ContractNotDeployedError(VaultSwapError):
    """Raised when a contract the flow depends on has no bytecode."""

    def __init__(self, name: str, address: str):
        super().__init__(f"Missing contract bytecode at {name}: {address}")
        self.name = name
        self.address = address


class TokenNotFoundError(VaultSwapError):
    """Raised when a symbol is not in the verified registry."""

    def __init__(self, symbol: str):
        super().__init__(
            f'Token "{symbol}" not found in verified list. '
            f"Use the contract address directly (e.g. --from 0x...)."
        )
        self.symbol = symbol


class ProtectedTokenMismatchError(VaultSwapError):
    """Raised when a protected symbol has no verified mapping."""

    def __init__(self, symbol: str):
        super().__init__(
            f'SECURITY: "{symbol}" is protected but no verified mapping exists. '
            f"This could be a scam token. Use the contract address directly if intended."
        )
        self.symbol = symbol


class UnverifiedTokenError(VaultSwapError):
    """Raised when execution is requested for a warned token without confirmation."""

    def __init__(self, symbol: str, address: str):
        super().__init__(
            f"Refusing to execute with unverified token {symbol} at {address}. "
            f"Pass --allow-unverified to confirm."
        )
        self.symbol = symbol
        self.address = address


class InvalidSlippageError(VaultSwapError):
    """Raised when a slippage fraction is outside [0, 0.5]."""

    def __init__(self, value: Any):
        super().__init__(f"Slippage must be between 0 and 0.5, got {value}")
        self.value = value


class QuoteUnavailableError(VaultSwapError):
    """Raised when a quote service returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        details = {"status": status_code} if status_code is not None else None
        super().__init__(message, details)
        self.status_code = status_code


class MalformedQuoteError(VaultSwapError):
    """Raised when a quote payload lacks required numeric or hex fields."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Malformed quote: {field} {reason}")
        self.field = field
        self.reason = reason


class InvalidRequestError(VaultSwapError):
    """Raised when the swap request itself is unusable (amount, same token)."""
    pass


class UnsafeQuoteError(VaultSwapError):
    """Raised when a quote or order violates a safety invariant."""
    pass


class InsufficientBalanceError(VaultSwapError):
    """Raised when the vault cannot cover the requested amount."""

    def __init__(self, symbol: str, required: int, available: int, display: str | None = None):
        message = f"Insufficient {symbol} balance in vault"
        if display:
            message = f"{message}. Have {display}"
        super().__init__(message, {"required": required, "available": available})
        self.symbol = symbol
        self.required = required
        self.available = available


class TransactionError(VaultSwapError):
    """Raised when blockchain transaction fails."""

    def __init__(self, message: str, tx_hash: str | None = None, receipt: dict | None = None):
        details = {}
        if tx_hash:
            details["tx_hash"] = tx_hash
        if receipt:
            details["gas_used"] = receipt.get("gasUsed")
            details["status"] = receipt.get("status")
        super().__init__(message, details)
        self.tx_hash = tx_hash
        self.receipt = receipt


class ExecutionRevertedError(TransactionError):
    """Raised when a role-executed call reverts on-chain or in simulation."""

    def __init__(
        self,
        message: str,
        tx_hash: str | None = None,
        receipt: dict | None = None,
        reason: str | None = None,
    ):
        super().__init__(message, tx_hash, receipt)
        if reason:
            self.details["reason"] = reason
        self.reason = reason


class ApprovalExecutionError(TransactionError):
    """Raised when the router approval cannot be confirmed."""
    pass


class OrderSubmissionError(VaultSwapError):
    """Raised when the batch-auction API rejects an order."""
    pass


class OrderIntegrityError(VaultSwapError):
    """Raised when the presigned order differs from the submitted one."""

    def __init__(self, field: str, submitted: Any, presigned: Any):
        super().__init__(
            f"Order integrity failure on {field}",
            {"submitted": submitted, "presigned": presigned},
        )
        self.field = field
