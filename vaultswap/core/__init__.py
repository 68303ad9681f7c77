"""Core modules for vaultswap."""

from .config import ConfigManager, CoreSettings, VaultConfig, settings
from .exceptions import (
    ApprovalExecutionError,
    ChainMismatchError,
    ConfigurationError,
    ContractNotDeployedError,
    ExecutionRevertedError,
    InsufficientBalanceError,
    InvalidRequestError,
    InvalidSlippageError,
    MalformedQuoteError,
    NetworkError,
    OrderIntegrityError,
    OrderSubmissionError,
    ProtectedTokenMismatchError,
    QuoteUnavailableError,
    TokenNotFoundError,
    TransactionError,
    UnsafeQuoteError,
    UnverifiedTokenError,
    VaultSwapError,
)

__all__ = [
    "settings",
    "ConfigManager",
    "CoreSettings",
    "VaultConfig",
    "VaultSwapError",
    "ConfigurationError",
    "NetworkError",
    "ChainMismatchError",
    "ContractNotDeployedError",
    "TokenNotFoundError",
    "ProtectedTokenMismatchError",
    "UnverifiedTokenError",
    "InvalidRequestError",
    "InvalidSlippageError",
    "QuoteUnavailableError",
    "MalformedQuoteError",
    "UnsafeQuoteError",
    "InsufficientBalanceError",
    "TransactionError",
    "ApprovalExecutionError",
    "ExecutionRevertedError",
    "OrderSubmissionError",
    "OrderIntegrityError",
]
