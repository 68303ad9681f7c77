"""Direct-venue swap pipeline: quotes, slippage, allowances and role execution."""

from .allowance import AllowanceManager, ApprovalMode
from .context import ExecutionContext, build_context
from .executor import CallKind, RoleCall, RoleExecutor, TransactionResult
from .flow import DirectSwapFlow, SwapOutcome, SwapRequest
from .quote import Quote, QuoteClient
from .slippage import ProtectedQuote, SlippageGuard, min_amount_out, slippage_to_bps, smart_slippage

__all__ = [
    "AllowanceManager",
    "ApprovalMode",
    "CallKind",
    "DirectSwapFlow",
    "ExecutionContext",
    "ProtectedQuote",
    "Quote",
    "QuoteClient",
    "RoleCall",
    "RoleExecutor",
    "SlippageGuard",
    "SwapOutcome",
    "SwapRequest",
    "TransactionResult",
    "build_context",
    "min_amount_out",
    "slippage_to_bps",
    "smart_slippage",
]
