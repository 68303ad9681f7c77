"""
Direct Swap Flow
----------------
End-to-end pipeline for the router venue:

    preflight -> resolve tokens -> balance check -> quote -> slippage guard
    -> (execute) allowance -> simulate -> role-executed swap -> optional revoke

Quote-only is the default; nothing state-changing happens without ``execute``.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, field_validator

from vaultswap.blockchain.abi import rewrite_swap_selector
from vaultswap.core.exceptions import (
    ConfigurationError,
    InsufficientBalanceError,
    InvalidRequestError,
    UnverifiedTokenError,
)
from vaultswap.core.logging import log, with_trace_id, with_venue
from vaultswap.tokens.amounts import format_amount, parse_units
from vaultswap.tokens.resolver import TokenDescriptor, TokenResolver

from .allowance import AllowanceManager, ApprovalMode
from .context import ExecutionContext
from .executor import CallKind, RoleCall, RoleExecutor
from .quote import Quote, QuoteClient
from .slippage import SlippageGuard, slippage_to_bps


class SwapRequest(BaseModel):
    """Parameters for a swap request."""
    token_in: str
    token_out: str
    amount: str
    slippage: Optional[float] = None
    execute: bool = False
    approval_mode: ApprovalMode = ApprovalMode.EXACT
    revoke_after: bool = False
    simulate: bool = True
    allow_unverified: bool = False

    @field_validator("token_in", "token_out", "amount")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


@dataclass
class SwapOutcome:
    """What happened (or would happen) for a direct-venue swap."""
    token_in: TokenDescriptor
    token_out: TokenDescriptor
    amount_in: int
    slippage_bps: int
    quote: Quote
    min_amount_out: int
    executed: bool = False
    approval_sent: bool = False
    tx_hash: Optional[str] = None
    revoked: Optional[bool] = None
    new_balance: Optional[int] = None
    warnings: list[str] = field(default_factory=list)

    def summary_lines(self) -> list[str]:
        tin, tout = self.token_in, self.token_out
        route = f"{tin.symbol} -> ... -> {tout.symbol}" if self.quote.is_multi_hop else f"{tin.symbol} -> {tout.symbol}"
        return [
            "-------------------------------------------------------",
            "SWAP SUMMARY",
            f"Pay:         {format_amount(self.amount_in, tin.decimals, tin.symbol)}",
            f"Receive:     ~{format_amount(self.quote.amount_out, tout.decimals, tout.symbol)}",
            f"Min receive: {format_amount(self.min_amount_out, tout.decimals, tout.symbol)} "
            f"({self.slippage_bps / 100:.2f}% slippage)",
            f"Route:       {route}",
            "-------------------------------------------------------",
        ]


def require_confirmed(tokens: list[TokenDescriptor], allow_unverified: bool) -> None:
    """Refuse to execute with a warned token unless explicitly allowed."""
    for token in tokens:
        if token.warning and not allow_unverified:
            raise UnverifiedTokenError(token.symbol, token.address)


def parse_amount(amount: str, token: TokenDescriptor) -> int:
    try:
        return parse_units(amount, token.decimals)
    except ValueError as e:
        raise InvalidRequestError(str(e))


class DirectSwapFlow:
    """Runs one direct-venue swap attempt against an execution context."""

    def __init__(
        self,
        context: ExecutionContext,
        quote_client: Optional[QuoteClient] = None,
        resolver: Optional[TokenResolver] = None,
        executor: Optional[RoleExecutor] = None,
        allowance: Optional[AllowanceManager] = None,
    ):
        self.context = context
        self.vault = context.vault
        self.quote_client = quote_client or QuoteClient(chain_id=context.vault.chain_id)
        self.resolver = resolver or TokenResolver(context.client, context.registry)
        self.executor = executor or RoleExecutor(
            context.client, context.vault, context.settings.receipt_timeout_seconds
        )
        self.allowance = allowance or AllowanceManager(context.client, self.executor)

    def check_balance(self, token: TokenDescriptor, amount_in: int) -> int:
        balance = self.context.vault_balance(token)
        log.info("Vault balance: {}", format_amount(balance, token.decimals, token.symbol))
        if balance < amount_in:
            raise InsufficientBalanceError(
                token.symbol, amount_in, balance,
                display=format_amount(balance, token.decimals, token.symbol),
            )
        return balance

    @with_trace_id
    @with_venue("direct")
    def run(self, request: SwapRequest) -> SwapOutcome:
        """Quote and, if requested, execute a direct-venue swap.

        Raises:
            VaultSwapError: Any failure; nothing is retried.
        """
        self.executor.preflight()

        token_in = self.resolver.resolve(request.token_in)
        token_out = self.resolver.resolve(request.token_out)
        if token_in.address.lower() == token_out.address.lower():
            raise InvalidRequestError("Cannot swap a token for itself")

        warnings = [t.warning for t in (token_in, token_out) if t.warning]
        if request.execute:
            require_confirmed([token_in, token_out], request.allow_unverified)

        amount_in = parse_amount(request.amount, token_in)
        slippage = self.context.settings.default_slippage if request.slippage is None else request.slippage
        slippage_bps = slippage_to_bps(slippage)

        # balance must be known good before a quote is requested
        self.check_balance(token_in, amount_in)

        quote = self.quote_client.get_quote(
            token_in, token_out, amount_in, self.vault.vault_address, slippage_bps
        )
        protected = SlippageGuard(self.vault.vault_address, slippage_bps).protect(
            quote, amount_in, token_in.native
        )

        outcome = SwapOutcome(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            slippage_bps=slippage_bps,
            quote=quote,
            min_amount_out=protected.min_amount_out,
            warnings=warnings,
        )
        if not request.execute:
            log.info("Quote only, no transaction sent")
            return outcome

        self._execute(request, outcome)
        return outcome

    def _execute(self, request: SwapRequest, outcome: SwapOutcome) -> None:
        if not self.context.can_sign:
            raise ConfigurationError("Execution requires the agent signing key")

        token_in = outcome.token_in
        outcome.approval_sent = self.allowance.ensure_allowance(
            token_in, outcome.amount_in, request.approval_mode
        )

        call = RoleCall(
            target=self.vault.helper_address,
            native_value=outcome.amount_in if token_in.native else 0,
            call_data=rewrite_swap_selector(outcome.quote.calldata),
            call_kind=CallKind.DELEGATE_CALL,
            label="swap",
        )
        if request.simulate:
            self.executor.simulate(call)

        result = self.executor.execute(call)
        outcome.executed = True
        outcome.tx_hash = result.tx_hash
        log.success("Swap confirmed: {}", result.tx_hash)

        if request.revoke_after:
            outcome.revoked = self.allowance.revoke(token_in)

        outcome.new_balance = self.context.settled_balance(outcome.token_out)
