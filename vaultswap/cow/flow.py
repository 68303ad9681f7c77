"""
Batch-Auction Swap Flow
-----------------------
Quote, submit, presign and track a CoW Protocol order owned by the vault.
The auction settles ERC20 balances only, so native input or output is
substituted with the wrapped token and any shortfall is wrapped on the way in.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, field_validator

from vaultswap.core.exceptions import ConfigurationError, InsufficientBalanceError, InvalidRequestError
from vaultswap.core.logging import log, with_trace_id, with_venue
from vaultswap.swap.context import ExecutionContext
from vaultswap.swap.executor import RoleExecutor
from vaultswap.swap.flow import parse_amount, require_confirmed
from vaultswap.swap.slippage import SlippageGuard, SmartSlippage, slippage_to_bps
from vaultswap.tokens.amounts import format_amount
from vaultswap.tokens.resolver import TokenDescriptor, TokenResolver

from .client import AuctionQuote, CowApiClient
from .orders import Order, OrderLifecycle, OrderStatus, PollResult, buy_floor

# settlement and the relayer it pulls sell tokens through
AUCTION_CONTRACTS = ("CowSettlement", "CowVaultRelayer")


class AuctionSwapRequest(BaseModel):
    """Parameters for a batch-auction swap."""
    token_in: str
    token_out: str
    amount: str
    slippage: Optional[float] = None
    execute: bool = False
    allow_unverified: bool = False
    timeout_seconds: int = 1800

    @field_validator("token_in", "token_out", "amount")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v


@dataclass
class AuctionSwapOutcome:
    token_in: TokenDescriptor
    token_out: TokenDescriptor
    amount_in: int
    quote: AuctionQuote
    floor: SmartSlippage
    timeout_seconds: int
    wrap_amount: int = 0
    notes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    order: Optional[Order] = None
    tx_hashes: list[str] = field(default_factory=list)
    poll: Optional[PollResult] = None
    new_balance: Optional[int] = None

    @property
    def executed(self) -> bool:
        return self.order is not None

    @property
    def status(self) -> Optional[OrderStatus]:
        return self.poll.status if self.poll else None

    def summary_lines(self) -> list[str]:
        tin, tout, q = self.token_in, self.token_out, self.quote
        lines = [
            "=" * 55,
            "                    SWAP SUMMARY",
            "=" * 55,
            f"  You pay:      {format_amount(self.amount_in, tin.decimals, tin.symbol)}",
            f"  Fee:          {format_amount(q.fee_amount, tin.decimals, tin.symbol)}",
            f"  You sell:     {format_amount(q.sell_amount, tin.decimals, tin.symbol)} (after fee)",
            f"  You receive:  ~{format_amount(q.buy_amount, tout.decimals, tout.symbol)}",
            f"  Min receive:  {format_amount(self.floor.min_buy_amount, tout.decimals, tout.symbol)} "
            f"({self.floor.slippage_bips / 100:.2f}% slippage)",
            f"  Expires in:   {self.timeout_seconds}s",
        ]
        if self.wrap_amount:
            lines.append(f"  ETH wrap:     {format_amount(self.wrap_amount, 18, 'ETH')} -> WETH")
        lines.append("=" * 55)
        return lines


class AuctionSwapFlow:
    """Runs one batch-auction swap attempt against an execution context."""

    def __init__(
        self,
        context: ExecutionContext,
        api: Optional[CowApiClient] = None,
        resolver: Optional[TokenResolver] = None,
        executor: Optional[RoleExecutor] = None,
        lifecycle: Optional[OrderLifecycle] = None,
    ):
        self.context = context
        self.vault = context.vault
        self.api = api or CowApiClient()
        self.resolver = resolver or TokenResolver(context.client, context.registry)
        self.executor = executor or RoleExecutor(
            context.client, context.vault, context.settings.receipt_timeout_seconds
        )
        self.lifecycle = lifecycle or OrderLifecycle(self.api, self.executor, self.vault)

    def _erc20_only(self, token: TokenDescriptor, side: str, notes: list[str]) -> TokenDescriptor:
        if not token.native:
            return token
        wrapped = self.context.registry.wrapped_native()
        verb = "Using" if side == "sell" else "Receiving"
        notes.append(f"CoW Protocol requires ERC20 tokens. {verb} {wrapped.label} instead of {token.symbol}.")
        return token.as_wrapped(wrapped)

    def _available(self, token: TokenDescriptor, amount_in: int, substituted: bool) -> int:
        """Check balance and return how much native must be wrapped first."""
        vault = self.vault.vault_address
        balance = self.context.client.token_balance(token.address, vault)
        log.info("Vault balance: {}", format_amount(balance, token.decimals, token.symbol))
        if balance >= amount_in:
            return 0

        if substituted:
            native = self.context.client.get_balance(vault)
            log.info("Vault native balance: {}", format_amount(native, 18, "ETH"))
            if balance + native >= amount_in:
                wrap_amount = amount_in - balance
                log.info("Will wrap {} before presigning", format_amount(wrap_amount, 18, "ETH"))
                return wrap_amount
            display = (f"{format_amount(balance, token.decimals, token.symbol)} + "
                       f"{format_amount(native, 18, 'ETH')}")
            raise InsufficientBalanceError(token.symbol, amount_in, balance + native, display=display)

        raise InsufficientBalanceError(
            token.symbol, amount_in, balance,
            display=format_amount(balance, token.decimals, token.symbol),
        )

    @with_trace_id
    @with_venue("cow")
    def run(self, request: AuctionSwapRequest) -> AuctionSwapOutcome:
        """Quote and, if requested, place and track a presigned order.

        Terminal order states are reported on the outcome, not raised.
        """
        self.executor.preflight(extra=[
            (name, self.context.contracts[name])
            for name in AUCTION_CONTRACTS
            if self.context.contracts.get(name)
        ])

        notes: list[str] = []
        original_in = self.resolver.resolve(request.token_in)
        token_in = self._erc20_only(original_in, "sell", notes)
        token_out = self._erc20_only(self.resolver.resolve(request.token_out), "buy", notes)
        if token_in.address.lower() == token_out.address.lower():
            raise InvalidRequestError("Cannot swap a token for itself")
        for note in notes:
            log.info(note)

        warnings = [t.warning for t in (token_in, token_out) if t.warning]
        if request.execute:
            require_confirmed([token_in, token_out], request.allow_unverified)

        amount_in = parse_amount(request.amount, token_in)
        slippage_bps = None if request.slippage is None else slippage_to_bps(request.slippage)

        wrap_amount = self._available(token_in, amount_in, substituted=original_in.native)

        quote = self.api.get_quote(token_in.address, token_out.address, amount_in, self.vault.vault_address)
        SlippageGuard(self.vault.vault_address, 0).check_auction_quote(
            quote, token_in.address, token_out.address, amount_in
        )
        floor = buy_floor(quote, slippage_bps)

        outcome = AuctionSwapOutcome(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            quote=quote,
            floor=floor,
            timeout_seconds=request.timeout_seconds,
            wrap_amount=wrap_amount,
            notes=notes,
            warnings=warnings,
        )
        if not request.execute:
            log.info("Quote only, no order placed")
            return outcome

        if not self.context.can_sign:
            raise ConfigurationError("Execution requires the agent signing key")

        order = self.lifecycle.submit(quote, request.timeout_seconds, slippage_bps)
        outcome.order = order
        results = self.lifecycle.presign(order, wrap_amount)
        outcome.tx_hashes = [r.tx_hash for r in results]

        outcome.poll = self.lifecycle.wait_for_fill(order, request.timeout_seconds)
        if outcome.poll.status is OrderStatus.FULFILLED:
            outcome.new_balance = self.context.settled_balance(token_out)
        return outcome
