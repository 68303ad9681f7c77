"""
Slippage Guard
--------------
Minimum-output computation and the safety checks a quote must pass before it
is allowed anywhere near the signing key. All token math is integer-only.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger

from vaultswap.blockchain.abi import is_hex_data
from vaultswap.core.exceptions import InvalidSlippageError, MalformedQuoteError, UnsafeQuoteError

from .quote import Quote

BPS_DENOMINATOR = 10000
MAX_SLIPPAGE = 0.5


def slippage_to_bps(fraction: Any) -> int:
    """Convert a slippage fraction in [0, 0.5] to basis points."""
    try:
        value = float(fraction)
    except (TypeError, ValueError):
        raise InvalidSlippageError(fraction)
    if not math.isfinite(value) or value < 0 or value > MAX_SLIPPAGE:
        raise InvalidSlippageError(fraction)
    # half-up, so 0.00005 becomes 1 bps
    return math.floor(value * BPS_DENOMINATOR + 0.5)


def min_amount_out(amount_out: int, slippage_bps: int) -> int:
    """amount_out * (10000 - bps) // 10000, truncating."""
    return amount_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


@dataclass(frozen=True)
class ProtectedQuote:
    min_amount_out: int
    ok: bool = True


@dataclass(frozen=True)
class SmartSlippage:
    """Batch-auction slippage, expressed in buy-token units."""
    buy_slippage: int
    min_buy_amount: int
    slippage_bips: int


def smart_slippage(sell_amount: int, buy_amount: int, fee_amount: int) -> SmartSlippage:
    """Blend a fee term (150% of fee) with a volume term (0.5% of sell).

    The fee term dominates small orders, where auction fee volatility matters,
    and the volume term dominates large ones. Both are in sell-token units and
    are converted to buy-token units at the quoted rate.
    """
    fee_slippage = fee_amount * 3 // 2
    volume_slippage = sell_amount * 5 // 1000
    total = fee_slippage + volume_slippage

    if sell_amount > 0:
        buy_slippage = total * buy_amount // sell_amount
    else:
        buy_slippage = buy_amount * 5 // 1000

    buy_slippage = min(buy_slippage, buy_amount)
    bips = buy_slippage * BPS_DENOMINATOR // buy_amount if buy_amount > 0 else 0
    return SmartSlippage(
        buy_slippage=buy_slippage,
        min_buy_amount=buy_amount - buy_slippage,
        slippage_bips=bips,
    )


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


class SlippageGuard:
    """Validates quotes against the vault's safety invariants."""

    def __init__(self, vault_address: str, slippage_bps: int):
        if not 0 <= slippage_bps <= MAX_SLIPPAGE * BPS_DENOMINATOR:
            raise InvalidSlippageError(slippage_bps / BPS_DENOMINATOR)
        self.vault_address = vault_address
        self.slippage_bps = slippage_bps

    def protect(self, quote: Quote, amount_in: int, input_is_native: bool) -> ProtectedQuote:
        """Validate a direct-venue quote and compute its protected minimum output.

        Raises:
            MalformedQuoteError: Missing or malformed calldata, inconsistent min-out.
            UnsafeQuoteError: Native value or recipient violations.
        """
        if quote is None:
            raise MalformedQuoteError("quote", "is missing")
        if not quote.calldata:
            raise MalformedQuoteError("calldata", "is missing")
        if not is_hex_data(quote.calldata):
            raise MalformedQuoteError("calldata", "must be valid hex data")

        if not input_is_native and quote.eth_value != 0:
            raise UnsafeQuoteError(
                f"Unsafe quote: ERC20-in swap returned non-zero native value ({quote.eth_value})"
            )
        if input_is_native and quote.eth_value > amount_in:
            raise UnsafeQuoteError(
                f"Unsafe quote: native value ({quote.eth_value}) exceeds amountIn ({amount_in})"
            )
        if quote.recipient is not None and not same_address(quote.recipient, self.vault_address):
            raise UnsafeQuoteError(
                f"Unsafe quote: recipient {quote.recipient} is not the vault {self.vault_address}"
            )

        if quote.min_amount_out is not None:
            if quote.min_amount_out > quote.amount_out:
                raise MalformedQuoteError("minAmountOut", "exceeds quoted amountOut")
            protected = quote.min_amount_out
        else:
            protected = min_amount_out(quote.amount_out, self.slippage_bps)

        logger.debug("Quote passed safety checks, min out {}", protected)
        return ProtectedQuote(min_amount_out=protected)

    def check_order_recipient(self, receiver: Optional[str]) -> None:
        """Batch-auction orders must pay out to the vault only."""
        if not same_address(receiver, self.vault_address):
            raise UnsafeQuoteError(
                f"Unsafe order: receiver {receiver} is not the vault {self.vault_address}"
            )

    def check_auction_quote(self, quote: Any, sell_token: str, buy_token: str, amount_in: int) -> None:
        """A batch-auction quote must price the exact order that was requested.

        Raises:
            UnsafeQuoteError: Other tokens, another order kind, or more sold than requested.
        """
        if not same_address(quote.sell_token, sell_token):
            raise UnsafeQuoteError(
                f"Unsafe order: quote sells {quote.sell_token}, requested {sell_token}"
            )
        if not same_address(quote.buy_token, buy_token):
            raise UnsafeQuoteError(
                f"Unsafe order: quote buys {quote.buy_token}, requested {buy_token}"
            )
        if quote.kind != "sell":
            raise UnsafeQuoteError(f"Unsafe order: expected a sell order, quote is {quote.kind!r}")
        if quote.sell_amount + quote.fee_amount > amount_in:
            raise UnsafeQuoteError(
                f"Unsafe order: quote sells {quote.sell_amount} + fee {quote.fee_amount}, "
                f"more than the requested {amount_in}"
            )
        self.check_order_recipient(quote.receiver or self.vault_address)
