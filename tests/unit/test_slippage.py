"""
Slippage Guard Tests
--------------------
Integer min-out math and quote safety checks.
"""

import pytest

from vaultswap.core.exceptions import InvalidSlippageError, MalformedQuoteError, UnsafeQuoteError
from vaultswap.swap.quote import Quote
from vaultswap.swap.slippage import SlippageGuard, min_amount_out, slippage_to_bps, smart_slippage

VAULT = "0x1111111111111111111111111111111111111111"
OTHER = "0x6666666666666666666666666666666666666666"
CALLDATA = "0x3593564c" + "00" * 64


def _quote(**overrides):
    fields = dict(amount_in=10**17, amount_out=350_000_000, calldata=CALLDATA, eth_value=0)
    fields.update(overrides)
    return Quote(**fields)


class TestMinAmountOut:
    """minOut = out * (10000 - round(s * 10000)) // 10000."""

    @pytest.mark.parametrize("fraction,bps", [
        (0, 0), (0.005, 50), (0.01, 100), (0.05, 500), (0.5, 5000), (0.00005, 1),
    ])
    def test_slippage_to_bps(self, fraction, bps):
        assert slippage_to_bps(fraction) == bps

    @pytest.mark.parametrize("bad", [-0.01, 0.51, 1, float("nan"), float("inf"), "lots"])
    def test_out_of_range(self, bad):
        with pytest.raises(InvalidSlippageError):
            slippage_to_bps(bad)

    def test_one_percent_of_350_usdc(self):
        assert min_amount_out(350_000_000, slippage_to_bps(0.01)) == 346_500_000

    def test_truncates(self):
        assert min_amount_out(999, 50) == 994


class TestProtect:
    """Quote validation before signing."""

    def test_computes_min_out(self):
        result = SlippageGuard(VAULT, 100).protect(_quote(), 10**17, input_is_native=False)
        assert result.ok is True
        assert result.min_amount_out == 346_500_000

    def test_prefers_service_min_out(self):
        result = SlippageGuard(VAULT, 100).protect(
            _quote(min_amount_out=349_000_000), 10**17, input_is_native=False
        )
        assert result.min_amount_out == 349_000_000

    def test_service_min_out_above_out_is_malformed(self):
        with pytest.raises(MalformedQuoteError):
            SlippageGuard(VAULT, 100).protect(_quote(min_amount_out=400_000_000), 10**17, False)

    def test_erc20_in_with_native_value_is_unsafe(self):
        with pytest.raises(UnsafeQuoteError):
            SlippageGuard(VAULT, 100).protect(_quote(eth_value=1), 10**17, input_is_native=False)

    def test_native_in_value_above_amount_is_unsafe(self):
        with pytest.raises(UnsafeQuoteError):
            SlippageGuard(VAULT, 100).protect(_quote(eth_value=10**17 + 1), 10**17, input_is_native=True)

    def test_native_in_value_equal_amount_is_fine(self):
        result = SlippageGuard(VAULT, 100).protect(_quote(eth_value=10**17), 10**17, input_is_native=True)
        assert result.ok

    def test_foreign_recipient_is_unsafe(self):
        with pytest.raises(UnsafeQuoteError):
            SlippageGuard(VAULT, 100).protect(_quote(recipient=OTHER), 10**17, False)

    def test_vault_recipient_is_accepted(self):
        SlippageGuard(VAULT, 100).protect(_quote(recipient=VAULT.lower()), 10**17, False)

    @pytest.mark.parametrize("calldata", [None, "", "3593564c", "0x123", "0xzz"])
    def test_bad_calldata(self, calldata):
        with pytest.raises(MalformedQuoteError):
            SlippageGuard(VAULT, 100).protect(_quote(calldata=calldata), 10**17, False)

    def test_order_recipient(self):
        guard = SlippageGuard(VAULT, 0)
        guard.check_order_recipient(VAULT.lower())
        with pytest.raises(UnsafeQuoteError):
            guard.check_order_recipient(OTHER)
        with pytest.raises(UnsafeQuoteError):
            guard.check_order_recipient(None)


class TestSmartSlippage:
    """Fee plus volume blend, in buy-token units."""

    def test_blend(self):
        # fee term 150, volume term 500 -> 650 sell units at 2 buy per sell
        result = smart_slippage(sell_amount=100_000, buy_amount=200_000, fee_amount=100)
        assert result.buy_slippage == 1300
        assert result.min_buy_amount == 198_700
        assert result.slippage_bips == 65

    def test_fee_dominates_small_orders(self):
        small = smart_slippage(sell_amount=1000, buy_amount=1000, fee_amount=100)
        assert small.slippage_bips > 100

    def test_zero_sell_falls_back_to_flat(self):
        result = smart_slippage(sell_amount=0, buy_amount=10_000, fee_amount=5)
        assert result.buy_slippage == 50
        assert result.min_buy_amount == 9950

    def test_never_below_zero(self):
        result = smart_slippage(sell_amount=10, buy_amount=10, fee_amount=10**6)
        assert result.min_buy_amount == 0
