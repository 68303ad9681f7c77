"""
Swap Flow Tests
---------------
End-to-end runs of both venues against a mocked chain client and mocked
HTTP collaborators.
"""

from unittest.mock import Mock

import pytest

from vaultswap.core.exceptions import (
    ConfigurationError,
    InsufficientBalanceError,
    InvalidRequestError,
    UnsafeQuoteError,
    UnverifiedTokenError,
)
from vaultswap.cow.client import AuctionQuote
from vaultswap.cow.flow import AuctionSwapFlow, AuctionSwapRequest
from vaultswap.cow.orders import OrderLifecycle, OrderStatus
from vaultswap.swap.allowance import ApprovalMode
from vaultswap.swap.context import ExecutionContext
from vaultswap.swap.flow import DirectSwapFlow, SwapRequest
from vaultswap.swap.quote import Quote
from vaultswap.tokens.registry import DEFAULT_REGISTRY
from vaultswap.tokens.resolver import TokenDescriptor

SWAP_CALLDATA = "0x3593564c" + "00" * 32


@pytest.fixture
def usdc_chain(mock_client):
    """Client whose token metadata matches the registry."""
    mock_client.token_symbol.side_effect = lambda address: DEFAULT_REGISTRY.by_address(address).symbol
    mock_client.token_decimals.side_effect = lambda address: DEFAULT_REGISTRY.by_address(address).decimals
    return mock_client


@pytest.fixture
def quote_client():
    client = Mock()
    client.get_quote.return_value = Quote(
        amount_in=10**17, amount_out=350_000_000, calldata=SWAP_CALLDATA, eth_value=10**17,
    )
    return client


class TestDirectSwap:

    def test_quote_only_eth_to_usdc(self, context, usdc_chain, quote_client):
        usdc_chain.get_balance.return_value = 10**18
        flow = DirectSwapFlow(context, quote_client=quote_client)

        outcome = flow.run(SwapRequest(token_in="ETH", token_out="USDC", amount="0.1", slippage=0.01))

        assert outcome.amount_in == 10**17
        assert outcome.min_amount_out == 346_500_000
        assert outcome.executed is False
        usdc_chain.send_role_transaction.assert_not_called()
        usdc_chain.call_role.assert_not_called()
        assert any("346.5 USDC" in line for line in outcome.summary_lines())

    def test_insufficient_balance_stops_before_quote(self, context, usdc_chain, quote_client):
        usdc_chain.get_balance.return_value = 10**16
        flow = DirectSwapFlow(context, quote_client=quote_client)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            flow.run(SwapRequest(token_in="ETH", token_out="USDC", amount="0.1"))

        assert exc_info.value.required == 10**17
        quote_client.get_quote.assert_not_called()
        usdc_chain.send_role_transaction.assert_not_called()

    def test_execute_erc20_in(self, context, vault_config, usdc_chain, quote_client):
        usdc_chain.token_balance.return_value = 10**9
        quote_client.get_quote.return_value = Quote(
            amount_in=500_000_000, amount_out=10**17, calldata=SWAP_CALLDATA,
        )
        flow = DirectSwapFlow(context, quote_client=quote_client)

        outcome = flow.run(SwapRequest(
            token_in="USDC", token_out="ETH", amount="500", slippage=0.005,
            execute=True, approval_mode=ApprovalMode.EXACT, revoke_after=True,
        ))

        assert outcome.executed is True
        assert outcome.approval_sent is True
        assert outcome.revoked is True
        # approve, swap, revoke
        assert usdc_chain.send_role_transaction.call_count == 3
        swap_args = usdc_chain.send_role_transaction.call_args_list[1].args[1]
        assert swap_args[0] == vault_config.helper_address
        assert swap_args[1] == 0
        assert swap_args[2][:4] == bytes.fromhex("f23674e8")
        usdc_chain.call_role.assert_called_once()

    def test_execute_native_in_attaches_value(self, context, usdc_chain, quote_client):
        usdc_chain.get_balance.return_value = 10**18
        flow = DirectSwapFlow(context, quote_client=quote_client)

        flow.run(SwapRequest(token_in="ETH", token_out="USDC", amount="0.1", execute=True, simulate=False))

        usdc_chain.token_allowance.assert_not_called()
        usdc_chain.call_role.assert_not_called()
        args = usdc_chain.send_role_transaction.call_args.args[1]
        assert args[1] == 10**17

    def test_same_token(self, context, usdc_chain, quote_client):
        with pytest.raises(InvalidRequestError):
            DirectSwapFlow(context, quote_client=quote_client).run(
                SwapRequest(token_in="USDC", token_out="usdc", amount="1")
            )

    def test_warned_token_needs_confirmation_to_execute(self, context, usdc_chain, quote_client, eth_token):
        spoof = TokenDescriptor(
            address="0x" + "99" * 20, symbol="USDC", decimals=6, verified=False,
            warning='WARNING: token symbol "USDC" is protected',
        )
        resolver = Mock()
        resolver.resolve.side_effect = lambda ref: eth_token if ref == "ETH" else spoof
        usdc_chain.get_balance.return_value = 10**18
        flow = DirectSwapFlow(context, quote_client=quote_client, resolver=resolver)

        quoted = flow.run(SwapRequest(token_in="ETH", token_out="0xspoof", amount="0.1"))
        assert quoted.warnings

        with pytest.raises(UnverifiedTokenError):
            flow.run(SwapRequest(token_in="ETH", token_out="0xspoof", amount="0.1", execute=True))
        usdc_chain.send_role_transaction.assert_not_called()

        flow.run(SwapRequest(
            token_in="ETH", token_out="0xspoof", amount="0.1", execute=True, allow_unverified=True,
        ))
        usdc_chain.send_role_transaction.assert_called_once()

    def test_execute_without_key(self, context, usdc_chain, quote_client):
        usdc_chain.account = None
        usdc_chain.get_balance.return_value = 10**18
        with pytest.raises(ConfigurationError):
            DirectSwapFlow(context, quote_client=quote_client).run(
                SwapRequest(token_in="ETH", token_out="USDC", amount="0.1", execute=True)
            )


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


@pytest.fixture
def cow_api(vault_config, weth_token, usdc_token):
    api = Mock()
    api.timeout = 30
    api.get_quote.return_value = AuctionQuote(
        sell_token=weth_token.address,
        buy_token=usdc_token.address,
        receiver=vault_config.vault_address,
        sell_amount=99 * 10**15,
        buy_amount=340_000_000,
        fee_amount=10**15,
    )

    def submit(doc):
        owner = bytes.fromhex(vault_config.vault_address[2:])
        return "0x" + (b"\x01" * 32 + owner + doc["validTo"].to_bytes(4, "big")).hex()

    api.submit_order.side_effect = submit
    api.get_order.side_effect = [{"status": "open"}, {"status": "fulfilled"}]
    return api


class TestAuctionSwap:

    def _flow(self, context, cow_api):
        flow = AuctionSwapFlow(context, api=cow_api)
        clock = FakeClock()
        flow.lifecycle = OrderLifecycle(
            cow_api, flow.executor, context.vault,
            clock=clock, sleep=clock.sleep, wall_clock=lambda: 1_700_000_000, poll_interval=5,
        )
        return flow

    def test_native_in_is_wrapped_then_presigned(self, context, usdc_chain, cow_api, weth_token):
        usdc_chain.token_balance.return_value = 4 * 10**16
        usdc_chain.get_balance.return_value = 10**18
        flow = self._flow(context, cow_api)

        outcome = flow.run(AuctionSwapRequest(token_in="ETH", token_out="USDC", amount="0.1", execute=True))

        assert outcome.token_in.address == weth_token.address
        assert outcome.wrap_amount == 6 * 10**16
        assert outcome.notes
        assert outcome.status is OrderStatus.FULFILLED
        assert outcome.poll.polls == 2
        # wrap then presign, each its own confirmed transaction
        assert usdc_chain.send_role_transaction.call_count == 2
        sell_token, _, sell_amount, _ = cow_api.get_quote.call_args.args
        assert sell_token == weth_token.address
        assert sell_amount == 10**17

    def test_quote_only_places_no_order(self, context, usdc_chain, cow_api):
        usdc_chain.token_balance.return_value = 10**17
        outcome = self._flow(context, cow_api).run(
            AuctionSwapRequest(token_in="WETH", token_out="USDC", amount="0.1")
        )

        assert outcome.executed is False
        assert outcome.wrap_amount == 0
        cow_api.submit_order.assert_not_called()
        usdc_chain.send_role_transaction.assert_not_called()

    def test_preflight_covers_settlement_and_relayer(self, vault_config, usdc_chain, cow_api):
        contracts = {"CowSettlement": "0x" + "5a" * 20, "CowVaultRelayer": "0x" + "5b" * 20}
        context = ExecutionContext(client=usdc_chain, vault=vault_config, contracts=contracts)
        usdc_chain.token_balance.return_value = 10**17

        self._flow(context, cow_api).run(AuctionSwapRequest(token_in="WETH", token_out="USDC", amount="0.1"))

        checked = {c.args[0] for c in usdc_chain.get_code.call_args_list}
        assert set(contracts.values()) <= checked

    def test_not_enough_native_plus_wrapped(self, context, usdc_chain, cow_api):
        usdc_chain.token_balance.return_value = 10**16
        usdc_chain.get_balance.return_value = 10**16
        with pytest.raises(InsufficientBalanceError):
            self._flow(context, cow_api).run(
                AuctionSwapRequest(token_in="ETH", token_out="USDC", amount="0.1")
            )
        cow_api.get_quote.assert_not_called()

    @pytest.mark.parametrize("override", [
        {"buy_token": "0x" + "99" * 20},
        {"sell_token": "0x" + "99" * 20},
        {"sell_amount": 5 * 10**17},
        {"kind": "buy"},
    ])
    def test_quote_for_another_order_is_refused(self, context, usdc_chain, cow_api, override):
        usdc_chain.token_balance.return_value = 10**18
        quoted = cow_api.get_quote.return_value
        cow_api.get_quote.return_value = AuctionQuote(**{**quoted.__dict__, **override})

        with pytest.raises(UnsafeQuoteError):
            self._flow(context, cow_api).run(AuctionSwapRequest(
                token_in="WETH", token_out="USDC", amount="0.1", execute=True,
            ))
        cow_api.submit_order.assert_not_called()
        usdc_chain.send_role_transaction.assert_not_called()

    def test_timeout_is_reported_not_raised(self, context, usdc_chain, cow_api):
        usdc_chain.token_balance.return_value = 10**17
        cow_api.get_order.side_effect = None
        cow_api.get_order.return_value = {"status": "open"}

        outcome = self._flow(context, cow_api).run(AuctionSwapRequest(
            token_in="WETH", token_out="USDC", amount="0.1", execute=True, timeout_seconds=20,
        ))

        assert outcome.status is OrderStatus.TIMEOUT
        assert outcome.order.status is OrderStatus.TIMEOUT
