"""
Quote Client Tests
------------------
HTTP payloads and response parsing for both venues; ``requests`` is mocked.
"""

from unittest.mock import Mock

import pytest
import requests

from vaultswap.core.exceptions import (
    MalformedQuoteError,
    NetworkError,
    OrderSubmissionError,
    QuoteUnavailableError,
)
from vaultswap.cow.client import CowApiClient
from vaultswap.swap.quote import QuoteClient, parse_uint

VAULT = "0x1111111111111111111111111111111111111111"


def _response(payload, status=200):
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload
    response.text = str(payload)
    return response


class TestParseUint:

    @pytest.mark.parametrize("value,expected", [(5, 5), ("42", 42), ("0x10", 16), (" 7 ", 7)])
    def test_accepts(self, value, expected):
        assert parse_uint(value, "x") == expected

    @pytest.mark.parametrize("value", [1.5, True, "-3", "abc", [1]])
    def test_rejects(self, value):
        with pytest.raises(MalformedQuoteError):
            parse_uint(value, "x")

    def test_optional_missing(self):
        assert parse_uint(None, "x", required=False) is None


class TestDirectQuote:

    def test_request_and_parse(self, eth_token, usdc_token):
        session = Mock()
        session.post.return_value = _response({
            "quote": "350000000",
            "calldata": "0x3593564c00",
            "value": "100000000000000000",
            "route": ["ETH", "USDC"],
            "isMultiHop": False,
        })
        client = QuoteClient(base_url="https://quotes.test/", session=session, timeout=5)

        quote = client.get_quote(eth_token, usdc_token, 10**17, VAULT, 100)

        session.post.assert_called_once_with(
            "https://quotes.test/quote",
            json={
                "tokenIn": eth_token.address,
                "tokenOut": usdc_token.address,
                "amountIn": str(10**17),
                "recipient": VAULT,
                "slippage": 0.01,
                "chainId": "8453",
            },
            timeout=5,
        )
        assert quote.amount_out == 350_000_000
        assert quote.eth_value == 10**17
        assert quote.min_amount_out is None
        assert quote.is_multi_hop is False

    def test_error_field(self, eth_token, usdc_token):
        session = Mock()
        session.post.return_value = _response({"error": "no route"})
        with pytest.raises(QuoteUnavailableError, match="no route"):
            QuoteClient(session=session).get_quote(eth_token, usdc_token, 1, VAULT, 50)

    def test_http_failure(self, eth_token, usdc_token):
        session = Mock()
        session.post.return_value = _response({"message": "boom"}, status=502)
        with pytest.raises(QuoteUnavailableError) as exc_info:
            QuoteClient(session=session).get_quote(eth_token, usdc_token, 1, VAULT, 50)
        assert exc_info.value.status_code == 502

    def test_transport_failure(self, eth_token, usdc_token):
        session = Mock()
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(QuoteUnavailableError):
            QuoteClient(session=session).get_quote(eth_token, usdc_token, 1, VAULT, 50)

    @pytest.mark.parametrize("flag", ["false", 0, None])
    def test_multi_hop_must_be_boolean(self, eth_token, usdc_token, flag):
        session = Mock()
        session.post.return_value = _response({"quote": "1", "calldata": "0x00", "isMultiHop": flag})
        with pytest.raises(MalformedQuoteError) as exc_info:
            QuoteClient(session=session).get_quote(eth_token, usdc_token, 1, VAULT, 50)
        assert exc_info.value.field == "isMultiHop"

    def test_missing_amount(self, eth_token, usdc_token):
        session = Mock()
        session.post.return_value = _response({"calldata": "0x00"})
        with pytest.raises(MalformedQuoteError):
            QuoteClient(session=session).get_quote(eth_token, usdc_token, 1, VAULT, 50)


class TestCowApi:

    def test_quote(self, weth_token, usdc_token):
        session = Mock()
        session.post.return_value = _response({"quote": {
            "sellToken": weth_token.address,
            "buyToken": usdc_token.address,
            "receiver": VAULT,
            "sellAmount": "99000000000000000",
            "buyAmount": "340000000",
            "feeAmount": "1000000000000000",
            "kind": "sell",
        }})
        api = CowApiClient(base_url="https://api.cow.test/base", session=session, timeout=5)

        quote = api.get_quote(weth_token.address, usdc_token.address, 10**17, VAULT)

        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "https://api.cow.test/base/api/v1/quote"
        assert body["sellAmountBeforeFee"] == str(10**17)
        assert body["signingScheme"] == "presign"
        assert body["from"] == body["receiver"] == VAULT
        assert quote.sell_amount == 99 * 10**15
        assert quote.fee_amount == 10**15

    def test_quote_failure_uses_description(self, weth_token, usdc_token):
        session = Mock()
        session.post.return_value = _response(
            {"errorType": "NoLiquidity", "description": "no route found"}, status=404
        )
        with pytest.raises(QuoteUnavailableError, match="no route found"):
            CowApiClient(session=session).get_quote(weth_token.address, usdc_token.address, 1, VAULT)

    def test_submit_returns_uid(self):
        session = Mock()
        session.post.return_value = _response("0x" + "ab" * 56, status=201)
        assert CowApiClient(session=session).submit_order({}) == "0x" + "ab" * 56

    @pytest.mark.parametrize("uid", ["0xnot-a-hex-uid", "0x" + "ab" * 55, "ab" * 56, 42])
    def test_submit_malformed_uid(self, uid):
        session = Mock()
        session.post.return_value = _response(uid, status=201)
        with pytest.raises(OrderSubmissionError, match="unexpected UID"):
            CowApiClient(session=session).submit_order({})

    def test_submit_rejected(self):
        session = Mock()
        session.post.return_value = _response({"description": "InsufficientBalance"}, status=400)
        with pytest.raises(OrderSubmissionError, match="InsufficientBalance"):
            CowApiClient(session=session).submit_order({})

    def test_get_order_failure(self):
        session = Mock()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(NetworkError):
            CowApiClient(session=session).get_order("0xabc", timeout=1)
