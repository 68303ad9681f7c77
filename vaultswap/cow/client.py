"""
Batch-Auction API Client
------------------------
HTTP client for the CoW Protocol order book: quotes, app-data registration,
order submission and order status.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
from loguru import logger

from vaultswap.blockchain.abi import is_hex_data
from vaultswap.core.config import settings
from vaultswap.core.exceptions import (
    MalformedQuoteError,
    NetworkError,
    OrderSubmissionError,
    QuoteUnavailableError,
)
from vaultswap.swap.quote import parse_uint

# digest(32) + owner(20) + validTo(4)
ORDER_UID_LENGTH = 56


@dataclass(frozen=True)
class AuctionQuote:
    """Batch-auction quote (amounts in base units, sell amount after fee)."""
    sell_token: str
    buy_token: str
    receiver: Optional[str]
    sell_amount: int
    buy_amount: int
    fee_amount: int
    kind: str = "sell"
    partially_fillable: bool = False
    sell_token_balance: str = "erc20"
    buy_token_balance: str = "erc20"
    valid_to: Optional[int] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("description") or data.get("errorType") or json.dumps(data))
    return json.dumps(data)


class CowApiClient:
    """Thin wrapper over the order-book REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.cow_api_base).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout or settings.http_timeout_seconds

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1/{path.lstrip('/')}"

    def get_quote(self, sell_token: str, buy_token: str, sell_amount: int, owner: str) -> AuctionQuote:
        """Request a sell-order quote for a presign order owned by ``owner``.

        Raises:
            QuoteUnavailableError: Transport failure or non-2xx response.
            MalformedQuoteError: Missing amounts in the response.
        """
        payload = {
            "sellToken": sell_token,
            "buyToken": buy_token,
            "from": owner,
            "receiver": owner,
            "sellAmountBeforeFee": str(sell_amount),
            "kind": "sell",
            "signingScheme": "presign",
            "sellTokenBalance": "erc20",
            "buyTokenBalance": "erc20",
        }
        try:
            response = self.session.post(self._url("quote"), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise QuoteUnavailableError(f"CoW quote request failed: {e}")

        if not response.ok:
            raise QuoteUnavailableError(
                f"CoW quote failed: {_error_message(response)}", response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedQuoteError("response", f"is not JSON: {e}")
        q = data.get("quote") if isinstance(data, dict) else None
        if not isinstance(q, dict):
            raise MalformedQuoteError("quote", "is missing")

        return AuctionQuote(
            sell_token=q.get("sellToken") or sell_token,
            buy_token=q.get("buyToken") or buy_token,
            receiver=q.get("receiver"),
            sell_amount=parse_uint(q.get("sellAmount"), "sellAmount"),
            buy_amount=parse_uint(q.get("buyAmount"), "buyAmount"),
            fee_amount=parse_uint(q.get("feeAmount"), "feeAmount", required=False) or 0,
            kind=q.get("kind") or "sell",
            partially_fillable=bool(q.get("partiallyFillable", False)),
            sell_token_balance=q.get("sellTokenBalance") or "erc20",
            buy_token_balance=q.get("buyTokenBalance") or "erc20",
            valid_to=q.get("validTo"),
            raw=data,
        )

    def register_app_data(self, app_data_hash: str, full_app_data: str) -> None:
        """Register the app-data document so solvers can resolve its hash.

        Raises:
            NetworkError: On any failure; callers treat this as best-effort.
        """
        try:
            response = self.session.put(
                self._url(f"app_data/{app_data_hash}"),
                json={"fullAppData": full_app_data},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"App data registration failed: {e}")
        if not response.ok:
            raise NetworkError(f"App data registration failed: {_error_message(response)}")

    def submit_order(self, order_document: dict[str, Any]) -> str:
        """POST the order document and return its UID.

        Raises:
            OrderSubmissionError: Transport failure, rejection or odd response.
        """
        try:
            response = self.session.post(self._url("orders"), json=order_document, timeout=self.timeout)
        except requests.RequestException as e:
            raise OrderSubmissionError(f"CoW order submission failed: {e}")

        if not response.ok:
            raise OrderSubmissionError(f"CoW order submission failed: {_error_message(response)}")

        try:
            uid = response.json()
        except ValueError as e:
            raise OrderSubmissionError(f"CoW order submission returned invalid JSON: {e}")
        if not is_hex_data(uid) or len(uid) != 2 + 2 * ORDER_UID_LENGTH:
            raise OrderSubmissionError(f"CoW order submission returned unexpected UID: {uid!r}")

        logger.info("Order submitted: {}", uid)
        return uid

    def get_order(self, order_uid: str, timeout: Optional[float] = None) -> dict[str, Any]:
        """Fetch order state (``status`` is one of presignaturePending, open,
        fulfilled, expired, cancelled).

        Raises:
            NetworkError: Transport failure or non-2xx response.
        """
        try:
            response = self.session.get(self._url(f"orders/{order_uid}"), timeout=timeout or self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Order status request failed: {e}")

        if not response.ok:
            raise NetworkError(f"Order status request failed: {_error_message(response)}")
        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"Order status response is not JSON: {e}")
        if not isinstance(data, dict):
            raise NetworkError("Order status response is not an object")
        return data
