"""
Quote Client
------------
Fetches executable quotes for the direct venue from the external quote service.
Every call is a fresh price; nothing is cached or retried.
"""

from dataclasses import dataclass
from typing import Any, Optional

import requests
from loguru import logger

from vaultswap.core.config import settings
from vaultswap.core.exceptions import MalformedQuoteError, QuoteUnavailableError
from vaultswap.tokens.resolver import TokenDescriptor


@dataclass(frozen=True)
class Quote:
    """Direct-venue quote as returned by the quote service."""
    amount_in: int
    amount_out: int
    route: Any = None
    calldata: Optional[str] = None
    eth_value: int = 0
    min_amount_out: Optional[int] = None
    is_multi_hop: bool = False
    recipient: Optional[str] = None


def parse_uint(value: Any, field: str, required: bool = True) -> Optional[int]:
    """Parse a non-negative integer from JSON (int, decimal or 0x-hex string)."""
    if value is None or value == "":
        if required:
            raise MalformedQuoteError(field, "is missing")
        return None

    if isinstance(value, bool):
        raise MalformedQuoteError(field, f"must be an integer, got {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise MalformedQuoteError(field, f"must be an integer, got {value!r}")
    else:
        # floats lose precision on token amounts
        raise MalformedQuoteError(field, f"must be an integer, got {value!r}")

    if parsed < 0:
        raise MalformedQuoteError(field, "must not be negative")
    return parsed


def read_json(response: requests.Response, label: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise QuoteUnavailableError(f"Invalid JSON in {label}: {e}", response.status_code)


class QuoteClient:
    """HTTP client for the direct-venue quote service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        chain_id: int = 8453,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.quote_api_url).rstrip("/")
        self.chain_id = chain_id
        self.session = session or requests.Session()
        self.timeout = timeout or settings.http_timeout_seconds

    def get_quote(
        self,
        token_in: TokenDescriptor,
        token_out: TokenDescriptor,
        amount_in: int,
        recipient: str,
        slippage_bps: int,
    ) -> Quote:
        """Fetch a quote with ready-to-submit calldata.

        Raises:
            QuoteUnavailableError: Non-2xx status, ``error`` field or transport failure.
            MalformedQuoteError: Missing or non-numeric/non-hex fields.
        """
        payload = {
            "tokenIn": token_in.address,
            "tokenOut": token_out.address,
            "amountIn": str(amount_in),
            "recipient": recipient,
            "slippage": slippage_bps / 10000,
            "chainId": str(self.chain_id),
        }
        logger.debug("Requesting quote: {}", payload)

        try:
            response = self.session.post(f"{self.base_url}/quote", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise QuoteUnavailableError(f"Quote request failed: {e}")

        data = read_json(response, "quote API response")
        if not response.ok or (isinstance(data, dict) and data.get("error")):
            error = data.get("error") if isinstance(data, dict) else None
            raise QuoteUnavailableError(
                str(error or f"Quote failed ({response.status_code})"), response.status_code
            )
        if not isinstance(data, dict):
            raise MalformedQuoteError("response", "must be a JSON object")

        return self._parse(data, amount_in)

    def _parse(self, data: dict[str, Any], amount_in: int) -> Quote:
        amount_out = parse_uint(data.get("quote", data.get("amountOut")), "amountOut")
        is_multi_hop = data.get("isMultiHop", False)
        if not isinstance(is_multi_hop, bool):
            raise MalformedQuoteError("isMultiHop", "must be a boolean")
        quote = Quote(
            amount_in=amount_in,
            amount_out=amount_out,
            route=data.get("route"),
            calldata=data.get("calldata"),
            eth_value=parse_uint(data.get("value"), "value", required=False) or 0,
            min_amount_out=parse_uint(data.get("minAmountOut"), "minAmountOut", required=False),
            is_multi_hop=is_multi_hop,
            recipient=data.get("recipient"),
        )
        logger.info(
            "Quote received: out={} min={} multi_hop={}",
            quote.amount_out, quote.min_amount_out, quote.is_multi_hop,
        )
        return quote
