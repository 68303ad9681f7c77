"""Batch-auction venue: CoW Protocol presign orders."""

from .client import AuctionQuote, CowApiClient
from .flow import AuctionSwapFlow, AuctionSwapOutcome, AuctionSwapRequest
from .orders import Order, OrderLifecycle, OrderStatus, PollResult, buy_floor

__all__ = [
    "AuctionQuote",
    "AuctionSwapFlow",
    "AuctionSwapOutcome",
    "AuctionSwapRequest",
    "CowApiClient",
    "Order",
    "OrderLifecycle",
    "OrderStatus",
    "PollResult",
    "buy_floor",
]
