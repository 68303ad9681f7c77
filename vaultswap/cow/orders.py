"""
Order Lifecycle
---------------
Batch-auction order state machine:

    QUOTED -> SUBMITTED -> PRESIGNED -> FULFILLED | EXPIRED | CANCELLED | TIMEOUT

The order is posted off-chain first (to learn its UID), then presigned on-chain
through the role executor, then polled until a terminal state. The presigned
struct is decoded back and compared field by field with the submitted document
before anything is sent.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from loguru import logger
from web3 import Web3

from vaultswap.blockchain.abi import decode_cow_presign, encode_cow_presign, encode_wrap_eth
from vaultswap.core.config import VaultConfig, settings
from vaultswap.core.exceptions import NetworkError, OrderIntegrityError
from vaultswap.core.logging import set_order_uid
from vaultswap.swap.executor import CallKind, RoleCall, RoleExecutor, TransactionResult
from vaultswap.swap.slippage import SlippageGuard, SmartSlippage, min_amount_out, smart_slippage

from .client import ORDER_UID_LENGTH, AuctionQuote, CowApiClient

APP_DATA_VERSION = "1.14.0"


def _bytes32(text: str) -> bytes:
    return bytes(Web3.keccak(text=text))


# GPv2 struct encodes kind and balance as keccak256 of their names
ORDER_KINDS = {"sell": _bytes32("sell"), "buy": _bytes32("buy")}
BALANCE_TYPES = {"erc20": _bytes32("erc20")}


class OrderStatus(str, Enum):
    QUOTED = "quoted"
    SUBMITTED = "submitted"
    PRESIGNED = "presigned"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {OrderStatus.FULFILLED, OrderStatus.EXPIRED, OrderStatus.CANCELLED, OrderStatus.TIMEOUT}
)

ALLOWED_TRANSITIONS = {
    OrderStatus.QUOTED: {OrderStatus.SUBMITTED},
    OrderStatus.SUBMITTED: {OrderStatus.PRESIGNED},
    OrderStatus.PRESIGNED: set(TERMINAL_STATUSES),
}

# API status -> terminal lifecycle state; anything else keeps polling
API_TERMINAL_STATUS = {
    "fulfilled": OrderStatus.FULFILLED,
    "expired": OrderStatus.EXPIRED,
    "cancelled": OrderStatus.CANCELLED,
}


@dataclass
class Order:
    """A batch-auction order and its lifecycle state."""
    sell_token: str
    buy_token: str
    receiver: str
    sell_amount: int
    buy_amount: int
    valid_to: int
    app_data_hash: str
    fee_amount: int = 0
    kind: str = "sell"
    partially_fillable: bool = False
    sell_token_balance: str = "erc20"
    buy_token_balance: str = "erc20"
    order_uid: Optional[str] = None
    status: OrderStatus = OrderStatus.QUOTED
    document: dict[str, Any] = field(default_factory=dict, repr=False)

    def struct(self) -> tuple:
        """GPv2 order struct as passed to the presign helper."""
        if self.kind not in ORDER_KINDS:
            raise OrderIntegrityError("kind", self.kind, "unsupported")
        for name, balance in (("sellTokenBalance", self.sell_token_balance),
                              ("buyTokenBalance", self.buy_token_balance)):
            if balance not in BALANCE_TYPES:
                raise OrderIntegrityError(name, balance, "unsupported")
        return (
            Web3.to_checksum_address(self.sell_token),
            Web3.to_checksum_address(self.buy_token),
            Web3.to_checksum_address(self.receiver),
            self.sell_amount,
            self.buy_amount,
            self.valid_to,
            bytes.fromhex(self.app_data_hash[2:]),
            self.fee_amount,
            ORDER_KINDS[self.kind],
            self.partially_fillable,
            BALANCE_TYPES[self.sell_token_balance],
            BALANCE_TYPES[self.buy_token_balance],
        )


@dataclass(frozen=True)
class PollResult:
    status: OrderStatus
    polls: int
    order: Optional[dict[str, Any]] = None


def buy_floor(quote: AuctionQuote, slippage_bps: Optional[int] = None) -> SmartSlippage:
    """Minimum buy amount for an order: smart slippage unless a flat bps is given."""
    if slippage_bps is None:
        return smart_slippage(quote.sell_amount, quote.buy_amount, quote.fee_amount)
    floor = min_amount_out(quote.buy_amount, slippage_bps)
    return SmartSlippage(
        buy_slippage=quote.buy_amount - floor,
        min_buy_amount=floor,
        slippage_bips=slippage_bps,
    )


def build_app_data(
    slippage_bips: int,
    app_code: Optional[str] = None,
    partner_fee_bps: Optional[int] = None,
    partner_fee_recipient: Optional[str] = None,
    smart: bool = True,
) -> tuple[str, str]:
    """Build the app-data document; returns (compact JSON, keccak256 hash)."""
    metadata: dict[str, Any] = {
        "orderClass": {"orderClass": "market"},
        "quote": {"slippageBips": slippage_bips, "smartSlippage": smart},
    }
    fee_bps = settings.partner_fee_bps if partner_fee_bps is None else partner_fee_bps
    fee_recipient = partner_fee_recipient or settings.partner_fee_recipient
    if fee_bps and fee_recipient:
        metadata["partnerFee"] = {"bps": fee_bps, "recipient": fee_recipient}

    doc = {
        "appCode": app_code or settings.app_code,
        "environment": "production",
        "metadata": metadata,
        "version": APP_DATA_VERSION,
    }
    full_app_data = json.dumps(doc, separators=(",", ":"))
    return full_app_data, Web3.to_hex(Web3.keccak(text=full_app_data))


class OrderLifecycle:
    """Drives one order from quote to a terminal state."""

    def __init__(
        self,
        api: CowApiClient,
        executor: RoleExecutor,
        vault: VaultConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        wall_clock: Callable[[], float] = time.time,
        poll_interval: Optional[float] = None,
    ):
        self.api = api
        self.executor = executor
        self.vault = vault
        self.guard = SlippageGuard(vault.vault_address, 0)
        self.clock = clock
        self.sleep = sleep
        self.wall_clock = wall_clock
        self.poll_interval = poll_interval or settings.poll_interval_seconds

    @staticmethod
    def _transition(order: Order, new_status: OrderStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS.get(order.status, set()):
            raise ValueError(f"Illegal order transition {order.status.value} -> {new_status.value}")
        logger.debug("Order {} -> {}", order.status.value, new_status.value)
        order.status = new_status

    def _register_app_data(self, app_data_hash: str, full_app_data: str) -> None:
        try:
            self.api.register_app_data(app_data_hash, full_app_data)
        except NetworkError as e:
            logger.warning("App data registration failed (continuing): {}", e)

    def submit(
        self,
        quote: AuctionQuote,
        valid_for_seconds: Optional[int] = None,
        slippage_bps: Optional[int] = None,
    ) -> Order:
        """Turn a quote into a presign order document and post it.

        Raises:
            UnsafeQuoteError: Receiver is not the vault.
            OrderSubmissionError: The API rejected the order.
        """
        receiver = quote.receiver or self.vault.vault_address
        self.guard.check_order_recipient(receiver)

        floor = buy_floor(quote, slippage_bps)
        full_app_data, app_data_hash = build_app_data(
            floor.slippage_bips, smart=slippage_bps is None
        )
        self._register_app_data(app_data_hash, full_app_data)

        valid_to = int(self.wall_clock()) + (valid_for_seconds or settings.order_validity_seconds)
        order = Order(
            sell_token=quote.sell_token,
            buy_token=quote.buy_token,
            receiver=receiver,
            sell_amount=quote.sell_amount,
            buy_amount=floor.min_buy_amount,
            valid_to=valid_to,
            app_data_hash=app_data_hash,
            fee_amount=0,
            kind=quote.kind,
            partially_fillable=quote.partially_fillable,
            sell_token_balance=quote.sell_token_balance,
            buy_token_balance=quote.buy_token_balance,
        )
        order.document = {
            "sellToken": order.sell_token,
            "buyToken": order.buy_token,
            "receiver": order.receiver,
            "sellAmount": str(order.sell_amount),
            "buyAmount": str(order.buy_amount),
            "validTo": order.valid_to,
            "appData": order.app_data_hash,
            "feeAmount": str(order.fee_amount),
            "kind": order.kind,
            "partiallyFillable": order.partially_fillable,
            "sellTokenBalance": order.sell_token_balance,
            "buyTokenBalance": order.buy_token_balance,
            "signingScheme": "presign",
            "signature": self.vault.vault_address,
            "from": self.vault.vault_address,
        }

        order.order_uid = self.api.submit_order(order.document)
        set_order_uid(order.order_uid)
        self._transition(order, OrderStatus.SUBMITTED)
        return order

    def verify_presign(self, order: Order, calldata: str) -> None:
        """Check presign calldata against the submitted document and UID.

        Raises:
            OrderIntegrityError: On any mismatch.
        """
        doc = order.document
        decoded, uid = decode_cow_presign(calldata)
        (sell_token, buy_token, receiver, sell_amount, buy_amount, valid_to,
         app_data, fee_amount, kind, partially_fillable, sell_balance, buy_balance) = decoded

        expected = [
            ("sellToken", doc["sellToken"].lower(), sell_token.lower()),
            ("buyToken", doc["buyToken"].lower(), buy_token.lower()),
            ("receiver", doc["receiver"].lower(), receiver.lower()),
            ("sellAmount", int(doc["sellAmount"]), sell_amount),
            ("buyAmount", int(doc["buyAmount"]), buy_amount),
            ("validTo", int(doc["validTo"]), valid_to),
            ("appData", doc["appData"].lower(), Web3.to_hex(app_data).lower()),
            ("feeAmount", int(doc["feeAmount"]), fee_amount),
            ("kind", ORDER_KINDS.get(doc["kind"]), bytes(kind)),
            ("partiallyFillable", bool(doc["partiallyFillable"]), partially_fillable),
            ("sellTokenBalance", BALANCE_TYPES.get(doc["sellTokenBalance"]), bytes(sell_balance)),
            ("buyTokenBalance", BALANCE_TYPES.get(doc["buyTokenBalance"]), bytes(buy_balance)),
        ]
        for name, submitted, presigned in expected:
            if submitted != presigned:
                raise OrderIntegrityError(name, submitted, presigned)

        submitted_uid = bytes.fromhex(order.order_uid[2:])
        if uid != submitted_uid:
            raise OrderIntegrityError("orderUid", order.order_uid, Web3.to_hex(uid))
        if len(uid) != ORDER_UID_LENGTH:
            raise OrderIntegrityError("orderUid", f"{ORDER_UID_LENGTH} bytes", f"{len(uid)} bytes")

        # uid = orderDigest (32) | owner (20) | validTo (4)
        owner = Web3.to_checksum_address("0x" + uid[32:52].hex())
        if owner.lower() != self.vault.vault_address.lower():
            raise OrderIntegrityError("owner", self.vault.vault_address, owner)
        uid_valid_to = int.from_bytes(uid[52:56], "big")
        if uid_valid_to != int(doc["validTo"]):
            raise OrderIntegrityError("uidValidTo", doc["validTo"], uid_valid_to)

    def presign(self, order: Order, wrap_amount: int = 0) -> list[TransactionResult]:
        """Wrap native if needed, then presign, each confirmed before the next.

        Both steps are idempotent to replay, so a failure after the wrap leaves
        the vault holding wrapped native and nothing else.

        Raises:
            OrderIntegrityError: The presign payload differs from the submitted order.
            ExecutionRevertedError: Either transaction failed.
        """
        if order.status is not OrderStatus.SUBMITTED or not order.order_uid:
            raise ValueError(f"Order must be submitted before presigning (status={order.status.value})")

        presign_data = encode_cow_presign(order.struct(), bytes.fromhex(order.order_uid[2:]))
        self.verify_presign(order, presign_data)

        calls = []
        if wrap_amount > 0:
            calls.append(RoleCall(
                target=self.vault.helper_address,
                native_value=0,
                call_data=encode_wrap_eth(wrap_amount),
                call_kind=CallKind.DELEGATE_CALL,
                label="wrap native",
            ))
        calls.append(RoleCall(
            target=self.vault.helper_address,
            native_value=0,
            call_data=presign_data,
            call_kind=CallKind.DELEGATE_CALL,
            label="presign order",
        ))

        results = []
        for i, call in enumerate(calls, start=1):
            logger.info("Executing operation {}/{}: {}", i, len(calls), call.label)
            results.append(self.executor.execute(call))

        self._transition(order, OrderStatus.PRESIGNED)
        return results

    def wait_for_fill(self, order: Order, timeout_seconds: float) -> PollResult:
        """Poll order status until terminal or until the time budget runs out.

        The budget is measured with the injected clock, so slow HTTP calls eat
        into it rather than extending it. TIMEOUT is advisory: the order may
        still fill later.
        """
        start = self.clock()
        polls = 0
        last: Optional[dict[str, Any]] = None

        while True:
            elapsed = self.clock() - start
            remaining = timeout_seconds - elapsed
            if remaining <= 0:
                break

            polls += 1
            try:
                last = self.api.get_order(
                    order.order_uid, timeout=min(remaining, self.api.timeout)
                )
            except NetworkError as e:
                logger.warning("Status check failed ({:.0f}s elapsed): {}", elapsed, e)
            else:
                api_status = last.get("status")
                terminal = API_TERMINAL_STATUS.get(api_status)
                if terminal is not None:
                    self._transition(order, terminal)
                    logger.info("Order reached {} after {} polls", terminal.value, polls)
                    return PollResult(status=terminal, polls=polls, order=last)
                logger.info("Status: {} ({:.0f}s elapsed)", api_status, elapsed)

            remaining = timeout_seconds - (self.clock() - start)
            if remaining <= 0:
                break
            self.sleep(min(self.poll_interval, remaining))

        self._transition(order, OrderStatus.TIMEOUT)
        logger.warning("Timed out after {}s; order may still be filled", timeout_seconds)
        return PollResult(status=OrderStatus.TIMEOUT, polls=polls, order=last)
