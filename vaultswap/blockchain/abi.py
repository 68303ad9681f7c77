"""
Contract ABIs and Call Encoding
-------------------------------
ABIs for the contracts the agent reads from, and calldata builders for the
helper contract the role-permission layer lets it delegate-call into.
"""

from typing import Any

from eth_abi import decode, encode
from web3 import Web3

MAX_UINT256 = 2**256 - 1
NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"

# ERC20 ABI for token reads
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
]

# Zodiac Roles modifier: the agent's single authorized entry point
ROLES_ABI = [
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "data", "type": "bytes"},
            {"name": "operation", "type": "uint8"},
            {"name": "roleKey", "type": "bytes32"},
            {"name": "shouldRevert", "type": "bool"},
        ],
        "name": "execTransactionWithRole",
        "outputs": [{"name": "success", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]

# Helper function signatures (delegate-called from the vault)
APPROVE_FOR_ROUTER_SIG = "approveForRouter(address,uint256)"
WRAP_ETH_SIG = "wrapETH(uint256)"

GPV2_ORDER_TYPES = [
    "address",  # sellToken
    "address",  # buyToken
    "address",  # receiver
    "uint256",  # sellAmount
    "uint256",  # buyAmount
    "uint32",   # validTo
    "bytes32",  # appData
    "uint256",  # feeAmount
    "bytes32",  # kind
    "bool",     # partiallyFillable
    "bytes32",  # sellTokenBalance
    "bytes32",  # buyTokenBalance
]
GPV2_ORDER_TUPLE = "(" + ",".join(GPV2_ORDER_TYPES) + ")"
COW_PRESIGN_SIG = f"cowPreSign({GPV2_ORDER_TUPLE},bytes)"

# Universal Router execute(bytes,bytes[],uint256) -> helper executeSwap, same arguments
UNIVERSAL_ROUTER_EXECUTE_SELECTOR = "0x3593564c"
HELPER_EXECUTE_SWAP_SELECTOR = "0xf23674e8"


def selector(signature: str) -> bytes:
    """4-byte function selector for a canonical signature."""
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, types: list[str], args: list[Any]) -> str:
    """ABI-encode a call as 0x-prefixed hex calldata."""
    return "0x" + (selector(signature) + encode(types, args)).hex()


def encode_approve_for_router(token: str, amount: int) -> str:
    return encode_call(
        APPROVE_FOR_ROUTER_SIG,
        ["address", "uint256"],
        [Web3.to_checksum_address(token), amount],
    )


def encode_wrap_eth(amount: int) -> str:
    return encode_call(WRAP_ETH_SIG, ["uint256"], [amount])


def encode_cow_presign(order_tuple: tuple, order_uid: bytes) -> str:
    return encode_call(COW_PRESIGN_SIG, [GPV2_ORDER_TUPLE, "bytes"], [order_tuple, order_uid])

def decode_cow_presign(calldata: str) -> tuple[tuple, bytes]:
    """Decode cowPreSign calldata back into (order tuple, order uid)."""
    raw = bytes.fromhex(calldata[2:] if calldata.startswith("0x") else calldata)
    if raw[:4] != selector(COW_PRESIGN_SIG):
        raise ValueError("calldata is not a cowPreSign call")
    order, uid = decode([GPV2_ORDER_TUPLE, "bytes"], raw[4:])
    return tuple(order), bytes(uid)

def rewrite_swap_selector(calldata: str) -> str:
    """Point router calldata at the helper's executeSwap entry point.

    The helper exposes the router's ``execute`` arguments unchanged under a
    different selector, so only the first four bytes are replaced.
    """
    if calldata.lower().startswith(UNIVERSAL_ROUTER_EXECUTE_SELECTOR):
        return HELPER_EXECUTE_SWAP_SELECTOR + calldata[len(UNIVERSAL_ROUTER_EXECUTE_SELECTOR):]
    return calldata

def is_hex_data(value: Any) -> bool:
    """True for 0x-prefixed, even-length hex strings."""
    if not isinstance(value, str) or not value.startswith("0x") or len(value) % 2 != 0:
        return False
    try:
        bytes.fromhex(value[2:])
    except ValueError:
        return False
    return True
