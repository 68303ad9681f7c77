"""
Token Resolution
----------------
Turns a user reference (symbol or contract address) into a ``TokenDescriptor``
while refusing to hand out a spoofed address for a protected symbol.
"""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Optional

from loguru import logger
from web3 import Web3

from vaultswap.blockchain.abi import NATIVE_ADDRESS
from vaultswap.core.exceptions import ProtectedTokenMismatchError, TokenNotFoundError

from .registry import DEFAULT_REGISTRY, TokenEntry, TokenRegistry

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class TokenDescriptor:
    """Resolved token for one swap attempt."""
    address: str
    symbol: str
    decimals: int
    verified: bool
    native: bool = False
    warning: Optional[str] = None

    def as_wrapped(self, wrapped: TokenEntry) -> "TokenDescriptor":
        """Substitute the native asset with its ERC20-wrapped form."""
        return replace(
            self,
            address=wrapped.address,
            symbol=wrapped.label,
            decimals=wrapped.decimals,
            native=False,
        )


def is_address(reference: str) -> bool:
    return bool(ADDRESS_RE.match(reference.strip()))


class TokenResolver:
    """Resolves token references against the registry and on-chain metadata."""

    def __init__(self, client: Any, registry: TokenRegistry = DEFAULT_REGISTRY):
        self.client = client
        self.registry = registry

    def resolve(self, reference: str) -> TokenDescriptor:
        """Resolve a symbol or address.

        Raises:
            TokenNotFoundError: Unknown, unprotected symbol.
            ProtectedTokenMismatchError: Protected symbol with no verified mapping.
        """
        reference = reference.strip()
        if is_address(reference):
            return self._resolve_address(reference)
        return self._resolve_symbol(reference)

    def _native(self) -> TokenDescriptor:
        entry = self.registry.by_address(NATIVE_ADDRESS)
        return TokenDescriptor(
            address=NATIVE_ADDRESS,
            symbol=entry.label if entry else "ETH",
            decimals=entry.decimals if entry else 18,
            verified=True,
            native=True,
        )

    def _read_metadata(self, address: str) -> tuple[str, int]:
        # symbol() and decimals() are independent reads
        with ThreadPoolExecutor(max_workers=2) as pool:
            symbol = pool.submit(self.client.token_symbol, address)
            decimals = pool.submit(self.client.token_decimals, address)
            return symbol.result(), decimals.result()

    def _resolve_symbol(self, reference: str) -> TokenDescriptor:
        key = self.registry.canonical(reference)
        entry = self.registry.get(key)

        if entry is None:
            if key in self.registry.protected:
                raise ProtectedTokenMismatchError(key)
            raise TokenNotFoundError(key)

        if entry.native:
            return self._native()

        onchain_symbol, decimals = self._read_metadata(entry.address)
        if self.registry.canonical(onchain_symbol) != entry.symbol:
            logger.warning(
                "On-chain symbol {} at {} differs from registry symbol {}",
                onchain_symbol, entry.address, entry.symbol,
            )
        if decimals != entry.decimals:
            logger.warning(
                "On-chain decimals {} for {} differ from registry ({}), using on-chain value",
                decimals, entry.symbol, entry.decimals,
            )

        return TokenDescriptor(
            address=entry.address,
            symbol=entry.label,
            decimals=decimals,
            verified=True,
        )

    def _resolve_address(self, reference: str) -> TokenDescriptor:
        address = Web3.to_checksum_address(reference)
        if address.lower() == NATIVE_ADDRESS:
            return self._native()

        verified_entry = self.registry.by_address(address)
        symbol, decimals = self._read_metadata(address)

        if verified_entry is not None:
            return TokenDescriptor(
                address=verified_entry.address,
                symbol=verified_entry.label,
                decimals=decimals,
                verified=True,
            )

        warning = None
        canonical = self.registry.canonical(symbol)
        if canonical in self.registry.protected:
            expected = self.registry.get(canonical)
            warning = (
                f'WARNING: token symbol "{symbol}" is protected but address does not '
                f"match verified mapping. Expected: {expected.address if expected else 'unknown'}, "
                f"provided: {address}"
            )
            logger.warning(warning)

        return TokenDescriptor(
            address=address,
            symbol=symbol,
            decimals=decimals,
            verified=False,
            warning=warning,
        )
