"""
Verified Token Registry
-----------------------
Pinned Base mainnet token addresses: the root of trust for anti-impersonation
checks. Symbols are canonical uppercase keys; aliases map common spellings onto
them before lookup.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from web3 import Web3

from vaultswap.blockchain.abi import NATIVE_ADDRESS


@dataclass(frozen=True)
class TokenEntry:
    """Registry record for one verified token."""
    symbol: str  # canonical uppercase key
    address: str
    decimals: int
    native: bool = False
    display: str = ""

    @property
    def label(self) -> str:
        return self.display or self.symbol


def _entry(symbol: str, address: str, decimals: int, native: bool = False, display: str = "") -> TokenEntry:
    return TokenEntry(
        symbol=symbol,
        address=Web3.to_checksum_address(address),
        decimals=decimals,
        native=native,
        display=display or symbol,
    )


_BASE_TOKENS = (
    _entry("ETH", NATIVE_ADDRESS, 18, native=True),
    _entry("WETH", "0x4200000000000000000000000000000000000006", 18),
    _entry("USDC", "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", 6),
    _entry("USDT", "0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2", 6),
    _entry("DAI", "0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb", 18),
    _entry("USDS", "0x820C137fa70C8691f0e44Dc420a5e53c168921Dc", 18),
    _entry("AERO", "0x940181a94A35A4569E4529A3CDfB74e38FD98631", 18),
    _entry("CBBTC", "0xcbB7C0000aB88B473b1f5aFd9ef808440eed33Bf", 8, display="cbBTC"),
    _entry("VIRTUAL", "0x0b3e328455c4059EEb9e3f84b5543F74E24e7E1b", 18),
    _entry("DEGEN", "0x4ed4E862860beD51a9570b96d89aF5E1B0Efefed", 18),
    _entry("BRETT", "0x532f27101965dd16442E59d40670FaF5eBB142E4", 18),
    _entry("TOSHI", "0xAC1Bd2486aAf3B5C0fc3Fd868558b082a531B2B4", 18),
    _entry("WELL", "0xA88594D404727625A9437C3f886C7643872296AE", 18),
    _entry("BID", "0xa1832f7f4e534ae557f9b5ab76de54b1873e498b", 18),
)

_BASE_ALIASES = {
    "ETHEREUM": "ETH",
    "ETHER": "ETH",
    "USD COIN": "USDC",
    "TETHER": "USDT",
    "CBBTCTOKEN": "CBBTC",
}

PROTECTED_SYMBOLS = frozenset(
    {"ETH", "WETH", "USDC", "USDT", "DAI", "USDS", "AERO", "CBBTC", "BID"}
)


def normalize_symbol(value: str) -> str:
    """Trim, uppercase and drop a leading ``$`` sigil."""
    value = value.strip().upper()
    return value[1:] if value.startswith("$") else value


class TokenRegistry:
    """Immutable ordered symbol -> TokenEntry mapping with an alias table."""

    def __init__(
        self,
        entries: tuple[TokenEntry, ...] = _BASE_TOKENS,
        aliases: Optional[Mapping[str, str]] = None,
        protected: frozenset[str] = PROTECTED_SYMBOLS,
        wrapped_native: str = "WETH",
    ) -> None:
        self._entries: Mapping[str, TokenEntry] = MappingProxyType({e.symbol: e for e in entries})
        self._by_address: Mapping[str, TokenEntry] = MappingProxyType(
            {e.address.lower(): e for e in entries}
        )
        self._aliases: Mapping[str, str] = MappingProxyType(
            dict(_BASE_ALIASES if aliases is None else aliases)
        )
        self.protected = protected
        self._wrapped_native = wrapped_native

    def __iter__(self) -> Iterator[TokenEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def canonical(self, value: str) -> str:
        """Canonical registry key for a user-supplied or on-chain symbol."""
        symbol = normalize_symbol(value)
        return self._aliases.get(symbol, symbol)

    def get(self, symbol: str) -> Optional[TokenEntry]:
        return self._entries.get(self.canonical(symbol))

    def by_address(self, address: str) -> Optional[TokenEntry]:
        return self._by_address.get(address.lower())

    def is_protected(self, symbol: str) -> bool:
        return self.canonical(symbol) in self.protected

    def wrapped_native(self) -> TokenEntry:
        entry = self._entries.get(self._wrapped_native)
        if entry is None:
            raise KeyError(f"Wrapped native token {self._wrapped_native} not in registry")
        return entry


DEFAULT_REGISTRY = TokenRegistry()
