"""Token identity: verified registry, resolution and amount conversion."""

from .amounts import format_amount, format_units, parse_units
from .registry import DEFAULT_REGISTRY, PROTECTED_SYMBOLS, TokenEntry, TokenRegistry
from .resolver import TokenDescriptor, TokenResolver

__all__ = [
    "DEFAULT_REGISTRY",
    "PROTECTED_SYMBOLS",
    "TokenDescriptor",
    "TokenEntry",
    "TokenRegistry",
    "TokenResolver",
    "format_amount",
    "format_units",
    "parse_units",
]
