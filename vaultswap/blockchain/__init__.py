"""Chain access: web3 client and contract encoding."""

from .client import ChainClient

__all__ = ["ChainClient"]
