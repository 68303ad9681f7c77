"""
vaultswap: role-restricted swap execution for custodial vaults
==============================================================

An agent swaps tokens on behalf of a multisig vault through a role-permission
contract, via a direct router venue or a presigned batch-auction order.
"""

from .core.config import settings
from .core.exceptions import VaultSwapError

__version__ = "0.1.0"
__author__ = "vaultswap contributors"

__all__ = [
    "settings",
    "VaultSwapError",
]
