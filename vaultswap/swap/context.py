"""
Execution Context
-----------------
Everything one invocation needs to talk to the chain, built once and handed to
every component instead of module-level client handles.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from vaultswap.blockchain.client import ChainClient
from vaultswap.core.config import ConfigManager, CoreSettings, VaultConfig, settings
from vaultswap.core.exceptions import NetworkError
from vaultswap.tokens.registry import DEFAULT_REGISTRY, TokenRegistry
from vaultswap.tokens.resolver import TokenDescriptor


@dataclass(frozen=True)
class ExecutionContext:
    """Immutable per-invocation handle set."""
    client: Any
    vault: VaultConfig
    contracts: dict[str, str] = field(default_factory=dict)
    registry: TokenRegistry = DEFAULT_REGISTRY
    settings: CoreSettings = field(default_factory=lambda: settings)

    @property
    def can_sign(self) -> bool:
        return getattr(self.client, "account", None) is not None

    def vault_balance(self, token: TokenDescriptor) -> int:
        """Vault balance of ``token`` in base units (native or ERC20)."""
        if token.native:
            return self.client.get_balance(self.vault.vault_address)
        return self.client.token_balance(token.address, self.vault.vault_address)

    def settled_balance(self, token: TokenDescriptor) -> Optional[int]:
        """Balance after a final swap; a failed read is logged, not raised."""
        try:
            return self.vault_balance(token)
        except NetworkError as e:
            logger.warning("Could not read new {} balance: {}", token.symbol, e)
            return None


def build_context(
    config_dir: Optional[Path] = None,
    rpc_url: Optional[str] = None,
    signing: bool = False,
) -> ExecutionContext:
    """Load wallet config and connect; the agent key is read only when signing.

    Raises:
        ConfigurationError: Missing or invalid wallet config or agent key.
        NetworkError: Provider setup failed.
    """
    manager = ConfigManager(config_dir)
    vault = manager.load_vault_config()
    private_key = manager.load_agent_key() if signing else None

    client = ChainClient(rpc_url=rpc_url, private_key=private_key)
    logger.debug("Context ready for vault {} (signing={})", vault.vault_address, signing)
    return ExecutionContext(client=client, vault=vault, contracts=manager.contracts)
