"""
Core Configuration Management
-----------------------------
Runtime settings from the environment plus the per-vault wallet file.

The wallet file (``wallet.yaml`` or the ``wallet.json`` written by the vault
deployment tooling) is loaded once per invocation and frozen into a
``VaultConfig``; nothing downstream mutates it.
"""

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_settings import BaseSettings
from web3 import Web3

from .exceptions import ConfigurationError

BASE_CHAIN_ID = 8453

# Base mainnet venue contracts
DEFAULT_CONTRACTS = {
    "AeroUniversalRouter": "0x6Df1c91424F79E40E33B1A48F0687B666bE71075",
    "ZodiacHelpers": "0xc235D2475E4424F277B53D19724E2453a8686C54",
    "CowSettlement": "0x9008D19f58AAbD9eD0D60971565AA8510560ab41",
    "CowVaultRelayer": "0xC92E8bdf79f0507f65a392b0ab4667716BFE0110",
}

WALLET_FILES = ("wallet.yaml", "wallet.yml", "wallet.json")
AGENT_KEY_FILE = "agent.pk"


def _checksum(value: str, field: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"{field} must be a valid address, got {value!r}")
    return Web3.to_checksum_address(value)


class VaultConfig(BaseModel):
    """Immutable vault and role configuration for one invocation."""

    model_config = ConfigDict(frozen=True)

    chain_id: int = BASE_CHAIN_ID
    vault_address: str
    roles_address: str
    role_key: str
    helper_address: str
    approved_routers: tuple[str, ...]

    @field_validator("vault_address", "roles_address", "helper_address")
    @classmethod
    def validate_address(cls, v: str, info: Any) -> str:
        return _checksum(v, info.field_name)

    @field_validator("approved_routers", mode="before")
    @classmethod
    def validate_routers(cls, v: Any) -> tuple[str, ...]:
        if isinstance(v, str):
            v = [v]
        routers = tuple(_checksum(r, "approved_routers") for r in v or [])
        if not routers:
            raise ValueError("At least one approved router is required")
        return routers

    @field_validator("role_key")
    @classmethod
    def validate_role_key(cls, v: str) -> str:
        if not isinstance(v, str) or not v.startswith("0x"):
            raise ValueError("role_key must be 0x-prefixed hex")
        try:
            raw = bytes.fromhex(v[2:])
        except ValueError:
            raise ValueError("role_key must be 0x-prefixed hex")
        if len(raw) != 32:
            raise ValueError(f"role_key must be 32 bytes, got {len(raw)}")
        return v.lower()

    @field_validator("chain_id")
    @classmethod
    def validate_chain_id(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("chain_id must be positive")
        return v

    @property
    def router(self) -> str:
        """Primary approved router (spender for direct-venue approvals)."""
        return self.approved_routers[0]


class CoreSettings(BaseSettings):
    """Core application settings loaded from the environment."""

    # Environment
    environment: str = "production"
    log_level: str = "INFO"
    log_format: str = "human"
    log_file: Optional[str] = None

    # Endpoints
    rpc_url: str = "https://mainnet.base.org"
    quote_api_url: str = "https://we-395242cd474c4e0f8b93ca567e0b58ce.ecs.eu-central-1.on.aws"
    cow_api_base: str = "https://api.cow.fi/base"
    cow_explorer_url: str = "https://explorer.cow.fi/base/orders"

    # Paths
    config_dir: Path = Path("config")

    # Execution
    http_timeout_seconds: float = 30.0
    receipt_timeout_seconds: int = 180
    gas_limit: Optional[int] = None
    default_slippage: float = 0.05

    # Batch auction
    poll_interval_seconds: float = 5.0
    order_validity_seconds: int = 1800
    app_code: str = "vaultswap"
    partner_fee_bps: int = 0
    partner_fee_recipient: Optional[str] = None

    class Config:
        env_prefix = "VAULTSWAP_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


class ConfigManager:
    """Loads the wallet file from a config directory and validates it."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir: Path = Path(config_dir or settings.config_dir)
        self._raw: dict[str, Any] = {}
        self._vault: Optional[VaultConfig] = None

    def _wallet_file(self) -> Path:
        for name in WALLET_FILES:
            candidate = self.config_dir / name
            if candidate.exists():
                return candidate
        raise ConfigurationError(
            f"Config not found in {self.config_dir}. "
            f"Expected one of: {', '.join(WALLET_FILES)}"
        )

    def _load_raw(self) -> dict[str, Any]:
        config_file = self._wallet_file()
        try:
            # utf-8-sig drops the BOM some editors prepend to JSON files
            with open(config_file, encoding="utf-8-sig") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid config in {config_file}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config in {config_file} must be a mapping")
        return data

    @property
    def contracts(self) -> dict[str, str]:
        """Venue contracts, config entries overriding the Base defaults."""
        if not self._raw:
            self._raw = self._load_raw()
        merged = dict(DEFAULT_CONTRACTS)
        merged.update(self._raw.get("contracts") or {})
        return merged

    def load_vault_config(self) -> VaultConfig:
        """Load and validate the vault configuration (cached per manager)."""
        if self._vault is not None:
            return self._vault

        self._raw = self._load_raw()
        raw = self._raw
        contracts = self.contracts

        routers = raw.get("approvedRouters") or raw.get("approved_routers")
        if not routers:
            routers = [contracts["AeroUniversalRouter"]]

        try:
            self._vault = VaultConfig(
                chain_id=raw.get("chainId", raw.get("chain_id", BASE_CHAIN_ID)),
                vault_address=raw.get("safe") or raw.get("vault") or raw.get("vault_address"),
                roles_address=raw.get("roles") or raw.get("roles_address"),
                role_key=raw.get("roleKey") or raw.get("role_key"),
                helper_address=raw.get("helper_address") or contracts["ZodiacHelpers"],
                approved_routers=routers,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid vault configuration: {e}")

        return self._vault

    def load_agent_key(self) -> str:
        """Read the agent signing key; only called when execution is requested."""
        key_file = self.config_dir / AGENT_KEY_FILE
        if not key_file.exists():
            raise ConfigurationError(f"Agent private key not found: {key_file}")

        private_key = key_file.read_text(encoding="utf-8").strip()
        if not private_key:
            raise ConfigurationError(f"Agent private key file is empty: {key_file}")
        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"
        return private_key


# Global settings instance
settings = CoreSettings()
