"""Shared fixtures: a vault config and a mocked chain client."""

from unittest.mock import Mock

import pytest

from vaultswap.core.config import VaultConfig
from vaultswap.swap.context import ExecutionContext
from vaultswap.tokens.registry import DEFAULT_REGISTRY
from vaultswap.tokens.resolver import TokenDescriptor

VAULT = "0x1111111111111111111111111111111111111111"
ROLES = "0x2222222222222222222222222222222222222222"
HELPER = "0x3333333333333333333333333333333333333333"
ROUTER = "0x4444444444444444444444444444444444444444"
ROLE_KEY = "0x" + "ab" * 32

USDC = DEFAULT_REGISTRY.get("USDC")
WETH = DEFAULT_REGISTRY.get("WETH")


@pytest.fixture
def vault_config():
    return VaultConfig(
        chain_id=8453,
        vault_address=VAULT,
        roles_address=ROLES,
        role_key=ROLE_KEY,
        helper_address=HELPER,
        approved_routers=[ROUTER],
    )


@pytest.fixture
def mock_client():
    """Chain client double: right chain, code everywhere, nothing reverts."""
    client = Mock()
    client.account = Mock(address="0x5555555555555555555555555555555555555555")
    client.get_chain_id.return_value = 8453
    client.get_code.return_value = b"\x60\x80"
    client.call_role.return_value = True
    client.send_role_transaction.return_value = "0x" + "aa" * 32
    client.wait_for_receipt.return_value = {"status": 1, "blockNumber": 100, "gasUsed": 21000}
    client.token_allowance.return_value = 0
    return client


@pytest.fixture
def context(mock_client, vault_config):
    return ExecutionContext(client=mock_client, vault=vault_config, contracts={})


@pytest.fixture
def eth_token():
    return TokenDescriptor(
        address="0x0000000000000000000000000000000000000000",
        symbol="ETH", decimals=18, verified=True, native=True,
    )


@pytest.fixture
def usdc_token():
    return TokenDescriptor(address=USDC.address, symbol="USDC", decimals=6, verified=True)


@pytest.fixture
def weth_token():
    return TokenDescriptor(address=WETH.address, symbol="WETH", decimals=18, verified=True)
