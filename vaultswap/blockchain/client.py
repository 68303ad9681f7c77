"""Web3 client for the vault's chain."""

from typing import Any

from eth_account import Account
from loguru import logger
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.middleware import ExtraDataToPOAMiddleware

from vaultswap.core.config import settings
from vaultswap.core.exceptions import (
    ConfigurationError,
    ExecutionRevertedError,
    NetworkError,
)

from .abi import ERC20_ABI, ROLES_ABI


class ChainClient:
    """Thin web3 wrapper: reads, role-transaction submission and receipts.

    The client never decides *what* to send; callers hand it the arguments of
    ``execTransactionWithRole`` and it signs with the agent key.
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        private_key: str | None = None,
        w3: Web3 | None = None,
    ):
        """Initialize chain client.

        Args:
            rpc_url: RPC endpoint URL. Defaults to settings.
            private_key: Agent key for signing. Omit for read-only use.
            w3: Pre-built Web3 instance (tests, custom providers).

        Raises:
            ConfigurationError: If required configuration is missing.
            NetworkError: If the provider cannot be set up.
        """
        self.rpc_url = rpc_url or settings.rpc_url
        if w3 is None and not self.rpc_url:
            raise ConfigurationError("RPC URL is required but not provided")

        try:
            if w3 is None:
                w3 = Web3(Web3.HTTPProvider(
                    self.rpc_url,
                    request_kwargs={"timeout": settings.http_timeout_seconds},
                ))
                # Base is an OP-stack chain with PoA-style extraData
                w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            self.w3 = w3
        except Exception as e:
            raise NetworkError(f"Failed to initialize chain client: {e}")

        self.account: Any = None
        if private_key:
            try:
                self.account = Account.from_key(private_key)
            except Exception as e:
                raise ConfigurationError(f"Invalid agent private key: {e}")
            logger.info("Agent account initialized: {}", self.account.address)

    @property
    def address(self) -> str | None:
        """Agent address (None for read-only clients)."""
        return self.account.address if self.account else None

    def get_chain_id(self) -> int:
        try:
            return int(self.w3.eth.chain_id)
        except Exception as e:
            raise NetworkError(f"Failed to query chain id: {e}")

    def get_code(self, address: str) -> bytes:
        try:
            return bytes(self.w3.eth.get_code(Web3.to_checksum_address(address)))
        except Exception as e:
            raise NetworkError(f"Failed to read bytecode at {address}: {e}")

    def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        try:
            return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))
        except Exception as e:
            raise NetworkError(f"Failed to get balance for {address}: {e}")

    def get_contract(self, address: str, abi: list) -> Any:
        try:
            return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        except Exception as e:
            raise NetworkError(f"Failed to create contract instance for {address}: {e}")

    def token_symbol(self, token: str) -> str:
        try:
            return str(self.get_contract(token, ERC20_ABI).functions.symbol().call())
        except NetworkError:
            raise
        except Exception as e:
            raise NetworkError(f"Failed to read symbol() of {token}: {e}")

    def token_decimals(self, token: str) -> int:
        try:
            return int(self.get_contract(token, ERC20_ABI).functions.decimals().call())
        except NetworkError:
            raise
        except Exception as e:
            raise NetworkError(f"Failed to read decimals() of {token}: {e}")

    def token_balance(self, token: str, owner: str) -> int:
        try:
            contract = self.get_contract(token, ERC20_ABI)
            return int(contract.functions.balanceOf(Web3.to_checksum_address(owner)).call())
        except NetworkError:
            raise
        except Exception as e:
            raise NetworkError(f"Failed to read balance of {token} for {owner}: {e}")

    def token_allowance(self, token: str, owner: str, spender: str) -> int:
        try:
            contract = self.get_contract(token, ERC20_ABI)
            return int(contract.functions.allowance(
                Web3.to_checksum_address(owner),
                Web3.to_checksum_address(spender),
            ).call())
        except NetworkError:
            raise
        except Exception as e:
            raise NetworkError(f"Failed to read allowance of {token}: {e}")

    def _role_function(self, roles_address: str, args: tuple) -> Any:
        roles = self.get_contract(roles_address, ROLES_ABI)
        return roles.functions.execTransactionWithRole(*args)

    def _require_account(self) -> None:
        if not self.account:
            raise ConfigurationError("No agent account connected for signing transactions")

    def call_role(self, roles_address: str, args: tuple) -> bool:
        """Simulate ``execTransactionWithRole`` with eth_call from the agent.

        Raises:
            ExecutionRevertedError: If the call reverts.
            NetworkError: On transport failures.
        """
        self._require_account()
        try:
            return bool(self._role_function(roles_address, args).call({"from": self.account.address}))
        except ContractLogicError as e:
            reason = getattr(e, "message", None) or str(e)
            raise ExecutionRevertedError("Simulation reverted", reason=reason)
        except Exception as e:
            raise NetworkError(f"Simulation call failed: {e}")

    def send_role_transaction(self, roles_address: str, args: tuple) -> str:
        """Sign and send an ``execTransactionWithRole`` transaction.

        Returns:
            Transaction hash as 0x-prefixed hex.
        """
        self._require_account()
        try:
            tx_params: dict[str, Any] = {
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address),
                "chainId": self.w3.eth.chain_id,
            }
            if settings.gas_limit:
                tx_params["gas"] = settings.gas_limit

            transaction = self._role_function(roles_address, args).build_transaction(tx_params)
            signed_txn = self.account.sign_transaction(transaction)
            tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        except ContractLogicError as e:
            reason = getattr(e, "message", None) or str(e)
            raise ExecutionRevertedError("Transaction reverted during gas estimation", reason=reason)
        except Exception as e:
            raise NetworkError(f"Transaction failed: {e}")

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info("Transaction sent: {}", tx_hash_hex)
        return tx_hash_hex

    def wait_for_receipt(self, tx_hash: str, timeout: int | None = None) -> dict[str, Any]:
        """Wait for transaction receipt.

        Raises:
            NetworkError: If receipt retrieval fails or times out.
        """
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout or settings.receipt_timeout_seconds
            )
        except Exception as e:
            raise NetworkError(f"Failed to get receipt for {tx_hash}: {e}")

        receipt = dict(receipt)
        if receipt.get("status") == 1:
            logger.info("Transaction {} confirmed in block {}", tx_hash, receipt.get("blockNumber"))
        else:
            logger.error("Transaction {} failed with status {}", tx_hash, receipt.get("status"))
        return receipt
