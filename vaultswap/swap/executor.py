"""
Role Executor
-------------
The sole channel to the chain. Every state-changing call is wrapped in the
role-permission contract's ``execTransactionWithRole`` so the agent key never
calls a swap, approval or presign target directly.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, Optional

from loguru import logger

from vaultswap.blockchain.abi import is_hex_data
from vaultswap.core.config import VaultConfig
from vaultswap.core.exceptions import (
    ChainMismatchError,
    ConfigurationError,
    ContractNotDeployedError,
    ExecutionRevertedError,
)


class CallKind(IntEnum):
    """Operation type forwarded by the vault."""
    CALL = 0
    DELEGATE_CALL = 1


@dataclass(frozen=True)
class RoleCall:
    """One call the vault should perform on the agent's behalf."""
    target: str
    native_value: int
    call_data: str
    call_kind: CallKind = CallKind.DELEGATE_CALL
    should_revert: bool = True
    label: str = "call"


@dataclass(frozen=True)
class TransactionResult:
    """Confirmed role transaction."""
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    status: int = 1


class RoleExecutor:
    """Submits calls through the role-permission entry point.

    Preflight must succeed once before the first ``execute``.
    """

    def __init__(self, client: Any, vault: VaultConfig, receipt_timeout: Optional[int] = None):
        self.client = client
        self.vault = vault
        self.receipt_timeout = receipt_timeout
        self._preflight_done = False

    def required_contracts(self) -> list[tuple[str, str]]:
        contracts = [
            ("Vault", self.vault.vault_address),
            ("Roles", self.vault.roles_address),
            ("Helper", self.vault.helper_address),
        ]
        contracts.extend(
            (f"Router[{i}]", router) for i, router in enumerate(self.vault.approved_routers)
        )
        return contracts

    def preflight(self, extra: Iterable[tuple[str, str]] = ()) -> None:
        """Check network and contract bytecode before any signature is produced.

        Raises:
            ChainMismatchError: Connected chain differs from configuration.
            ContractNotDeployedError: A required address has no bytecode.
        """
        if self._preflight_done:
            return

        chain_id = self.client.get_chain_id()
        if chain_id != self.vault.chain_id:
            raise ChainMismatchError(expected=self.vault.chain_id, actual=chain_id)

        for name, address in [*self.required_contracts(), *extra]:
            code = self.client.get_code(address)
            if not code or code in (b"", b"\x00"):
                raise ContractNotDeployedError(name, address)

        self._preflight_done = True
        logger.info("Preflight passed on chain {}", chain_id)

    def _role_args(self, call: RoleCall) -> tuple:
        if not is_hex_data(call.call_data):
            raise ExecutionRevertedError(f"Refusing to send malformed calldata for {call.label}")
        return (
            call.target,
            call.native_value,
            bytes.fromhex(call.call_data[2:]),
            int(call.call_kind),
            bytes.fromhex(self.vault.role_key[2:]),
            call.should_revert,
        )

    def simulate(self, call: RoleCall) -> None:
        """Dry-run the call via eth_call through the same role entry point.

        Raises:
            ExecutionRevertedError: With the revert reason, if the call would fail.
        """
        logger.info("Simulating {} via roles contract", call.label)
        try:
            ok = self.client.call_role(self.vault.roles_address, self._role_args(call))
        except ExecutionRevertedError as e:
            raise ExecutionRevertedError(
                f"Simulation failed for {call.label}", reason=e.reason or e.message
            )
        if not ok:
            raise ExecutionRevertedError(f"Simulation failed for {call.label}", reason="returned false")

    def execute(self, call: RoleCall) -> TransactionResult:
        """Send the call and wait for inclusion. Never retried.

        Raises:
            ConfigurationError: Preflight has not run.
            ExecutionRevertedError: Non-success receipt or revert on submission.
        """
        if not self._preflight_done:
            raise ConfigurationError("Preflight must pass before executing role transactions")

        args = self._role_args(call)
        logger.info(
            "Executing {} -> {} (kind={}, value={})",
            call.label, call.target, call.call_kind.name, call.native_value,
        )
        tx_hash = self.client.send_role_transaction(self.vault.roles_address, args)
        receipt = self.client.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)

        if receipt.get("status") != 1:
            raise ExecutionRevertedError(
                f"{call.label} transaction failed", tx_hash=tx_hash, receipt=receipt
            )

        return TransactionResult(
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            status=receipt.get("status"),
        )
