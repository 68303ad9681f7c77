"""
Allowance Manager
-----------------
Keeps the vault's router approval just large enough for the quoted swap.
Approvals are delegate calls into the helper, whose ``approveForRouter`` can
only ever target the approved router.
"""

from enum import Enum
from typing import Any

from loguru import logger

from vaultswap.blockchain.abi import MAX_UINT256, encode_approve_for_router
from vaultswap.core.exceptions import (
    ApprovalExecutionError,
    ExecutionRevertedError,
    NetworkError,
    VaultSwapError,
)
from vaultswap.tokens.resolver import TokenDescriptor

from .executor import CallKind, RoleCall, RoleExecutor


class ApprovalMode(str, Enum):
    EXACT = "exact"
    MAX = "max"


class AllowanceManager:
    """Inspects and raises or revokes the (vault, router) allowance."""

    def __init__(self, client: Any, executor: RoleExecutor):
        self.client = client
        self.executor = executor
        self.vault = executor.vault

    def current_allowance(self, token: TokenDescriptor) -> int:
        try:
            return self.client.token_allowance(token.address, self.vault.vault_address, self.vault.router)
        except NetworkError as e:
            # unreadable counts as zero: forces an approval, never skips one
            logger.warning("Could not read allowance for {}: {}", token.symbol, e)
            return 0

    def ensure_allowance(
        self,
        token: TokenDescriptor,
        amount_in: int,
        mode: ApprovalMode = ApprovalMode.EXACT,
    ) -> bool:
        """Raise the router allowance if it does not cover ``amount_in``.

        Returns:
            True if an approval transaction was sent.

        Raises:
            ApprovalExecutionError: If the approval reverts or cannot be confirmed.
        """
        if token.native:
            return False

        allowance = self.current_allowance(token)
        if allowance >= amount_in:
            logger.info("Existing {} allowance {} covers {}", token.symbol, allowance, amount_in)
            return False

        mode = ApprovalMode(mode)
        approval_amount = MAX_UINT256 if mode is ApprovalMode.MAX else amount_in
        logger.info("Approving {} {} for router ({} mode)", approval_amount, token.symbol, mode.value)

        call = RoleCall(
            target=self.vault.helper_address,
            native_value=0,
            call_data=encode_approve_for_router(token.address, approval_amount),
            call_kind=CallKind.DELEGATE_CALL,
            label=f"approve {token.symbol}",
        )
        try:
            result = self.executor.execute(call)
        except ExecutionRevertedError as e:
            raise ApprovalExecutionError(
                f"Approval of {token.symbol} failed", tx_hash=e.tx_hash, receipt=e.receipt
            )
        except NetworkError as e:
            raise ApprovalExecutionError(f"Approval of {token.symbol} could not be confirmed: {e}")

        logger.info("Approval confirmed: {}", result.tx_hash)
        return True

    def revoke(self, token: TokenDescriptor) -> bool:
        """Best-effort reset of the router allowance to zero.

        Failures are logged, never raised: the swap before it is already final.
        """
        if token.native:
            return False

        call = RoleCall(
            target=self.vault.helper_address,
            native_value=0,
            call_data=encode_approve_for_router(token.address, 0),
            call_kind=CallKind.DELEGATE_CALL,
            label=f"revoke {token.symbol}",
        )
        try:
            result = self.executor.execute(call)
        except VaultSwapError as e:
            logger.warning("Allowance revoke for {} failed: {}", token.symbol, e)
            return False

        logger.info("Allowance revoked: {}", result.tx_hash)
        return True
