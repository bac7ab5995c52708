"""Sandbox funding by impersonation (Anvil forks only).

Never part of the production flow: the CLI or a test harness injects a
``Funder`` to seed the owner with tokens before a demo run.
"""

import logging
from typing import Optional, Protocol

from eth_utils import to_checksum_address

from supertx.abi import ERC20_ABI
from supertx.context import ChainContext

logger = logging.getLogger(__name__)

# Gas money for the impersonated holder: 1000 ETH
HOLDER_ETH_BALANCE_WEI = 1000 * 10**18


class Funder(Protocol):
    async def fund_token(self, to: str, amount: int) -> Optional[str]:
        """Send ``amount`` base units to ``to``; None if skipped."""
        ...


class ImpersonationFunder:
    """Transfers tokens from an impersonated holder on an Anvil fork.

    With no holder configured, funding is skipped without touching the node.
    """

    def __init__(
        self,
        context: ChainContext,
        token: str,
        holder: Optional[str] = None,
        confirmation_timeout: float = 120,
    ):
        self.context = context
        self.token = token
        self.holder = holder
        self.confirmation_timeout = confirmation_timeout

    async def fund_token(self, to: str, amount: int) -> Optional[str]:
        if not self.holder:
            logger.info("No token holder configured; skipping local funding step")
            return None

        writer = self.context.writer
        await writer.rpc_request("anvil_impersonateAccount", [self.holder])
        try:
            await writer.rpc_request("anvil_setBalance", [self.holder, hex(HOLDER_ETH_BALANCE_WEI)])

            tx_hash = await writer.send_contract_transaction(
                self.token, ERC20_ABI, "transfer", [to_checksum_address(to), amount], sender=self.holder
            )
            logger.info(f"Funded {to} with {amount} of {self.token} (tx: {tx_hash}), waiting for confirmation")
            await self.context.reader.wait_for_transaction(tx_hash, timeout=self.confirmation_timeout)
        finally:
            await writer.rpc_request("anvil_stopImpersonatingAccount", [self.holder])

        return tx_hash
