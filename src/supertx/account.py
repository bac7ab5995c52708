"""Companion (execution) account resolution.

The companion is a Nexus smart account deterministically derived from the
owner's key through the account factory (CREATE2). It is addressed, never
signed for, by this package. Resolution only reads chain state:
- the factory must have code on the chain
- the factory's ``computeAccountAddress`` yields the companion address
- if the companion is already deployed, its ``accountId()`` must match the
  expected implementation family
"""

import logging
from typing import Optional

from eth_utils import is_address, to_checksum_address

from supertx.abi import NEXUS_ACCOUNT_ABI, NEXUS_FACTORY_ABI
from supertx.chains import ZERO_ADDRESS
from supertx.context import ChainContext
from supertx.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ExecutionAccountResolver:
    """Derives the owner's companion address on each configured chain."""

    def __init__(
        self,
        signer,
        contexts: list[ChainContext],
        factory_address: Optional[str],
        account_index: int = 0,
        expected_account_id_prefix: str = "biconomy.nexus.",
    ):
        self.signer = signer
        self.contexts = {ctx.chain_id: ctx for ctx in contexts}
        self.factory_address = factory_address
        self.account_index = account_index
        self.expected_account_id_prefix = expected_account_id_prefix
        self._addresses: dict[int, str] = {}

    @property
    def owner(self) -> str:
        return self.signer.address

    def _get_context(self, chain_id: int) -> ChainContext:
        ctx = self.contexts.get(chain_id)
        if ctx is None:
            raise ConfigurationError(
                f"Chain {chain_id} is not configured (configured: {sorted(self.contexts)})"
            )
        if ctx.signer.address != self.signer.address:
            raise ConfigurationError(f"Chain {chain_id} context uses a different signer")
        return ctx

    def _get_factory(self) -> str:
        if not self.factory_address or not is_address(self.factory_address):
            raise ConfigurationError(
                f"Invalid or missing Nexus factory address: {self.factory_address!r}"
            )
        return to_checksum_address(self.factory_address)

    async def address_on(self, chain_id: int) -> str:
        """Companion address on ``chain_id`` (cached after first resolution).

        Raises:
            ConfigurationError: If the chain, factory or deployed account
                version is not usable.
        """
        if chain_id in self._addresses:
            return self._addresses[chain_id]

        ctx = self._get_context(chain_id)
        factory = self._get_factory()

        if not await ctx.reader.get_code(factory):
            raise ConfigurationError(f"No Nexus factory deployed at {factory} on chain {chain_id}")

        result = await ctx.reader.call(
            factory,
            NEXUS_FACTORY_ABI,
            "computeAccountAddress",
            self.owner,
            self.account_index,
            [],
            0,
        )
        if not result or not is_address(result) or int(result, 16) == int(ZERO_ADDRESS, 16):
            raise ConfigurationError(f"Factory {factory} returned no companion address for {self.owner}")
        companion = to_checksum_address(result)

        await self._check_version(ctx, companion)

        logger.info(f"Companion on chain {chain_id}: {companion}")
        self._addresses[chain_id] = companion
        return companion

    async def _check_version(self, ctx: ChainContext, companion: str) -> None:
        """Verify a deployed companion belongs to the expected account family."""
        if not await ctx.reader.get_code(companion):
            logger.debug(f"Companion {companion} not deployed yet; coordinator deploys on first use")
            return

        account_id = await ctx.reader.call(companion, NEXUS_ACCOUNT_ABI, "accountId")
        if not str(account_id).startswith(self.expected_account_id_prefix):
            raise ConfigurationError(
                f"Companion {companion} reports accountId {account_id!r}, "
                f"expected prefix {self.expected_account_id_prefix!r}"
            )
