"""Execution coordinator interface and supertransaction domain types.

Coordinator lifecycle:
1. Quote: batch + trigger + fee token are priced and validated
2. Execute: the signed quote is accepted into the coordinator's pipeline
3. Receipt: the coordinator settles the batch and reports a terminal state
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from supertx.errors import NetworkError, TimedOut
from supertx.instructions import Instruction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundingTrigger:
    """Value pulled from the owner into the companion before the batch runs."""

    chain_id: int
    token_address: str
    amount: int


@dataclass(frozen=True)
class FeeSpecification:
    """Token the coordinator fees are paid in."""

    chain_id: int
    token_address: str


@dataclass
class FusionQuote:
    """A priced, validated batch ready for execution.

    ``payload`` is the coordinator's own representation and is echoed back
    verbatim on execute.
    """

    hash: str
    payload: dict
    trigger: FundingTrigger
    fee_token: FeeSpecification
    instruction_count: int
    fee_amount: Optional[int] = None


class ReceiptStatus(str, Enum):
    """Completion state of a supertransaction."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class SupertransactionReceipt:
    """Coordinator-reported state of an executed supertransaction."""

    hash: str
    status: ReceiptStatus
    transaction_hashes: list[str] = field(default_factory=list)
    raw: dict = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ReceiptStatus.SUCCESS, ReceiptStatus.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.status == ReceiptStatus.SUCCESS


class ExecutionCoordinator(ABC):
    """Abstract base class for supertransaction coordinators (MEE nodes)."""

    @abstractmethod
    async def get_fusion_quote(
        self,
        instructions: list[Instruction],
        trigger: FundingTrigger,
        fee_token: FeeSpecification,
    ) -> FusionQuote:
        """
        Price and validate a batch.

        Raises:
            QuoteRejected: If the batch cannot be priced or validated
        """
        pass

    @abstractmethod
    async def execute_fusion_quote(self, quote: FusionQuote) -> str:
        """
        Submit a quote for settlement.

        Returns:
            Supertransaction hash

        Raises:
            SubmissionError: If the coordinator refuses the quote
        """
        pass

    @abstractmethod
    async def get_supertransaction(self, supertx_hash: str) -> SupertransactionReceipt:
        """Read the current state of a supertransaction (read-only)."""
        pass

    async def wait_for_supertransaction_receipt(
        self,
        supertx_hash: str,
        timeout: float = 600.0,
        poll_interval: float = 2.0,
    ) -> SupertransactionReceipt:
        """Poll until the supertransaction reaches a terminal state.

        Transient network errors are tolerated until the deadline since
        polling is read-only.

        Raises:
            TimedOut: If no terminal state is reported within ``timeout``
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            try:
                receipt = await self.get_supertransaction(supertx_hash)
                if receipt.is_terminal:
                    return receipt
            except NetworkError as e:
                logger.warning(f"Receipt poll for {supertx_hash} failed, retrying: {e}")

            elapsed = loop.time() - start_time
            if elapsed >= timeout:
                raise TimedOut(supertx_hash, elapsed)

            await asyncio.sleep(min(poll_interval, max(timeout - elapsed, 0)))
