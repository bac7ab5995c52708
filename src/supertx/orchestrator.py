"""Supertransaction orchestrator.

Drives one batch through the coordinator lifecycle:

    BUILDING -> QUOTED -> EXECUTING -> CONFIRMED | FAILED

Every transition is recorded and pushed to optional callbacks so callers can
observe progress. Instructions run strictly in submission order inside the
supertransaction.

Cancelling ``await_receipt`` only stops observing: the coordinator keeps
settling the batch server-side.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from supertx.errors import (
    InvalidStateTransition,
    NetworkError,
    QuoteRejected,
    SubmissionError,
    SupertransactionError,
)
from supertx.instructions import Instruction
from supertx.mee.base import (
    ExecutionCoordinator,
    FeeSpecification,
    FundingTrigger,
    FusionQuote,
    SupertransactionReceipt,
)

logger = logging.getLogger(__name__)


class SupertransactionState(str, Enum):
    BUILDING = "building"
    QUOTED = "quoted"
    EXECUTING = "executing"
    CONFIRMED = "confirmed"
    FAILED = "failed"


TERMINAL_STATES = (SupertransactionState.CONFIRMED, SupertransactionState.FAILED)


@dataclass(frozen=True)
class StateTransition:
    from_state: SupertransactionState
    to_state: SupertransactionState
    at: float = field(default_factory=time.time)
    detail: dict = field(default_factory=dict)


TransitionCallback = Callable[[StateTransition], None]


class SupertransactionOrchestrator:
    """Quote, execute and await one supertransaction."""

    def __init__(
        self,
        coordinator: ExecutionCoordinator,
        receipt_timeout: float = 600.0,
        poll_interval: float = 2.0,
        on_transition: Optional[list[TransitionCallback]] = None,
    ):
        self.coordinator = coordinator
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self.callbacks: list[TransitionCallback] = list(on_transition or [])

        self.state = SupertransactionState.BUILDING
        self.transitions: list[StateTransition] = []
        self.quote: Optional[FusionQuote] = None
        self.hash: Optional[str] = None
        self.receipt: Optional[SupertransactionReceipt] = None

    def add_callback(self, callback: TransitionCallback) -> None:
        self.callbacks.append(callback)

    def _transition(self, to_state: SupertransactionState, **detail) -> None:
        transition = StateTransition(from_state=self.state, to_state=to_state, detail=detail)
        self.state = to_state
        self.transitions.append(transition)
        logger.info(f"Supertransaction {transition.from_state.value} -> {to_state.value} {detail or ''}")
        for callback in self.callbacks:
            callback(transition)

    def _require(self, operation: str, *states: SupertransactionState) -> None:
        if self.state not in states:
            raise InvalidStateTransition(operation, self.state.value)

    async def get_quote(
        self,
        instructions: list[Instruction],
        trigger: FundingTrigger,
        fee_token: FeeSpecification,
    ) -> FusionQuote:
        """Send the full batch with trigger and fee token for pricing.

        Raises:
            QuoteRejected: If the batch is empty, inconsistent with the
                trigger chain, or refused by the coordinator.
            NetworkError, ConfigurationError: Passed through after the
                attempt is recorded as FAILED.
        """
        self._require("get_quote", SupertransactionState.BUILDING)

        try:
            if not instructions:
                raise QuoteRejected("Instruction batch is empty")
            if trigger.amount <= 0:
                raise QuoteRejected(f"Trigger amount must be positive, got {trigger.amount}")
            if trigger.chain_id not in {i.chain_id for i in instructions}:
                raise QuoteRejected(f"Trigger chain {trigger.chain_id} has no instructions")

            quote = await self.coordinator.get_fusion_quote(list(instructions), trigger, fee_token)
        except SupertransactionError as e:
            # resolver and transport failures end the attempt too
            self._transition(SupertransactionState.FAILED, error=e.kind, message=str(e))
            raise

        self.quote = quote
        self._transition(
            SupertransactionState.QUOTED,
            quote_hash=quote.hash,
            instructions=len(instructions),
            trigger_amount=trigger.amount,
        )
        return quote

    async def execute(self, quote: FusionQuote) -> str:
        """Submit the quote; returns the supertransaction hash once accepted.

        Raises:
            SubmissionError: If the coordinator refuses the quote.
            NetworkError: If the request failed in transit. When it is not
                retry-safe the run is FAILED and the quote is never resent.
        """
        self._require("execute", SupertransactionState.QUOTED)

        try:
            supertx_hash = await self.coordinator.execute_fusion_quote(quote)
        except SubmissionError as e:
            self._transition(SupertransactionState.FAILED, error=e.kind, message=str(e))
            raise
        except NetworkError as e:
            if not e.retry_safe:
                # the node may have accepted the quote; never resubmit it
                self._transition(
                    SupertransactionState.FAILED,
                    error=e.kind,
                    message=str(e),
                    retry_safe=False,
                    quote_hash=quote.hash,
                )
            raise

        self.hash = supertx_hash
        self._transition(SupertransactionState.EXECUTING, hash=supertx_hash)
        return supertx_hash

    async def await_receipt(self, supertx_hash: Optional[str] = None) -> SupertransactionReceipt:
        """Wait for a terminal receipt.

        Calling again after a terminal receipt returns the same receipt
        without contacting the coordinator.

        Raises:
            TimedOut: If the wait window elapses; state stays EXECUTING and
                the hash is kept for a later re-poll.
        """
        supertx_hash = supertx_hash or self.hash
        if self.receipt is not None and self.receipt.hash == supertx_hash:
            return self.receipt

        self._require("await_receipt", SupertransactionState.EXECUTING)
        if supertx_hash != self.hash:
            raise InvalidStateTransition(f"await receipt of unknown hash {supertx_hash}", self.state.value)

        receipt = await self.coordinator.wait_for_supertransaction_receipt(
            supertx_hash,
            timeout=self.receipt_timeout,
            poll_interval=self.poll_interval,
        )

        self.receipt = receipt
        if receipt.succeeded:
            self._transition(SupertransactionState.CONFIRMED, hash=supertx_hash)
        else:
            self._transition(SupertransactionState.FAILED, hash=supertx_hash, status=receipt.status.value)
        return receipt
