"""Aave supply supertransaction.

One batch, settled by the execution coordinator:
1. Trigger pulls the supply amount of USDC from the owner into the companion
2. approve USDC -> Aave v3 Pool
3. Pool.supply(USDC, amount, companion, 0)
4. transfer the companion's whole aUSDC balance (resolved at execution) -> owner
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from supertx.account import ExecutionAccountResolver
from supertx.chains import LendingMarket, format_units
from supertx.context import ChainContext
from supertx.errors import SupertransactionFailed
from supertx.instructions import Instruction, compose_supply_flow
from supertx.mee.base import (
    ExecutionCoordinator,
    FeeSpecification,
    FundingTrigger,
    SupertransactionReceipt,
)
from supertx.orchestrator import StateTransition, SupertransactionOrchestrator, TransitionCallback
from supertx.utils.locks import companion_lock
from supertx.verifier import BalanceSnapshot, BalanceVerifier

logger = logging.getLogger(__name__)


@dataclass
class SupplyResult:
    """Outcome of a confirmed supply supertransaction."""

    hash: str
    receipt: SupertransactionReceipt
    companion: str
    owner: str
    amount: int
    instructions: list[Instruction]
    trigger: FundingTrigger
    before: BalanceSnapshot
    after: BalanceSnapshot
    transitions: list[StateTransition] = field(default_factory=list)

    @property
    def owner_output_delta(self) -> Optional[int]:
        return self.before.delta(self.after, "owner")


class AaveSupplyService:
    """Runs the approve/supply/transfer supertransaction for one market."""

    def __init__(
        self,
        context: ChainContext,
        resolver: ExecutionAccountResolver,
        coordinator: ExecutionCoordinator,
        market: LendingMarket,
        receipt_timeout: float = 600.0,
        poll_interval: float = 2.0,
        read_retries: int = 3,
        lock_timeout: Optional[float] = 30.0,
        on_transition: Optional[list[TransitionCallback]] = None,
    ):
        if market.chain_id != context.chain_id:
            raise ValueError(f"Market {market.name} is on chain {market.chain_id}, context on {context.chain_id}")

        self.context = context
        self.resolver = resolver
        self.coordinator = coordinator
        self.market = market
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self.lock_timeout = lock_timeout
        self.on_transition = list(on_transition or [])
        self.verifier = BalanceVerifier(context.reader, retries=read_retries, chain_id=context.chain_id)

    def new_orchestrator(self) -> SupertransactionOrchestrator:
        return SupertransactionOrchestrator(
            self.coordinator,
            receipt_timeout=self.receipt_timeout,
            poll_interval=self.poll_interval,
            on_transition=self.on_transition,
        )

    async def run(self, amount: int) -> SupplyResult:
        """Supply ``amount`` base units and return the confirmed result.

        Raises:
            InsufficientFunds: Before any coordinator call if the owner is short
            QuoteRejected, SubmissionError: If the coordinator refuses the batch
            TimedOut: If settlement is not reported in time (hash preserved)
            SupertransactionFailed: If the coordinator reports a failed batch
        """
        market = self.market
        chain_id = self.context.chain_id
        owner = self.context.owner

        companion = await self.resolver.address_on(chain_id)
        logger.info(f"Companion (chain {chain_id}): {companion}")
        logger.info(f"Supply amount ({market.symbol}): {format_units(amount, market.decimals)}")

        async with companion_lock(companion, timeout=self.lock_timeout, operation="aave_supply"):
            await self.verifier.check_sufficient_balance(owner, market.input_token, amount)

            accounts = {"owner": owner, "companion": companion}
            before = await self.verifier.snapshot(market.output_token, accounts)

            flow = compose_supply_flow(
                chain_id=chain_id,
                pool=market.pool,
                input_token=market.input_token,
                output_token=market.output_token,
                companion=companion,
                recipient=owner,
                amount=amount,
            )
            trigger = FundingTrigger(chain_id=chain_id, token_address=market.input_token, amount=amount)
            fee_token = FeeSpecification(chain_id=chain_id, token_address=market.input_token)

            orchestrator = self.new_orchestrator()
            quote = await orchestrator.get_quote(flow.instructions, trigger, fee_token)

            logger.info("Executing fusion quote")
            supertx_hash = await orchestrator.execute(quote)
            logger.info(f"Supertransaction: {supertx_hash}")

            receipt = await orchestrator.await_receipt(supertx_hash)
            if not receipt.succeeded:
                raise SupertransactionFailed(supertx_hash, receipt.status.value)

            after = await self.verifier.snapshot(market.output_token, accounts)

        for label in accounts:
            balance = after.get(label)
            shown = format_units(balance, market.decimals) if balance is not None else "unavailable"
            logger.info(f"{market.output_symbol} balance on {label}: {shown}")

        return SupplyResult(
            hash=supertx_hash,
            receipt=receipt,
            companion=companion,
            owner=owner,
            amount=amount,
            instructions=flow.instructions,
            trigger=trigger,
            before=before,
            after=after,
            transitions=list(orchestrator.transitions),
        )
