"""End-to-end tests for the Aave supply supertransaction against fakes."""

import asyncio

import pytest

from supertx.errors import InsufficientFunds, SupertransactionFailed, TimedOut
from supertx.mee.base import ReceiptStatus
from supertx.orchestrator import SupertransactionState
from supertx.services import AaveSupplyService
from supertx.utils.locks import LockTimeoutError, companion_lock

from conftest import COMPANION, SUPERTX_HASH, FakeCoordinator, FakeResolver

USDC = 10**6


def _service(context, market, coordinator, resolver=None, **kwargs) -> AaveSupplyService:
    kwargs.setdefault("receipt_timeout", 1.0)
    kwargs.setdefault("poll_interval", 0.01)
    return AaveSupplyService(
        context,
        resolver or FakeResolver(),
        coordinator,
        market,
        **kwargs,
    )


class TestSupplyFlow:
    """Supplying USDC and receiving aUSDC on the owner."""

    @pytest.mark.asyncio
    async def test_supply_moves_output_token_to_owner(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 1000 * USDC)
        coordinator = FakeCoordinator(reader=reader)
        service = _service(context, market, coordinator)

        result = await service.run(100 * USDC)

        assert result.hash == SUPERTX_HASH
        assert result.companion == COMPANION
        assert result.receipt.succeeded
        assert [i.function_name for i in result.instructions] == ["approve", "supply", "transfer"]
        assert result.trigger.amount == 100 * USDC
        assert result.trigger.token_address == market.input_token

        # owner receives exactly what the runtime lookup resolved to
        resolved = coordinator.resolved_transfer_amount
        assert resolved > 0
        assert result.owner_output_delta == resolved
        assert reader.get_balance(market.output_token, COMPANION) == 0
        assert reader.get_balance(market.input_token, context.owner) == 900 * USDC

        assert result.transitions[-1].to_state == SupertransactionState.CONFIRMED

    @pytest.mark.asyncio
    async def test_transfer_sweeps_preexisting_companion_balance(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 1000 * USDC)
        reader.set_balance(market.output_token, COMPANION, 5)
        coordinator = FakeCoordinator(reader=reader, minted=100 * USDC)

        result = await _service(context, market, coordinator).run(100 * USDC)

        assert coordinator.resolved_transfer_amount == 100 * USDC + 5
        assert result.owner_output_delta == 100 * USDC + 5
        assert result.before.delta(result.after, "companion") == -5

    @pytest.mark.asyncio
    async def test_insufficient_funds_before_any_coordinator_call(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 50 * USDC)
        coordinator = FakeCoordinator(reader=reader)

        with pytest.raises(InsufficientFunds) as exc_info:
            await _service(context, market, coordinator).run(100 * USDC)

        assert exc_info.value.observed == 50 * USDC
        assert exc_info.value.required == 100 * USDC
        assert coordinator.quote_calls == []
        assert coordinator.execute_calls == []

    @pytest.mark.asyncio
    async def test_timeout_preserves_hash(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 1000 * USDC)
        coordinator = FakeCoordinator(reader=reader, statuses=[ReceiptStatus.PENDING])
        service = _service(context, market, coordinator, receipt_timeout=0.05)

        with pytest.raises(TimedOut) as exc_info:
            await service.run(100 * USDC)

        assert exc_info.value.hash == SUPERTX_HASH
        assert len(coordinator.execute_calls) == 1

    @pytest.mark.asyncio
    async def test_failed_receipt(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 1000 * USDC)
        coordinator = FakeCoordinator(reader=reader, statuses=[ReceiptStatus.FAILED])

        with pytest.raises(SupertransactionFailed) as exc_info:
            await _service(context, market, coordinator).run(100 * USDC)

        assert exc_info.value.hash == SUPERTX_HASH
        assert reader.get_balance(market.input_token, context.owner) == 1000 * USDC

    @pytest.mark.asyncio
    async def test_transitions_reported_to_callbacks(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 1000 * USDC)
        seen = []
        service = _service(context, market, FakeCoordinator(reader=reader), on_transition=[seen.append])

        await service.run(100 * USDC)

        assert [t.to_state for t in seen] == [
            SupertransactionState.QUOTED,
            SupertransactionState.EXECUTING,
            SupertransactionState.CONFIRMED,
        ]

    def test_market_on_other_chain_rejected(self, context, market):
        from dataclasses import replace

        with pytest.raises(ValueError):
            _service(context, replace(market, chain_id=10), FakeCoordinator())


class TestSerialization:
    """Runs against the same companion do not overlap."""

    @pytest.mark.asyncio
    async def test_busy_companion_times_out(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 1000 * USDC)
        coordinator = FakeCoordinator(reader=reader)
        service = _service(context, market, coordinator, lock_timeout=0.05)

        async with companion_lock(COMPANION.lower()):
            with pytest.raises(LockTimeoutError):
                await service.run(100 * USDC)

        assert coordinator.quote_calls == []

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_sequential(self, context, reader, market):
        reader.set_balance(market.input_token, context.owner, 1000 * USDC)
        events = []

        class TracingCoordinator(FakeCoordinator):
            async def get_fusion_quote(self, instructions, trigger, fee_token):
                events.append("quote")
                return await super().get_fusion_quote(instructions, trigger, fee_token)

            async def get_supertransaction(self, supertx_hash):
                receipt = await super().get_supertransaction(supertx_hash)
                if receipt.is_terminal:
                    events.append("done")
                return receipt

        first = _service(context, market, TracingCoordinator())
        second = _service(context, market, TracingCoordinator())

        await asyncio.gather(first.run(100 * USDC), second.run(100 * USDC))

        assert events == ["quote", "done", "quote", "done"]
