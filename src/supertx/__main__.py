"""Run an Aave supply supertransaction against a local fork and MEE node.

Usage:
    python -m supertx [--amount 100] [--skip-funding] [--timeout 600] [--verbose]

Steps:
1. (Optional) fund the owner with USDC by impersonating a holder on the fork
2. Resolve the companion account and check the owner's USDC balance
3. Quote, execute and await the approve/supply/transfer supertransaction

Exit code 0 on a confirmed supertransaction; otherwise the error kind's
exit code (see supertx.errors).
"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv

from supertx.account import ExecutionAccountResolver
from supertx.chains import AAVE_V3_USDC_MAINNET, LendingMarket, to_base_units
from supertx.config import Settings, load_settings
from supertx.context import ChainContext
from supertx.errors import (
    ConfigurationError,
    InsufficientFunds,
    SupertransactionError,
    TimedOut,
)
from supertx.funding import ImpersonationFunder
from supertx.mee.client import MeeClient
from supertx.services.aave_supply import AaveSupplyService, SupplyResult

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Aave supply supertransaction via an MEE node")
    parser.add_argument("--amount", type=Decimal, default=None, help="USDC to supply (default: settings)")
    parser.add_argument("--skip-funding", action="store_true", help="Do not fund the owner on the fork")
    parser.add_argument("--timeout", type=float, default=None, help="Receipt wait window in seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def _base_units(amount: Decimal, market: LendingMarket, name: str) -> int:
    try:
        return to_base_units(amount, market.decimals)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {name}: {e}") from e


async def run(settings: Settings, args: argparse.Namespace, market: LendingMarket = AAVE_V3_USDC_MAINNET) -> SupplyResult:
    """Wire the collaborators from settings and run one supply."""
    amount_human = args.amount if args.amount is not None else settings.aave_supply_amount_usdc
    amount = _base_units(amount_human, market, "supply amount")
    top_up = _base_units(settings.usdc_top_up_amount, market, "USDC_TOP_UP_AMOUNT")

    context = ChainContext.from_settings(settings)
    await context.verify_chain(market.chain_id)

    if not args.skip_funding:
        funder = ImpersonationFunder(context, market.input_token, holder=settings.usdc_whale)
        await funder.fund_token(context.owner, top_up)

    resolver = ExecutionAccountResolver(
        context.signer,
        [context],
        factory_address=settings.nexus_factory_address,
        account_index=settings.nexus_account_index,
        expected_account_id_prefix=settings.nexus_account_id_prefix,
    )
    coordinator = MeeClient(
        settings.mee_node_url,
        account=resolver,
        signer=context.signer,
        api_key=settings.mee_api_key,
        timeout=settings.http_timeout_seconds,
    )
    service = AaveSupplyService(
        context,
        resolver,
        coordinator,
        market,
        receipt_timeout=args.timeout or settings.receipt_timeout_seconds,
        poll_interval=settings.receipt_poll_interval,
        read_retries=settings.read_retries,
    )

    return await service.run(amount)


def report_failure(error: SupertransactionError) -> None:
    """Print the failure kind with the values needed to diagnose it."""
    print(f"FAILED [{error.kind}]: {error}", file=sys.stderr)
    if isinstance(error, InsufficientFunds):
        print(
            f"  account={error.account} token={error.token} chain={error.chain_id} "
            f"observed={error.observed} required={error.required}",
            file=sys.stderr,
        )
    elif isinstance(error, TimedOut):
        print(f"  hash={error.hash} (may still confirm; re-check later)", file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    try:
        settings = load_settings()
        settings.validate_for_run()
    except SupertransactionError as e:
        report_failure(e)
        return e.exit_code

    log_level = logging.DEBUG if (settings.debug or args.verbose) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Settings: {settings.get_safe_dict()}")

    try:
        result = asyncio.run(run(settings, args))
    except SupertransactionError as e:
        report_failure(e)
        return e.exit_code
    except KeyboardInterrupt:
        # Stops observing only; the coordinator keeps settling server-side
        print("Interrupted: stopped observing the supertransaction", file=sys.stderr)
        return 130

    print(result.hash)
    return 0


if __name__ == "__main__":
    sys.exit(main())
