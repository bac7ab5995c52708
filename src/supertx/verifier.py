"""Balance pre- and post-condition checks around a supertransaction."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from supertx.errors import InsufficientFunds, NetworkError

logger = logging.getLogger(__name__)


@dataclass
class BalanceSnapshot:
    """Advisory balances of one token across labelled accounts.

    A ``None`` balance means the read failed; snapshots never decide the
    outcome of a run.
    """

    token: str
    balances: dict[str, Optional[int]] = field(default_factory=dict)

    def get(self, label: str) -> Optional[int]:
        return self.balances.get(label)

    def delta(self, later: "BalanceSnapshot", label: str) -> Optional[int]:
        """Change of ``label``'s balance from this snapshot to ``later``."""
        before, after = self.get(label), later.get(label)
        if before is None or after is None:
            return None
        return after - before


class BalanceVerifier:
    """Reads token balances with retry on transient network errors."""

    def __init__(self, reader, retries: int = 3, backoff: float = 1.0, chain_id: Optional[int] = None):
        self.reader = reader
        self.retries = max(1, retries)
        self.backoff = backoff
        self.chain_id = chain_id

    async def read_balance(self, token: str, account: str) -> int:
        """Balance read, retried with linear backoff (1x, 2x, ...).

        Raises:
            NetworkError: If every attempt failed.
        """
        last_error: Optional[NetworkError] = None
        for attempt in range(self.retries):
            try:
                return await self.reader.balance_of(token, account)
            except NetworkError as e:
                last_error = e
                if attempt < self.retries - 1:
                    logger.warning(f"Balance read failed (attempt {attempt + 1}): {e}")
                    await asyncio.sleep(self.backoff * (attempt + 1))
        raise last_error

    async def check_sufficient_balance(self, account: str, token: str, required_amount: int) -> int:
        """Fail fast before quoting if ``account`` cannot cover ``required_amount``.

        Returns:
            Observed balance

        Raises:
            InsufficientFunds: With observed and required amounts.
        """
        observed = await self.read_balance(token, account)
        if observed < required_amount:
            raise InsufficientFunds(
                account=account,
                token=token,
                observed=observed,
                required=required_amount,
                chain_id=self.chain_id,
            )
        logger.debug(f"Balance check passed: {account} holds {observed} >= {required_amount} of {token}")
        return observed

    async def snapshot(self, token: str, accounts: dict[str, str]) -> BalanceSnapshot:
        """Read ``token`` balances for each labelled account (advisory)."""
        snapshot = BalanceSnapshot(token=token)
        for label, address in accounts.items():
            try:
                snapshot.balances[label] = await self.read_balance(token, address)
            except NetworkError as e:
                logger.warning(f"Could not read {label} balance of {token} at {address}: {e}")
                snapshot.balances[label] = None
        return snapshot
