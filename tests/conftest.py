"""Pytest configuration and fixtures."""

import os
from typing import Optional

import pytest
from eth_account import Account
from eth_utils import to_checksum_address

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"

from supertx.abi import ERC20_ABI
from supertx.chains import AAVE_V3_USDC_MAINNET, ZERO_ADDRESS
from supertx.context import ChainContext
from supertx.errors import NetworkError, QuoteRejected, SubmissionError
from supertx.mee.base import (
    ExecutionCoordinator,
    FusionQuote,
    ReceiptStatus,
    SupertransactionReceipt,
)
from supertx.utils.locks import clear_companion_locks

# Well-known throwaway key, never funded anywhere
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
COMPANION = to_checksum_address("0x" + "c0" * 20)
FACTORY = to_checksum_address("0x" + "fa" * 20)
SUPERTX_HASH = "0x" + "ab" * 32
QUOTE_HASH = "0x" + "12" * 32


class FakeChainReader:
    """In-memory chain state: ERC-20 balances, deployed code and view results."""

    def __init__(self):
        self.balances: dict[tuple[str, str], int] = {}
        self.code: dict[str, bytes] = {}
        self.views: dict[tuple[str, str], object] = {}
        self.balance_reads = 0
        self.fail_reads = 0
        self.chain = 1

    @staticmethod
    def _key(token: str, holder: str) -> tuple[str, str]:
        return token.lower(), holder.lower()

    def set_balance(self, token: str, holder: str, amount: int) -> None:
        self.balances[self._key(token, holder)] = amount

    def get_balance(self, token: str, holder: str) -> int:
        return self.balances.get(self._key(token, holder), 0)

    def move(self, token: str, sender: str, recipient: str, amount: int) -> None:
        assert self.get_balance(token, sender) >= amount
        self.set_balance(token, sender, self.get_balance(token, sender) - amount)
        self.set_balance(token, recipient, self.get_balance(token, recipient) + amount)

    async def chain_id(self) -> int:
        return self.chain

    async def balance_of(self, token: str, holder: str) -> int:
        self.balance_reads += 1
        if self.fail_reads > 0:
            self.fail_reads -= 1
            raise NetworkError("connection reset")
        return self.get_balance(token, holder)

    async def get_code(self, address: str) -> bytes:
        return self.code.get(address.lower(), b"")

    async def call(self, address: str, abi: list[dict], function_name: str, *args):
        return self.views[(address.lower(), function_name)]

    async def wait_for_transaction(self, tx_hash: str, timeout: float = 120) -> dict:
        return {"transactionHash": tx_hash, "status": 1}


class FakeTransactionSender:
    """Records writes; executes ERC-20 transfers against a FakeChainReader."""

    def __init__(self, reader: FakeChainReader):
        self.reader = reader
        self.rpc_calls: list[tuple[str, list]] = []
        self.transactions: list[tuple[str, str, list, str]] = []

    async def rpc_request(self, method: str, params: list):
        self.rpc_calls.append((method, params))
        return True

    async def send_contract_transaction(self, address, abi, function_name, args, sender) -> str:
        self.transactions.append((address, function_name, args, sender))
        if abi is ERC20_ABI and function_name == "transfer":
            self.reader.move(address, sender, args[0], args[1])
        return "0x" + "f0" * 32


class FakeCoordinator(ExecutionCoordinator):
    """Coordinator that settles the supply batch against a FakeChainReader.

    ``statuses`` are returned by successive explorer reads; the chain effects
    of the batch are applied when SUCCESS is first reported.
    """

    def __init__(
        self,
        reader: Optional[FakeChainReader] = None,
        companion: str = COMPANION,
        minted: Optional[int] = None,
        statuses: Optional[list[ReceiptStatus]] = None,
        reject_quote: Optional[str] = None,
        reject_execute: Optional[str] = None,
    ):
        self.reader = reader
        self.companion = companion
        self.minted = minted
        self.statuses = list(statuses or [ReceiptStatus.PENDING, ReceiptStatus.SUCCESS])
        self.reject_quote = reject_quote
        self.reject_execute = reject_execute
        self.quote_calls: list[tuple] = []
        self.execute_calls: list[FusionQuote] = []
        self.receipt_calls = 0
        self._settled = False
        self.resolved_transfer_amount: Optional[int] = None

    async def get_fusion_quote(self, instructions, trigger, fee_token) -> FusionQuote:
        self.quote_calls.append((instructions, trigger, fee_token))
        if self.reject_quote:
            raise QuoteRejected(self.reject_quote, status_code=400)
        return FusionQuote(
            hash=QUOTE_HASH,
            payload={"hash": QUOTE_HASH},
            trigger=trigger,
            fee_token=fee_token,
            instruction_count=len(instructions),
        )

    async def execute_fusion_quote(self, quote: FusionQuote) -> str:
        self.execute_calls.append(quote)
        if self.reject_execute:
            raise SubmissionError(self.reject_execute, status_code=400, quote_hash=quote.hash)
        return SUPERTX_HASH

    def _settle(self) -> None:
        quote = self.execute_calls[-1]
        instructions = self.quote_calls[-1][0]
        market = AAVE_V3_USDC_MAINNET
        owner = instructions[2].args[0].value
        amount = quote.trigger.amount
        minted = self.minted if self.minted is not None else amount - 1

        # trigger, supply (mints output token to the companion), transfer
        self.reader.move(market.input_token, owner, self.companion, amount)
        self.reader.move(market.input_token, self.companion, market.pool, amount)
        self.reader.set_balance(market.output_token, ZERO_ADDRESS, minted)
        self.reader.move(market.output_token, ZERO_ADDRESS, self.companion, minted)
        lookup = instructions[2].runtime_lookups[0]
        resolved = self.reader.get_balance(lookup.token, lookup.target)
        self.resolved_transfer_amount = resolved
        self.reader.move(market.output_token, self.companion, owner, resolved)

    async def get_supertransaction(self, supertx_hash: str) -> SupertransactionReceipt:
        self.receipt_calls += 1
        status = self.statuses[min(self.receipt_calls - 1, len(self.statuses) - 1)]
        if status == ReceiptStatus.SUCCESS and self.reader is not None and not self._settled:
            self._settled = True
            self._settle()
        return SupertransactionReceipt(hash=supertx_hash, status=status)


class FakeResolver:
    def __init__(self, companion: str = COMPANION):
        self.companion = companion
        self.calls = 0

    async def address_on(self, chain_id: int) -> str:
        self.calls += 1
        return self.companion


@pytest.fixture(autouse=True)
def reset_companion_locks():
    """Locks are bound to an event loop; start every test with a clean registry."""
    clear_companion_locks()
    yield
    clear_companion_locks()


@pytest.fixture
def signer():
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def reader() -> FakeChainReader:
    return FakeChainReader()


@pytest.fixture
def writer(reader) -> FakeTransactionSender:
    return FakeTransactionSender(reader)


@pytest.fixture
def context(reader, writer, signer) -> ChainContext:
    return ChainContext(chain_id=1, reader=reader, writer=writer, signer=signer)


@pytest.fixture
def market():
    return AAVE_V3_USDC_MAINNET
