"""Chain/account context: signer, chain id and the read/write chain handles.

The context is built once per process from ``Settings`` and is immutable
afterwards. Reads and writes go through two thin wrappers around a lazily
created ``AsyncWeb3`` instance so the rest of the code (and the tests) only
depend on the small capability surface used here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from supertx.abi import ERC20_ABI
from supertx.config import Settings
from supertx.errors import ConfigurationError, NetworkError

logger = logging.getLogger(__name__)


class _Web3Handle:
    """Shared lazy ``AsyncWeb3`` construction."""

    def __init__(self, rpc_url: str, web3=None):
        self.rpc_url = rpc_url
        self._web3 = web3

    @property
    def web3(self):
        """Lazy load web3 instance."""
        if self._web3 is None:
            from web3 import AsyncHTTPProvider, AsyncWeb3

            self._web3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        return self._web3

    def _contract(self, address: str, abi: list[dict]):
        return self.web3.eth.contract(address=self.web3.to_checksum_address(address), abi=abi)


class ChainReader(_Web3Handle):
    """Read-only chain queries."""

    async def chain_id(self) -> int:
        try:
            return await self.web3.eth.chain_id
        except Exception as e:
            raise NetworkError(f"Failed to read chain id from {self.rpc_url}: {e}") from e

    async def balance_of(self, token: str, holder: str) -> int:
        """ERC-20 balance of ``holder`` in base units."""
        try:
            contract = self._contract(token, ERC20_ABI)
            holder = self.web3.to_checksum_address(holder)
            return int(await contract.functions.balanceOf(holder).call())
        except Exception as e:
            raise NetworkError(f"balanceOf({holder}) on {token} failed: {e}") from e

    async def get_code(self, address: str) -> bytes:
        try:
            code = await self.web3.eth.get_code(self.web3.to_checksum_address(address))
            return bytes(code)
        except Exception as e:
            raise NetworkError(f"eth_getCode({address}) failed: {e}") from e

    async def call(self, address: str, abi: list[dict], function_name: str, *args) -> Any:
        """Call a view function and return its decoded result."""
        try:
            contract = self._contract(address, abi)
            return await getattr(contract.functions, function_name)(*args).call()
        except Exception as e:
            raise NetworkError(f"{function_name} call on {address} failed: {e}") from e

    async def wait_for_transaction(self, tx_hash: str, timeout: float = 120) -> dict:
        """Wait for a transaction to be mined.

        Raises:
            NetworkError: If the receipt cannot be fetched in time.
        """
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except Exception as e:
            raise NetworkError(f"Transaction {tx_hash} not confirmed: {e}") from e
        if receipt["status"] == 0:
            raise NetworkError(f"Transaction {tx_hash} failed (reverted)", retry_safe=False)
        return dict(receipt)


class TransactionSender(_Web3Handle):
    """Write access: contract transactions and raw node RPC methods."""

    async def send_contract_transaction(
        self,
        address: str,
        abi: list[dict],
        function_name: str,
        args: list,
        sender: str,
    ) -> str:
        """Send a node-signed (``eth_sendTransaction``) contract call.

        Returns:
            Transaction hash as 0x-prefixed hex
        """
        try:
            contract = self._contract(address, abi)
            tx_hash = await getattr(contract.functions, function_name)(*args).transact(
                {"from": self.web3.to_checksum_address(sender)}
            )
        except Exception as e:
            raise NetworkError(
                f"{function_name} transaction on {address} failed: {e}", retry_safe=False
            ) from e
        return self.web3.to_hex(tx_hash)

    async def rpc_request(self, method: str, params: list) -> Any:
        """Issue a raw JSON-RPC request (e.g. Anvil cheat codes)."""
        try:
            response = await self.web3.provider.make_request(method, params)
        except Exception as e:
            raise NetworkError(f"RPC {method} failed: {e}", retry_safe=False) from e

        if response.get("error"):
            raise NetworkError(f"RPC {method} error: {response['error']}", retry_safe=False)
        return response.get("result")


@dataclass(frozen=True)
class ChainContext:
    """Signer plus the query and transaction handles for one chain."""

    chain_id: int
    reader: ChainReader
    writer: TransactionSender
    signer: Any  # eth_account LocalAccount

    @property
    def owner(self) -> str:
        """Owner EOA address."""
        return self.signer.address

    @classmethod
    def from_settings(cls, settings: Settings, web3=None) -> "ChainContext":
        """Build the context from settings.

        Raises:
            ConfigurationError: If the signer key is missing or invalid.
        """
        from eth_account import Account

        if not settings.has_signer:
            raise ConfigurationError("Missing PRIVATE_KEY: signer key material is required")

        try:
            signer = Account.from_key(settings.private_key.strip())
        except Exception as e:
            raise ConfigurationError(f"Invalid PRIVATE_KEY: {type(e).__name__}") from e

        reader = ChainReader(settings.local_rpc_url, web3=web3)
        writer = TransactionSender(settings.local_rpc_url, web3=web3)
        logger.info(f"Chain context: chain {settings.chain_id}, owner {signer.address}")
        return cls(chain_id=settings.chain_id, reader=reader, writer=writer, signer=signer)

    async def verify_chain(self, expected: Optional[int] = None) -> None:
        """Check the RPC endpoint serves the configured chain.

        Raises:
            ConfigurationError: On chain id mismatch.
        """
        expected = self.chain_id if expected is None else expected
        actual = await self.reader.chain_id()
        if actual != expected:
            raise ConfigurationError(
                f"RPC {self.reader.rpc_url} serves chain {actual}, expected {expected}"
            )
