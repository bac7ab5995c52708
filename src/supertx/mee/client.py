"""MEE node client.

Talks to a Modular Execution Environment node over JSON/HTTPS:
- POST {base}/quote          price a fusion batch
- POST {base}/exec           submit the owner-signed quote
- GET  {base}/explorer/{h}   supertransaction state
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from supertx.errors import NetworkError, QuoteRejected, SubmissionError
from supertx.instructions import Instruction
from supertx.mee.base import (
    ExecutionCoordinator,
    FeeSpecification,
    FundingTrigger,
    FusionQuote,
    ReceiptStatus,
    SupertransactionReceipt,
)
from supertx.mee.contracts import (
    AccountPayload,
    ErrorResponse,
    ExecuteRequest,
    ExecuteResponse,
    ExplorerResponse,
    FeeTokenPayload,
    QuoteRequest,
    QuoteResponse,
    TriggerPayload,
)

logger = logging.getLogger(__name__)

# Explorer transaction statuses
SUCCESS_STATUSES = {"MINED_SUCCESS", "SUCCESS"}
FAILED_STATUSES = {"MINED_FAIL", "FAILED"}
PENDING_STATUSES = {"PENDING", "MINING"}


def parse_status(status: str) -> ReceiptStatus:
    """Map an explorer status string to a ReceiptStatus."""
    status = (status or "").upper()
    if status in SUCCESS_STATUSES:
        return ReceiptStatus.SUCCESS
    if status in FAILED_STATUSES:
        return ReceiptStatus.FAILED
    if status not in PENDING_STATUSES:
        logger.warning(f"Unknown supertransaction status {status!r}, treating as pending")
    return ReceiptStatus.PENDING


def _error_message(response: httpx.Response) -> str:
    try:
        error = ErrorResponse.model_validate(response.json())
        if error.message:
            return error.message
        if error.errors:
            return "; ".join(str(e) for e in error.errors)
    except (ValueError, ValidationError):
        pass
    return response.text or response.reason_phrase


class MeeClient(ExecutionCoordinator):
    """HTTP client for an MEE node.

    Quotes are signed by the owner (EIP-191 over the quote hash) before
    execution; the companion addresses come from the account resolver.
    """

    def __init__(
        self,
        base_url: str,
        account,
        signer,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize MEE client.

        Args:
            base_url: Node base URL (e.g. http://localhost:3000/v3)
            account: ExecutionAccountResolver for companion addresses
            signer: eth_account LocalAccount of the owner
            api_key: Optional node API key
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.account = account
        self.signer = signer
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._get_headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _build_quote_request(
        self,
        instructions: list[Instruction],
        trigger: FundingTrigger,
        fee_token: FeeSpecification,
    ) -> QuoteRequest:
        chain_ids = sorted({i.chain_id for i in instructions} | {trigger.chain_id})
        accounts = [
            AccountPayload(chain_id=chain_id, address=await self.account.address_on(chain_id))
            for chain_id in chain_ids
        ]
        return QuoteRequest(
            owner=self.signer.address,
            accounts=accounts,
            instructions=[i.to_payload() for i in instructions],
            trigger=TriggerPayload(
                chain_id=trigger.chain_id,
                token_address=trigger.token_address,
                amount=str(trigger.amount),
            ),
            fee_token=FeeTokenPayload(chain_id=fee_token.chain_id, address=fee_token.token_address),
        )

    async def get_fusion_quote(
        self,
        instructions: list[Instruction],
        trigger: FundingTrigger,
        fee_token: FeeSpecification,
    ) -> FusionQuote:
        request = await self._build_quote_request(instructions, trigger, fee_token)
        logger.debug(f"Requesting fusion quote for {len(instructions)} instruction(s)")

        try:
            async with self._client() as client:
                response = await client.post("/quote", json=request.model_dump(by_alias=True))
        except httpx.HTTPError as e:
            raise NetworkError(f"Quote request to {self.base_url} failed: {e}", retry_safe=False) from e

        if response.status_code != 200:
            message = _error_message(response)
            logger.warning(f"MEE quote error: {response.status_code} - {message}")
            raise QuoteRejected(message, status_code=response.status_code)

        try:
            payload = response.json()
            parsed = QuoteResponse.model_validate(payload)
        except (ValueError, ValidationError) as e:
            raise QuoteRejected(f"Malformed quote response: {e}", status_code=response.status_code) from e

        fee_amount = parsed.fee.amount if parsed.fee else None
        logger.info(f"Fusion quote {parsed.hash} (fee: {fee_amount})")
        return FusionQuote(
            hash=parsed.hash,
            payload=payload,
            trigger=trigger,
            fee_token=fee_token,
            instruction_count=len(instructions),
            fee_amount=fee_amount,
        )

    def sign_quote(self, quote: FusionQuote) -> str:
        """Owner's EIP-191 signature over the quote hash."""
        from eth_account.messages import encode_defunct
        from eth_utils import to_hex

        try:
            message = encode_defunct(hexstr=quote.hash)
        except ValueError as e:
            raise SubmissionError(f"Quote hash is not hex: {e}", quote_hash=quote.hash) from e
        signed = self.signer.sign_message(message)
        return to_hex(signed.signature)

    async def execute_fusion_quote(self, quote: FusionQuote) -> str:
        request = ExecuteRequest(quote=quote.payload, signature=self.sign_quote(quote))

        try:
            async with self._client() as client:
                response = await client.post("/exec", json=request.model_dump(by_alias=True))
        except httpx.HTTPError as e:
            # Not safe to resubmit blindly: the node may have accepted it
            raise NetworkError(f"Execute request to {self.base_url} failed: {e}", retry_safe=False) from e

        if response.status_code != 200:
            message = _error_message(response)
            logger.warning(f"MEE execute error: {response.status_code} - {message}")
            raise SubmissionError(message, status_code=response.status_code, quote_hash=quote.hash)

        try:
            parsed = ExecuteResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise SubmissionError(
                f"Malformed execute response: {e}", status_code=response.status_code, quote_hash=quote.hash
            ) from e

        return parsed.hash

    async def get_supertransaction(self, supertx_hash: str) -> SupertransactionReceipt:
        try:
            async with self._client() as client:
                response = await client.get(f"/explorer/{supertx_hash}")
        except httpx.HTTPError as e:
            raise NetworkError(f"Explorer request for {supertx_hash} failed: {e}") from e

        if response.status_code == 404:
            # Not indexed yet
            return SupertransactionReceipt(hash=supertx_hash, status=ReceiptStatus.PENDING)

        if response.status_code != 200:
            raise NetworkError(
                f"Explorer error for {supertx_hash}: {response.status_code} - {_error_message(response)}"
            )

        try:
            payload = response.json()
            parsed = ExplorerResponse.model_validate(payload)
        except (ValueError, ValidationError) as e:
            raise NetworkError(f"Malformed explorer response for {supertx_hash}: {e}") from e

        tx_hashes = [op["executionData"] for op in parsed.user_ops if op.get("executionData")]
        return SupertransactionReceipt(
            hash=parsed.hash,
            status=parse_status(parsed.transaction_status),
            transaction_hashes=tx_hashes,
            raw=payload,
        )
