"""MEE node JSON request and response contracts."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CoordinatorModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class AccountPayload(CoordinatorModel):
    """Companion account on one chain."""

    chain_id: int
    address: str


class TriggerPayload(CoordinatorModel):
    chain_id: int
    token_address: str
    amount: str = Field(..., description="Base units as a decimal string")


class FeeTokenPayload(CoordinatorModel):
    chain_id: int
    address: str


class QuoteRequest(CoordinatorModel):
    """Request for a fusion quote."""

    owner: str = Field(..., description="Owner EOA funding the trigger")
    accounts: list[AccountPayload]
    instructions: list[dict]
    trigger: TriggerPayload
    fee_token: FeeTokenPayload


class QuoteFee(CoordinatorModel):
    amount: Optional[int] = Field(default=None, description="Base units of the fee token")


class QuoteResponse(CoordinatorModel):
    """Fusion quote as returned by the node; unknown fields are preserved."""

    hash: str
    fee: Optional[QuoteFee] = None


class ExecuteRequest(CoordinatorModel):
    quote: dict
    signature: str


class ExecuteResponse(CoordinatorModel):
    hash: str


class ExplorerResponse(CoordinatorModel):
    """Supertransaction state from the explorer endpoint."""

    hash: str
    transaction_status: str
    user_ops: list[dict] = Field(default_factory=list)


class ErrorResponse(CoordinatorModel):
    message: Optional[str] = None
    code: Optional[str] = None
    errors: Optional[list[Any]] = None
