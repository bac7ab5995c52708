"""Instruction composer for composable supertransaction batches.

Builds contract-call instructions whose arguments are either literal values
or runtime placeholders. A placeholder (``RuntimeLookup``) is resolved by the
execution coordinator at the moment the instruction runs inside the batch,
never here: composing is pure and local.

Supply flow order is always approve -> supply -> transfer. The transfer
amount is the companion's balance of the pool's output token, which only
exists once the supply step has executed.
"""

import logging
from dataclasses import dataclass, field
from typing import Union

from eth_utils import function_abi_to_4byte_selector, is_address, to_checksum_address

from supertx.abi import AAVE_POOL_ABI, ERC20_ABI, function_fragment
from supertx.errors import InvalidInstructionError

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1
UINT16_MAX = 2**16 - 1

RUNTIME_ERC20_BALANCE = "erc20_balance"

CONSTRAINT_TYPES = ("gte", "lte", "eq")


@dataclass(frozen=True)
class LiteralValue:
    """An argument known at composition time."""

    value: Union[int, str, bool]

    def to_payload(self) -> dict:
        value = self.value
        if isinstance(value, int) and not isinstance(value, bool):
            # uint256 does not fit JSON numbers
            value = str(value)
        return {"type": "literal", "value": value}


@dataclass(frozen=True)
class Constraint:
    """Bound on a runtime-resolved value (e.g. gte 1)."""

    type: str
    value: int

    def __post_init__(self):
        if self.type not in CONSTRAINT_TYPES:
            raise InvalidInstructionError(f"Unknown constraint type: {self.type}")
        if self.value < 0:
            raise InvalidInstructionError(f"Constraint value must be >= 0, got {self.value}")

    def to_payload(self) -> dict:
        return {"type": self.type, "value": str(self.value)}


@dataclass(frozen=True)
class RuntimeLookup:
    """An argument resolved from on-chain state when the instruction executes.

    Attributes:
        kind: Lookup type; only ERC-20 ``balanceOf`` is supported
        target: Address whose balance is read
        token: Token contract read from
        constraints: Bounds on the resolved value (empty = accept any value)
    """

    kind: str
    target: str
    token: str
    constraints: tuple[Constraint, ...] = field(default_factory=tuple)

    def to_payload(self) -> dict:
        return {
            "type": "runtimeErc20Balance",
            "targetAddress": self.target,
            "tokenAddress": self.token,
            "constraints": [c.to_payload() for c in self.constraints],
        }


Argument = Union[LiteralValue, RuntimeLookup]


@dataclass(frozen=True)
class Instruction:
    """One composable contract call inside a supertransaction."""

    chain_id: int
    to: str
    function_name: str
    abi: dict
    args: tuple[Argument, ...]

    @property
    def selector(self) -> str:
        """4-byte function selector as 0x-prefixed hex."""
        return "0x" + function_abi_to_4byte_selector(self.abi).hex()

    @property
    def runtime_lookups(self) -> list[RuntimeLookup]:
        return [a for a in self.args if isinstance(a, RuntimeLookup)]

    @property
    def is_fully_literal(self) -> bool:
        return not self.runtime_lookups

    def to_payload(self) -> dict:
        """Coordinator JSON representation."""
        return {
            "chainId": self.chain_id,
            "to": self.to,
            "functionName": self.function_name,
            "functionSelector": self.selector,
            "abi": [self.abi],
            "args": [a.to_payload() for a in self.args],
        }


# ======================
# Argument helpers
# ======================


def _address(value: str, name: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidInstructionError(f"Invalid {name} address: {value!r}")
    return to_checksum_address(value)


def _amount(value: int, name: str = "amount", maximum: int = UINT256_MAX) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInstructionError(f"{name} must be an integer in base units, got {value!r}")
    if value < 0:
        raise InvalidInstructionError(f"{name} must be >= 0, got {value}")
    if value > maximum:
        raise InvalidInstructionError(f"{name} {value} exceeds maximum {maximum}")
    return value


def _chain_id(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInstructionError(f"Invalid chain id: {value!r}")
    return value


def runtime_erc20_balance_of(target: str, token: str, constraints=()) -> RuntimeLookup:
    """Placeholder for ``token.balanceOf(target)`` read at execution time."""
    return RuntimeLookup(
        kind=RUNTIME_ERC20_BALANCE,
        target=_address(target, "target"),
        token=_address(token, "token"),
        constraints=tuple(constraints),
    )


def _build(chain_id: int, to: str, abi: list[dict], function_name: str, args: list) -> Instruction:
    fragment = function_fragment(abi, function_name)
    if len(args) != len(fragment["inputs"]):
        raise InvalidInstructionError(
            f"{function_name} takes {len(fragment['inputs'])} arguments, got {len(args)}"
        )
    wrapped = tuple(a if isinstance(a, (LiteralValue, RuntimeLookup)) else LiteralValue(a) for a in args)
    return Instruction(
        chain_id=_chain_id(chain_id),
        to=_address(to, "target contract"),
        function_name=function_name,
        abi=fragment,
        args=wrapped,
    )


# ======================
# Step builders
# ======================


def build_approve(chain_id: int, token: str, spender: str, amount: int) -> list[Instruction]:
    """ERC-20 ``approve(spender, amount)`` on ``token``."""
    return [
        _build(chain_id, token, ERC20_ABI, "approve", [_address(spender, "spender"), _amount(amount)])
    ]


def build_supply(
    chain_id: int,
    pool: str,
    asset: str,
    amount: int,
    on_behalf_of: str,
    referral_code: int = 0,
) -> list[Instruction]:
    """Aave v3 ``Pool.supply(asset, amount, onBehalfOf, referralCode)``."""
    return [
        _build(
            chain_id,
            pool,
            AAVE_POOL_ABI,
            "supply",
            [
                _address(asset, "asset"),
                _amount(amount),
                _address(on_behalf_of, "onBehalfOf"),
                _amount(referral_code, "referralCode", UINT16_MAX),
            ],
        )
    ]


def build_transfer(
    chain_id: int,
    token: str,
    to: str,
    amount: Union[int, RuntimeLookup],
) -> list[Instruction]:
    """ERC-20 ``transfer(to, amount)``; ``amount`` may be a runtime lookup."""
    if not isinstance(amount, RuntimeLookup):
        amount = _amount(amount)
    return [_build(chain_id, token, ERC20_ABI, "transfer", [_address(to, "recipient"), amount])]


# ======================
# Supply flow
# ======================

SUPPLY_FLOW_ORDER = ("approve", "supply", "transfer")


@dataclass(frozen=True)
class SupplyFlow:
    """The ordered approve/supply/transfer batch for one supply."""

    approve: Instruction
    supply: Instruction
    transfer: Instruction

    @property
    def instructions(self) -> list[Instruction]:
        return [self.approve, self.supply, self.transfer]

    @property
    def transfer_lookup(self) -> RuntimeLookup:
        return self.transfer.runtime_lookups[0]


def assert_supply_order(instructions: list[Instruction]) -> None:
    """Reject a supply batch that is not exactly [approve, supply, transfer].

    Raises:
        InvalidInstructionError: On any other order or length.
    """
    names = tuple(i.function_name for i in instructions)
    if names != SUPPLY_FLOW_ORDER:
        raise InvalidInstructionError(
            f"Supply batch must be ordered {list(SUPPLY_FLOW_ORDER)}, got {list(names)}"
        )


def validate_supply_flow(instructions: list[Instruction], companion: str, output_token: str) -> None:
    """Check order and cross-instruction bindings of a supply batch.

    Raises:
        InvalidInstructionError: If any binding is inconsistent.
    """
    assert_supply_order(instructions)
    approve, supply, transfer = instructions
    companion = _address(companion, "companion")
    output_token = _address(output_token, "output token")

    if len({i.chain_id for i in instructions}) != 1:
        raise InvalidInstructionError("Supply batch instructions target different chains")

    if not all(isinstance(a, LiteralValue) for a in approve.args + supply.args):
        raise InvalidInstructionError("Approve and supply arguments must be literal values")

    spender = approve.args[0].value
    asset, _, on_behalf_of, _ = (a.value for a in supply.args)
    if spender != supply.to:
        raise InvalidInstructionError(f"Approve spender {spender} is not the pool {supply.to}")
    if asset != approve.to:
        raise InvalidInstructionError(f"Supplied asset {asset} is not the approved token {approve.to}")
    if on_behalf_of != companion:
        raise InvalidInstructionError(f"Supply onBehalfOf {on_behalf_of} is not the companion {companion}")

    lookups = transfer.runtime_lookups
    if transfer.to != output_token or len(lookups) != 1:
        raise InvalidInstructionError("Transfer must move the output token by a runtime balance lookup")
    lookup = lookups[0]
    if lookup.target != companion or lookup.token != output_token:
        raise InvalidInstructionError(
            f"Transfer amount must be the companion's {output_token} balance, "
            f"got balance of {lookup.token} on {lookup.target}"
        )


def compose_supply_flow(
    chain_id: int,
    pool: str,
    input_token: str,
    output_token: str,
    companion: str,
    recipient: str,
    amount: int,
    referral_code: int = 0,
    constraints=(),
) -> SupplyFlow:
    """Compose approve -> supply -> transfer for one lending pool supply.

    Args:
        chain_id: Chain all three steps run on
        pool: Lending pool contract
        input_token: Token supplied (e.g. USDC)
        output_token: Yield-bearing token the pool mints (e.g. aUSDC)
        companion: Execution account holding funds mid-batch
        recipient: Final receiver of the output token (the owner)
        amount: Supply amount in base units
        referral_code: Pool referral code (uint16)
        constraints: Bounds on the runtime-resolved transfer amount

    Returns:
        SupplyFlow with validated instructions
    """
    if _amount(amount) == 0:
        raise InvalidInstructionError("Supply amount must be greater than zero")

    (approve,) = build_approve(chain_id, input_token, pool, amount)
    (supply,) = build_supply(chain_id, pool, input_token, amount, companion, referral_code)
    (transfer,) = build_transfer(
        chain_id,
        output_token,
        recipient,
        runtime_erc20_balance_of(companion, output_token, constraints),
    )

    flow = SupplyFlow(approve=approve, supply=supply, transfer=transfer)
    validate_supply_flow(flow.instructions, companion, output_token)

    logger.debug(
        f"Composed supply flow on chain {chain_id}: {amount} of {input_token} -> {pool}, "
        f"{output_token} balance of {companion} -> {recipient}"
    )
    return flow
