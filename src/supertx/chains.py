"""Chain and lending market constants.

Addresses are Ethereum mainnet; local runs use an Anvil fork of mainnet.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Union

from eth_utils import to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ======================
# Ethereum mainnet contracts
# ======================
MAINNET_CHAIN_ID = 1
USDC_MAINNET = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
AAVE_V3_POOL_MAINNET = "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2"
AUSDC_MAINNET = to_checksum_address("0x98c23e9d8f34fefb1b7bd6a91b7ff122f4e16f5c")

USDC_DECIMALS = 6


@dataclass(frozen=True)
class LendingMarket:
    """A lending pool market: the supplied token and the token it mints."""

    name: str
    chain_id: int
    pool: str
    input_token: str
    output_token: str
    decimals: int
    symbol: str = "USDC"
    output_symbol: str = "aUSDC"


AAVE_V3_USDC_MAINNET = LendingMarket(
    name="Aave v3 USDC",
    chain_id=MAINNET_CHAIN_ID,
    pool=AAVE_V3_POOL_MAINNET,
    input_token=USDC_MAINNET,
    output_token=AUSDC_MAINNET,
    decimals=USDC_DECIMALS,
)


def to_base_units(amount: Union[Decimal, str, int], decimals: int) -> int:
    """Convert a human-readable amount (e.g. "100.5") to integer base units.

    Raises:
        ValueError: If the amount is not a number or has more precision
            than the token supports.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")

    scaled = value * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} exceeds {decimals} decimals of precision")
    return int(scaled)


def format_units(amount: int, decimals: int) -> str:
    """Format integer base units as a human-readable decimal string."""
    value = Decimal(amount) / (Decimal(10) ** decimals)
    return f"{value:.{decimals}f}"
