"""Services composing end-to-end supertransactions."""

from supertx.services.aave_supply import AaveSupplyService, SupplyResult

__all__ = [
    "AaveSupplyService",
    "SupplyResult",
]
