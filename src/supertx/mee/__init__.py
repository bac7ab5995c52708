"""Execution coordinator (MEE node) integration."""

from supertx.mee.base import (
    ExecutionCoordinator,
    FeeSpecification,
    FundingTrigger,
    FusionQuote,
    ReceiptStatus,
    SupertransactionReceipt,
)
from supertx.mee.client import MeeClient

__all__ = [
    "ExecutionCoordinator",
    "FeeSpecification",
    "FundingTrigger",
    "FusionQuote",
    "MeeClient",
    "ReceiptStatus",
    "SupertransactionReceipt",
]
