"""Validated domain models (Pydantic)."""

from __future__ import annotations

from home_cloud_transfer.models.state import ItemStatus, SessionStatus
from home_cloud_transfer.models.types import (
    Category,
    CategoryResult,
    DataSummary,
    ResultsReport,
    TransferProgress,
)

__all__ = [
    "Category",
    "CategoryResult",
    "DataSummary",
    "ItemStatus",
    "ResultsReport",
    "SessionStatus",
    "TransferProgress",
]
