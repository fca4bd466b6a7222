"""Pydantic models for ledger state."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import Field

from home_cloud_transfer.models.base import AppModel


class SessionStatus(StrEnum):
    """Transfer session lifecycle statuses tracked in sqlite."""

    in_progress = "InProgress"
    completed = "Completed"
    cancelled = "Cancelled"
    failed = "Failed"


class ItemStatus(StrEnum):
    """Outcome of a single transferred item."""

    created = "Created"
    skipped = "Skipped"
    failed = "Failed"


class TransferSessionRow(AppModel):
    """Row model for the transfer_sessions table."""

    id: UUID
    status: SessionStatus
    current_category: str | None = None
    include_history: bool = False
    cloud_url: str | None = None
    cloud_account_email: str | None = None
    remote_session_credential: str | None = Field(default=None, repr=False)
    started_at: datetime
    completed_at: datetime | None = None


class TransferItemLogRow(AppModel):
    """Row model for the transfer_item_logs table."""

    id: int = Field(ge=1)
    session_id: UUID
    category: str = Field(min_length=1)
    source_id: UUID
    remote_id: UUID | None = None
    name: str | None = None
    status: ItemStatus
    error_message: str | None = None
    transferred_at: datetime


class SubresourceLogRow(AppModel):
    """Row model for the transfer_subresource_logs table."""

    id: int = Field(ge=1)
    session_id: UUID
    category: str = Field(min_length=1)
    parent_source_id: UUID
    resource: str = Field(min_length=1)
    source_id: UUID
    remote_id: UUID | None = None
    status: ItemStatus
    error_message: str | None = None
    transferred_at: datetime
