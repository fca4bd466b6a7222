"""Shared enums and the DTOs exposed on the transfer HTTP surface."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import Field

from home_cloud_transfer.models.base import AppModel, WireModel
from home_cloud_transfer.models.state import ItemStatus, SessionStatus


class Category(StrEnum):
    """Logical groups of household entities transferred as a unit."""

    locations = "Locations"
    quantity_units = "Quantity Units"
    product_groups = "Product Groups"
    shopping_locations = "Shopping Locations"
    equipment_categories = "Equipment Categories"
    contact_tags = "Contact Tags"
    contacts = "Contacts"
    products = "Products"
    equipment = "Equipment"
    vehicles = "Vehicles"
    recipes = "Recipes"
    chores = "Chores"
    chore_logs = "Chore Logs"
    todo_items = "Todo Items"
    shopping_lists = "Shopping Lists"
    storage_bins = "Storage Bins"
    home = "Home"
    calendar_events = "Calendar Events"
    stock = "Stock"


class AuthenticateRequest(WireModel):
    """Credentials for the cloud account receiving the transfer."""

    email: str = Field(min_length=3, pattern=r".+@.+")
    password: str = Field(min_length=1, repr=False)
    is_registration: bool = False
    first_name: str | None = None
    last_name: str | None = None


class AuthenticateResponse(WireModel):
    """Outcome of a cloud login or registration."""

    success: bool
    cloud_user_email: str | None = None
    error_message: str | None = None


class DataSummary(WireModel):
    """Per-category counts of local entities."""

    locations: int = 0
    quantity_units: int = 0
    product_groups: int = 0
    shopping_locations: int = 0
    equipment_categories: int = 0
    contact_tags: int = 0
    contacts: int = 0
    products: int = 0
    equipment: int = 0
    vehicles: int = 0
    recipes: int = 0
    chores: int = 0
    chore_logs: int = 0
    todo_items: int = 0
    shopping_lists: int = 0
    storage_bins: int = 0
    calendar_events: int = 0
    stock_entries: int = 0


class SessionInfo(WireModel):
    """Whether a resumable session exists and where it stopped."""

    has_incomplete_session: bool
    session_id: UUID | None = None
    current_category: str | None = None
    started_at: datetime | None = None


class StartRequest(WireModel):
    """Request to start a fresh transfer or resume the last one."""

    include_history: bool = False
    resume: bool = False


class StartResponse(WireModel):
    """Identifier of the session driven by the background run."""

    session_id: UUID


class CategorySummary(WireModel):
    """Counters for a category that finished during the current run."""

    category: str
    created_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0


class TransferProgress(WireModel):
    """Live snapshot of a running transfer, polled by the UI."""

    session_id: UUID | None = None
    session_status: SessionStatus = SessionStatus.in_progress
    overall_progress_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    total_categories: int = 0
    current_category_index: int = 0
    current_category: str | None = None
    total_items_in_category: int = 0
    current_item_index: int = 0
    current_item_name: str | None = None
    last_item_status: ItemStatus | None = None
    category_created_count: int = 0
    category_skipped_count: int = 0
    category_failed_count: int = 0
    completed_categories: list[CategorySummary] = Field(default_factory=list)


class ItemResult(WireModel):
    """Per-item line of the final results view."""

    name: str
    status: ItemStatus
    error_message: str | None = None


class CategoryResult(WireModel):
    """Aggregated ledger outcome for one category."""

    category: str
    created_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    subresource_failed_count: int = 0
    items: list[ItemResult] = Field(default_factory=list)


class ResultsReport(AppModel):
    """Results report written by the CLI."""

    created_at: datetime
    sqlite_path: str
    session_id: UUID | None = None
    session_status: SessionStatus | None = None
    categories: list[CategoryResult] = Field(default_factory=list)
