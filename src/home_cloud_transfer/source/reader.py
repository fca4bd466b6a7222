"""Read-only access to the self-hosted household data set."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from home_cloud_transfer.models.entities import HouseholdSnapshot, SourceEntity
from home_cloud_transfer.models.types import Category, DataSummary

logger = logging.getLogger(__name__)

_SNAPSHOT_FIELDS: dict[Category, str] = {
    Category.locations: "locations",
    Category.quantity_units: "quantity_units",
    Category.product_groups: "product_groups",
    Category.shopping_locations: "shopping_locations",
    Category.equipment_categories: "equipment_categories",
    Category.contact_tags: "contact_tags",
    Category.contacts: "contacts",
    Category.products: "products",
    Category.equipment: "equipment",
    Category.vehicles: "vehicles",
    Category.recipes: "recipes",
    Category.chores: "chores",
    Category.chore_logs: "chore_logs",
    Category.todo_items: "todo_items",
    Category.shopping_lists: "shopping_lists",
    Category.storage_bins: "storage_bins",
    Category.calendar_events: "calendar_events",
    Category.stock: "stock",
}


class EntitySource(Protocol):
    """Provider of plain entity lists per category."""

    async def entities(self, category: Category) -> Sequence[SourceEntity]: ...

    async def summary(self) -> DataSummary: ...


class SnapshotEntitySource:
    """Entity source backed by a household JSON export.

    The export is parsed lazily on first access and cached for the lifetime of
    the source; a missing file is treated as an empty household.
    """

    def __init__(self, *, path: Path) -> None:
        self._path = path
        self._snapshot: HouseholdSnapshot | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_snapshot(cls, snapshot: HouseholdSnapshot) -> SnapshotEntitySource:
        """Build a source around an in-memory snapshot."""
        source = cls(path=Path("<memory>"))
        source._snapshot = snapshot
        return source

    @property
    def path(self) -> Path:
        return self._path

    async def entities(self, category: Category) -> Sequence[SourceEntity]:
        """Return the local entities of one category in their natural order.

        Args:
            category: Category to read.

        Returns:
            Entity list; the home profile is a list of zero or one element.
        """
        snapshot = await self._load()
        if category == Category.home:
            return [snapshot.home] if snapshot.home is not None else []
        return list(getattr(snapshot, _SNAPSHOT_FIELDS[category]))

    async def summary(self) -> DataSummary:
        """Return per-category counts of the local data set."""
        snapshot = await self._load()
        return DataSummary(
            locations=len(snapshot.locations),
            quantity_units=len(snapshot.quantity_units),
            product_groups=len(snapshot.product_groups),
            shopping_locations=len(snapshot.shopping_locations),
            equipment_categories=len(snapshot.equipment_categories),
            contact_tags=len(snapshot.contact_tags),
            contacts=len(snapshot.contacts),
            products=len(snapshot.products),
            equipment=len(snapshot.equipment),
            vehicles=len(snapshot.vehicles),
            recipes=len(snapshot.recipes),
            chores=len(snapshot.chores),
            chore_logs=len(snapshot.chore_logs),
            todo_items=len(snapshot.todo_items),
            shopping_lists=len(snapshot.shopping_lists),
            storage_bins=len(snapshot.storage_bins),
            calendar_events=len(snapshot.calendar_events),
            stock_entries=len(snapshot.stock),
        )

    async def _load(self) -> HouseholdSnapshot:
        async with self._lock:
            if self._snapshot is None:
                self._snapshot = await asyncio.to_thread(self._read_file)
            return self._snapshot

    def _read_file(self) -> HouseholdSnapshot:
        """Parse the export file.

        Returns:
            Validated snapshot.

        Raises:
            pydantic.ValidationError: If the export is malformed.
        """
        if not self._path.exists():
            logger.warning("Household export %s not found; treating as empty", self._path)
            return HouseholdSnapshot()
        raw = self._path.read_bytes()
        return HouseholdSnapshot.model_validate_json(raw)
