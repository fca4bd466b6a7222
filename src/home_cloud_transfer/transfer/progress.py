"""In-memory progress of the running transfer."""

from __future__ import annotations

from uuid import UUID

from home_cloud_transfer.models.state import ItemStatus, SessionStatus
from home_cloud_transfer.models.types import CategorySummary, TransferProgress

_RUNNING_CAP = 99.9


class ProgressReporter:
    """Single-writer holder of the live ``TransferProgress``.

    Only the background run mutates the snapshot; pollers receive deep copies.
    The overall percentage never decreases and only reaches 100 once the
    session is Completed.
    """

    def __init__(self) -> None:
        self._progress: TransferProgress | None = None

    def snapshot(self) -> TransferProgress | None:
        """Return a copy of the live progress, or None if nothing ran yet."""
        if self._progress is None:
            return None
        return self._progress.model_copy(deep=True)

    def start(self, *, session_id: UUID, total_categories: int) -> None:
        """Replace the live progress with a fresh one for a new run."""
        self._progress = TransferProgress(
            session_id=session_id,
            session_status=SessionStatus.in_progress,
            total_categories=total_categories,
        )

    def begin_category(self, *, index: int, category: str, total_items: int) -> None:
        """Reset per-category counters before a category is processed."""
        progress = self._require()
        progress.current_category_index = index
        progress.current_category = category
        progress.total_items_in_category = total_items
        progress.current_item_index = 0
        progress.current_item_name = None
        progress.last_item_status = None
        progress.category_created_count = 0
        progress.category_skipped_count = 0
        progress.category_failed_count = 0

    def seed_counts(self, *, created: int, skipped: int, failed: int) -> None:
        """Start the category counters from outcomes logged by an earlier run."""
        progress = self._require()
        progress.category_created_count = created
        progress.category_skipped_count = skipped
        progress.category_failed_count = failed
        self._advance_within_category()

    def begin_item(self, *, index: int, name: str) -> None:
        progress = self._require()
        progress.current_item_index = index
        progress.current_item_name = name

    def record(self, status: ItemStatus, *, count: int = 1) -> None:
        """Count item outcomes in the current category.

        Args:
            status: Outcome written to the ledger.
            count: Number of items sharing that outcome (batched categories).
        """
        progress = self._require()
        progress.last_item_status = status
        if status == ItemStatus.created:
            progress.category_created_count += count
        elif status == ItemStatus.skipped:
            progress.category_skipped_count += count
        else:
            progress.category_failed_count += count
        self._advance_within_category()

    def complete_category(self, summary: CategorySummary, *, index: int) -> None:
        """Append a finished category and move the overall percentage past it."""
        progress = self._require()
        progress.completed_categories.append(summary)
        if progress.total_categories:
            self._raise_overall(100.0 * (index + 1) / progress.total_categories)

    def finish(self, status: SessionStatus) -> None:
        """Publish the terminal session status."""
        progress = self._require()
        progress.session_status = status
        if status == SessionStatus.completed:
            progress.overall_progress_percent = 100.0

    def _advance_within_category(self) -> None:
        progress = self._require()
        if not progress.total_categories or not progress.total_items_in_category:
            return
        done = (
            progress.category_created_count
            + progress.category_skipped_count
            + progress.category_failed_count
        )
        fraction = min(1.0, done / progress.total_items_in_category)
        overall = 100.0 * (progress.current_category_index + fraction) / progress.total_categories
        self._raise_overall(overall)

    def _raise_overall(self, value: float) -> None:
        progress = self._require()
        capped = min(value, _RUNNING_CAP)
        if capped > progress.overall_progress_percent:
            progress.overall_progress_percent = round(capped, 2)

    def _require(self) -> TransferProgress:
        if self._progress is None:
            raise RuntimeError("No transfer progress; call start() first")
        return self._progress
