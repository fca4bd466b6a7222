"""SQLite persistence for transfer sessions and the append-only item ledger."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from home_cloud_transfer.models.state import (
    ItemStatus,
    SessionStatus,
    SubresourceLogRow,
    TransferItemLogRow,
    TransferSessionRow,
)


def _utcnow() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(tz=UTC)


def _dt_to_iso(value: datetime) -> str:
    """Convert datetime to ISO string in UTC.

    Args:
        value: Datetime value.

    Returns:
        ISO-formatted string in UTC.
    """
    return value.astimezone(UTC).isoformat()


def _iso_to_dt(value: str) -> datetime:
    """Parse ISO datetime strings into timezone-aware datetimes.

    Args:
        value: ISO-formatted datetime string.

    Returns:
        Parsed datetime, defaulting to UTC if no timezone is present.
    """
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _uuid_or_none(value: str | None) -> UUID | None:
    return UUID(value) if value else None


@dataclass(frozen=True)
class StatusCounts:
    """Created/skipped/failed totals for one category."""

    created: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.created + self.skipped + self.failed


class TransferLedger:
    """SQLite wrapper recording every transfer attempt.

    Sessions are mutable (status, current category, credential). Item and
    sub-resource logs are append-only: a row is written once, atomically, and
    never updated. The (session, category, source_id) key is both the
    idempotence guard and the local-to-remote id remap table.
    """

    def __init__(self, *, sqlite_path: Path) -> None:
        """Initialize the database connection.

        Args:
            sqlite_path: Path to the sqlite database file.
        """
        self._sqlite_path = sqlite_path
        # Accessed only from the event loop thread, which may differ from the creating thread.
        self._conn = sqlite3.connect(
            sqlite_path,
            timeout=30,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row

    @property
    def sqlite_path(self) -> Path:
        """Return the sqlite database path."""
        return self._sqlite_path

    def close(self) -> None:
        """Close the underlying sqlite connection."""
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Provide a transaction context manager."""
        cursor = self._conn.cursor()
        try:
            cursor.execute("BEGIN")
            yield self._conn
            cursor.execute("COMMIT")
        except Exception:
            cursor.execute("ROLLBACK")
            raise

    def init_schema(self) -> None:
        """Create tables if missing and ensure sqlite PRAGMA settings."""
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transfer_sessions (
                  id TEXT PRIMARY KEY,
                  status TEXT NOT NULL,
                  current_category TEXT,
                  include_history INTEGER NOT NULL DEFAULT 0,
                  cloud_url TEXT,
                  cloud_account_email TEXT,
                  remote_session_credential TEXT,
                  started_at TEXT NOT NULL,
                  completed_at TEXT
                )
                """,
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_status ON transfer_sessions(status)",
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transfer_item_logs (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  session_id TEXT NOT NULL REFERENCES transfer_sessions(id) ON DELETE CASCADE,
                  category TEXT NOT NULL,
                  source_id TEXT NOT NULL,
                  remote_id TEXT,
                  name TEXT,
                  status TEXT NOT NULL,
                  error_message TEXT,
                  transferred_at TEXT NOT NULL,
                  UNIQUE(session_id, category, source_id)
                )
                """,
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transfer_subresource_logs (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  session_id TEXT NOT NULL REFERENCES transfer_sessions(id) ON DELETE CASCADE,
                  category TEXT NOT NULL,
                  parent_source_id TEXT NOT NULL,
                  resource TEXT NOT NULL,
                  source_id TEXT NOT NULL,
                  remote_id TEXT,
                  status TEXT NOT NULL,
                  error_message TEXT,
                  transferred_at TEXT NOT NULL,
                  UNIQUE(session_id, category, resource, source_id)
                )
                """,
            )

            conn.execute("PRAGMA user_version = 1")

    # Sessions

    def create_session(
        self,
        *,
        include_history: bool,
        cloud_url: str | None,
        cloud_account_email: str | None,
        remote_session_credential: str | None,
    ) -> TransferSessionRow:
        """Insert a fresh InProgress session.

        Args:
            include_history: Whether history-only categories are in scope.
            cloud_url: Base URL of the remote service.
            cloud_account_email: Authenticated remote account.
            remote_session_credential: Credential for restoring auth on resume.

        Returns:
            The new session row.
        """
        session_id = uuid4()
        now = _utcnow()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO transfer_sessions(
                  id, status, include_history, cloud_url, cloud_account_email,
                  remote_session_credential, started_at
                )
                VALUES(?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(session_id),
                    SessionStatus.in_progress.value,
                    int(include_history),
                    cloud_url,
                    cloud_account_email,
                    remote_session_credential,
                    _dt_to_iso(now),
                ),
            )
        session = self.get_session(session_id)
        assert session is not None
        return session

    def get_session(self, session_id: UUID) -> TransferSessionRow | None:
        """Fetch a session by id.

        Args:
            session_id: Session identifier.

        Returns:
            Session row if present, otherwise None.
        """
        row = self._conn.execute(
            "SELECT * FROM transfer_sessions WHERE id=?",
            (str(session_id),),
        ).fetchone()
        return self._row_to_session(row) if row is not None else None

    def latest_session(self, *, status: SessionStatus | None = None) -> TransferSessionRow | None:
        """Return the most recently started session, optionally filtered by status.

        Args:
            status: Optional status filter.

        Returns:
            Session row if any matches, otherwise None.
        """
        if status is None:
            row = self._conn.execute(
                "SELECT * FROM transfer_sessions ORDER BY started_at DESC, rowid DESC LIMIT 1",
            ).fetchone()
        else:
            row = self._conn.execute(
                """
                SELECT * FROM transfer_sessions
                WHERE status=?
                ORDER BY started_at DESC, rowid DESC
                LIMIT 1
                """,
                (status.value,),
            ).fetchone()
        return self._row_to_session(row) if row is not None else None

    def cancel_in_progress_sessions(self, *, except_id: UUID | None = None) -> int:
        """Mark every InProgress session Cancelled.

        Args:
            except_id: Session to leave untouched.

        Returns:
            Number of sessions cancelled.
        """
        now = _utcnow()
        with self.transaction() as conn:
            res = conn.execute(
                """
                UPDATE transfer_sessions
                SET status=?, completed_at=?
                WHERE status=? AND id IS NOT ?
                """,
                (
                    SessionStatus.cancelled.value,
                    _dt_to_iso(now),
                    SessionStatus.in_progress.value,
                    str(except_id) if except_id is not None else None,
                ),
            )
            return int(res.rowcount)

    def save_session_auth(
        self,
        *,
        session_id: UUID,
        cloud_account_email: str | None,
        remote_session_credential: str | None,
    ) -> None:
        """Store the credential used to restore authentication on resume.

        Args:
            session_id: Session identifier.
            cloud_account_email: Authenticated remote account.
            remote_session_credential: Current refresh credential.
        """
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE transfer_sessions
                SET cloud_account_email=?, remote_session_credential=?
                WHERE id=?
                """,
                (cloud_account_email, remote_session_credential, str(session_id)),
            )

    def update_current_category(self, *, session_id: UUID, category: str) -> None:
        """Record the category about to be processed.

        Args:
            session_id: Session identifier.
            category: Category name.
        """
        with self.transaction() as conn:
            conn.execute(
                "UPDATE transfer_sessions SET current_category=? WHERE id=?",
                (category, str(session_id)),
            )

    def complete_session(self, *, session_id: UUID, status: SessionStatus) -> None:
        """Close a session with a terminal status.

        Args:
            session_id: Session identifier.
            status: Completed, Cancelled or Failed.

        Raises:
            ValueError: If ``status`` is not terminal.
        """
        if status == SessionStatus.in_progress:
            raise ValueError("complete_session requires a terminal status")
        with self.transaction() as conn:
            conn.execute(
                "UPDATE transfer_sessions SET status=?, completed_at=? WHERE id=?",
                (status.value, _dt_to_iso(_utcnow()), str(session_id)),
            )

    # Item ledger

    def log_item(
        self,
        *,
        session_id: UUID,
        category: str,
        source_id: UUID,
        status: ItemStatus,
        name: str | None,
        remote_id: UUID | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Append one item outcome.

        Args:
            session_id: Owning session.
            category: Category name.
            source_id: Local entity id.
            status: Created, Skipped or Failed.
            name: Display label.
            remote_id: Remote id of the created item, or of the remote duplicate
                a skipped item matched.
            error_message: Remote error text (failure only).

        Returns:
            False if a row for (session, category, source_id) already existed,
            in which case nothing is written.
        """
        with self.transaction() as conn:
            res = conn.execute(
                """
                INSERT INTO transfer_item_logs(
                  session_id, category, source_id, remote_id, name, status,
                  error_message, transferred_at
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id, category, source_id) DO NOTHING
                """,
                (
                    str(session_id),
                    category,
                    str(source_id),
                    str(remote_id) if remote_id is not None else None,
                    name,
                    status.value,
                    error_message,
                    _dt_to_iso(_utcnow()),
                ),
            )
            return res.rowcount == 1

    def log_items(
        self,
        *,
        session_id: UUID,
        category: str,
        entries: Iterable[tuple[UUID, str | None]],
        status: ItemStatus,
        error_message: str | None = None,
    ) -> int:
        """Append one outcome for a batch of items in a single transaction.

        Args:
            session_id: Owning session.
            category: Category name.
            entries: (source_id, display name) pairs.
            status: Shared outcome of the batch.
            error_message: Shared error text, if the batch failed.

        Returns:
            Number of rows written.
        """
        now = _dt_to_iso(_utcnow())
        written = 0
        with self.transaction() as conn:
            for source_id, name in entries:
                res = conn.execute(
                    """
                    INSERT INTO transfer_item_logs(
                      session_id, category, source_id, remote_id, name, status,
                      error_message, transferred_at
                    )
                    VALUES(?, ?, ?, NULL, ?, ?, ?, ?)
                    ON CONFLICT(session_id, category, source_id) DO NOTHING
                    """,
                    (
                        str(session_id),
                        category,
                        str(source_id),
                        name,
                        status.value,
                        error_message,
                        now,
                    ),
                )
                written += res.rowcount
        return written

    def transferred_source_ids(self, *, session_id: UUID, category: str) -> set[UUID]:
        """Return local ids that already have a ledger row for the category.

        Args:
            session_id: Session identifier.
            category: Category name.

        Returns:
            Set of source ids.
        """
        rows = self._conn.execute(
            "SELECT source_id FROM transfer_item_logs WHERE session_id=? AND category=?",
            (str(session_id), category),
        ).fetchall()
        return {UUID(row["source_id"]) for row in rows}

    def id_map(self, *, session_id: UUID, category: str) -> dict[UUID, UUID]:
        """Return the local-to-remote id map for a dependency category.

        Args:
            session_id: Session identifier.
            category: Category name.

        Returns:
            Mapping of source id to remote id for created rows and for skipped
            rows that matched an existing remote item.
        """
        rows = self._conn.execute(
            """
            SELECT source_id, remote_id FROM transfer_item_logs
            WHERE session_id=? AND category=? AND remote_id IS NOT NULL
            """,
            (str(session_id), category),
        ).fetchall()
        return {UUID(row["source_id"]): UUID(row["remote_id"]) for row in rows}

    def category_counts(self, *, session_id: UUID, category: str) -> StatusCounts:
        """Return created/skipped/failed totals for one category.

        Args:
            session_id: Session identifier.
            category: Category name.

        Returns:
            StatusCounts for the category.
        """
        rows = self._conn.execute(
            """
            SELECT status, COUNT(*) AS c FROM transfer_item_logs
            WHERE session_id=? AND category=?
            GROUP BY status
            """,
            (str(session_id), category),
        ).fetchall()
        counts = {ItemStatus(str(row["status"])): int(row["c"]) for row in rows}
        return StatusCounts(
            created=counts.get(ItemStatus.created, 0),
            skipped=counts.get(ItemStatus.skipped, 0),
            failed=counts.get(ItemStatus.failed, 0),
        )

    def iter_item_logs(
        self,
        *,
        session_id: UUID,
        category: str | None = None,
    ) -> Iterator[TransferItemLogRow]:
        """Iterate item logs of a session in write order.

        Args:
            session_id: Session identifier.
            category: Optional category filter.

        Yields:
            TransferItemLogRow instances.
        """
        if category is None:
            rows = self._conn.execute(
                "SELECT * FROM transfer_item_logs WHERE session_id=? ORDER BY id",
                (str(session_id),),
            ).fetchall()
        else:
            rows = self._conn.execute(
                """
                SELECT * FROM transfer_item_logs
                WHERE session_id=? AND category=?
                ORDER BY id
                """,
                (str(session_id), category),
            ).fetchall()
        for row in rows:
            yield self._row_to_item(row)

    # Sub-resource ledger

    def log_subresource(
        self,
        *,
        session_id: UUID,
        category: str,
        parent_source_id: UUID,
        resource: str,
        source_id: UUID,
        status: ItemStatus,
        remote_id: UUID | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Append one sub-resource outcome.

        Args:
            session_id: Owning session.
            category: Category of the parent entity.
            parent_source_id: Local id of the parent entity.
            resource: Sub-resource name (e.g. "phones").
            source_id: Local id of the sub-resource row.
            status: Created or Failed.
            remote_id: Remote id, when the endpoint returned one.
            error_message: Remote error text on failure.

        Returns:
            False if the row already existed.
        """
        with self.transaction() as conn:
            res = conn.execute(
                """
                INSERT INTO transfer_subresource_logs(
                  session_id, category, parent_source_id, resource, source_id,
                  remote_id, status, error_message, transferred_at
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id, category, resource, source_id) DO NOTHING
                """,
                (
                    str(session_id),
                    category,
                    str(parent_source_id),
                    resource,
                    str(source_id),
                    str(remote_id) if remote_id is not None else None,
                    status.value,
                    error_message,
                    _dt_to_iso(_utcnow()),
                ),
            )
            return res.rowcount == 1

    def iter_subresource_logs(
        self,
        *,
        session_id: UUID,
        category: str | None = None,
    ) -> Iterator[SubresourceLogRow]:
        """Iterate sub-resource logs of a session in write order.

        Args:
            session_id: Session identifier.
            category: Optional category filter.

        Yields:
            SubresourceLogRow instances.
        """
        query = "SELECT * FROM transfer_subresource_logs WHERE session_id=?"
        params: tuple[str, ...] = (str(session_id),)
        if category is not None:
            query += " AND category=?"
            params = (*params, category)
        for row in self._conn.execute(query + " ORDER BY id", params).fetchall():
            yield SubresourceLogRow(
                id=int(row["id"]),
                session_id=UUID(row["session_id"]),
                category=str(row["category"]),
                parent_source_id=UUID(row["parent_source_id"]),
                resource=str(row["resource"]),
                source_id=UUID(row["source_id"]),
                remote_id=_uuid_or_none(row["remote_id"]),
                status=ItemStatus(str(row["status"])),
                error_message=row["error_message"],
                transferred_at=_iso_to_dt(str(row["transferred_at"])),
            )

    def _row_to_session(self, row: Mapping[str, Any]) -> TransferSessionRow:
        """Convert a sqlite row to a TransferSessionRow."""
        return TransferSessionRow(
            id=UUID(row["id"]),
            status=SessionStatus(str(row["status"])),
            current_category=row["current_category"],
            include_history=bool(row["include_history"]),
            cloud_url=row["cloud_url"],
            cloud_account_email=row["cloud_account_email"],
            remote_session_credential=row["remote_session_credential"],
            started_at=_iso_to_dt(str(row["started_at"])),
            completed_at=_iso_to_dt(row["completed_at"]) if row["completed_at"] else None,
        )

    def _row_to_item(self, row: Mapping[str, Any]) -> TransferItemLogRow:
        """Convert a sqlite row to a TransferItemLogRow."""
        return TransferItemLogRow(
            id=int(row["id"]),
            session_id=UUID(row["session_id"]),
            category=str(row["category"]),
            source_id=UUID(row["source_id"]),
            remote_id=_uuid_or_none(row["remote_id"]),
            name=row["name"],
            status=ItemStatus(str(row["status"])),
            error_message=row["error_message"],
            transferred_at=_iso_to_dt(str(row["transferred_at"])),
        )
