"""Session lifecycle and the background transfer run."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Callable, Mapping
from uuid import UUID

import httpx

from home_cloud_transfer.cloud.client import CloudApiClient
from home_cloud_transfer.config.settings import AppSettings
from home_cloud_transfer.models.state import ItemStatus, SessionStatus, TransferSessionRow
from home_cloud_transfer.models.types import (
    AuthenticateRequest,
    AuthenticateResponse,
    Category,
    CategoryResult,
    CategorySummary,
    DataSummary,
    ItemResult,
    SessionInfo,
    TransferProgress,
)
from home_cloud_transfer.source.reader import EntitySource
from home_cloud_transfer.storage.ledger import TransferLedger
from home_cloud_transfer.transfer.categories import DEPENDENCIES, active_categories
from home_cloud_transfer.transfer.descriptors import DESCRIPTORS, CategoryDescriptor
from home_cloud_transfer.transfer.engine import CategoryTransfer
from home_cloud_transfer.transfer.errors import (
    NoResumableSessionError,
    NotAuthenticatedError,
    RemoteUnavailableError,
    SessionRestoreError,
    TransferAlreadyRunningError,
    TransferCancelled,
)
from home_cloud_transfer.transfer.progress import ProgressReporter

logger = logging.getLogger(__name__)

type ClientFactory = Callable[[], CloudApiClient]


class TransferOrchestrator:
    """Starts, resumes, cancels and reports on household transfers.

    At most one background run exists per orchestrator. ``start_transfer``
    returns as soon as the run is scheduled; callers poll
    ``get_current_progress`` and read ``get_results`` afterwards.
    """

    def __init__(
        self,
        *,
        ledger: TransferLedger,
        source: EntitySource,
        client_factory: ClientFactory,
        list_fetch_attempts: int = 3,
        list_fetch_backoff_s: float = 0.5,
        descriptors: Mapping[Category, CategoryDescriptor] = DESCRIPTORS,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            ledger: Transfer ledger (schema already initialized).
            source: Local entity reader.
            client_factory: Builds an unauthenticated cloud client.
            list_fetch_attempts: Attempts for each remote duplicate-list fetch.
            list_fetch_backoff_s: Base backoff between those attempts.
            descriptors: Per-category transfer descriptors.
        """
        self._ledger = ledger
        self._source = source
        self._client_factory = client_factory
        self._list_fetch_attempts = list_fetch_attempts
        self._list_fetch_backoff_s = list_fetch_backoff_s
        self._descriptors = descriptors

        self._client: CloudApiClient | None = None
        self._progress = ProgressReporter()
        self._task: asyncio.Task[None] | None = None
        self._cancel_event: asyncio.Event | None = None
        self._active_session_id: UUID | None = None
        self._start_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        ledger: TransferLedger,
        source: EntitySource,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> TransferOrchestrator:
        """Build an orchestrator whose clients talk to the configured cloud."""

        def _client_factory() -> CloudApiClient:
            return CloudApiClient(
                base_url=settings.cloud.base_url,
                timeout_seconds=settings.cloud.timeout_seconds,
                transport=transport,
            )

        return cls(
            ledger=ledger,
            source=source,
            client_factory=_client_factory,
            list_fetch_attempts=settings.transfer.list_fetch_attempts,
            list_fetch_backoff_s=settings.transfer.list_fetch_backoff_seconds,
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def active_session_id(self) -> UUID | None:
        return self._active_session_id

    async def authenticate(self, request: AuthenticateRequest) -> AuthenticateResponse:
        """Log in to (or register) the cloud account receiving the data.

        On success the new credential is stored against the most recent
        InProgress session so a later resume can restore it.

        Raises:
            TransferAlreadyRunningError: If a run is using the current client.
        """
        if self.is_running:
            raise TransferAlreadyRunningError("Cannot re-authenticate while a transfer is running")

        client = self._client_factory()
        if request.is_registration:
            if not request.first_name or not request.last_name:
                await client.aclose()
                return AuthenticateResponse(
                    success=False,
                    error_message="First and last name are required to register",
                )
            result = await client.register(
                request.email,
                request.password,
                request.first_name,
                request.last_name,
            )
        else:
            result = await client.login(request.email, request.password)

        if not result.ok:
            await client.aclose()
            logger.warning(
                "Cloud authentication failed for %s: %s",
                request.email,
                result.error_message,
            )
            return AuthenticateResponse(success=False, error_message=result.error_message)

        if self._client is not None:
            await self._client.aclose()
        self._client = client

        pending = self._ledger.latest_session(status=SessionStatus.in_progress)
        if pending is not None:
            self._ledger.save_session_auth(
                session_id=pending.id,
                cloud_account_email=client.account_email,
                remote_session_credential=client.session_credential,
            )
        logger.info("Authenticated with cloud as %s", client.account_email)
        return AuthenticateResponse(success=True, cloud_user_email=client.account_email)

    async def get_summary(self) -> DataSummary:
        """Return per-category counts of the local data set."""
        return await self._source.summary()

    def get_session_info(self) -> SessionInfo:
        """Describe the resumable session, if there is one."""
        session = self._ledger.latest_session(status=SessionStatus.in_progress)
        if session is None:
            return SessionInfo(has_incomplete_session=False)
        return SessionInfo(
            has_incomplete_session=True,
            session_id=session.id,
            current_category=session.current_category,
            started_at=session.started_at,
        )

    async def start_transfer(self, *, include_history: bool, resume: bool) -> UUID:
        """Start a fresh transfer or resume the last interrupted one.

        Args:
            include_history: Whether history-only categories are in scope
                (ignored on resume, which reuses the session's scope).
            resume: Whether to continue the most recent InProgress session.

        Returns:
            Identifier of the session driven by the background run.

        Raises:
            TransferAlreadyRunningError: If a run is already active.
            NoResumableSessionError: If resume finds no InProgress session.
            SessionRestoreError: If the stored credential is rejected.
            NotAuthenticatedError: If a fresh start has no authenticated client.
        """
        async with self._start_lock:
            if self.is_running:
                raise TransferAlreadyRunningError("A transfer is already running")

            if resume:
                session = self._ledger.latest_session(status=SessionStatus.in_progress)
                if session is None:
                    raise NoResumableSessionError("No incomplete transfer session to resume")
                client = await self._restore_client(session)
                logger.info(
                    "Resuming transfer session %s at %s",
                    session.id,
                    session.current_category,
                )
            else:
                client = self._client
                if client is None or not client.is_authenticated:
                    raise NotAuthenticatedError("Authenticate with the cloud service first")
                cancelled = self._ledger.cancel_in_progress_sessions()
                if cancelled:
                    logger.info("Cancelled %s abandoned transfer session(s)", cancelled)
                session = self._ledger.create_session(
                    include_history=include_history,
                    cloud_url=client.base_url,
                    cloud_account_email=client.account_email,
                    remote_session_credential=client.session_credential,
                )
                logger.info("Started transfer session %s", session.id)

            categories = active_categories(include_history=session.include_history)
            self._progress.start(session_id=session.id, total_categories=len(categories))
            self._cancel_event = asyncio.Event()
            self._active_session_id = session.id
            self._task = asyncio.create_task(
                self._run(session=session, client=client, categories=categories),
                name=f"transfer-{session.id}",
            )
            return session.id

    def get_current_progress(self) -> TransferProgress | None:
        """Return a snapshot of the live progress, or None if nothing ran."""
        return self._progress.snapshot()

    def cancel_transfer(self) -> bool:
        """Ask the background run to stop at its next checkpoint.

        Returns:
            True if a running transfer was signalled.
        """
        if not self.is_running or self._cancel_event is None:
            return False
        logger.info("Cancellation requested for session %s", self._active_session_id)
        self._cancel_event.set()
        return True

    def resolve_session(self, session_id: UUID | None = None) -> TransferSessionRow | None:
        """Return the given session, else this process's session, else the latest one."""
        if session_id is not None:
            return self._ledger.get_session(session_id)
        if self._active_session_id is not None:
            return self._ledger.get_session(self._active_session_id)
        return self._ledger.latest_session()

    def get_results(self, session_id: UUID | None = None) -> list[CategoryResult]:
        """Aggregate the ledger into per-category results.

        Args:
            session_id: Session to report; defaults as in ``resolve_session``.

        Returns:
            One entry per category with at least one ledger row, in write order.
        """
        session = self.resolve_session(session_id)
        if session is None:
            return []

        sub_failures: Counter[str] = Counter(
            row.category
            for row in self._ledger.iter_subresource_logs(session_id=session.id)
            if row.status == ItemStatus.failed
        )
        results: dict[str, CategoryResult] = {}
        for row in self._ledger.iter_item_logs(session_id=session.id):
            result = results.get(row.category)
            if result is None:
                result = CategoryResult(
                    category=row.category,
                    subresource_failed_count=sub_failures[row.category],
                )
                results[row.category] = result
            if row.status == ItemStatus.created:
                result.created_count += 1
            elif row.status == ItemStatus.skipped:
                result.skipped_count += 1
            else:
                result.failed_count += 1
            result.items.append(
                ItemResult(name=row.name or "", status=row.status, error_message=row.error_message),
            )
        return list(results.values())

    async def wait(self) -> None:
        """Wait for the background run, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def aclose(self) -> None:
        """Stop any running transfer cooperatively and release the cloud client."""
        if self.is_running and self._cancel_event is not None:
            self._cancel_event.set()
        if self._task is not None:
            await self._task
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _restore_client(self, session: TransferSessionRow) -> CloudApiClient:
        if self._client is not None and self._client.is_authenticated:
            return self._client
        credential = session.remote_session_credential
        if not credential:
            raise SessionRestoreError("No stored cloud credential; authenticate again")
        if self._client is None:
            self._client = self._client_factory()
        restored = await self._client.restore_session(credential, email=session.cloud_account_email)
        if not restored:
            raise SessionRestoreError("Stored cloud credential was rejected; authenticate again")
        return self._client

    async def _run(
        self,
        *,
        session: TransferSessionRow,
        client: CloudApiClient,
        categories: list[Category],
    ) -> None:
        """Background run: every category in order, then close the session."""
        assert self._cancel_event is not None
        engine = CategoryTransfer(
            client=client,
            ledger=self._ledger,
            progress=self._progress,
            session_id=session.id,
            include_history=session.include_history,
            cancel_event=self._cancel_event,
            list_fetch_attempts=self._list_fetch_attempts,
            list_fetch_backoff_s=self._list_fetch_backoff_s,
        )

        status = SessionStatus.failed
        try:
            for index, category in enumerate(categories):
                engine.check_cancelled()
                try:
                    await self._transfer_category(
                        engine=engine,
                        session=session,
                        client=client,
                        category=category,
                        index=index,
                    )
                except (TransferCancelled, RemoteUnavailableError):
                    raise
                except Exception:
                    logger.exception(
                        "Error transferring category %s",
                        category,
                        extra={"session_id": str(session.id), "category": str(category)},
                    )
                summary = self._category_summary(session.id, category)
                self._progress.complete_category(summary, index=index)
            status = SessionStatus.completed
        except TransferCancelled:
            status = SessionStatus.cancelled
            logger.info("Transfer %s was cancelled", session.id)
        except asyncio.CancelledError:
            status = SessionStatus.cancelled
            logger.info("Transfer %s was interrupted", session.id)
            raise
        except Exception:
            logger.exception("Transfer %s failed", session.id)
        finally:
            self._ledger.complete_session(session_id=session.id, status=status)
            self._progress.finish(status)
            logger.info("Transfer %s finished with status %s", session.id, status.value)

    async def _transfer_category(
        self,
        *,
        engine: CategoryTransfer,
        session: TransferSessionRow,
        client: CloudApiClient,
        category: Category,
        index: int,
    ) -> None:
        items = await self._source.entities(category)
        logged = self._ledger.transferred_source_ids(session_id=session.id, category=category.value)
        if all(item.id in logged for item in items):
            logger.debug("Category %s already complete for session %s", category, session.id)
            return

        self._progress.begin_category(index=index, category=category.value, total_items=len(items))
        counts = self._ledger.category_counts(session_id=session.id, category=category.value)
        if counts.total:
            self._progress.seed_counts(
                created=counts.created,
                skipped=counts.skipped,
                failed=counts.failed,
            )
        self._ledger.update_current_category(session_id=session.id, category=category.value)
        self._ledger.save_session_auth(
            session_id=session.id,
            cloud_account_email=client.account_email,
            remote_session_credential=client.session_credential,
        )
        logger.info("Transferring %s %s", len(items), category)

        id_maps = {
            dependency: self._ledger.id_map(session_id=session.id, category=dependency.value)
            for dependency in DEPENDENCIES[category]
        }
        await engine.run(self._descriptors[category], items, id_maps)

    def _category_summary(self, session_id: UUID, category: Category) -> CategorySummary:
        counts = self._ledger.category_counts(session_id=session_id, category=category.value)
        return CategorySummary(
            category=category.value,
            created_count=counts.created,
            skipped_count=counts.skipped,
            failed_count=counts.failed,
        )
