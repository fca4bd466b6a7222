"""Generic per-category transfer engine driven by ``CategoryDescriptor``s."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from home_cloud_transfer.cloud.client import ApiResult, CloudApiClient
from home_cloud_transfer.cloud.schemas import CreatedResponse
from home_cloud_transfer.models.entities import SourceEntity
from home_cloud_transfer.models.state import ItemStatus
from home_cloud_transfer.storage.ledger import TransferLedger
from home_cloud_transfer.transfer.descriptors import (
    CategoryDescriptor,
    IdMaps,
    RemoteParents,
    SubResourceCascade,
    TransferMode,
)
from home_cloud_transfer.transfer.errors import (
    RemoteListError,
    RemoteUnavailableError,
    TransferCancelled,
    UnresolvedReferenceError,
)
from home_cloud_transfer.transfer.progress import ProgressReporter
from home_cloud_transfer.utils.matching import MatchKey, is_blank_key
from home_cloud_transfer.utils.retry import retry_async

logger = logging.getLogger(__name__)


def _raise_if_unreachable(result: ApiResult[Any], *, method: str, path: str) -> None:
    """Escalate transport and credential failures out of the category."""
    if result.unreachable:
        raise RemoteUnavailableError(
            f"{method} {path} failed: {result.error_message}",
            status_code=result.status_code,
        )


class CategoryTransfer:
    """Transfers categories of one session, one item at a time.

    Every outcome is written to the ledger before the next item starts, so an
    interrupted run can be resumed from the ledger alone.
    """

    def __init__(
        self,
        *,
        client: CloudApiClient,
        ledger: TransferLedger,
        progress: ProgressReporter,
        session_id: UUID,
        include_history: bool,
        cancel_event: asyncio.Event,
        list_fetch_attempts: int = 3,
        list_fetch_backoff_s: float = 0.5,
    ) -> None:
        self._client = client
        self._ledger = ledger
        self._progress = progress
        self._session_id = session_id
        self._include_history = include_history
        self._cancel_event = cancel_event
        self._list_fetch_attempts = list_fetch_attempts
        self._list_fetch_backoff_s = list_fetch_backoff_s

    def check_cancelled(self) -> None:
        """Raise ``TransferCancelled`` if cancellation was requested."""
        if self._cancel_event.is_set():
            raise TransferCancelled

    async def run(
        self,
        descriptor: CategoryDescriptor,
        items: Sequence[SourceEntity],
        id_maps: IdMaps,
    ) -> None:
        """Transfer every not-yet-logged item of one category.

        Args:
            descriptor: Category description.
            items: Local entities in their natural order.
            id_maps: Local-to-remote id maps of the categories it depends on.

        Raises:
            RemoteUnavailableError: If the cloud service cannot be reached.
            RemoteListError: If the duplicate-detection list cannot be fetched.
            TransferCancelled: If cancellation was requested.
        """
        already = self._ledger.transferred_source_ids(
            session_id=self._session_id,
            category=descriptor.category.value,
        )
        if descriptor.mode == TransferMode.batch:
            await self._run_batch(descriptor, items, id_maps, already)
        else:
            await self._run_each(descriptor, items, id_maps, already)

    async def _run_each(
        self,
        descriptor: CategoryDescriptor,
        items: Sequence[SourceEntity],
        id_maps: IdMaps,
        already: set[UUID],
    ) -> None:
        category = descriptor.category.value
        existing: dict[MatchKey, UUID] | None = None

        for index, item in enumerate(items):
            self.check_cancelled()
            name = descriptor.display_name(item, index)
            self._progress.begin_item(index=index, name=name)
            if item.id in already:
                continue

            local_keys: list[MatchKey] = []
            if descriptor.checks_duplicates:
                if existing is None:
                    existing = await self._fetch_existing_keys(descriptor)
                if descriptor.local_keys is not None:
                    local_keys = [k for k in descriptor.local_keys(item) if not is_blank_key(k)]
                matched = next((existing[k] for k in local_keys if k in existing), None)
                if matched is not None:
                    # The matched id stands in for this item in later id maps.
                    self._log(category, item.id, name, ItemStatus.skipped, remote_id=matched)
                    continue

            try:
                request = descriptor.build_request(item, id_maps)
            except UnresolvedReferenceError as exc:
                self._log(category, item.id, name, ItemStatus.failed, error_message=str(exc))
                continue

            if descriptor.mode == TransferMode.singleton:
                result: ApiResult[Any] = await self._client.put(descriptor.endpoint, request)
                _raise_if_unreachable(result, method="PUT", path=descriptor.endpoint)
            else:
                result = await self._client.post(descriptor.endpoint, request, CreatedResponse)
                _raise_if_unreachable(result, method="POST", path=descriptor.endpoint)

            if not result.ok:
                self._log(
                    category,
                    item.id,
                    name,
                    ItemStatus.failed,
                    error_message=result.error_message,
                )
                continue

            remote_id = result.data.id if isinstance(result.data, CreatedResponse) else None
            self._log(category, item.id, name, ItemStatus.created, remote_id=remote_id)
            if existing is not None and remote_id is not None:
                for key in local_keys:
                    existing.setdefault(key, remote_id)

            await self._cascade(
                category=category,
                parent_source_id=item.id,
                parent=item,
                cascades=descriptor.cascades,
                parents=(remote_id,),
                id_maps=id_maps,
            )

    async def _run_batch(
        self,
        descriptor: CategoryDescriptor,
        items: Sequence[SourceEntity],
        id_maps: IdMaps,
        already: set[UUID],
    ) -> None:
        category = descriptor.category.value
        payload: list[BaseModel] = []
        entries: list[tuple[UUID, str]] = []

        for index, item in enumerate(items):
            self.check_cancelled()
            name = descriptor.display_name(item, index)
            self._progress.begin_item(index=index, name=name)
            if item.id in already:
                continue
            try:
                payload.append(descriptor.build_request(item, id_maps))
            except UnresolvedReferenceError as exc:
                self._log(category, item.id, name, ItemStatus.failed, error_message=str(exc))
                continue
            entries.append((item.id, name))

        if not payload:
            return

        self.check_cancelled()
        result: ApiResult[Any] = await self._client.post(descriptor.endpoint, payload)
        _raise_if_unreachable(result, method="POST", path=descriptor.endpoint)

        status = ItemStatus.created if result.ok else ItemStatus.failed
        error_message = None if result.ok else result.error_message
        written = self._ledger.log_items(
            session_id=self._session_id,
            category=category,
            entries=entries,
            status=status,
            error_message=error_message,
        )
        self._progress.record(status, count=written)
        if result.ok:
            logger.info("Imported %s %s rows in one batch", written, category)
        else:
            logger.warning(
                "Batch import of %s %s rows failed: %s",
                written,
                category,
                error_message,
            )

    async def _cascade(
        self,
        *,
        category: str,
        parent_source_id: UUID,
        parent: Any,
        cascades: Sequence[SubResourceCascade],
        parents: RemoteParents,
        id_maps: IdMaps,
    ) -> None:
        """Create sub-resources of a created parent; failures are logged, never raised."""
        for cascade in cascades:
            if cascade.history_only and not self._include_history:
                continue
            path = cascade.path(parents)
            response_type = CreatedResponse if cascade.nested else None
            for child in cascade.children(parent):
                try:
                    request = cascade.build_request(child, id_maps)
                except UnresolvedReferenceError as exc:
                    self._log_sub(
                        category,
                        parent_source_id,
                        cascade.resource,
                        child.id,
                        ItemStatus.failed,
                        error_message=str(exc),
                    )
                    continue

                result: ApiResult[Any] = await self._client.post(path, request, response_type)
                _raise_if_unreachable(result, method="POST", path=path)
                if not result.ok:
                    self._log_sub(
                        category,
                        parent_source_id,
                        cascade.resource,
                        child.id,
                        ItemStatus.failed,
                        error_message=result.error_message,
                    )
                    continue

                child_remote_id = (
                    result.data.id if isinstance(result.data, CreatedResponse) else None
                )
                self._log_sub(
                    category,
                    parent_source_id,
                    cascade.resource,
                    child.id,
                    ItemStatus.created,
                    remote_id=child_remote_id,
                )
                if cascade.nested:
                    await self._cascade(
                        category=category,
                        parent_source_id=parent_source_id,
                        parent=child,
                        cascades=cascade.nested,
                        parents=(*parents, child_remote_id),
                        id_maps=id_maps,
                    )

    async def _fetch_existing_keys(self, descriptor: CategoryDescriptor) -> dict[MatchKey, UUID]:
        """Fetch the remote collection once and index its ids by duplicate key.

        Remote rows whose key fields are all empty are left out of the index.

        Raises:
            RemoteUnavailableError: If the service stays unreachable.
            RemoteListError: If the service answers with an error.
            TransferCancelled: If cancellation was requested during backoff.
        """
        assert descriptor.remote_model is not None
        endpoint = descriptor.endpoint
        response_type: Any = list[descriptor.remote_model]

        async def _fetch() -> list[Any]:
            result: ApiResult[list[Any]] = await self._client.get(endpoint, response_type)
            _raise_if_unreachable(result, method="GET", path=endpoint)
            if not result.ok or result.data is None:
                raise RemoteListError(
                    f"Could not list existing {descriptor.category}: {result.error_message}",
                    status_code=result.status_code,
                )
            return result.data

        try:
            remote_items = await retry_async(
                _fetch,
                attempts=self._list_fetch_attempts,
                base_delay_s=self._list_fetch_backoff_s,
                retry_on=(RemoteUnavailableError,),
                stop=self._cancel_event,
                label=f"GET {endpoint}",
            )
        except RemoteUnavailableError:
            self.check_cancelled()
            raise

        index: dict[MatchKey, UUID] = {}
        if descriptor.remote_keys is not None:
            for remote in remote_items:
                for key in descriptor.remote_keys(remote):
                    if not is_blank_key(key):
                        index.setdefault(key, remote.id)
        logger.debug("Found %s existing remote %s", len(remote_items), descriptor.category)
        return index

    def _log(
        self,
        category: str,
        source_id: UUID,
        name: str,
        status: ItemStatus,
        *,
        remote_id: UUID | None = None,
        error_message: str | None = None,
    ) -> None:
        written = self._ledger.log_item(
            session_id=self._session_id,
            category=category,
            source_id=source_id,
            status=status,
            name=name,
            remote_id=remote_id,
            error_message=error_message,
        )
        if not written:
            return
        self._progress.record(status)
        if status == ItemStatus.failed:
            logger.warning("Failed to transfer %s %r: %s", category, name, error_message)

    def _log_sub(
        self,
        category: str,
        parent_source_id: UUID,
        resource: str,
        source_id: UUID,
        status: ItemStatus,
        *,
        remote_id: UUID | None = None,
        error_message: str | None = None,
    ) -> None:
        self._ledger.log_subresource(
            session_id=self._session_id,
            category=category,
            parent_source_id=parent_source_id,
            resource=resource,
            source_id=source_id,
            status=status,
            remote_id=remote_id,
            error_message=error_message,
        )
        if status == ItemStatus.failed:
            logger.warning(
                "Failed to create %s %s of %s: %s",
                category,
                resource,
                parent_source_id,
                error_message,
            )
