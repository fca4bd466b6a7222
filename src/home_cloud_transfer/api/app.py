"""FastAPI application factory for the transfer service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from home_cloud_transfer.api.router import router
from home_cloud_transfer.config.settings import AppSettings
from home_cloud_transfer.source.reader import SnapshotEntitySource
from home_cloud_transfer.storage.ledger import TransferLedger
from home_cloud_transfer.transfer.orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)


def create_app(
    settings: AppSettings,
    *,
    orchestrator: TransferOrchestrator | None = None,
) -> FastAPI:
    """Build the HTTP application.

    Args:
        settings: Application settings.
        orchestrator: Pre-built orchestrator; when omitted the lifespan builds
            one from ``settings`` and owns its ledger.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        ledger: TransferLedger | None = None
        if orchestrator is None:
            settings.storage.root_dir.mkdir(parents=True, exist_ok=True)
            ledger = TransferLedger(sqlite_path=settings.storage.sqlite_path)
            ledger.init_schema()
            source = SnapshotEntitySource(path=settings.storage.snapshot_path)
            app.state.orchestrator = TransferOrchestrator.from_settings(
                settings,
                ledger=ledger,
                source=source,
            )
            logger.info("Transfer ledger at %s", settings.storage.sqlite_path)
        else:
            app.state.orchestrator = orchestrator
        try:
            yield
        finally:
            await app.state.orchestrator.aclose()
            if ledger is not None:
                ledger.close()

    app = FastAPI(title="Household cloud transfer", lifespan=lifespan)
    app.state.settings = settings
    app.include_router(router)
    return app
