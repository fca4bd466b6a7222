"""HTTP endpoints used by the UI to drive a household transfer."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from home_cloud_transfer.api.dependencies import get_orchestrator, verify_api_key
from home_cloud_transfer.models.types import (
    AuthenticateRequest,
    AuthenticateResponse,
    CategoryResult,
    DataSummary,
    SessionInfo,
    StartRequest,
    StartResponse,
    TransferProgress,
)
from home_cloud_transfer.transfer.errors import (
    NoResumableSessionError,
    NotAuthenticatedError,
    SessionRestoreError,
    TransferAlreadyRunningError,
)
from home_cloud_transfer.transfer.orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transfer", tags=["Transfer"])


@router.get("/available")
async def available() -> dict[str, bool]:
    """Capability check."""
    return {"available": True}


@router.post(
    "/authenticate",
    response_model=AuthenticateResponse,
    dependencies=[Depends(verify_api_key)],
)
async def authenticate(
    body: AuthenticateRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> AuthenticateResponse:
    try:
        return await orchestrator.authenticate(body)
    except TransferAlreadyRunningError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get("/summary", response_model=DataSummary, dependencies=[Depends(verify_api_key)])
async def summary(
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> DataSummary:
    return await orchestrator.get_summary()


@router.get("/session", response_model=SessionInfo, dependencies=[Depends(verify_api_key)])
async def session_info(
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> SessionInfo:
    return orchestrator.get_session_info()


@router.post("/start", response_model=StartResponse, dependencies=[Depends(verify_api_key)])
async def start(
    body: StartRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> StartResponse:
    """Start or resume a transfer; the run continues in the background."""
    try:
        session_id = await orchestrator.start_transfer(
            include_history=body.include_history,
            resume=body.resume,
        )
    except TransferAlreadyRunningError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except (NotAuthenticatedError, NoResumableSessionError, SessionRestoreError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return StartResponse(session_id=session_id)


@router.get(
    "/progress",
    response_model=TransferProgress,
    responses={204: {"description": "No transfer has run in this process"}},
    dependencies=[Depends(verify_api_key)],
)
async def progress(
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> TransferProgress | Response:
    snapshot = orchestrator.get_current_progress()
    if snapshot is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return snapshot


@router.post(
    "/cancel",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_api_key)],
)
async def cancel(
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> Response:
    orchestrator.cancel_transfer()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/results",
    response_model=list[CategoryResult],
    dependencies=[Depends(verify_api_key)],
)
async def results(
    session_id: UUID | None = Query(default=None, alias="sessionId"),
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> list[CategoryResult]:
    return orchestrator.get_results(session_id)
