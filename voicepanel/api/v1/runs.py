from __future__ import annotations

import asyncio
import logging
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from voicepanel.api.v1.errors import to_http_exception
from voicepanel.core.config import settings
from voicepanel.core.dependencies import (
    get_record_store, get_progress_store, get_run_supervisor, get_respondent, get_run_executor,
)
from voicepanel.core.errors import VoicePanelError
from voicepanel.schemas.run_schema import (
    RunCreate, RunOut, StartRunResponse, RunProgress, AggregateOut, LiveSummaryOut, VariantResponseList,
)
from voicepanel.services import run_service
from voicepanel.services.progress import ProgressStore
from voicepanel.services.record_store import RecordStore
from voicepanel.services.run_service import RunExecutor
from voicepanel.services.run_supervisor import RunSupervisor
from voicepanel.synthetic.ai_respondent import AIRespondent

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=RunOut, status_code=status.HTTP_201_CREATED)
def create_run_endpoint(
    payload: RunCreate,
    store: RecordStore = Depends(get_record_store),
):
    try:
        return run_service.create_run(store, payload)
    except VoicePanelError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[RunOut])
def list_runs_endpoint(
    project_id: Optional[UUID] = Query(None),
    store: RecordStore = Depends(get_record_store),
):
    return run_service.list_runs(store, project_id)


@router.get("/{run_id}", response_model=RunOut)
def get_run_endpoint(
    run_id: UUID,
    store: RecordStore = Depends(get_record_store),
):
    try:
        return run_service.get_run(store, run_id)
    except VoicePanelError as e:
        raise to_http_exception(e)


@router.delete("/{run_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_run_endpoint(
    run_id: UUID,
    store: RecordStore = Depends(get_record_store),
    progress: ProgressStore = Depends(get_progress_store),
):
    try:
        run_service.delete_run(store, progress, run_id)
    except VoicePanelError as e:
        raise to_http_exception(e)
    return None


@router.post("/{run_id}/start", response_model=StartRunResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_run_endpoint(
    run_id: UUID,
    store: RecordStore = Depends(get_record_store),
    respondent: AIRespondent = Depends(get_respondent),
    progress: ProgressStore = Depends(get_progress_store),
    supervisor: RunSupervisor = Depends(get_run_supervisor),
    executor: RunExecutor = Depends(get_run_executor),
):
    """
    Start a draft test. Returns as soon as the test is marked running;
    responses are collected in the background and observed through
    /progress, /progress/ws and /live.
    """
    try:
        run, job = run_service.start_run(store, respondent, progress, supervisor, run_id, executor)
    except VoicePanelError as e:
        raise to_http_exception(e)

    logger.info(f"Test {run_id} accepted as job {job.job_id}")
    return StartRunResponse(
        accepted=True,
        run_id=run.id,
        total_variants=run.responses_total,
        message=f"Test started with {run.responses_total} variants",
    )


@router.get("/{run_id}/progress", response_model=RunProgress)
def get_progress_endpoint(
    run_id: UUID,
    store: RecordStore = Depends(get_record_store),
    progress: ProgressStore = Depends(get_progress_store),
):
    try:
        return run_service.get_progress(store, progress, run_id).to_dict()
    except VoicePanelError as e:
        raise to_http_exception(e)


@router.get("/{run_id}/results", response_model=AggregateOut)
def get_results_endpoint(
    run_id: UUID,
    store: RecordStore = Depends(get_record_store),
):
    try:
        return run_service.get_aggregate(store, run_id)
    except VoicePanelError as e:
        raise to_http_exception(e)


@router.get("/{run_id}/live", response_model=LiveSummaryOut)
def get_live_summary_endpoint(
    run_id: UUID,
    store: RecordStore = Depends(get_record_store),
):
    try:
        return run_service.get_live_summary(store, run_id)
    except VoicePanelError as e:
        raise to_http_exception(e)


@router.get("/{run_id}/responses", response_model=VariantResponseList)
def list_responses_endpoint(
    run_id: UUID,
    sentiment: Optional[Literal["positive", "neutral", "negative"]] = Query(None),
    platform: Optional[str] = Query(None),
    attitude: Optional[Literal["enthusiasts", "neutral", "skeptics"]] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: RecordStore = Depends(get_record_store),
):
    try:
        return run_service.list_responses(
            store, run_id,
            sentiment=sentiment, platform=platform, attitude=attitude,
            limit=limit, offset=offset,
        )
    except VoicePanelError as e:
        raise to_http_exception(e)


@router.websocket("/{run_id}/progress/ws")
async def progress_websocket(websocket: WebSocket, run_id: UUID):
    """
    Push the progress tuple every PROGRESS_POLL_INTERVAL_SECONDS.

    The socket closes after sending a terminal status, or as soon as the run
    has no progress entry (never started, deleted, or the process restarted).
    """
    progress: ProgressStore = websocket.app.state.progress_store
    await websocket.accept()
    try:
        while True:
            state = progress.get(run_id)
            if state is None:
                await websocket.send_json({"error": "no live progress for this test"})
                break
            await websocket.send_json(state.to_dict())
            if state.is_terminal:
                break
            await asyncio.sleep(settings.PROGRESS_POLL_INTERVAL_SECONDS)
    except WebSocketDisconnect:
        logger.info(f"Progress socket for test {run_id} disconnected")
        return
    await websocket.close()
