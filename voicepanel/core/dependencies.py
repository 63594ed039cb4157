from functools import partial

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from voicepanel.db.session import get_db, RunSessionLocal
from voicepanel.services.progress import ProgressStore
from voicepanel.services.record_store import RecordStore, SqlRecordStore
from voicepanel.services.run_service import RunExecutor, execute_run
from voicepanel.services.run_supervisor import RunSupervisor
from voicepanel.synthetic.ai_respondent import AIRespondent


def get_record_store(db: Session = Depends(get_db)) -> RecordStore:
    return SqlRecordStore(db)


def get_progress_store(request: Request) -> ProgressStore:
    """Application-owned progress channel created at startup"""
    return request.app.state.progress_store


def get_run_supervisor(request: Request) -> RunSupervisor:
    return request.app.state.run_supervisor


def get_respondent(request: Request) -> AIRespondent:
    return request.app.state.respondent


def get_run_executor(
    respondent: AIRespondent = Depends(get_respondent),
    progress: ProgressStore = Depends(get_progress_store),
) -> RunExecutor:
    """Background runner bound to the shared respondent and progress channel, on a fresh non-expiring session"""
    return partial(execute_run, respondent=respondent, progress=progress, session_factory=RunSessionLocal)
