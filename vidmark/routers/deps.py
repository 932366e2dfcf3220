from fastapi import Depends, Request
from sqlalchemy.orm import Session

from vidmark.core.container import Container
from vidmark.db.session import get_db
from vidmark.services.job_store import JobStore
from vidmark.services.orchestrator import JobOrchestrator


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_job_store(db: Session = Depends(get_db)) -> JobStore:
    return JobStore(db)


def get_orchestrator(container: Container = Depends(get_container)) -> JobOrchestrator:
    return container.orchestrator()
