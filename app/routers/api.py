from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.auth import get_current_user_id
from app.database import get_db
from app.schemas import (
    HealthResponse,
    StudyCreateRequest,
    StudyResponse,
    DisciplineCreateRequest,
    DisciplineResponse,
    TopicCreateRequest,
    TopicResponse,
    TimerStartRequest,
    TimerStopRequest,
    HeartbeatRequest,
    HeartbeatResponse,
    TimeSessionResponse,
    TotalsRequest,
    TotalsResponse,
    StatisticsResponse,
    SessionSummary,
)
from app.services import statistics, studies, timer
from app.version import get_version

router = APIRouter(prefix="/api", tags=["api"])


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", version=get_version())


@router.get("/studies", response_model=list[StudyResponse])
def list_studies(db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)):
    """List the caller's studies"""
    return studies.list_studies(db, user_id)


@router.post("/studies", response_model=StudyResponse, status_code=201)
def create_study(
    request: StudyCreateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return studies.create_study(db, user_id, request.name, request.description)


@router.post("/studies/{study_id}/disciplines", response_model=DisciplineResponse, status_code=201)
def create_discipline(
    study_id: str,
    request: DisciplineCreateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return studies.create_discipline(db, user_id, study_id, request.name)


@router.post("/disciplines/{discipline_id}/topics", response_model=TopicResponse, status_code=201)
def create_topic(
    discipline_id: str,
    request: TopicCreateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return studies.create_topic(db, user_id, discipline_id, request.name, request.notes)


@router.post("/timer/start", response_model=TimeSessionResponse)
def start_timer(
    request: TimerStartRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Create a running time session for a topic"""
    return timer.start_session(
        db, user_id, request.topic_id, str(request.session_id), request.session_type
    )


@router.post("/timer/stop", response_model=TimeSessionResponse | None)
def stop_timer(
    request: TimerStopRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Finalize a time session with its total duration; null if the session is unknown"""
    return timer.stop_session(db, user_id, str(request.session_id), request.duration)


@router.post("/timer/heartbeat", response_model=HeartbeatResponse)
def heartbeat(
    request: HeartbeatRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Overwrite a running session's duration with the current total"""
    return timer.heartbeat(db, user_id, str(request.session_id), request.delta_ms)


@router.post("/timer/totals", response_model=TotalsResponse)
def get_totals(
    request: TotalsRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Summed study time per topic, discipline and study"""
    return timer.get_totals(db, user_id, request.topic_ids)


@router.get("/statistics/summary", response_model=StatisticsResponse)
def get_statistics(db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)):
    """Get weekly/monthly statistics"""
    return statistics.get_statistics(db, user_id)


@router.get("/sessions/{session_id}", response_model=SessionSummary)
def get_session_details(
    session_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get a summary of a single time session"""
    result = statistics.get_session_details(db, user_id, session_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return result
