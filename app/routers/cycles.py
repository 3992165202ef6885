from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import get_current_user_id
from app.database import get_db
from app.schemas import (
    ActionResponse,
    CycleCreateRequest,
    CycleUpdateRequest,
    StudyCycleResponse,
    CycleDetailResponse,
    CycleSessionResponse,
    CycleProgressRequest,
    CycleSessionStartResponse,
    DistributionRequest,
    DistributionResponse,
)
from app.services import cycles
from app.services.scheduling import calculate_study_time_distribution

router = APIRouter(prefix="/api", tags=["cycles"])


@router.get("/cycles", response_model=list[StudyCycleResponse])
def list_cycles(db: Session = Depends(get_db), user_id: str = Depends(get_current_user_id)):
    return cycles.list_cycles(db, user_id)


@router.post("/cycles", response_model=StudyCycleResponse, status_code=201)
def create_cycle(
    request: CycleCreateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Create a study cycle and generate its session calendar"""
    return cycles.create_cycle(db, user_id, request)


@router.post("/cycles/distribution", response_model=DistributionResponse)
def calculate_distribution(request: DistributionRequest):
    """Preview how weekly hours would be split across disciplines"""
    result = calculate_study_time_distribution(request.disciplines, request.total_available_hours)
    return DistributionResponse(**result)


@router.get("/cycles/{cycle_id}", response_model=CycleDetailResponse)
def get_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return cycles.get_cycle(db, user_id, cycle_id)


@router.put("/cycles/{cycle_id}", response_model=StudyCycleResponse)
def update_cycle(
    cycle_id: str,
    request: CycleUpdateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Replace the cycle's topics and regenerate its calendar"""
    return cycles.update_cycle(db, user_id, cycle_id, request)


@router.delete("/cycles/{cycle_id}", response_model=ActionResponse)
def delete_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return cycles.delete_cycle(db, user_id, cycle_id)


@router.get("/cycles/{cycle_id}/sessions", response_model=list[CycleSessionResponse])
def list_cycle_sessions(
    cycle_id: str,
    status: str | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return cycles.list_cycle_sessions(db, user_id, cycle_id, status)


@router.post("/cycles/{cycle_id}/progress", response_model=StudyCycleResponse)
def update_cycle_progress(
    cycle_id: str,
    request: CycleProgressRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Credit a finished time session to the cycle"""
    return cycles.update_cycle_progress(
        db, user_id, cycle_id, request.time_session_id, request.actual_duration
    )


@router.post("/cycle-sessions/{cycle_session_id}/start", response_model=CycleSessionStartResponse)
def start_cycle_session(
    cycle_session_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Mark a pending scheduled session as in progress"""
    return cycles.start_cycle_session(db, user_id, cycle_session_id)
