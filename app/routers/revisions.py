from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import get_current_user_id
from app.database import get_db
from app.schemas import (
    RevisionCreateRequest,
    RevisionScheduleRequest,
    RevisionCreateResponse,
    RevisionUpdateRequest,
    RevisionDeleteRequest,
    RevisionDeleteResponse,
    RevisionResponse,
    RevisionDetailResponse,
)
from app.services import revisions

router = APIRouter(prefix="/api", tags=["revisions"])


@router.post("/revisions", response_model=RevisionCreateResponse)
def create_revisions(
    request: RevisionCreateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return revisions.create_revisions(db, user_id, request.topic_id, request.dates)


@router.post("/revisions/schedule", response_model=RevisionCreateResponse)
def schedule_revisions(
    request: RevisionScheduleRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Create spaced-repetition revisions from day offsets or weekdays"""
    return revisions.schedule_revisions(
        db,
        user_id,
        request.topic_id,
        request.base_date or datetime.now(),
        day_offsets=request.day_offsets,
        weekdays=request.weekdays,
        number_of_weeks=request.number_of_weeks,
    )


@router.get("/revisions", response_model=list[RevisionDetailResponse])
def list_revisions(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    completed: bool | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return revisions.list_revisions_by_user(db, user_id, start_date, end_date, completed)


@router.get("/topics/{topic_id}/revisions", response_model=list[RevisionResponse])
def list_topic_revisions(
    topic_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return revisions.list_revisions_by_topic(db, user_id, topic_id)


@router.patch("/revisions/{revision_id}", response_model=RevisionResponse)
def update_revision(
    revision_id: str,
    request: RevisionUpdateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return revisions.update_revision(db, user_id, revision_id, request.completed)


@router.post("/revisions/delete", response_model=RevisionDeleteResponse)
def delete_revisions(
    request: RevisionDeleteRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return revisions.delete_revisions(db, user_id, request.revision_ids)
