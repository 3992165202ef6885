import logging
from datetime import datetime, timedelta
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import EMPTY_SESSION_GRACE_MS, DEFAULT_SESSION_TYPE
from app.models import TimeSession, Topic, Discipline, Study, CycleSession
from app.schemas import TimeSessionResponse, TotalsResponse, HeartbeatResponse
from app.services.access import get_owned_topic, find_owned_time_session

logger = logging.getLogger(__name__)


def start_session(
    db: Session, user_id: str, topic_id: str, session_id: str, session_type: str = DEFAULT_SESSION_TYPE
) -> TimeSessionResponse:
    """Create a running time session (zero duration, no end time) for a topic"""
    get_owned_topic(db, user_id, topic_id)

    # A retried start with the same client-generated id returns the existing row
    existing = find_owned_time_session(db, user_id, session_id)
    if existing:
        return TimeSessionResponse.model_validate(existing)

    session = TimeSession(
        id=session_id,
        topic_id=topic_id,
        start_time=datetime.now(),
        duration_ms=0,
        session_type=session_type,
    )
    db.add(session)
    db.commit()
    db.refresh(session)

    logger.info("Time session %s started for topic %s", session_id, topic_id)
    return TimeSessionResponse.model_validate(session)


def stop_session(
    db: Session, user_id: str, session_id: str, duration_ms: int
) -> TimeSessionResponse | None:
    """
    Finalize a time session with the total elapsed duration.

    The duration overwrites the stored value, so repeated stops for the same
    session (retries, duplicated unload delivery) are idempotent.
    Returns None when the session is unknown.
    """
    session = find_owned_time_session(db, user_id, session_id)
    if not session:
        logger.warning("Stop requested for unknown time session %s", session_id)
        return None

    session.end_time = datetime.now()
    session.duration_ms = duration_ms
    db.commit()
    db.refresh(session)

    logger.info("Time session %s stopped with %d ms", session_id, duration_ms)
    return TimeSessionResponse.model_validate(session)


def heartbeat(db: Session, user_id: str, session_id: str, total_ms: int) -> HeartbeatResponse:
    """Overwrite a running session's duration with the current total; stopped sessions keep theirs"""
    updated = (
        db.query(TimeSession)
        .filter(
            TimeSession.id == session_id,
            TimeSession.end_time.is_(None),
            TimeSession.topic_id.in_(_owned_topic_ids(user_id)),
        )
        .update({TimeSession.duration_ms: total_ms}, synchronize_session=False)
    )
    db.commit()
    return HeartbeatResponse(success=updated > 0)


def get_totals(db: Session, user_id: str, topic_ids: list[str]) -> TotalsResponse:
    """Sum session durations per topic and roll them up to disciplines and studies"""
    if not topic_ids:
        return TotalsResponse(topic_totals={}, discipline_totals={}, study_totals={})

    rows = (
        db.query(
            Topic.id,
            Topic.discipline_id,
            Discipline.study_id,
            func.coalesce(func.sum(TimeSession.duration_ms), 0),
        )
        .join(Discipline, Topic.discipline_id == Discipline.id)
        .join(Study, Discipline.study_id == Study.id)
        .outerjoin(TimeSession, TimeSession.topic_id == Topic.id)
        .filter(Topic.id.in_(topic_ids), Study.user_id == user_id)
        .group_by(Topic.id, Topic.discipline_id, Discipline.study_id)
        .all()
    )

    topic_totals: dict[str, int] = {}
    discipline_totals: dict[str, int] = {}
    study_totals: dict[str, int] = {}
    for topic_id, discipline_id, study_id, total in rows:
        total = int(total)
        topic_totals[topic_id] = total
        discipline_totals[discipline_id] = discipline_totals.get(discipline_id, 0) + total
        study_totals[study_id] = study_totals.get(study_id, 0) + total

    return TotalsResponse(
        topic_totals=topic_totals,
        discipline_totals=discipline_totals,
        study_totals=study_totals,
    )


def sweep_empty_sessions(db: Session, now: datetime | None = None) -> int:
    """
    Delete sessions whose duration stayed 0.

    Finalized sessions go immediately; running ones only once they are older
    than the grace period, so a session that just started is left alone.
    Scheduled cycle sessions linked to a swept session lose the link.
    """
    if now is None:
        now = datetime.now()
    cutoff = now - timedelta(milliseconds=EMPTY_SESSION_GRACE_MS)

    empty_ids = select(TimeSession.id).where(
        TimeSession.duration_ms == 0,
        (TimeSession.end_time.is_not(None)) | (TimeSession.start_time < cutoff),
    )
    db.query(CycleSession).filter(CycleSession.time_session_id.in_(empty_ids)).update(
        {CycleSession.time_session_id: None}, synchronize_session=False
    )
    deleted = (
        db.query(TimeSession)
        .filter(TimeSession.id.in_(empty_ids))
        .delete(synchronize_session=False)
    )
    db.commit()

    if deleted:
        logger.info("Swept %d empty time session(s)", deleted)
    return deleted


def _owned_topic_ids(user_id: str):
    return (
        select(Topic.id)
        .join(Discipline, Topic.discipline_id == Discipline.id)
        .join(Study, Discipline.study_id == Study.id)
        .where(Study.user_id == user_id)
    )
