import logging
import random
from datetime import datetime
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError, ConflictError
from app.models import StudyCycle, CycleTopic, CycleSession, TimeSession
from app.schemas import (
    ActionResponse,
    CycleCreateRequest,
    CycleUpdateRequest,
    StudyCycleResponse,
    CycleDetailResponse,
    CycleTopicResponse,
    CycleSessionResponse,
    CycleSessionStartResponse,
)
from app.services.access import (
    get_owned_topic,
    get_owned_cycle,
    get_owned_cycle_session,
    find_owned_time_session,
)
from app.services.scheduling import (
    RankedTopic,
    rank_topics,
    total_required_time,
    generate_cycle_sessions,
    ms_to_minutes,
)

logger = logging.getLogger(__name__)


def create_cycle(
    db: Session,
    user_id: str,
    request: CycleCreateRequest,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> StudyCycleResponse:
    """Rank the selected topics and generate the two-week session calendar"""
    for topic in request.topics:
        get_owned_topic(db, user_id, topic.topic_id)

    if now is None:
        now = datetime.now()
    ranked = rank_topics(request.topics)

    cycle = StudyCycle(user_id=user_id, started_at=now, status="active", completed_time=0)
    _apply_header(cycle, request)

    try:
        db.add(cycle)
        db.flush()
        _materialize(cycle, ranked, now, rng)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(cycle)

    logger.info(
        "Cycle %s created with %d topic(s), %d session(s), %d required minutes",
        cycle.id,
        len(ranked),
        len(cycle.sessions),
        cycle.total_required_time,
    )
    return StudyCycleResponse.model_validate(cycle)


def update_cycle(
    db: Session,
    user_id: str,
    cycle_id: str,
    request: CycleUpdateRequest,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> StudyCycleResponse:
    """
    Replace a cycle's topics and sessions and regenerate the calendar.

    Old rows are deleted and new ones inserted in the same transaction, so no
    reader ever sees the cycle without topics. completed_time and status
    carry over.
    """
    cycle = get_owned_cycle(db, user_id, cycle_id)
    for topic in request.topics:
        get_owned_topic(db, user_id, topic.topic_id)

    if now is None:
        now = datetime.now()
    ranked = rank_topics(request.topics)

    try:
        cycle.topics.clear()
        cycle.sessions.clear()
        db.flush()
        _apply_header(cycle, request)
        _materialize(cycle, ranked, now, rng)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(cycle)

    logger.info("Cycle %s regenerated with %d session(s)", cycle.id, len(cycle.sessions))
    return StudyCycleResponse.model_validate(cycle)


def delete_cycle(db: Session, user_id: str, cycle_id: str) -> ActionResponse:
    cycle = get_owned_cycle(db, user_id, cycle_id)
    db.delete(cycle)
    db.commit()
    return ActionResponse(success=True, message="Cycle deleted")


def list_cycles(db: Session, user_id: str) -> list[StudyCycleResponse]:
    cycles = (
        db.query(StudyCycle)
        .filter(StudyCycle.user_id == user_id)
        .order_by(StudyCycle.created_at.desc())
        .all()
    )
    return [StudyCycleResponse.model_validate(c) for c in cycles]


def get_cycle(db: Session, user_id: str, cycle_id: str) -> CycleDetailResponse:
    """Cycle header with its topics in priority rank order"""
    cycle = get_owned_cycle(db, user_id, cycle_id)
    topics = [
        CycleTopicResponse(
            id=ct.id,
            topic_id=ct.topic_id,
            topic_name=ct.topic.name,
            importance=ct.importance,
            knowledge=ct.knowledge,
            priority=ct.priority,
            required_time=ct.required_time,
            completed_time=ct.completed_time,
            order=ct.order,
        )
        for ct in sorted(cycle.topics, key=lambda ct: ct.order)
    ]
    header = StudyCycleResponse.model_validate(cycle)
    return CycleDetailResponse(
        **header.model_dump(), topics=topics, session_count=len(cycle.sessions)
    )


def list_cycle_sessions(
    db: Session, user_id: str, cycle_id: str, status: str | None = None
) -> list[CycleSessionResponse]:
    get_owned_cycle(db, user_id, cycle_id)
    query = db.query(CycleSession).filter(CycleSession.cycle_id == cycle_id)
    if status:
        query = query.filter(CycleSession.status == status)
    sessions = query.order_by(CycleSession.scheduled_date).all()
    return [CycleSessionResponse.model_validate(s) for s in sessions]


def start_cycle_session(db: Session, user_id: str, cycle_session_id: str) -> CycleSessionStartResponse:
    """Move a pending scheduled session to in_progress"""
    cycle_session = get_owned_cycle_session(db, user_id, cycle_session_id)
    cycle = cycle_session.cycle

    if cycle.status != "active":
        raise ConflictError("Cycle is not active")
    if cycle_session.status != "pending":
        raise ConflictError(f"Cycle session is {cycle_session.status}, expected pending")

    # Only one scheduled session per cycle is worked on at a time
    (
        db.query(CycleSession)
        .filter(
            CycleSession.cycle_id == cycle.id,
            CycleSession.status == "in_progress",
            CycleSession.id != cycle_session.id,
        )
        .update({CycleSession.status: "pending"}, synchronize_session=False)
    )
    cycle_session.status = "in_progress"
    db.commit()
    db.refresh(cycle_session)

    topic = cycle_session.topic
    discipline = topic.discipline
    return CycleSessionStartResponse(
        id=cycle_session.id,
        cycle_id=cycle.id,
        cycle_name=cycle.name,
        topic_id=topic.id,
        topic_name=topic.name,
        discipline_id=discipline.id,
        discipline_name=discipline.name,
        study_id=discipline.study_id,
        duration=cycle_session.duration,
        status=cycle_session.status,
    )


def update_cycle_progress(
    db: Session,
    user_id: str,
    cycle_id: str,
    time_session_id: str,
    actual_duration_ms: int,
    now: datetime | None = None,
) -> StudyCycleResponse:
    """
    Credit a finished time session to a cycle, at most once.

    The duration is truncated to whole minutes and added to both the cycle
    and the matching cycle topic. The cycle completes once its completed time
    reaches the required total, and the in-progress scheduled session for the
    topic (if any) is closed and linked to the time session.
    A time session that was already credited leaves the cycle unchanged, so
    clients can retry a credit whose response they never saw.
    """
    cycle = get_owned_cycle(db, user_id, cycle_id)
    time_session = find_owned_time_session(db, user_id, time_session_id)
    if not time_session:
        raise NotFoundError("Time session")

    if time_session.credited_cycle_id is not None:
        logger.info("Time session %s was already credited, ignoring", time_session.id)
        return StudyCycleResponse.model_validate(cycle)

    if actual_duration_ms <= 0:
        return StudyCycleResponse.model_validate(cycle)

    if cycle.status != "active":
        raise ConflictError("Cycle is not active")

    cycle_topic = (
        db.query(CycleTopic)
        .filter(CycleTopic.cycle_id == cycle.id, CycleTopic.topic_id == time_session.topic_id)
        .first()
    )
    if not cycle_topic:
        raise NotFoundError("Cycle topic")

    if now is None:
        now = datetime.now()
    minutes = ms_to_minutes(actual_duration_ms)

    try:
        claimed = (
            db.query(TimeSession)
            .filter(TimeSession.id == time_session.id, TimeSession.credited_cycle_id.is_(None))
            .update({TimeSession.credited_cycle_id: cycle.id}, synchronize_session=False)
        )
        if not claimed:
            db.rollback()
            db.refresh(cycle)
            return StudyCycleResponse.model_validate(cycle)

        db.query(StudyCycle).filter(StudyCycle.id == cycle.id).update(
            {StudyCycle.completed_time: StudyCycle.completed_time + minutes},
            synchronize_session=False,
        )
        db.query(CycleTopic).filter(CycleTopic.id == cycle_topic.id).update(
            {CycleTopic.completed_time: CycleTopic.completed_time + minutes},
            synchronize_session=False,
        )
        db.refresh(cycle)

        if cycle.completed_time >= cycle.total_required_time:
            cycle.status = "completed"
            cycle.completed_at = now
            logger.info("Cycle %s completed", cycle.id)

        in_progress = (
            db.query(CycleSession)
            .filter(
                CycleSession.cycle_id == cycle.id,
                CycleSession.topic_id == time_session.topic_id,
                CycleSession.status == "in_progress",
            )
            .first()
        )
        if in_progress:
            in_progress.status = "completed"
            in_progress.actual_duration = minutes
            in_progress.time_session_id = time_session.id

        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(cycle)

    logger.info("Cycle %s credited %d minute(s) from session %s", cycle.id, minutes, time_session.id)
    return StudyCycleResponse.model_validate(cycle)


def _apply_header(cycle: StudyCycle, request: CycleCreateRequest) -> None:
    cycle.name = request.name
    cycle.hours_per_week = request.hours_per_week
    cycle.study_days = ",".join(str(day) for day in request.study_days)
    cycle.min_session_duration = request.min_session_duration
    cycle.max_session_duration = request.max_session_duration


def _materialize(
    cycle: StudyCycle,
    ranked: list[RankedTopic],
    now: datetime,
    rng: random.Random | None,
) -> None:
    cycle.total_required_time = total_required_time(ranked)
    cycle.topics = [
        CycleTopic(
            topic_id=topic.topic_id,
            importance=topic.importance,
            knowledge=topic.knowledge,
            priority=topic.priority,
            required_time=topic.required_time,
            completed_time=0,
            order=topic.order,
        )
        for topic in ranked
    ]
    planned = generate_cycle_sessions(
        ranked,
        cycle.study_day_set,
        cycle.min_session_duration,
        cycle.max_session_duration,
        start=now,
        rng=rng,
    )
    cycle.sessions = [
        CycleSession(
            topic_id=session.topic_id,
            scheduled_date=session.scheduled_date,
            duration=session.duration,
            status="pending",
        )
        for session in planned
    ]
