from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from app.models import TimeSession, Topic, Discipline, Study
from app.schemas import StatisticsResponse, PeriodSummary, SessionSummary
from app.services.access import find_owned_time_session
from app.services.calculations import (
    format_duration,
    format_duration_short,
    format_time,
    calculate_session_ms,
)


def get_week_start(date: datetime) -> datetime:
    """Get the Monday of the week containing the given date"""
    return (date - timedelta(days=date.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0
    )


def get_month_start(date: datetime) -> datetime:
    """Get the first day of the month containing the given date"""
    return date.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def summarize_period(sessions: list[TimeSession]) -> PeriodSummary:
    total_ms = sum(s.duration_ms for s in sessions)
    days_studied = len(set(s.start_time.date() for s in sessions))
    avg_ms = total_ms // days_studied if days_studied > 0 else 0
    return PeriodSummary(
        total_ms=total_ms,
        total_formatted=format_duration(total_ms),
        days_studied=days_studied,
        avg_per_day_formatted=format_duration(avg_ms),
        session_count=len(sessions),
    )


def get_statistics(db: Session, user_id: str, now: datetime | None = None) -> StatisticsResponse:
    """Weekly and monthly study totals plus the most recent finalized sessions"""
    if now is None:
        now = datetime.now()
    week_start = get_week_start(now)
    month_start = get_month_start(now)

    # Finalized sessions only; sessions dated in the future are ignored
    finalized = (
        db.query(TimeSession)
        .join(Topic, TimeSession.topic_id == Topic.id)
        .join(Discipline, Topic.discipline_id == Discipline.id)
        .join(Study, Discipline.study_id == Study.id)
        .filter(
            Study.user_id == user_id,
            TimeSession.end_time.is_not(None),
            TimeSession.start_time <= now,
        )
    )

    week_sessions = finalized.filter(TimeSession.start_time >= week_start).all()
    month_sessions = finalized.filter(TimeSession.start_time >= month_start).all()

    recent = finalized.order_by(TimeSession.start_time.desc()).limit(10).all()

    return StatisticsResponse(
        this_week=summarize_period(week_sessions),
        this_month=summarize_period(month_sessions),
        recent_sessions=[_summarize_session(s, now) for s in recent],
    )


def get_session_details(
    db: Session, user_id: str, session_id: str, now: datetime | None = None
) -> SessionSummary | None:
    """Summary of one time session; running sessions use the live clock"""
    session = find_owned_time_session(db, user_id, session_id)
    if not session:
        return None
    return _summarize_session(session, now)


def _summarize_session(session: TimeSession, now: datetime | None) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        topic_id=session.topic_id,
        topic_name=session.topic.name,
        date=session.start_time.strftime("%Y-%m-%d"),
        start_time=format_time(session.start_time),
        end_time=format_time(session.end_time) if session.end_time else None,
        duration_formatted=format_duration_short(calculate_session_ms(session, now)),
        session_type=session.session_type,
    )
