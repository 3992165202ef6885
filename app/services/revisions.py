from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from app.exceptions import ValidationError
from app.models import Revision, Topic, Discipline, Study
from app.schemas import (
    RevisionResponse,
    RevisionDetailResponse,
    RevisionCreateResponse,
    RevisionDeleteResponse,
)
from app.services.access import get_owned_topic, get_owned_revision
from app.services.scheduling import js_weekday


def normalize_to_midnight(date: datetime) -> datetime:
    return date.replace(hour=0, minute=0, second=0, microsecond=0)


def calculate_periodic_dates(base_date: datetime, day_offsets: list[int]) -> list[datetime]:
    """Dates ``offset`` days after the base date (at midnight) for each offset"""
    base = normalize_to_midnight(base_date)
    return [base + timedelta(days=days) for days in day_offsets]


def calculate_weekly_dates(
    base_date: datetime, weekdays: list[int], number_of_weeks: int
) -> list[datetime]:
    """
    Dates falling on the given weekdays (0 = Sunday) for a number of weeks.

    The first week starts at the base date, so a weekday equal to the base
    date's own weekday yields the base date itself.
    """
    base = normalize_to_midnight(base_date)
    current_weekday = js_weekday(base)
    dates = []
    for week in range(number_of_weeks):
        for weekday in weekdays:
            days_to_add = (weekday - current_weekday + 7) % 7 + week * 7
            dates.append(base + timedelta(days=days_to_add))
    return sorted(dates)


def create_revisions(
    db: Session, user_id: str, topic_id: str, dates: list[datetime]
) -> RevisionCreateResponse:
    """Schedule revisions for a topic, skipping days that already have one"""
    get_owned_topic(db, user_id, topic_id)

    existing_days = {
        r.scheduled_date.date()
        for r in db.query(Revision).filter(Revision.topic_id == topic_id).all()
    }

    new_dates = []
    for date in dates:
        if date.tzinfo is not None:
            date = date.astimezone().replace(tzinfo=None)
        if date.date() in existing_days:
            continue
        existing_days.add(date.date())
        new_dates.append(date)

    if not new_dates:
        return RevisionCreateResponse(created=0, message="All dates already exist")

    db.add_all(
        [Revision(topic_id=topic_id, scheduled_date=date, completed=False) for date in new_dates]
    )
    db.commit()

    return RevisionCreateResponse(
        created=len(new_dates), message="Revisions created successfully"
    )


def schedule_revisions(
    db: Session,
    user_id: str,
    topic_id: str,
    base_date: datetime,
    day_offsets: list[int] | None = None,
    weekdays: list[int] | None = None,
    number_of_weeks: int = 0,
) -> RevisionCreateResponse:
    """Create periodic (day offsets) and/or weekly revisions from a base date"""
    dates = []
    if day_offsets:
        dates.extend(calculate_periodic_dates(base_date, day_offsets))
    if weekdays and number_of_weeks > 0:
        dates.extend(calculate_weekly_dates(base_date, weekdays, number_of_weeks))
    if not dates:
        raise ValidationError("Choose day offsets or weekdays with a number of weeks")
    return create_revisions(db, user_id, topic_id, sorted(dates))


def list_revisions_by_topic(db: Session, user_id: str, topic_id: str) -> list[RevisionResponse]:
    get_owned_topic(db, user_id, topic_id)
    revisions = (
        db.query(Revision)
        .filter(Revision.topic_id == topic_id)
        .order_by(Revision.scheduled_date)
        .all()
    )
    return [RevisionResponse.model_validate(r) for r in revisions]


def list_revisions_by_user(
    db: Session,
    user_id: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    completed: bool | None = None,
) -> list[RevisionDetailResponse]:
    query = (
        db.query(Revision, Topic, Discipline, Study)
        .join(Topic, Revision.topic_id == Topic.id)
        .join(Discipline, Topic.discipline_id == Discipline.id)
        .join(Study, Discipline.study_id == Study.id)
        .filter(Study.user_id == user_id)
    )
    if start_date:
        query = query.filter(Revision.scheduled_date >= start_date)
    if end_date:
        query = query.filter(Revision.scheduled_date <= end_date)
    if completed is not None:
        query = query.filter(Revision.completed == completed)

    return [
        RevisionDetailResponse(
            id=revision.id,
            topic_id=topic.id,
            scheduled_date=revision.scheduled_date,
            completed=revision.completed,
            completed_at=revision.completed_at,
            created_at=revision.created_at,
            topic_name=topic.name,
            discipline_id=discipline.id,
            discipline_name=discipline.name,
            study_id=study.id,
            study_name=study.name,
        )
        for revision, topic, discipline, study in query.order_by(Revision.scheduled_date).all()
    ]


def update_revision(
    db: Session, user_id: str, revision_id: str, completed: bool
) -> RevisionResponse:
    revision = get_owned_revision(db, user_id, revision_id)
    revision.completed = completed
    revision.completed_at = datetime.now() if completed else None
    db.commit()
    db.refresh(revision)
    return RevisionResponse.model_validate(revision)


def delete_revisions(db: Session, user_id: str, revision_ids: list[str]) -> RevisionDeleteResponse:
    """Delete revisions; nothing is deleted unless every id belongs to the caller"""
    if not revision_ids:
        raise ValidationError("No revisions given")

    unique_ids = list(dict.fromkeys(revision_ids))
    revisions = [get_owned_revision(db, user_id, revision_id) for revision_id in unique_ids]
    for revision in revisions:
        db.delete(revision)
    db.commit()

    return RevisionDeleteResponse(success=True, deleted=len(revisions))
