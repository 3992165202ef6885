from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Study, Discipline, Topic
from app.schemas import StudyResponse, DisciplineResponse, TopicResponse
from app.services.access import get_owned_study, get_owned_discipline


def list_studies(db: Session, user_id: str) -> list[StudyResponse]:
    """List the caller's studies, newest first, with discipline and topic counts"""
    rows = (
        db.query(
            Study,
            func.count(func.distinct(Discipline.id)),
            func.count(Topic.id),
        )
        .outerjoin(Discipline, Discipline.study_id == Study.id)
        .outerjoin(Topic, Topic.discipline_id == Discipline.id)
        .filter(Study.user_id == user_id)
        .group_by(Study.id)
        .order_by(Study.created_at.desc())
        .all()
    )
    return [
        StudyResponse(
            id=study.id,
            name=study.name,
            description=study.description,
            created_at=study.created_at,
            discipline_count=discipline_count,
            topic_count=topic_count,
        )
        for study, discipline_count, topic_count in rows
    ]


def create_study(db: Session, user_id: str, name: str, description: str | None) -> StudyResponse:
    study = Study(user_id=user_id, name=name, description=description)
    db.add(study)
    db.commit()
    db.refresh(study)
    return StudyResponse.model_validate(study)


def create_discipline(db: Session, user_id: str, study_id: str, name: str) -> DisciplineResponse:
    get_owned_study(db, user_id, study_id)
    discipline = Discipline(study_id=study_id, name=name)
    db.add(discipline)
    db.commit()
    db.refresh(discipline)
    return DisciplineResponse.model_validate(discipline)


def create_topic(
    db: Session, user_id: str, discipline_id: str, name: str, notes: str | None
) -> TopicResponse:
    get_owned_discipline(db, user_id, discipline_id)
    topic = Topic(discipline_id=discipline_id, name=name, notes=notes)
    db.add(topic)
    db.commit()
    db.refresh(topic)
    return TopicResponse.model_validate(topic)
