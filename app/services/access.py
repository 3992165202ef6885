"""Owner-filtered lookups shared by the services."""
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models import Study, Discipline, Topic, TimeSession, StudyCycle, CycleSession, Revision


def get_owned_study(db: Session, user_id: str, study_id: str) -> Study:
    study = (
        db.query(Study)
        .filter(Study.id == study_id, Study.user_id == user_id)
        .first()
    )
    if not study:
        raise NotFoundError("Study")
    return study


def get_owned_discipline(db: Session, user_id: str, discipline_id: str) -> Discipline:
    discipline = (
        db.query(Discipline)
        .join(Study, Discipline.study_id == Study.id)
        .filter(Discipline.id == discipline_id, Study.user_id == user_id)
        .first()
    )
    if not discipline:
        raise NotFoundError("Discipline")
    return discipline


def get_owned_topic(db: Session, user_id: str, topic_id: str) -> Topic:
    topic = (
        db.query(Topic)
        .join(Discipline, Topic.discipline_id == Discipline.id)
        .join(Study, Discipline.study_id == Study.id)
        .filter(Topic.id == topic_id, Study.user_id == user_id)
        .first()
    )
    if not topic:
        raise NotFoundError("Topic")
    return topic


def find_owned_time_session(db: Session, user_id: str, session_id: str) -> TimeSession | None:
    return (
        db.query(TimeSession)
        .join(Topic, TimeSession.topic_id == Topic.id)
        .join(Discipline, Topic.discipline_id == Discipline.id)
        .join(Study, Discipline.study_id == Study.id)
        .filter(TimeSession.id == session_id, Study.user_id == user_id)
        .first()
    )


def get_owned_cycle(db: Session, user_id: str, cycle_id: str) -> StudyCycle:
    cycle = (
        db.query(StudyCycle)
        .filter(StudyCycle.id == cycle_id, StudyCycle.user_id == user_id)
        .first()
    )
    if not cycle:
        raise NotFoundError("Cycle")
    return cycle


def get_owned_cycle_session(db: Session, user_id: str, cycle_session_id: str) -> CycleSession:
    cycle_session = (
        db.query(CycleSession)
        .join(StudyCycle, CycleSession.cycle_id == StudyCycle.id)
        .filter(CycleSession.id == cycle_session_id, StudyCycle.user_id == user_id)
        .first()
    )
    if not cycle_session:
        raise NotFoundError("Cycle session")
    return cycle_session


def get_owned_revision(db: Session, user_id: str, revision_id: str) -> Revision:
    revision = (
        db.query(Revision)
        .join(Topic, Revision.topic_id == Topic.id)
        .join(Discipline, Topic.discipline_id == Discipline.id)
        .join(Study, Discipline.study_id == Study.id)
        .filter(Revision.id == revision_id, Study.user_id == user_id)
        .first()
    )
    if not revision:
        raise NotFoundError("Revision")
    return revision
