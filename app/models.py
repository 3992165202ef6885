import uuid
from datetime import datetime
from sqlalchemy import ForeignKey, DateTime, Integer, String, Text, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class Study(Base):
    __tablename__ = "studies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    disciplines: Mapped[list["Discipline"]] = relationship(
        "Discipline", back_populates="study", cascade="all, delete-orphan"
    )


class Discipline(Base):
    __tablename__ = "disciplines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    study_id: Mapped[str] = mapped_column(String(36), ForeignKey("studies.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    study: Mapped["Study"] = relationship("Study", back_populates="disciplines")
    topics: Mapped[list["Topic"]] = relationship(
        "Topic", back_populates="discipline", cascade="all, delete-orphan"
    )


class Topic(Base):
    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    discipline_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("disciplines.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_started")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    discipline: Mapped["Discipline"] = relationship("Discipline", back_populates="topics")
    time_sessions: Mapped[list["TimeSession"]] = relationship(
        "TimeSession", back_populates="topic", cascade="all, delete-orphan"
    )
    revisions: Mapped[list["Revision"]] = relationship(
        "Revision", back_populates="topic", cascade="all, delete-orphan"
    )


class TimeSession(Base):
    __tablename__ = "time_sessions"

    # Generated by the client so a checkpoint can refer to it before the server answers
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    topic_id: Mapped[str] = mapped_column(String(36), ForeignKey("topics.id", ondelete="CASCADE"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    session_type: Mapped[str] = mapped_column(String(20), nullable=False, default="study")
    # Set once the session has been credited to a cycle; a repeated credit is ignored
    credited_cycle_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("study_cycles.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    topic: Mapped["Topic"] = relationship("Topic", back_populates="time_sessions")

    __table_args__ = (Index("idx_time_session_topic_id", "topic_id"),)


class StudyCycle(Base):
    __tablename__ = "study_cycles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    hours_per_week: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    # Comma separated weekday numbers, 0 = Sunday
    study_days: Mapped[str] = mapped_column(String(20), nullable=False, default="1,2,3,4,5")
    min_session_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    max_session_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=120)
    total_required_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    topics: Mapped[list["CycleTopic"]] = relationship(
        "CycleTopic",
        back_populates="cycle",
        cascade="all, delete-orphan",
        order_by="CycleTopic.order",
    )
    sessions: Mapped[list["CycleSession"]] = relationship(
        "CycleSession",
        back_populates="cycle",
        cascade="all, delete-orphan",
        order_by="CycleSession.scheduled_date",
    )

    @property
    def study_day_set(self) -> set[int]:
        return {int(day) for day in self.study_days.split(",") if day != ""}


class CycleTopic(Base):
    __tablename__ = "cycle_topics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cycle_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("study_cycles.id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[str] = mapped_column(String(36), ForeignKey("topics.id", ondelete="CASCADE"), nullable=False)
    importance: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    knowledge: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cycle: Mapped["StudyCycle"] = relationship("StudyCycle", back_populates="topics")
    topic: Mapped["Topic"] = relationship("Topic")

    __table_args__ = (
        Index("idx_cycle_topic_cycle_id", "cycle_id"),
        Index("idx_cycle_topic_topic_id", "topic_id"),
    )


class CycleSession(Base):
    __tablename__ = "cycle_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cycle_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("study_cycles.id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[str] = mapped_column(String(36), ForeignKey("topics.id", ondelete="CASCADE"), nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    actual_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_session_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("time_sessions.id", ondelete="SET NULL"), nullable=True
    )

    cycle: Mapped["StudyCycle"] = relationship("StudyCycle", back_populates="sessions")
    topic: Mapped["Topic"] = relationship("Topic")

    __table_args__ = (
        Index("idx_cycle_session_cycle_id", "cycle_id"),
        Index("idx_cycle_session_status", "status"),
    )


class Revision(Base):
    __tablename__ = "revisions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    topic_id: Mapped[str] = mapped_column(String(36), ForeignKey("topics.id", ondelete="CASCADE"), nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    topic: Mapped["Topic"] = relationship("Topic", back_populates="revisions")
