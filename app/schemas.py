from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.config import MAX_STOP_DURATION_MS, DEFAULT_SESSION_TYPE, PERIODIC_DAYS_OPTIONS


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class ActionResponse(CamelModel):
    success: bool
    message: str


class HealthResponse(CamelModel):
    status: str
    version: str


# Study hierarchy


class StudyCreateRequest(CamelModel):
    name: str = Field(min_length=1)
    description: str | None = None


class StudyResponse(CamelModel):
    id: str
    name: str
    description: str | None
    created_at: datetime
    discipline_count: int = 0
    topic_count: int = 0


class DisciplineCreateRequest(CamelModel):
    name: str = Field(min_length=1)


class DisciplineResponse(CamelModel):
    id: str
    study_id: str
    name: str
    created_at: datetime


class TopicCreateRequest(CamelModel):
    name: str = Field(min_length=1)
    notes: str | None = None


class TopicResponse(CamelModel):
    id: str
    discipline_id: str
    name: str
    status: str
    notes: str | None
    created_at: datetime


# Timer


class TimerStartRequest(CamelModel):
    topic_id: str
    session_id: UUID
    session_type: str = Field(default=DEFAULT_SESSION_TYPE, pattern="^(study|review|practice)$")


class TimerStopRequest(CamelModel):
    session_id: UUID
    duration: int = Field(ge=0, le=MAX_STOP_DURATION_MS)


class HeartbeatRequest(CamelModel):
    session_id: UUID
    # Historical name: always the running total, never an increment
    delta_ms: int = Field(ge=0, le=MAX_STOP_DURATION_MS)


class HeartbeatResponse(CamelModel):
    success: bool


class TimeSessionResponse(CamelModel):
    id: str
    topic_id: str
    start_time: datetime
    end_time: datetime | None
    duration_ms: int
    session_type: str


class TotalsRequest(CamelModel):
    topic_ids: list[str] = Field(default_factory=list)


class TotalsResponse(CamelModel):
    topic_totals: dict[str, int]
    discipline_totals: dict[str, int]
    study_totals: dict[str, int]


# Cycles


class CycleTopicInput(CamelModel):
    topic_id: str
    importance: int = Field(ge=1, le=5)
    knowledge: int = Field(ge=1, le=5)


class CycleCreateRequest(CamelModel):
    name: str = Field(min_length=1)
    topics: list[CycleTopicInput] = Field(default_factory=list)
    hours_per_week: int = Field(default=10, ge=1, le=168)
    study_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    min_session_duration: int = Field(default=30, ge=1)
    max_session_duration: int = Field(default=120, ge=1)

    @field_validator("study_days")
    @classmethod
    def validate_study_days(cls, value: list[int]) -> list[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("study days must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))

    @model_validator(mode="after")
    def validate_consistency(self):
        if self.min_session_duration > self.max_session_duration:
            raise ValueError("minSessionDuration must not exceed maxSessionDuration")
        topic_ids = [t.topic_id for t in self.topics]
        if len(topic_ids) != len(set(topic_ids)):
            raise ValueError("each topic may appear only once in a cycle")
        return self


class CycleUpdateRequest(CycleCreateRequest):
    pass


class StudyCycleResponse(CamelModel):
    id: str
    name: str
    status: str
    hours_per_week: int
    study_days: list[int]
    min_session_duration: int
    max_session_duration: int
    total_required_time: int
    completed_time: int
    started_at: datetime
    completed_at: datetime | None

    @field_validator("study_days", mode="before")
    @classmethod
    def parse_study_days(cls, value):
        if isinstance(value, str):
            return [int(day) for day in value.split(",") if day != ""]
        return value


class CycleTopicResponse(CamelModel):
    id: str
    topic_id: str
    topic_name: str
    importance: int
    knowledge: int
    priority: int
    required_time: int
    completed_time: int
    order: int


class CycleDetailResponse(StudyCycleResponse):
    topics: list[CycleTopicResponse]
    session_count: int


class CycleSessionResponse(CamelModel):
    id: str
    cycle_id: str
    topic_id: str
    scheduled_date: datetime
    duration: int
    status: str
    actual_duration: int
    time_session_id: str | None


class CycleProgressRequest(CamelModel):
    time_session_id: str
    # Milliseconds, truncated to whole minutes on the server
    actual_duration: int = Field(ge=0, le=MAX_STOP_DURATION_MS)


class CycleSessionStartResponse(CamelModel):
    id: str
    cycle_id: str
    cycle_name: str
    topic_id: str
    topic_name: str
    discipline_id: str
    discipline_name: str
    study_id: str
    duration: int
    status: str


class DisciplineScoresInput(CamelModel):
    id: str
    name: str
    topic_count: int = 0
    importance: int = Field(ge=1, le=5)
    knowledge: int = Field(ge=1, le=5)


class DistributionRequest(CamelModel):
    disciplines: list[DisciplineScoresInput]
    total_available_hours: float = Field(gt=0)


class DisciplineAllocation(CamelModel):
    id: str
    name: str
    topic_count: int
    importance: int
    knowledge: int
    score: float
    estimated_hours: float
    percentage: int


class DistributionResponse(CamelModel):
    disciplines: list[DisciplineAllocation]
    total_hours: float


# Revisions


class RevisionCreateRequest(CamelModel):
    topic_id: str
    dates: list[datetime]


class RevisionScheduleRequest(CamelModel):
    topic_id: str
    base_date: datetime | None = None
    day_offsets: list[int] = Field(default_factory=list)
    weekdays: list[int] = Field(default_factory=list)
    number_of_weeks: int = Field(default=0, ge=0, le=52)

    @field_validator("day_offsets")
    @classmethod
    def validate_day_offsets(cls, value: list[int]) -> list[int]:
        unknown = sorted(set(value) - set(PERIODIC_DAYS_OPTIONS))
        if unknown:
            raise ValueError(f"unsupported day offsets: {unknown}")
        return value

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("weekdays must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))


class RevisionCreateResponse(CamelModel):
    created: int
    message: str


class RevisionUpdateRequest(CamelModel):
    completed: bool


class RevisionDeleteRequest(CamelModel):
    revision_ids: list[str]


class RevisionDeleteResponse(CamelModel):
    success: bool
    deleted: int


class RevisionResponse(CamelModel):
    id: str
    topic_id: str
    scheduled_date: datetime
    completed: bool
    completed_at: datetime | None
    created_at: datetime


class RevisionDetailResponse(RevisionResponse):
    topic_name: str
    discipline_id: str
    discipline_name: str
    study_id: str
    study_name: str


# Statistics


class PeriodSummary(CamelModel):
    total_ms: int
    total_formatted: str
    days_studied: int
    avg_per_day_formatted: str
    session_count: int


class SessionSummary(CamelModel):
    id: str
    topic_id: str
    topic_name: str
    date: str
    start_time: str  # HH:MM format
    end_time: str | None  # HH:MM format
    duration_formatted: str
    session_type: str


class StatisticsResponse(CamelModel):
    this_week: PeriodSummary
    this_month: PeriodSummary
    recent_sessions: list[SessionSummary]
