"""
Cycle scheduling: topic priority, time allocation and session calendar.

Everything here is pure; app.services.cycles persists the results.
Scheduler math is in minutes while time sessions are in milliseconds, and
ms_to_minutes is the only conversion between the two.
"""
import random
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.config import (
    CYCLE_HORIZON_DAYS,
    SESSIONS_PER_DAY_CHOICES,
    FIRST_SLOT_HOUR,
    SLOT_SPACING_HOURS,
    MS_PER_MINUTE,
)

# Knowledge and importance are rated on a 1-5 scale
MAX_SCORE = 5

# Study-time distribution: every discipline gets this share of the mean as a floor
KNOWLEDGE_SCALE_INVERSE = 6
FLOOR_PERCENTAGE = 0.6


@dataclass(frozen=True)
class RankedTopic:
    topic_id: str
    importance: int
    knowledge: int
    priority: int
    required_time: int
    order: int


@dataclass(frozen=True)
class PlannedSession:
    topic_id: str
    scheduled_date: datetime
    duration: int


def calculate_priority(importance: int, knowledge: int) -> int:
    """Higher importance and lower knowledge raise priority (range 2-14)"""
    return importance * 2 + (MAX_SCORE - knowledge)


def calculate_required_time(importance: int, knowledge: int) -> int:
    """Minutes a topic needs in a cycle (range 30-230)"""
    return importance * 30 + (MAX_SCORE - knowledge) * 20


def ms_to_minutes(duration_ms: int) -> int:
    """Truncate milliseconds to whole minutes, never rounding up"""
    return duration_ms // MS_PER_MINUTE


def js_weekday(day: datetime) -> int:
    """Weekday number with 0 = Sunday, the convention used for study days"""
    return (day.weekday() + 1) % 7


def rank_topics(topics) -> list[RankedTopic]:
    """
    Compute priority and required time per topic and rank them.

    ``topics`` is an iterable of objects with ``topic_id``, ``importance`` and
    ``knowledge``. The result is sorted by descending priority; ties keep
    their input order since ``sorted`` is stable.
    """
    scored = [
        (
            topic.topic_id,
            topic.importance,
            topic.knowledge,
            calculate_priority(topic.importance, topic.knowledge),
            calculate_required_time(topic.importance, topic.knowledge),
        )
        for topic in topics
    ]
    scored = sorted(scored, key=lambda item: item[3], reverse=True)
    return [
        RankedTopic(
            topic_id=topic_id,
            importance=importance,
            knowledge=knowledge,
            priority=priority,
            required_time=required_time,
            order=index,
        )
        for index, (topic_id, importance, knowledge, priority, required_time) in enumerate(scored)
    ]


def total_required_time(ranked: list[RankedTopic]) -> int:
    return sum(topic.required_time for topic in ranked)


def generate_cycle_sessions(
    ranked: list[RankedTopic],
    study_days: set[int],
    min_duration: int,
    max_duration: int,
    start: datetime | None = None,
    rng: random.Random | None = None,
) -> list[PlannedSession]:
    """
    Lay out study sessions over the next CYCLE_HORIZON_DAYS days.

    On each study day 2 or 3 sessions are drawn (never more than there are
    topics) at 9:00, 12:00 and 15:00, each with a random duration in
    [min_duration, max_duration]. Topics are handed out round-robin in
    priority order across the whole horizon, so session count is not
    weighted by priority.
    """
    if not ranked:
        return []
    if start is None:
        start = datetime.now()
    if rng is None:
        rng = random.Random()

    first_day = start.replace(hour=0, minute=0, second=0, microsecond=0)
    planned: list[PlannedSession] = []
    topic_count = len(ranked)

    for offset in range(CYCLE_HORIZON_DAYS):
        day = first_day + timedelta(days=offset)
        if js_weekday(day) not in study_days:
            continue

        sessions_today = min(rng.choice(SESSIONS_PER_DAY_CHOICES), topic_count)
        for slot in range(sessions_today):
            topic = ranked[len(planned) % topic_count]
            planned.append(
                PlannedSession(
                    topic_id=topic.topic_id,
                    scheduled_date=day.replace(hour=FIRST_SLOT_HOUR + SLOT_SPACING_HOURS * slot),
                    duration=rng.randint(min_duration, max_duration),
                )
            )

    return planned


def calculate_study_time_distribution(disciplines, total_available_hours: float) -> dict:
    """
    Split the available weekly hours across disciplines.

    Each discipline first receives a floor of FLOOR_PERCENTAGE of the mean
    share; the rest is distributed proportionally to
    importance * (6 - knowledge). Returns a dict with ``disciplines`` (sorted
    by estimated hours, descending) and ``total_hours``.
    """
    if not disciplines:
        return {"disciplines": [], "total_hours": 0}

    count = len(disciplines)
    floor_hours = (total_available_hours / count) * FLOOR_PERCENTAGE
    remaining_hours = total_available_hours - floor_hours * count

    factors = [d.importance * (KNOWLEDGE_SCALE_INVERSE - d.knowledge) for d in disciplines]
    factor_sum = sum(factors)

    allocations = []
    for discipline, factor in zip(disciplines, factors):
        extra = (factor / factor_sum) * remaining_hours if factor_sum > 0 else 0
        final_hours = floor_hours + extra
        allocations.append(
            {
                "id": discipline.id,
                "name": discipline.name,
                "topic_count": discipline.topic_count,
                "importance": discipline.importance,
                "knowledge": discipline.knowledge,
                "score": round(factor, 2),
                "estimated_hours": round(final_hours, 1),
                "percentage": round(final_hours / total_available_hours * 100),
            }
        )

    allocations.sort(key=lambda a: a["estimated_hours"], reverse=True)
    return {"disciplines": allocations, "total_hours": round(total_available_hours, 1)}
