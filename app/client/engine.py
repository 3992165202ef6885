"""
Client-side study timer.

The engine owns at most one running time session. Each session is created
on the server as soon as it starts, checkpointed locally so it survives a
restart, and finalized on the server with its total elapsed time. All
server writes carry the running total, never an increment, so retries and
duplicated deliveries are harmless.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable

import httpx

from app.client.checkpoint import CheckpointStore
from app.config import (
    SESSION_STORAGE_KEY,
    SESSION_CEILING_MS,
    MAX_STOP_DURATION_MS,
    HEARTBEAT_INTERVAL_SECONDS,
    TICK_INTERVAL_SECONDS,
)

logger = logging.getLogger(__name__)


def epoch_ms() -> int:
    return int(round(time.time() * 1000))


@dataclass
class ActiveSession:
    session_id: str
    topic_id: str
    discipline_id: str
    study_id: str
    start_time: int  # epoch ms

    def to_checkpoint(self) -> dict:
        return {
            "sessionId": self.session_id,
            "topicId": self.topic_id,
            "disciplineId": self.discipline_id,
            "studyId": self.study_id,
            "startTime": self.start_time,
        }

    @classmethod
    def from_checkpoint(cls, record: dict) -> "ActiveSession":
        return cls(
            session_id=str(record["sessionId"]),
            topic_id=str(record["topicId"]),
            discipline_id=str(record["disciplineId"]),
            study_id=str(record["studyId"]),
            start_time=int(record["startTime"]),
        )


@dataclass(frozen=True)
class FinalizedSession:
    session_id: str
    topic_id: str
    discipline_id: str
    study_id: str
    duration_ms: int


class TimerEngine:
    def __init__(
        self,
        transport,
        store: CheckpointStore,
        clock: Callable[[], int] = epoch_ms,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        tick_interval: float = TICK_INTERVAL_SECONDS,
    ):
        self.transport = transport
        self.store = store
        self.clock = clock
        self.id_factory = id_factory
        self.heartbeat_interval = heartbeat_interval
        self.tick_interval = tick_interval

        self.active_session: ActiveSession | None = None
        self.topic_totals: dict[str, int] = {}
        self.discipline_totals: dict[str, int] = {}
        self.study_totals: dict[str, int] = {}
        self.tick_count = 0
        # Most recent session finalized by stop, flush or a stale restore
        self.last_finalized: FinalizedSession | None = None

        self._tick_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self.active_session is not None

    def current_elapsed(self) -> int:
        if not self.active_session:
            return 0
        return max(0, int(round(self.clock() - self.active_session.start_time)))

    def reported_elapsed(self) -> int:
        """Elapsed time as sent to the server, which rejects totals above MAX_STOP_DURATION_MS"""
        return min(self.current_elapsed(), MAX_STOP_DURATION_MS)

    def elapsed_for(self, topic_id: str) -> int:
        """Saved total for a topic plus the running session if it is on that topic"""
        active = self.current_elapsed() if self._is_active("topic_id", topic_id) else 0
        return self.topic_totals.get(topic_id, 0) + active

    def elapsed_for_discipline(self, discipline_id: str) -> int:
        active = self.current_elapsed() if self._is_active("discipline_id", discipline_id) else 0
        return self.discipline_totals.get(discipline_id, 0) + active

    def elapsed_for_study(self, study_id: str) -> int:
        active = self.current_elapsed() if self._is_active("study_id", study_id) else 0
        return self.study_totals.get(study_id, 0) + active

    async def start_session(self, topic_id: str, discipline_id: str, study_id: str) -> ActiveSession:
        """
        Start timing a topic, finalizing any running session first.

        If finalizing the previous session fails, the error propagates and
        no new session is started.
        """
        if self.active_session:
            await self.stop_session()

        session_id = self.id_factory()
        await self.transport.start_session(topic_id, session_id)

        session = ActiveSession(
            session_id=session_id,
            topic_id=topic_id,
            discipline_id=discipline_id,
            study_id=study_id,
            start_time=self.clock(),
        )
        self.store.save(SESSION_STORAGE_KEY, session.to_checkpoint())
        self._enter_running(session)

        logger.info("Study session %s started on topic %s", session_id, topic_id)
        return session

    async def stop_session(self) -> FinalizedSession | None:
        """
        Finalize the running session on the server.

        On failure the error propagates and the session stays running with
        its checkpoint intact, so the caller can retry.
        """
        session = self.active_session
        if not session:
            return None

        duration = self.reported_elapsed()
        result = await self.transport.stop_session(session.session_id, duration)
        if result is None:
            logger.warning("Server does not know session %s, clearing it locally", session.session_id)

        finalized = self._finalize(session, duration)
        logger.info("Study session %s stopped after %d ms", session.session_id, duration)
        return finalized

    def flush(self) -> None:
        """
        Best-effort delivery of the running total at teardown.

        The total is sent twice through independent transports because
        neither outcome can be observed at this point; the server treats the
        repeated stop as an overwrite. The checkpoint is cleared afterwards
        so a later restore does not count the session again.
        """
        record = self.store.load(SESSION_STORAGE_KEY)
        if not record:
            return
        try:
            session = ActiveSession.from_checkpoint(record)
        except (KeyError, TypeError, ValueError):
            self.store.clear(SESSION_STORAGE_KEY)
            return

        duration = min(max(0, int(round(self.clock() - session.start_time))), MAX_STOP_DURATION_MS)
        try:
            self.transport.send_beacon(session.session_id, duration)
        except httpx.HTTPError as e:
            logger.debug("Beacon for session %s failed: %s", session.session_id, e)
        try:
            self.transport.stop_session_sync(session.session_id, duration)
        except httpx.HTTPError as e:
            logger.debug("Synchronous stop for session %s failed: %s", session.session_id, e)

        self._finalize(session, duration)

    async def restore_session(self) -> bool:
        """
        Resume the checkpointed session after a restart.

        Returns True when a session is running afterwards. A checkpoint older
        than SESSION_CEILING_MS is treated as abandoned and finalized with its
        duration capped at the ceiling.
        """
        if self.active_session:
            return True

        record = self.store.load(SESSION_STORAGE_KEY)
        if not record:
            return False
        try:
            session = ActiveSession.from_checkpoint(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed session checkpoint: %s", e)
            self.store.clear(SESSION_STORAGE_KEY)
            return False

        age = self.clock() - session.start_time
        if age < SESSION_CEILING_MS:
            self._enter_running(session)
            logger.info("Study session %s restored (%d ms elapsed)", session.session_id, max(age, 0))
            return True

        duration = min(age, SESSION_CEILING_MS)
        try:
            await self.transport.stop_session(session.session_id, duration)
        except httpx.HTTPError as e:
            # Keep the checkpoint so the next restore tries again
            logger.warning("Could not finalize stale session %s: %s", session.session_id, e)
            return False

        self._finalize(session, duration)
        logger.warning(
            "Stale session %s finalized at the %d ms ceiling", session.session_id, SESSION_CEILING_MS
        )
        return False

    async def send_heartbeat(self) -> None:
        """Push the running total to the server; failures are only logged"""
        session = self.active_session
        if not session:
            return
        try:
            await self.transport.heartbeat(session.session_id, self.reported_elapsed())
        except httpx.HTTPError as e:
            logger.warning("Heartbeat for session %s failed: %s", session.session_id, e)

    async def load_totals(self, topic_ids: list[str]) -> None:
        """Merge server-side totals into the saved totals"""
        if not topic_ids:
            return
        totals = await self.transport.get_totals(topic_ids)
        self.topic_totals.update(totals.get("topicTotals", {}))
        self.discipline_totals.update(totals.get("disciplineTotals", {}))
        self.study_totals.update(totals.get("studyTotals", {}))

    async def close(self) -> None:
        """Stop the background loops; the checkpoint is kept for the next start"""
        tasks = [t for t in (self._tick_task, self._heartbeat_task) if t is not None]
        self._cancel_loops()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _is_active(self, field: str, value: str) -> bool:
        return self.active_session is not None and getattr(self.active_session, field) == value

    def _enter_running(self, session: ActiveSession) -> None:
        self.active_session = session
        self._cancel_loops()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._tick_task = loop.create_task(self._tick_loop())
        self._heartbeat_task = loop.create_task(self._heartbeat_loop())

    def _finalize(self, session: ActiveSession, duration: int) -> FinalizedSession:
        self._add_total(self.topic_totals, session.topic_id, duration)
        self._add_total(self.discipline_totals, session.discipline_id, duration)
        self._add_total(self.study_totals, session.study_id, duration)
        self.store.clear(SESSION_STORAGE_KEY)
        if self.active_session and self.active_session.session_id == session.session_id:
            self.active_session = None
            self._cancel_loops()

        self.last_finalized = FinalizedSession(
            session_id=session.session_id,
            topic_id=session.topic_id,
            discipline_id=session.discipline_id,
            study_id=session.study_id,
            duration_ms=duration,
        )
        return self.last_finalized

    @staticmethod
    def _add_total(totals: dict[str, int], key: str, duration: int) -> None:
        totals[key] = totals.get(key, 0) + duration

    def _cancel_loops(self) -> None:
        current = _current_task()
        for task in (self._tick_task, self._heartbeat_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._tick_task = None
        self._heartbeat_task = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.tick_count += 1

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.send_heartbeat()


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
