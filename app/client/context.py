import atexit
import logging

import httpx

from app.client.checkpoint import CheckpointStore, FileCheckpointStore
from app.client.cycle_tracker import CycleSessionTracker
from app.client.engine import TimerEngine, FinalizedSession, epoch_ms
from app.client.transport import StudyApiClient
from app.config import SERVER_URL, CHECKPOINT_PATH

logger = logging.getLogger(__name__)


class StudyContext:
    """
    Top-level client state: one timer engine and one cycle session tracker
    sharing a transport and a checkpoint store.

    ``open()`` recovers whatever the previous run left behind and installs
    the teardown flush; ``close()`` undoes both. Crediting cycle progress
    never blocks the timer: a credit the server cannot take right now stays
    pending and is retried on the next start.
    """

    def __init__(self, transport, store: CheckpointStore, clock=epoch_ms, install_teardown: bool = True):
        self.transport = transport
        self.store = store
        self.engine = TimerEngine(transport, store, clock=clock)
        self.tracker = CycleSessionTracker(transport, store)
        self.install_teardown = install_teardown
        self._teardown_installed = False

    @classmethod
    def from_config(cls, user_id: str) -> "StudyContext":
        return cls(StudyApiClient(SERVER_URL, user_id), FileCheckpointStore(CHECKPOINT_PATH))

    async def open(self) -> None:
        self.tracker.restore()
        previous = self.engine.last_finalized
        resumed = await self.engine.restore_session()
        finalized = self.engine.last_finalized
        if not resumed and finalized is not previous and finalized and self.tracker.active:
            self.tracker.defer(finalized)
            self.tracker.release()

        await self._retry_pending()

        if self.install_teardown and not self._teardown_installed:
            atexit.register(self.flush)
            self._teardown_installed = True

    async def start_session(self, topic_id: str, discipline_id: str, study_id: str):
        """Start a free study session (not tied to a scheduled cycle session)"""
        await self.stop_session()
        await self._retry_pending()
        self.tracker.release()
        return await self.engine.start_session(topic_id, discipline_id, study_id)

    async def start_cycle_session(self, cycle_session_id: str) -> dict:
        """Start a scheduled cycle session and time it"""
        await self.stop_session()
        await self._retry_pending()
        descriptor = await self.tracker.start(cycle_session_id)
        await self.engine.start_session(
            descriptor["topicId"], descriptor["disciplineId"], descriptor["studyId"]
        )
        return descriptor

    async def stop_session(self) -> FinalizedSession | None:
        """
        Stop the timer and credit the time to the tracked cycle session, if any.

        A failed stop propagates. Once the stop went through, a failed credit
        is only logged and left pending.
        """
        finalized = await self.engine.stop_session()
        if finalized and finalized.duration_ms > 0 and self.tracker.active:
            try:
                await self.tracker.record_progress(finalized)
            except httpx.HTTPError as e:
                logger.warning("Cycle progress for session %s left pending: %s", finalized.session_id, e)
        return finalized

    async def retry_cycle_progress(self) -> dict | None:
        """Deliver the pending cycle credit now; errors propagate"""
        return await self.tracker.send_pending()

    def flush(self) -> None:
        """Teardown hook: deliver the running total and keep cycle credit for later"""
        previous = self.engine.last_finalized
        self.engine.flush()
        finalized = self.engine.last_finalized
        if finalized is not previous and finalized and finalized.duration_ms > 0 and self.tracker.active:
            self.tracker.defer(finalized)
            self.tracker.release()

    async def close(self) -> None:
        if self._teardown_installed:
            atexit.unregister(self.flush)
            self._teardown_installed = False
        await self.engine.close()
        await self.transport.aclose()

    async def _retry_pending(self) -> None:
        if not self.tracker.pending:
            return
        try:
            await self.tracker.send_pending()
        except httpx.HTTPError as e:
            logger.warning("Cycle progress still pending: %s", e)
