import logging

import httpx

from app.client.checkpoint import CheckpointStore
from app.client.engine import FinalizedSession
from app.config import CYCLE_SESSION_STORAGE_KEY

logger = logging.getLogger(__name__)


class CycleSessionTracker:
    """
    Remembers which scheduled cycle session the running timer belongs to.

    The descriptor returned by the server when the cycle session starts is
    checkpointed under its own key. A finished time session that could not be
    credited yet is kept as ``pending`` in the same record, together with the
    cycle it belongs to, so it survives switching to another session.
    """

    def __init__(self, transport, store: CheckpointStore):
        self.transport = transport
        self.store = store
        self.active: dict | None = None
        self.pending: FinalizedSession | None = None
        self.pending_cycle_id: str | None = None

    async def start(self, cycle_session_id: str) -> dict:
        descriptor = await self.transport.start_cycle_session(cycle_session_id)
        self.active = descriptor
        self._save()
        logger.info("Cycle session %s started for cycle %s", cycle_session_id, descriptor["cycleId"])
        return descriptor

    def release(self) -> None:
        """Stop tracking the cycle session; pending credit is kept"""
        self.active = None
        self._save()

    def defer(self, finalized: FinalizedSession) -> None:
        """Keep a finished session of the tracked cycle for crediting later"""
        if not self.active:
            return
        self.pending = finalized
        self.pending_cycle_id = self.active["cycleId"]
        self._save()

    async def record_progress(self, finalized: FinalizedSession) -> dict | None:
        """
        Credit a finished time session to the tracked cycle and stop tracking it.

        Transport errors and server errors propagate with the credit left
        pending so it can be retried; the server ignores a repeated credit of
        the same time session.
        """
        if not self.active:
            return None
        self.defer(finalized)
        self.release()
        return await self.send_pending()

    async def send_pending(self) -> dict | None:
        """
        Deliver the pending credit, if any.

        A 4xx answer (cycle deleted or completed, time session gone) is final:
        the credit is logged and dropped instead of being retried forever.
        """
        finalized, cycle_id = self.pending, self.pending_cycle_id
        if not finalized or not cycle_id:
            return None

        try:
            result = await self.transport.update_cycle_progress(
                cycle_id, finalized.session_id, finalized.duration_ms
            )
        except httpx.HTTPStatusError as e:
            if not e.response.is_client_error:
                raise
            logger.warning(
                "Cycle %s refused credit for session %s (HTTP %d), dropping it",
                cycle_id,
                finalized.session_id,
                e.response.status_code,
            )
            result = None
        else:
            logger.info(
                "Credited %d ms from session %s to cycle %s",
                finalized.duration_ms,
                finalized.session_id,
                cycle_id,
            )

        self.pending = None
        self.pending_cycle_id = None
        self._save()
        return result

    def restore(self) -> bool:
        record = self.store.load(CYCLE_SESSION_STORAGE_KEY)
        if not record:
            return False
        self.active = record.get("descriptor")
        pending = record.get("pending")
        cycle_id = record.get("pendingCycleId")
        try:
            self.pending = FinalizedSession(**pending) if pending and cycle_id else None
        except TypeError as e:
            logger.warning("Dropping malformed pending cycle progress: %s", e)
            self.pending = None
        self.pending_cycle_id = cycle_id if self.pending else None
        return self.active is not None or self.pending is not None

    def clear(self) -> None:
        self.active = None
        self.pending = None
        self.pending_cycle_id = None
        self.store.clear(CYCLE_SESSION_STORAGE_KEY)

    def _save(self) -> None:
        if not self.active and not self.pending:
            self.store.clear(CYCLE_SESSION_STORAGE_KEY)
            return
        record = {"descriptor": self.active}
        if self.pending:
            record["pendingCycleId"] = self.pending_cycle_id
            record["pending"] = {
                "session_id": self.pending.session_id,
                "topic_id": self.pending.topic_id,
                "discipline_id": self.pending.discipline_id,
                "study_id": self.pending.study_id,
                "duration_ms": self.pending.duration_ms,
            }
        self.store.save(CYCLE_SESSION_STORAGE_KEY, record)
