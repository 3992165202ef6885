import unittest

import httpx

from app.client.checkpoint import MemoryCheckpointStore
from app.client.context import StudyContext
from app.config import CYCLE_SESSION_STORAGE_KEY, SESSION_CEILING_MS, SESSION_STORAGE_KEY

from support import FakeClock, FakeTransport, sequential_ids


class StudyContextTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.transport = FakeTransport()
        self.store = MemoryCheckpointStore()
        self.clock = FakeClock()
        self.ids = sequential_ids()
        self.context = self.make_context()

    async def asyncTearDown(self) -> None:
        await self.context.close()

    def make_context(self) -> StudyContext:
        context = StudyContext(self.transport, self.store, clock=self.clock, install_teardown=False)
        context.engine.id_factory = self.ids
        return context

    async def test_cycle_session_time_is_credited_on_stop(self) -> None:
        descriptor = await self.context.start_cycle_session("cs-1")
        self.assertEqual(self.transport.cycle_starts, ["cs-1"])
        self.assertEqual(self.context.engine.active_session.topic_id, descriptor["topicId"])

        self.clock.advance(45 * 60_000)
        finalized = await self.context.stop_session()

        self.assertEqual(finalized.duration_ms, 45 * 60_000)
        self.assertEqual(self.transport.progress, [("cycle-1", "session-1", 45 * 60_000)])
        self.assertIsNone(self.context.tracker.active)
        self.assertIsNone(self.store.load(CYCLE_SESSION_STORAGE_KEY))

    async def test_free_session_is_not_credited(self) -> None:
        await self.context.start_session("topic-9", "disc-9", "study-9")
        self.clock.advance(60_000)

        await self.context.stop_session()

        self.assertEqual(self.transport.stopped, [("session-1", 60_000)])
        self.assertEqual(self.transport.progress, [])

    async def test_failed_progress_stays_pending_until_retried(self) -> None:
        await self.context.start_cycle_session("cs-1")
        self.clock.advance(20 * 60_000)
        self.transport.fail.add("update_cycle_progress")

        with self.assertLogs("app.client.context", level="WARNING"):
            finalized = await self.context.stop_session()

        # The time session itself was finalized
        self.assertEqual(finalized.duration_ms, 20 * 60_000)
        self.assertFalse(self.context.engine.is_running)
        self.assertEqual(self.context.tracker.pending.duration_ms, 20 * 60_000)
        self.assertIn("pending", self.store.load(CYCLE_SESSION_STORAGE_KEY))

        with self.assertRaises(httpx.ConnectError):
            await self.context.retry_cycle_progress()

        self.transport.fail.clear()
        await self.context.retry_cycle_progress()

        self.assertEqual(self.transport.progress, [("cycle-1", "session-1", 20 * 60_000)])
        self.assertIsNone(self.context.tracker.pending)
        self.assertIsNone(self.store.load(CYCLE_SESSION_STORAGE_KEY))

    async def test_refused_credit_is_dropped_and_timer_keeps_working(self) -> None:
        await self.context.start_cycle_session("cs-1")
        self.clock.advance(10 * 60_000)
        self.context.flush()
        self.transport.refuse["update_cycle_progress"] = 404

        reopened = self.make_context()
        self.addAsyncCleanup(reopened.engine.close)
        with self.assertLogs("app.client.cycle_tracker", level="WARNING"):
            await reopened.open()

        self.assertIsNone(reopened.tracker.pending)
        self.assertIsNone(self.store.load(CYCLE_SESSION_STORAGE_KEY))

        for _ in range(3):
            await reopened.start_session("topic-2", "disc-1", "study-1")
            self.assertTrue(reopened.engine.is_running)
        self.assertEqual(self.transport.progress, [])

    async def test_completed_cycle_refusing_credit_does_not_fail_stop(self) -> None:
        await self.context.start_cycle_session("cs-1")
        self.clock.advance(10 * 60_000)
        self.transport.refuse["update_cycle_progress"] = 409

        finalized = await self.context.stop_session()

        self.assertEqual(finalized.duration_ms, 10 * 60_000)
        self.assertIsNone(self.context.tracker.pending)
        self.assertIsNone(self.context.tracker.active)

    async def test_server_error_keeps_credit_for_next_start(self) -> None:
        await self.context.start_cycle_session("cs-1")
        self.clock.advance(10 * 60_000)
        self.transport.refuse["update_cycle_progress"] = 503

        await self.context.stop_session()
        await self.context.start_session("topic-2", "disc-1", "study-1")

        self.assertTrue(self.context.engine.is_running)
        self.assertEqual(self.context.tracker.pending.session_id, "session-1")

        del self.transport.refuse["update_cycle_progress"]
        self.clock.advance(60_000)
        await self.context.start_session("topic-3", "disc-1", "study-1")

        # Only the cycle session is credited, never the free session after it
        self.assertEqual(self.transport.progress, [("cycle-1", "session-1", 10 * 60_000)])
        self.assertIsNone(self.context.tracker.pending)

    async def test_switching_sessions_credits_the_previous_cycle_session(self) -> None:
        await self.context.start_cycle_session("cs-1")
        self.clock.advance(10 * 60_000)

        await self.context.start_session("topic-2", "disc-1", "study-1")

        self.assertEqual(self.transport.progress, [("cycle-1", "session-1", 10 * 60_000)])
        self.assertIsNone(self.context.tracker.active)
        self.assertEqual(self.context.engine.active_session.session_id, "session-2")

    async def test_flush_defers_credit_to_next_open(self) -> None:
        await self.context.start_cycle_session("cs-1")
        self.clock.advance(15 * 60_000)

        self.context.flush()

        self.assertEqual(self.transport.beacons, [("session-1", 15 * 60_000)])
        self.assertEqual(self.transport.progress, [])
        self.assertIsNone(self.store.load(SESSION_STORAGE_KEY))

        reopened = self.make_context()
        await reopened.open()

        self.assertEqual(self.transport.progress, [("cycle-1", "session-1", 15 * 60_000)])
        self.assertIsNone(reopened.tracker.pending)
        self.assertFalse(reopened.engine.is_running)

    async def test_open_credits_stale_cycle_session(self) -> None:
        await self.context.start_cycle_session("cs-1")
        await self.context.engine.close()

        self.clock.advance(2 * SESSION_CEILING_MS)
        reopened = self.make_context()
        await reopened.open()

        self.assertEqual(self.transport.stopped, [("session-1", SESSION_CEILING_MS)])
        self.assertEqual(self.transport.progress, [("cycle-1", "session-1", SESSION_CEILING_MS)])
        self.assertIsNone(self.store.load(CYCLE_SESSION_STORAGE_KEY))

    async def test_open_resumes_recent_cycle_session(self) -> None:
        await self.context.start_cycle_session("cs-1")
        await self.context.engine.close()

        self.clock.advance(5 * 60_000)
        reopened = self.make_context()
        self.addAsyncCleanup(reopened.engine.close)
        await reopened.open()

        self.assertTrue(reopened.engine.is_running)
        self.assertEqual(reopened.tracker.active["cycleId"], "cycle-1")
        self.assertEqual(self.transport.progress, [])

        self.clock.advance(5 * 60_000)
        await reopened.stop_session()
        self.assertEqual(self.transport.progress, [("cycle-1", "session-1", 10 * 60_000)])

    async def test_open_keeps_pending_when_server_unreachable(self) -> None:
        await self.context.start_cycle_session("cs-1")
        self.clock.advance(60_000)
        self.context.flush()
        self.transport.fail.add("update_cycle_progress")

        reopened = self.make_context()
        with self.assertLogs("app.client.context", level="WARNING"):
            await reopened.open()

        self.assertIsNotNone(reopened.tracker.pending)
        self.assertIn("pending", self.store.load(CYCLE_SESSION_STORAGE_KEY))

    async def test_close_releases_transport(self) -> None:
        await self.context.close()

        self.assertTrue(self.transport.closed)


if __name__ == "__main__":
    unittest.main()
