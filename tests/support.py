import tempfile
import unittest
from pathlib import Path

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.models import Study, Discipline, Topic


class DatabaseTestCase(unittest.TestCase):
    """Fresh SQLite database per test"""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.db_path = Path(self.tmp_dir.name) / "test.db"
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )
        Base.metadata.create_all(bind=self.engine)
        self.db = self.SessionLocal()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()
        self.tmp_dir.cleanup()

    def make_topics(self, *names: str, user_id: str = "user-1") -> list[Topic]:
        study = Study(user_id=user_id, name="Exam prep")
        discipline = Discipline(study=study, name="Mathematics")
        topics = [Topic(discipline=discipline, name=name) for name in names]
        self.db.add(study)
        self.db.commit()
        for topic in topics:
            self.db.refresh(topic)
        return topics


class FakeClock:
    def __init__(self, now: int = 1_760_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeTransport:
    """Records every call made by the client; failures are switched on per method"""

    def __init__(self):
        self.started: list[tuple[str, str]] = []
        self.stopped: list[tuple[str, int]] = []
        self.heartbeats: list[tuple[str, int]] = []
        self.beacons: list[tuple[str, int]] = []
        self.sync_stops: list[tuple[str, int]] = []
        self.progress: list[tuple[str, str, int]] = []
        self.cycle_starts: list[str] = []
        self.fail: set[str] = set()
        # method name -> HTTP status the server answers with
        self.refuse: dict[str, int] = {}
        self.unknown_sessions: set[str] = set()
        self.totals = {"topicTotals": {}, "disciplineTotals": {}, "studyTotals": {}}
        self.descriptor = {
            "id": "cs-1",
            "cycleId": "cycle-1",
            "cycleName": "Finals",
            "topicId": "topic-1",
            "topicName": "Limits",
            "disciplineId": "disc-1",
            "disciplineName": "Mathematics",
            "studyId": "study-1",
            "duration": 45,
            "status": "in_progress",
        }
        self.closed = False

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail:
            raise httpx.ConnectError(f"{name} unavailable")
        if name in self.refuse:
            request = httpx.Request("POST", f"http://planner.test/{name}")
            response = httpx.Response(self.refuse[name], request=request)
            raise httpx.HTTPStatusError(f"{name} refused", request=request, response=response)

    async def start_session(self, topic_id, session_id):
        self._maybe_fail("start_session")
        self.started.append((topic_id, session_id))
        return {"id": session_id, "topicId": topic_id, "durationMs": 0}

    async def stop_session(self, session_id, duration):
        self._maybe_fail("stop_session")
        self.stopped.append((session_id, duration))
        if session_id in self.unknown_sessions:
            return None
        return {"id": session_id, "durationMs": duration}

    async def heartbeat(self, session_id, total_ms):
        self._maybe_fail("heartbeat")
        self.heartbeats.append((session_id, total_ms))
        return {"success": True}

    async def get_totals(self, topic_ids):
        self._maybe_fail("get_totals")
        return self.totals

    async def start_cycle_session(self, cycle_session_id):
        self._maybe_fail("start_cycle_session")
        self.cycle_starts.append(cycle_session_id)
        return dict(self.descriptor, id=cycle_session_id)

    async def update_cycle_progress(self, cycle_id, time_session_id, actual_duration):
        self._maybe_fail("update_cycle_progress")
        self.progress.append((cycle_id, time_session_id, actual_duration))
        return {"id": cycle_id}

    def send_beacon(self, session_id, duration):
        self._maybe_fail("send_beacon")
        self.beacons.append((session_id, duration))
        return True

    def stop_session_sync(self, session_id, duration):
        self._maybe_fail("stop_session_sync")
        self.sync_stops.append((session_id, duration))

    async def aclose(self):
        self.closed = True


def sequential_ids(prefix: str = "session"):
    counter = iter(range(1, 10_000))
    return lambda: f"{prefix}-{next(counter)}"
