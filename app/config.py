import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

DB_PATH = os.getenv("STUDY_DB_PATH", str(BASE_DIR / "data" / "study.db"))
HOST = os.getenv("STUDY_HOST", "0.0.0.0")
PORT = int(os.getenv("STUDY_PORT", "8000"))
LOG_LEVEL = os.getenv("STUDY_LOG_LEVEL", "INFO").upper()

# Client side
SERVER_URL = os.getenv("STUDY_SERVER_URL", f"http://127.0.0.1:{PORT}")
CHECKPOINT_PATH = os.getenv(
    "STUDY_CHECKPOINT_PATH", str(Path.home() / ".study-planner" / "checkpoint.json")
)
DEFAULT_SESSION_TYPE = os.getenv("STUDY_DEFAULT_SESSION_TYPE", "study")

# Timer
SESSION_STORAGE_KEY = "active_study_session"
CYCLE_SESSION_STORAGE_KEY = "cycle_session"
SESSION_CEILING_MS = 60 * 60 * 1000
HEARTBEAT_INTERVAL_SECONDS = 30
TICK_INTERVAL_SECONDS = 1
MAX_STOP_DURATION_MS = 24 * 60 * 60 * 1000
EMPTY_SESSION_GRACE_MS = SESSION_CEILING_MS

# Cycle scheduling
CYCLE_HORIZON_DAYS = 14
SESSIONS_PER_DAY_CHOICES = (2, 3)
FIRST_SLOT_HOUR = 9
SLOT_SPACING_HOURS = 3
MS_PER_MINUTE = 60_000

# Revisions
PERIODIC_DAYS_OPTIONS = (1, 3, 5, 7, 10, 14, 20, 28, 30, 60, 90, 120)
