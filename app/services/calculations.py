from datetime import datetime

from app.models import TimeSession


def format_duration(milliseconds: int) -> str:
    """Format milliseconds as HH:MM:SS"""
    hours, remainder = divmod(abs(milliseconds) // 1000, 3600)
    minutes, secs = divmod(remainder, 60)
    sign = "-" if milliseconds < 0 else ""
    return f"{sign}{int(hours):02d}:{int(minutes):02d}:{int(secs):02d}"


def format_duration_short(milliseconds: int) -> str:
    """Format milliseconds as HH:MM (without seconds)"""
    hours, remainder = divmod(abs(milliseconds) // 1000, 3600)
    minutes, _ = divmod(remainder, 60)
    sign = "-" if milliseconds < 0 else ""
    return f"{sign}{int(hours):02d}:{int(minutes):02d}"


def format_time(dt: datetime) -> str:
    """Format datetime as HH:MM"""
    return dt.strftime("%H:%M")


def calculate_session_ms(session: TimeSession, now: datetime | None = None) -> int:
    """
    Duration of a time session in milliseconds.

    Finalized sessions report their stored total. Running ones report the
    larger of the last heartbeat and the wall clock since start, since a
    heartbeat may lag behind by up to one interval.
    """
    if session.end_time is not None:
        return session.duration_ms
    if now is None:
        now = datetime.now()
    elapsed = int((now - session.start_time).total_seconds() * 1000)
    return max(session.duration_ms, elapsed, 0)
