import logging
import threading

import httpx

logger = logging.getLogger(__name__)

# Unload-time requests must not hold up interpreter shutdown
BEACON_TIMEOUT_SECONDS = 2.0


class StudyApiClient:
    """JSON client for the study planner API, authenticated as one user"""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-User-Id": user_id}
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=self.headers, timeout=timeout
        )

    async def start_session(self, topic_id: str, session_id: str) -> dict:
        return await self._post("/api/timer/start", {"topicId": topic_id, "sessionId": session_id})

    async def stop_session(self, session_id: str, duration: int) -> dict | None:
        return await self._post("/api/timer/stop", {"sessionId": session_id, "duration": duration})

    async def heartbeat(self, session_id: str, total_ms: int) -> dict:
        return await self._post("/api/timer/heartbeat", {"sessionId": session_id, "deltaMs": total_ms})

    async def get_totals(self, topic_ids: list[str]) -> dict:
        return await self._post("/api/timer/totals", {"topicIds": topic_ids})

    async def start_cycle_session(self, cycle_session_id: str) -> dict:
        return await self._post(f"/api/cycle-sessions/{cycle_session_id}/start", {})

    async def update_cycle_progress(self, cycle_id: str, time_session_id: str, actual_duration: int) -> dict:
        return await self._post(
            f"/api/cycles/{cycle_id}/progress",
            {"timeSessionId": time_session_id, "actualDuration": actual_duration},
        )

    def send_beacon(self, session_id: str, duration: int) -> bool:
        """
        Fire-and-forget stop request on a daemon thread.

        Returns whether the transmission was queued; its outcome is never
        observed.
        """
        payload = {"sessionId": session_id, "duration": duration}
        try:
            thread = threading.Thread(target=self._post_quietly, args=(payload,), daemon=True)
            thread.start()
        except RuntimeError:
            return False
        return True

    def stop_session_sync(self, session_id: str, duration: int) -> None:
        """Blocking stop request for teardown paths without an event loop"""
        response = httpx.post(
            f"{self.base_url}/api/timer/stop",
            json={"sessionId": session_id, "duration": duration},
            headers=self.headers,
            timeout=BEACON_TIMEOUT_SECONDS,
        )
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict):
        response = await self._client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    def _post_quietly(self, payload: dict) -> None:
        try:
            httpx.post(
                f"{self.base_url}/api/timer/stop",
                json=payload,
                headers=self.headers,
                timeout=BEACON_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.debug("Beacon delivery failed: %s", e)
