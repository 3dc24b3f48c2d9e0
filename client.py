import requests
from typing import List, Optional

class TimerClient:
    """Simple REST client for the timer API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")

    def _post(self, path: str, **params):
        resp = requests.post(
            f"{self.base_url}{path}",
            params={k: v for k, v in params.items() if v is not None},
        )
        resp.raise_for_status()
        return resp.json()

    def list_workouts(self):
        resp = requests.get(f"{self.base_url}/workouts")
        resp.raise_for_status()
        return resp.json()

    def session_state(self) -> dict:
        resp = requests.get(f"{self.base_url}/session")
        resp.raise_for_status()
        return resp.json()

    def start(self, index: Optional[int] = None) -> dict:
        return self._post("/session/start", index=index)

    def pause(self) -> dict:
        return self._post("/session/pause")

    def resume(self) -> dict:
        return self._post("/session/resume")

    def advance(self, direction: int = 1) -> dict:
        return self._post("/session/advance", direction=direction)

    def exit(self) -> dict:
        return self._post("/session/exit")

    def log_rep(self, index: int, value: Optional[int]) -> dict:
        return self._post("/session/reps", index=index, value=value)

    def finish(self) -> dict:
        return self._post("/session/finish")

    def save_reps(self, reps: List[Optional[int]]) -> dict:
        resp = requests.post(f"{self.base_url}/reps", json=reps)
        resp.raise_for_status()
        return resp.json()

    def update_settings(self, **settings: bool) -> dict:
        return self._post("/settings", **settings)

    def progress(self) -> dict:
        resp = requests.get(f"{self.base_url}/progress")
        resp.raise_for_status()
        return resp.json()
