from __future__ import annotations
from typing import Dict, List, Sequence

from db import ProgressRepository
from models import Workout


class StatisticsService:
    """Compute rep statistics from completed workouts."""

    def __init__(self, progress_repo: ProgressRepository, workouts: Sequence[Workout]) -> None:
        self.progress = progress_repo
        self.workouts = list(workouts)
        self._by_id = {w.id: w for w in self.workouts}

    def _exercise_names(self) -> List[str]:
        names: List[str] = []
        seen = set()
        for w in self.workouts:
            for e in w.exercises:
                if e.name not in seen:
                    seen.add(e.name)
                    names.append(e.name)
        return names

    def _logged_sessions(self):
        """Yield ``(workout, ts, reps)`` for done entries carrying reps."""
        for uid, item in self.progress.load().items():
            if not isinstance(item, dict):
                continue
            if not item.get("done") or not item.get("reps") or not item.get("ts"):
                continue
            workout = self._by_id.get(uid)
            if workout is None:
                continue
            yield workout, item["ts"], item["reps"]

    def profile_stats(self) -> Dict[str, object]:
        progress = self.progress.load()
        workout_count = sum(
            1 for p in progress.values() if isinstance(p, dict) and p.get("done")
        )
        names = self._exercise_names()
        stats = {n: {"last": 0, "pr": 0, "total": 0, "last_ts": 0} for n in names}
        for workout, ts, reps in self._logged_sessions():
            for i, exercise in enumerate(workout.exercises):
                value = (reps[i] if i < len(reps) else 0) or 0
                current = stats[exercise.name]
                current["total"] += value
                if value > current["pr"]:
                    current["pr"] = value
                if ts > current["last_ts"]:
                    current["last"] = value
                    current["last_ts"] = ts
        return {
            "workout_count": workout_count,
            "exercises": [
                {
                    "name": n,
                    "last": stats[n]["last"],
                    "pr": stats[n]["pr"],
                    "total": stats[n]["total"],
                }
                for n in names
            ],
        }

    def exercise_history(self, exercise: str) -> List[Dict[str, object]]:
        history = []
        for workout, ts, reps in self._logged_sessions():
            for i, e in enumerate(workout.exercises):
                if e.name == exercise:
                    history.append(
                        {
                            "workout_id": workout.id,
                            "ts": ts,
                            "reps": (reps[i] if i < len(reps) else 0) or 0,
                        }
                    )
        return sorted(history, key=lambda x: x["ts"])
