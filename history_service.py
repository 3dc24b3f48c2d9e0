from __future__ import annotations
from typing import Sequence

from db import ProgressRepository, UIStateRepository
from models import CycleGroup, Progress, WeekGroup, Workout, WorkoutItem


def group_workouts(workouts: Sequence[Workout], progress: Progress) -> list[CycleGroup]:
    """Group catalog entries by cycle and week in first-seen order."""
    cycles: dict[str, dict[str, list[WorkoutItem]]] = {}
    for index, workout in enumerate(workouts):
        weeks = cycles.setdefault(workout.cycle or "Cycle", {})
        weeks.setdefault(workout.week or "Week", []).append(WorkoutItem(workout, index))

    def is_done(item: WorkoutItem) -> bool:
        entry = progress.get(item.workout.id)
        return isinstance(entry, dict) and entry.get("done") is True

    groups: list[CycleGroup] = []
    for cycle_name, weeks in cycles.items():
        week_groups = [
            WeekGroup(
                name=week_name,
                items=items,
                total=len(items),
                done_count=sum(1 for i in items if is_done(i)),
            )
            for week_name, items in weeks.items()
        ]
        groups.append(
            CycleGroup(
                name=cycle_name,
                weeks=week_groups,
                total=sum(w.total for w in week_groups),
                done_count=sum(w.done_count for w in week_groups),
            )
        )
    return groups


def item_status(progress: Progress, uid: str) -> str:
    entry = progress.get(uid) or {}
    if entry.get("done"):
        return "done"
    if entry.get("inProgress"):
        return "in_progress"
    return "pending"


class HistoryService:
    """History screen actions over the progress store."""

    def __init__(
        self,
        workouts: Sequence[Workout],
        progress_repo: ProgressRepository,
        ui_repo: UIStateRepository,
    ) -> None:
        self.workouts = list(workouts)
        self.progress_repo = progress_repo
        self.ui_repo = ui_repo

    def _workout(self, index: int) -> Workout:
        if not 0 <= index < len(self.workouts):
            raise IndexError(f"workout index {index} out of range")
        return self.workouts[index]

    def _cycle_uids(self, name: str) -> list[str]:
        uids = [w.id for w in self.workouts if (w.cycle or "Cycle") == name]
        if not uids:
            raise ValueError(f"unknown cycle: {name}")
        return uids

    def cycle_groups(self) -> list[dict]:
        progress = self.progress_repo.load()
        collapse = self.ui_repo.load_collapse_state()
        result = []
        for group in group_workouts(self.workouts, progress):
            data = group.to_dict()
            data["open"] = bool(collapse.get(group.name, False))
            for week in data["weeks"]:
                for item in week["items"]:
                    item["status"] = item_status(progress, item["id"])
            result.append(data)
        return result

    def toggle_done(self, index: int) -> Progress:
        return self.progress_repo.toggle_done(self._workout(index).id)

    def mark_cycle_done(self, name: str) -> Progress:
        return self.progress_repo.mark_many_done(self._cycle_uids(name))

    def reset_cycle(self, name: str) -> Progress:
        return self.progress_repo.remove_many(self._cycle_uids(name))

    def toggle_collapse(self, name: str) -> dict[str, bool]:
        state = self.ui_repo.load_collapse_state()
        state[name] = not state.get(name, False)
        self.ui_repo.save_collapse_state(state)
        return state

    def collapse_state(self) -> dict[str, bool]:
        return self.ui_repo.load_collapse_state()

    def describe(self, index: int) -> str:
        w = self._workout(index)
        return (
            f"{w.day or 'Day'} — {w.week or 'Week'} — {w.cycle or 'Cycle'}\n"
            f"{w.timing or ''}"
        )
