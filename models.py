from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkoutPhase(str, Enum):
    GET_READY = "getready"
    WARMUP = "warmup"
    WARMUP_REST = "warmup_rest"
    GET_READY_WORK = "getready_work"
    WORK = "work"
    REST = "rest"
    GET_READY_COOLDOWN = "getready_cooldown"
    COOLDOWN = "cooldown"
    DONE = "done"


WARMUP_PHASES = (
    WorkoutPhase.GET_READY,
    WorkoutPhase.WARMUP,
    WorkoutPhase.WARMUP_REST,
)
COOLDOWN_PHASES = (WorkoutPhase.GET_READY_COOLDOWN, WorkoutPhase.COOLDOWN)


@dataclass(frozen=True)
class Exercise:
    """A single movement shown during a phase."""

    name: str
    image: str = ""
    description: tuple[str, ...] = ()


@dataclass(frozen=True)
class Workout:
    """A validated catalog entry driving one timer session."""

    id: str
    work: int
    rest: int
    rounds: int
    exercises: tuple[Exercise, ...]
    cycle: str = ""
    week: str = ""
    day: str = ""
    timing: str = ""
    pre_warm_up: Exercise = field(default_factory=lambda: Exercise("Pre Warm Up"))
    warm_up: Exercise = field(default_factory=lambda: Exercise("Warm Up"))
    cool_down: Exercise = field(default_factory=lambda: Exercise("Cool Down"))
    warm_up_exercises: tuple[Exercise, ...] = ()

    def summary(self, index: int | None = None) -> dict:
        data = {
            "id": self.id,
            "cycle": self.cycle,
            "week": self.week,
            "day": self.day,
            "timing": self.timing,
            "work": self.work,
            "rest": self.rest,
            "rounds": self.rounds,
            "exercises": [e.name for e in self.exercises],
        }
        if index is not None:
            data["index"] = index
        return data


class TimerSnapshot(BaseModel):
    """Serializable capture of timer progress, stored with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    workout_id: str = Field(alias="workoutId")
    phase: WorkoutPhase
    round: int
    exercise_index: int = Field(alias="exerciseIndex")
    seconds: int = Field(ge=0)
    session_reps: Optional[list[Optional[int]]] = Field(default=None, alias="sessionReps")
    warmup_stage: Optional[int] = Field(default=None, alias="warmupStage")
    cooldown_stage: Optional[int] = Field(default=None, alias="cooldownStage")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


@dataclass(frozen=True)
class WorkoutItem:
    workout: Workout
    index: int


@dataclass(frozen=True)
class WeekGroup:
    name: str
    items: list[WorkoutItem]
    total: int
    done_count: int


@dataclass(frozen=True)
class CycleGroup:
    name: str
    weeks: list[WeekGroup]
    total: int
    done_count: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "total": self.total,
            "done_count": self.done_count,
            "weeks": [
                {
                    "name": week.name,
                    "total": week.total,
                    "done_count": week.done_count,
                    "items": [
                        {"index": item.index, "id": item.workout.id, "day": item.workout.day}
                        for item in week.items
                    ],
                }
                for week in self.weeks
            ],
        }


# workout id -> {"done", "inProgress", "ts", "snap", "reps"}
Progress = dict[str, dict]
