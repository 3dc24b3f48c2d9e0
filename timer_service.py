from __future__ import annotations
import logging
from typing import Callable, NamedTuple, Optional

from pydantic import ValidationError

from db import ProgressRepository
from models import (
    COOLDOWN_PHASES,
    WARMUP_PHASES,
    Exercise,
    TimerSnapshot,
    Workout,
    WorkoutPhase,
)
from rep_buffer import RepSessionBuffer
from settings_schema import SettingsSchema

logger = logging.getLogger(__name__)

GET_READY_SECONDS = 5
PRE_WARMUP_SECONDS = 55
WARMUP_REST_SECONDS = 5
WARMUP_STATION_SECONDS = 30
WARMUP_STATIONS = 6
GET_READY_WORK_SECONDS = 10
GET_READY_COOLDOWN_SECONDS = 10
COOLDOWN_STATION_SECONDS = 30
COOLDOWN_STATIONS = 2

BEEP = "beep"
PHASE_CHANGE = "phase_change"

PHASE_LABELS = {
    WorkoutPhase.GET_READY: "Pre Warm Up",
    WorkoutPhase.WARMUP: "Warm Up",
    WorkoutPhase.WARMUP_REST: "Rest",
    WorkoutPhase.GET_READY_WORK: "Get Ready",
    WorkoutPhase.WORK: "Work",
    WorkoutPhase.REST: "Rest",
    WorkoutPhase.GET_READY_COOLDOWN: "Get Ready",
    WorkoutPhase.COOLDOWN: "Cool Down",
    WorkoutPhase.DONE: "Done",
}


class AudioPlayer:
    """Fire-and-forget cue output."""

    def play(self, cue_id: str) -> None:
        raise NotImplementedError


class LoggingAudioPlayer(AudioPlayer):
    def play(self, cue_id: str) -> None:
        logger.debug("cue %s", cue_id)


class Step(NamedTuple):
    """One position on the workout timeline.

    ``key`` orders steps; ``None`` counters are left untouched when the step
    is entered.
    """

    key: tuple
    phase: WorkoutPhase
    seconds: int
    warmup_stage: Optional[int] = None
    cooldown_stage: Optional[int] = None
    round: Optional[int] = None
    exercise_index: Optional[int] = None


def build_timeline(workout: Workout, settings: SettingsSchema) -> list[Step]:
    """Every step of a session in order for the given settings."""
    steps: list[Step] = []
    if settings.enable_warmup:
        steps.append(Step((0, 0, 0, 0), WorkoutPhase.GET_READY, GET_READY_SECONDS, warmup_stage=0))
        steps.append(Step((1, 0, 0, 0), WorkoutPhase.WARMUP, PRE_WARMUP_SECONDS, warmup_stage=0))
        steps.append(Step((2, 0, 0, 0), WorkoutPhase.WARMUP_REST, WARMUP_REST_SECONDS, warmup_stage=0))
        for stage in range(1, WARMUP_STATIONS + 1):
            steps.append(
                Step((3, stage, 0, 0), WorkoutPhase.WARMUP, WARMUP_STATION_SECONDS, warmup_stage=stage)
            )
    steps.append(Step((4, 0, 0, 0), WorkoutPhase.GET_READY_WORK, GET_READY_WORK_SECONDS))

    last = len(workout.exercises) - 1
    for rnd in range(1, workout.rounds + 1):
        for idx in range(last + 1):
            steps.append(
                Step((5, rnd, idx, 0), WorkoutPhase.WORK, workout.work, round=rnd, exercise_index=idx)
            )
            if rnd == workout.rounds and idx == last:
                break
            steps.append(
                Step((5, rnd, idx, 1), WorkoutPhase.REST, workout.rest, round=rnd, exercise_index=idx)
            )

    if settings.enable_cooldown:
        steps.append(Step((6, 0, 0, 0), WorkoutPhase.GET_READY_COOLDOWN, GET_READY_COOLDOWN_SECONDS))
        for stage in range(COOLDOWN_STATIONS):
            steps.append(
                Step((7, stage, 0, 0), WorkoutPhase.COOLDOWN, COOLDOWN_STATION_SECONDS, cooldown_stage=stage)
            )
    steps.append(Step((8, 0, 0, 0), WorkoutPhase.DONE, 0))
    return steps


def position_key(
    phase: WorkoutPhase,
    warmup_stage: int = 0,
    cooldown_stage: int = 0,
    round: int = 1,
    exercise_index: int = 0,
) -> tuple:
    if phase is WorkoutPhase.GET_READY:
        return (0, 0, 0, 0)
    if phase is WorkoutPhase.WARMUP:
        return (1, 0, 0, 0) if warmup_stage == 0 else (3, warmup_stage, 0, 0)
    if phase is WorkoutPhase.WARMUP_REST:
        return (2, 0, 0, 0)
    if phase is WorkoutPhase.GET_READY_WORK:
        return (4, 0, 0, 0)
    if phase is WorkoutPhase.WORK:
        return (5, round, exercise_index, 0)
    if phase is WorkoutPhase.REST:
        return (5, round, exercise_index, 1)
    if phase is WorkoutPhase.GET_READY_COOLDOWN:
        return (6, 0, 0, 0)
    if phase is WorkoutPhase.COOLDOWN:
        return (7, cooldown_stage, 0, 0)
    return (8, 0, 0, 0)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


class WorkoutTimer:
    """Countdown state machine for a single workout session.

    ``settings`` is held by reference and re-read on every tick, so callers
    can flip flags on the shared instance mid-session. ``on_complete`` fires
    at most once per session.
    """

    def __init__(
        self,
        workout: Workout,
        settings: SettingsSchema,
        progress: ProgressRepository,
        audio: Optional[AudioPlayer] = None,
        on_complete: Optional[Callable[[], None]] = None,
        reps: Optional[RepSessionBuffer] = None,
    ) -> None:
        self.workout = workout
        self.settings = settings
        self.progress = progress
        self.audio = audio or LoggingAudioPlayer()
        self.on_complete = on_complete
        self.reps = reps if reps is not None else RepSessionBuffer(len(workout.exercises))
        self.running = False
        self.rep_prompt_index: Optional[int] = None
        self._finished = False
        self._init_state()
        self.resumed = self._restore()
        if not self.resumed:
            self.progress.clear_in_progress(workout.id)
        self.start()

    # state ---------------------------------------------------------------

    def _init_state(self) -> None:
        if self.settings.enable_warmup:
            self.phase = WorkoutPhase.GET_READY
            self.seconds = GET_READY_SECONDS
        else:
            self.phase = WorkoutPhase.GET_READY_WORK
            self.seconds = GET_READY_WORK_SECONDS
        self.round = 1
        self.exercise_index = 0
        self.warmup_stage = 0
        self.cooldown_stage = 0
        self.rep_prompt_index = None

    def _restore(self) -> bool:
        item = self.progress.load().get(self.workout.id) or {}
        if not item.get("inProgress") or not item.get("snap"):
            return False
        try:
            snap = TimerSnapshot.model_validate(item["snap"])
        except ValidationError as e:
            logger.warning("Discarding invalid snapshot for %s: %s", self.workout.id, e)
            return False
        if snap.workout_id != self.workout.id or snap.phase is WorkoutPhase.DONE:
            logger.warning("Discarding unusable snapshot for %s", self.workout.id)
            return False

        self.phase = snap.phase
        self.seconds = snap.seconds
        self.exercise_index = _clamp(snap.exercise_index, 0, len(self.workout.exercises) - 1)
        self.round = _clamp(snap.round, 1, self.workout.rounds)
        self.warmup_stage = _clamp(snap.warmup_stage or 0, 0, WARMUP_STATIONS)
        self.cooldown_stage = _clamp(snap.cooldown_stage or 0, 0, COOLDOWN_STATIONS - 1)
        if snap.session_reps:
            self.reps.load(snap.session_reps)
        logger.info("Resuming %s at %s", self.workout.id, self.phase.value)
        return True

    def snapshot(self) -> TimerSnapshot:
        return TimerSnapshot(
            workout_id=self.workout.id,
            phase=self.phase,
            round=self.round,
            exercise_index=self.exercise_index,
            seconds=self.seconds,
            session_reps=self.reps.to_list(),
            warmup_stage=self.warmup_stage,
            cooldown_stage=self.cooldown_stage,
        )

    def _emit_snapshot(self) -> None:
        if self.running and self.phase is not WorkoutPhase.DONE:
            self.progress.mark_in_progress(self.workout.id, self.snapshot())

    def _play(self, cue_id: str) -> None:
        if self.settings.audio_cues:
            self.audio.play(cue_id)

    def _set_phase(self, phase: WorkoutPhase) -> None:
        if phase is not self.phase:
            self._play(PHASE_CHANGE)
        self.phase = phase

    def _complete(self) -> None:
        self.running = False
        if self._finished:
            return
        self._finished = True
        logger.info("Workout %s complete", self.workout.id)
        if self.on_complete is not None:
            self.on_complete()

    # transitions ---------------------------------------------------------

    def _position(self) -> tuple:
        return position_key(
            self.phase, self.warmup_stage, self.cooldown_stage, self.round, self.exercise_index
        )

    def _neighbour(self, direction: int) -> Optional[Step]:
        here = self._position()
        timeline = build_timeline(self.workout, self.settings)
        if direction > 0:
            return next((s for s in timeline if s.key > here), None)
        return next((s for s in reversed(timeline) if s.key < here), None)

    def _step(self, direction: int) -> bool:
        target = self._neighbour(direction)
        if target is None:
            return False
        opens_prompt = (
            direction > 0
            and self.phase is WorkoutPhase.WORK
            and target.phase is WorkoutPhase.REST
            and self.settings.track_reps
        )
        finished_index = self.exercise_index

        self._set_phase(target.phase)
        self.seconds = target.seconds
        if target.warmup_stage is not None:
            self.warmup_stage = target.warmup_stage
        if target.cooldown_stage is not None:
            self.cooldown_stage = target.cooldown_stage
        if target.round is not None:
            self.round = target.round
            self.exercise_index = target.exercise_index
        self.rep_prompt_index = finished_index if opens_prompt else None

        if self.phase is WorkoutPhase.DONE:
            self._complete()
        return True

    def _enforce_settings(self) -> bool:
        """Force the skips implied by the current settings.

        Returns ``True`` when a transition was forced.
        """
        if not self.running:
            return False
        if not self.settings.enable_warmup and self.phase in WARMUP_PHASES:
            self._set_phase(WorkoutPhase.GET_READY_WORK)
            self.seconds = GET_READY_WORK_SECONDS
            self.warmup_stage = 0
            return True
        if not self.settings.enable_cooldown and self.phase in COOLDOWN_PHASES:
            self._set_phase(WorkoutPhase.DONE)
            self.seconds = 0
            self.rep_prompt_index = None
            self._complete()
            return True
        return False

    # actions -------------------------------------------------------------

    def tick(self) -> None:
        if not self.running or self.phase is WorkoutPhase.DONE:
            return
        if self._enforce_settings():
            self._emit_snapshot()
            return
        if self.seconds > 1:
            if self.seconds <= 4:
                self._play(BEEP)
            self.seconds -= 1
        else:
            self.rep_prompt_index = None
            self._step(1)
        self._emit_snapshot()

    def start(self) -> None:
        if self.phase is WorkoutPhase.DONE:
            return
        self.running = True
        self._enforce_settings()
        self._emit_snapshot()

    def resume(self) -> None:
        self.start()

    def pause(self) -> None:
        self.running = False

    def advance(self, direction: int) -> bool:
        """Manually move one step forward (``1``) or back (``-1``)."""
        if direction not in (1, -1):
            raise ValueError("direction must be 1 or -1")
        if direction < 0 and not self.can_go_back:
            return False
        if direction > 0 and self.phase is WorkoutPhase.DONE:
            return False
        moved = self._step(direction)
        if moved:
            self._emit_snapshot()
        return moved

    def reset(self) -> None:
        self.running = False
        self._finished = False
        self._init_state()
        self.progress.clear_in_progress(self.workout.id)

    def exit(self) -> None:
        self.running = False
        self.rep_prompt_index = None
        self.progress.clear_in_progress(self.workout.id)

    def log_rep(self, index: int, value) -> Optional[int]:
        parsed = self.reps.set(index, value)
        if self.rep_prompt_index == index:
            self.rep_prompt_index = None
        self._emit_snapshot()
        return parsed

    def dismiss_rep_prompt(self) -> None:
        self.rep_prompt_index = None

    def finish(self) -> None:
        if self._finished:
            return
        self._set_phase(WorkoutPhase.DONE)
        self.seconds = 0
        self.rep_prompt_index = None
        self._complete()

    def apply_settings(self, settings: Optional[SettingsSchema] = None) -> bool:
        if settings is not None:
            self.settings = settings
        changed = self._enforce_settings()
        if changed:
            self._emit_snapshot()
        return changed

    # view ----------------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def can_go_back(self) -> bool:
        if self.phase in (WorkoutPhase.GET_READY, WorkoutPhase.DONE):
            return False
        if self.phase is WorkoutPhase.WARMUP and self.warmup_stage == 0:
            return False
        return self._neighbour(-1) is not None

    def phase_duration(self) -> int:
        phase = self.phase
        if phase is WorkoutPhase.WORK:
            return self.workout.work
        if phase is WorkoutPhase.REST:
            return self.workout.rest
        if phase is WorkoutPhase.WARMUP:
            return PRE_WARMUP_SECONDS if self.warmup_stage == 0 else WARMUP_STATION_SECONDS
        return {
            WorkoutPhase.GET_READY: GET_READY_SECONDS,
            WorkoutPhase.WARMUP_REST: WARMUP_REST_SECONDS,
            WorkoutPhase.GET_READY_WORK: GET_READY_WORK_SECONDS,
            WorkoutPhase.GET_READY_COOLDOWN: GET_READY_COOLDOWN_SECONDS,
            WorkoutPhase.COOLDOWN: COOLDOWN_STATION_SECONDS,
        }.get(phase, 1)

    def fill_progress(self) -> float:
        duration = self.phase_duration()
        if duration <= 0:
            return 0.0
        return max(0.0, min(1.0, 1 - self.seconds / duration))

    def header_and_exercise(self) -> tuple[str, Exercise]:
        w = self.workout
        phase = self.phase
        if phase is WorkoutPhase.GET_READY:
            return "Pre Warm Up", w.pre_warm_up
        if phase in (WorkoutPhase.WARMUP, WorkoutPhase.WARMUP_REST):
            if self.warmup_stage == 0:
                return "Pre Warm Up", w.pre_warm_up
            if w.warm_up_exercises:
                stations = w.warm_up_exercises
                return w.warm_up.name, stations[(self.warmup_stage - 1) % len(stations)]
            return w.warm_up.name, w.warm_up
        if phase is WorkoutPhase.GET_READY_WORK:
            return PHASE_LABELS[phase], w.exercises[0]
        if phase in (WorkoutPhase.WORK, WorkoutPhase.REST):
            return PHASE_LABELS[phase], w.exercises[self.exercise_index]
        return PHASE_LABELS[phase], w.cool_down

    def _round_status(self, rnd: int, idx: int) -> str:
        phase = self.phase
        if phase in (WorkoutPhase.COOLDOWN, WorkoutPhase.DONE, WorkoutPhase.GET_READY_COOLDOWN):
            return "done"
        if phase not in (WorkoutPhase.WORK, WorkoutPhase.REST):
            return "pending"
        if rnd != self.round:
            return "done" if rnd < self.round else "pending"
        if idx != self.exercise_index:
            return "done" if idx < self.exercise_index else "pending"
        return "active" if phase is WorkoutPhase.WORK else "done"

    def _warmup_status(self, dot: int) -> str:
        if self.phase is WorkoutPhase.GET_READY:
            return "pending"
        if self.phase not in (WorkoutPhase.WARMUP, WorkoutPhase.WARMUP_REST):
            return "done"
        if dot < self.warmup_stage:
            return "done"
        return "active" if dot == self.warmup_stage else "pending"

    def _cooldown_status(self, dot: int) -> str:
        if self.phase is WorkoutPhase.DONE:
            return "done"
        if self.phase not in COOLDOWN_PHASES:
            return "pending"
        if dot < self.cooldown_stage:
            return "done"
        if dot == self.cooldown_stage and self.phase is WorkoutPhase.COOLDOWN:
            return "active"
        return "pending"

    def progress_dots(self) -> dict:
        return {
            "warmup": [self._warmup_status(i) for i in range(WARMUP_STATIONS + 1)],
            "rounds": [
                [self._round_status(r, i) for i in range(len(self.workout.exercises))]
                for r in range(1, self.workout.rounds + 1)
            ],
            "cooldown": [self._cooldown_status(i) for i in range(COOLDOWN_STATIONS)],
        }

    def view(self) -> dict:
        header, exercise = self.header_and_exercise()
        return {
            "workout_id": self.workout.id,
            "phase": self.phase.value,
            "seconds": self.seconds,
            "round": self.round,
            "rounds": self.workout.rounds,
            "exercise_index": self.exercise_index,
            "warmup_stage": self.warmup_stage,
            "cooldown_stage": self.cooldown_stage,
            "running": self.running,
            "display_exercise": exercise.name,
            "header_label": header,
            "phase_label": PHASE_LABELS[self.phase],
            "phase_duration": self.phase_duration(),
            "fill_progress": self.fill_progress(),
            "can_go_back": self.can_go_back,
            "rep_prompt_index": self.rep_prompt_index,
            "session_reps": self.reps.to_list(),
        }
