from __future__ import annotations
import logging
import threading
from typing import Callable, Optional, Sequence

from db import ProgressRepository, SettingsRepository, UIStateRepository
from models import Workout
from rep_buffer import RepSessionBuffer, parse_rep_value
from settings_schema import SETTING_KEYS, SettingsSchema
from timer_service import AudioPlayer, WorkoutTimer

logger = logging.getLogger(__name__)

HOME = "home"
WORKOUT = "workout"
FINISHED = "finished"
REP_TRACKING = "rep_tracking"


class TickScheduler(threading.Thread):
    """Background thread invoking ``callback(scheduler)`` every interval."""

    def __init__(
        self, callback: Callable[["TickScheduler"], None], interval: float = 1.0
    ) -> None:
        super().__init__(daemon=True)
        self.callback = callback
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.callback(self)
            except Exception:
                logger.exception("Tick callback failed")

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()


class SessionService:
    """Coordinates workout selection, the active timer and completion.

    Every public method takes the same lock, so scheduler ticks and user
    actions never interleave.
    """

    def __init__(
        self,
        workouts: Sequence[Workout],
        progress_repo: ProgressRepository,
        settings_repo: SettingsRepository,
        ui_repo: UIStateRepository,
        audio: Optional[AudioPlayer] = None,
        *,
        start_ticker: bool = False,
        tick_interval: float = 1.0,
    ) -> None:
        self.workouts = list(workouts)
        self.progress = progress_repo
        self.settings_repo = settings_repo
        self.ui = ui_repo
        self.audio = audio
        self.start_ticker = start_ticker
        self.tick_interval = tick_interval
        self.settings: SettingsSchema = settings_repo.load_settings()
        self.view = HOME
        self.selected_index = 0
        self.timer: Optional[WorkoutTimer] = None
        self.reps: Optional[RepSessionBuffer] = None
        self.active_index: Optional[int] = None
        self.last_session_reps: list[Optional[int]] = []
        self._ticker: Optional[TickScheduler] = None
        self._lock = threading.RLock()

    # helpers -------------------------------------------------------------

    def _workout(self, index: int) -> Workout:
        if not 0 <= index < len(self.workouts):
            raise IndexError(f"workout index {index} out of range")
        return self.workouts[index]

    def _require_timer(self) -> WorkoutTimer:
        if self.timer is None or self.view != WORKOUT:
            raise ValueError("no active workout")
        return self.timer

    def _first_not_done(self) -> int:
        progress = self.progress.load()
        for i, w in enumerate(self.workouts):
            if not (progress.get(w.id) or {}).get("done"):
                return i
        return 0

    def _start_ticking(self) -> None:
        if not self.start_ticker or self._ticker is not None:
            return
        self._ticker = TickScheduler(self._scheduled_tick, self.tick_interval)
        self._ticker.start()

    def _stop_ticking(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def _scheduled_tick(self, ticker: TickScheduler) -> None:
        with self._lock:
            if ticker is not self._ticker or self.timer is None:
                return
            self.timer.tick()

    def _sync_ticker(self) -> None:
        if self.timer is not None and self.timer.running:
            self._start_ticking()
        else:
            self._stop_ticking()

    def _on_complete(self) -> None:
        index = self.active_index
        if index is None:
            return
        uid = self.workouts[index].id
        self.progress.mark_done(uid)
        if self.reps is not None:
            self.progress.save_reps(uid, self.reps.as_reps())
            self.last_session_reps = self.reps.to_list()
            self.reps.reset()
        self.ui.clear_resume()
        self._stop_ticking()
        self.view = FINISHED
        logger.info("Finished workout %s", uid)

    # selection -----------------------------------------------------------

    def initial_selection(self) -> dict:
        """Pick the workout to show on launch, resuming an interrupted one."""
        with self._lock:
            resume_index = None
            for uid, item in self.progress.load().items():
                if not isinstance(item, dict):
                    continue
                snap = item.get("snap")
                if not item.get("inProgress") or not isinstance(snap, dict):
                    continue
                target = snap.get("workoutId")
                if not target:
                    continue
                found = next(
                    (i for i, w in enumerate(self.workouts) if w.id == target), None
                )
                if found is None:
                    logger.warning(
                        "Workout to resume (id: %s) not found. Clearing state.", target
                    )
                    self.progress.clear_in_progress(uid)
                else:
                    resume_index = found
                break

            if resume_index is not None:
                self.selected_index = resume_index
                self.start_workout(resume_index)
            else:
                self.selected_index = self._first_not_done()
                self.view = HOME
            return {"view": self.view, "selected_index": self.selected_index}

    def select(self, index: int) -> Workout:
        with self._lock:
            if self.view == WORKOUT:
                raise ValueError("cannot change selection during a workout")
            workout = self._workout(index)
            self.selected_index = index
            return workout

    # workout actions -----------------------------------------------------

    def start_workout(self, index: Optional[int] = None) -> dict:
        with self._lock:
            if index is None:
                index = self.selected_index
            workout = self._workout(index)
            self._stop_ticking()
            self.selected_index = index
            self.active_index = index
            self.reps = RepSessionBuffer(len(workout.exercises))
            self.view = WORKOUT
            self.ui.clear_resume()
            self.timer = WorkoutTimer(
                workout,
                self.settings,
                self.progress,
                audio=self.audio,
                on_complete=self._on_complete,
                reps=self.reps,
            )
            self._sync_ticker()
            return self.state()

    def pause(self) -> dict:
        with self._lock:
            self._require_timer().pause()
            self._sync_ticker()
            return self.state()

    def resume(self) -> dict:
        with self._lock:
            self._require_timer().resume()
            self._sync_ticker()
            return self.state()

    def advance(self, direction: int) -> dict:
        with self._lock:
            self._require_timer().advance(direction)
            self._sync_ticker()
            return self.state()

    def reset(self) -> dict:
        with self._lock:
            self._require_timer().reset()
            self._sync_ticker()
            return self.state()

    def exit(self) -> dict:
        """Abandon the workout without marking it done."""
        with self._lock:
            self._require_timer().exit()
            self._stop_ticking()
            self.timer = None
            self.reps = None
            self.active_index = None
            self.view = HOME
            return self.state()

    def suspend(self) -> dict:
        """Leave the workout but keep its snapshot for a later resume."""
        with self._lock:
            timer = self._require_timer()
            snapshot = timer.snapshot()
            timer.pause()
            self._stop_ticking()
            self.ui.store_resume(snapshot)
            self.timer = None
            self.reps = None
            self.active_index = None
            self.view = HOME
            return self.state()

    def log_rep(self, index: int, value) -> dict:
        with self._lock:
            self._require_timer().log_rep(index, value)
            return self.state()

    def dismiss_rep_prompt(self) -> dict:
        with self._lock:
            self._require_timer().dismiss_rep_prompt()
            return self.state()

    def finish(self) -> dict:
        with self._lock:
            self._require_timer().finish()
            self._sync_ticker()
            return self.state()

    def tick(self) -> dict:
        with self._lock:
            if self.timer is not None and self.view == WORKOUT:
                self.timer.tick()
                self._sync_ticker()
            return self.state()

    def update_settings(self, **changes) -> SettingsSchema:
        with self._lock:
            unknown = set(changes) - set(SETTING_KEYS)
            if unknown:
                raise ValueError(f"unknown settings: {', '.join(sorted(unknown))}")
            updated = SettingsSchema(**{**self.settings.model_dump(), **changes})
            # mutate in place so a running timer sees the change
            for key in SETTING_KEYS:
                setattr(self.settings, key, getattr(updated, key))
            self.settings_repo.save_settings(self.settings)
            if self.timer is not None and self.view == WORKOUT:
                self.timer.apply_settings()
                self._sync_ticker()
            return self.settings

    # post-workout --------------------------------------------------------

    def open_rep_tracking(self) -> dict:
        with self._lock:
            if self.view != FINISHED:
                raise ValueError("no finished workout to log reps for")
            self.view = REP_TRACKING
            return self.state()

    def save_reps(self, reps: Sequence) -> dict:
        with self._lock:
            if self.view not in (FINISHED, REP_TRACKING) or self.active_index is None:
                raise ValueError("no finished workout to log reps for")
            workout = self.workouts[self.active_index]
            if len(reps) != len(workout.exercises):
                raise ValueError(
                    f"expected {len(workout.exercises)} rep values, got {len(reps)}"
                )
            values = [parse_rep_value(v) or 0 for v in reps]
            self.progress.save_reps(workout.id, values)
            return self.continue_to_next()

    def continue_to_next(self) -> dict:
        with self._lock:
            if self.view == WORKOUT:
                raise ValueError("workout still in progress")
            if self.active_index is not None and self.workouts:
                self.selected_index = (self.active_index + 1) % len(self.workouts)
            else:
                self.selected_index = self._first_not_done()
            self.timer = None
            self.reps = None
            self.active_index = None
            self.view = HOME
            return self.state()

    def state(self) -> dict:
        with self._lock:
            data = {
                "view": self.view,
                "selected_index": self.selected_index,
                "settings": self.settings.model_dump(),
                "last_session_reps": list(self.last_session_reps),
                "timer": None,
            }
            if self.timer is not None:
                timer_view = self.timer.view()
                timer_view["progress_dots"] = self.timer.progress_dots()
                data["timer"] = timer_view
            if self.view == HOME:
                data["resume"] = self.ui.load_resume()
            return data

    def close(self) -> None:
        with self._lock:
            ticker = self._ticker
            self._stop_ticking()
        # join outside the lock so a tick waiting on it can finish
        if ticker is not None and ticker is not threading.current_thread():
            ticker.join(self.tick_interval + 1.0)
