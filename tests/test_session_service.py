import os
import sys
import time

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import ProgressRepository, SettingsRepository, UIStateRepository
from models import Exercise, Workout, WorkoutPhase
from session_service import FINISHED, HOME, REP_TRACKING, WORKOUT, SessionService, TickScheduler
from timer_service import AudioPlayer


class SilentAudio(AudioPlayer):
    def play(self, cue_id: str) -> None:
        pass


def _workout(day, rounds=2):
    return Workout(
        id=f"cycle 1|week 1|{day.lower()}|40/20",
        work=40,
        rest=20,
        rounds=rounds,
        exercises=(Exercise("A"), Exercise("B")),
        cycle="Cycle 1",
        week="Week 1",
        day=day,
        timing="40/20",
    )


WORKOUTS = [_workout("Monday"), _workout("Wednesday"), _workout("Friday")]


@pytest.fixture
def repos(tmp_path):
    db_path = str(tmp_path / "timer.db")
    return (
        ProgressRepository(db_path),
        SettingsRepository(db_path, str(tmp_path / "settings.yaml")),
        UIStateRepository(db_path),
    )


@pytest.fixture
def session(repos):
    progress, settings, ui = repos
    svc = SessionService(WORKOUTS, progress, settings, ui, audio=SilentAudio())
    yield svc
    svc.close()


def test_initial_selection_skips_done_workouts(session, repos):
    progress = repos[0]
    progress.mark_done(WORKOUTS[0].id)
    assert session.initial_selection() == {"view": HOME, "selected_index": 1}


def test_stale_resume_reference_is_cleared(session, repos, caplog):
    progress = repos[0]
    progress.mark_in_progress(
        "ghost",
        {"workoutId": "ghost", "phase": "work", "round": 1, "exerciseIndex": 0, "seconds": 5},
    )
    assert session.initial_selection()["view"] == HOME
    assert progress.load()["ghost"]["inProgress"] is False
    assert "not found" in caplog.text


def test_initial_selection_resumes_interrupted_workout(session, repos):
    progress = repos[0]
    progress.mark_in_progress(
        WORKOUTS[1].id,
        {
            "workoutId": WORKOUTS[1].id,
            "phase": "rest",
            "round": 2,
            "exerciseIndex": 0,
            "seconds": 9,
        },
    )
    result = session.initial_selection()
    assert result == {"view": WORKOUT, "selected_index": 1}
    assert session.timer.resumed
    assert session.timer.phase is WorkoutPhase.REST
    assert session.timer.seconds == 9


def test_actions_require_active_workout(session):
    with pytest.raises(ValueError):
        session.pause()
    with pytest.raises(ValueError):
        session.finish()


def test_select_blocked_during_workout(session):
    session.select(2)
    assert session.selected_index == 2
    session.start_workout()
    with pytest.raises(ValueError):
        session.select(0)
    with pytest.raises(IndexError):
        session.start_workout(5)


def test_completion_persists_logged_reps(session, repos):
    progress = repos[0]
    session.start_workout(0)
    session.log_rep(1, "14")
    state = session.finish()
    assert state["view"] == FINISHED
    item = progress.load()[WORKOUTS[0].id]
    assert item["done"] is True
    assert item["inProgress"] is False
    assert item["reps"] == [0, 14]
    assert state["last_session_reps"] == [None, 14]


def test_completion_without_reps_saves_zeros(session, repos):
    session.start_workout(0)
    session.log_rep(0, 10)
    session.finish()
    session.continue_to_next()
    session.start_workout(0)
    session.finish()
    assert repos[0].load()[WORKOUTS[0].id]["reps"] == [0, 0]


def test_exit_returns_home_without_marking_done(session, repos):
    session.start_workout(0)
    session.tick()
    state = session.exit()
    assert state["view"] == HOME
    assert state["timer"] is None
    item = repos[0].load()[WORKOUTS[0].id]
    assert item["done"] is False
    assert item["inProgress"] is False


def test_suspend_stores_resume_and_restart_resumes(session, repos):
    session.start_workout(0)
    for _ in range(3):
        session.tick()
    state = session.suspend()
    assert state["view"] == HOME
    assert state["resume"]["workoutId"] == WORKOUTS[0].id
    assert state["resume"]["seconds"] == 2
    state = session.start_workout(0)
    assert session.timer.resumed
    assert state["timer"]["seconds"] == 2
    assert repos[2].load_resume() is None


def test_update_settings_during_workout(session, repos):
    session.start_workout(0)
    assert session.timer.phase is WorkoutPhase.GET_READY
    settings = session.update_settings(enable_warmup=False)
    assert settings.enable_warmup is False
    assert session.timer.phase is WorkoutPhase.GET_READY_WORK
    assert repos[1].load_settings().enable_warmup is False
    with pytest.raises(ValueError):
        session.update_settings(volume=3)
    with pytest.raises(ValueError):
        session.update_settings(audio_cues="loud")


def test_save_reps_and_continue(session, repos):
    session.start_workout(2)
    session.finish()
    assert session.open_rep_tracking()["view"] == REP_TRACKING
    with pytest.raises(ValueError):
        session.save_reps([1])
    state = session.save_reps(["10", ""])
    assert repos[0].load()[WORKOUTS[2].id]["reps"] == [10, 0]
    assert state["view"] == HOME
    assert state["selected_index"] == 0


def test_state_includes_progress_dots(session):
    state = session.start_workout(0)
    assert state["view"] == WORKOUT
    assert state["timer"]["phase"] == "getready"
    assert len(state["timer"]["progress_dots"]["rounds"]) == 2


def test_tick_scheduler_calls_back_until_stopped():
    calls = []
    scheduler = TickScheduler(lambda s: calls.append(s), interval=0.01)
    scheduler.start()
    time.sleep(0.1)
    scheduler.stop()
    scheduler.join(1)
    assert calls
    assert all(c is scheduler for c in calls)
    assert scheduler.stopped


def test_background_ticker_counts_down(repos):
    progress, settings, ui = repos
    svc = SessionService(
        WORKOUTS, progress, settings, ui, audio=SilentAudio(), start_ticker=True, tick_interval=0.01
    )
    try:
        svc.start_workout(0)
        deadline = time.time() + 2
        while svc.timer.seconds == 5 and time.time() < deadline:
            time.sleep(0.01)
        assert svc.timer.seconds < 5 or svc.timer.phase is not WorkoutPhase.GET_READY
        svc.pause()
        assert svc._ticker is None
    finally:
        svc.close()
