from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Body, FastAPI, HTTPException, Response

from catalog import load_builtin_catalog, load_catalog_file
from config import APP_VERSION, DEFAULT_DB_PATH, DEFAULT_SETTINGS_PATH
from db import (
    ProfileRepository,
    ProgressRepository,
    SettingsRepository,
    UIStateRepository,
)
from history_service import HistoryService
from session_service import SessionService
from stats_service import StatisticsService
from timer_service import AudioPlayer


class TimerAPI:
    """Provides REST endpoints driving the workout timer."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        yaml_path: str = DEFAULT_SETTINGS_PATH,
        *,
        start_ticker: bool = False,
        catalog_path: Optional[str] = None,
        audio: Optional[AudioPlayer] = None,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.progress = ProgressRepository(db_path)
        self.profiles = ProfileRepository(db_path)
        self.ui_state = UIStateRepository(db_path)
        if catalog_path:
            self.catalog = load_catalog_file(catalog_path)
        else:
            self.catalog = load_builtin_catalog()
        self.history = HistoryService(self.catalog, self.progress, self.ui_state)
        self.statistics = StatisticsService(self.progress, self.catalog)
        self.session = SessionService(
            self.catalog,
            self.progress,
            self.settings,
            self.ui_state,
            audio,
            start_ticker=start_ticker,
        )
        self.session.initial_selection()

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            yield
            # stop the tick thread on shutdown
            self.session.close()

        self.app = FastAPI(
            title="Lean Timer API",
            description="Local REST interface for the interval workout timer",
            version=APP_VERSION,
            lifespan=lifespan,
        )
        self._setup_routes()

    def _workout_summary(self, index: int) -> dict:
        if not 0 <= index < len(self.catalog):
            raise HTTPException(status_code=404, detail="workout not found")
        return self.catalog[index].summary(index)

    def _setup_routes(self) -> None:
        def call(fn, *args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except IndexError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/health")
        def health():
            """Return API and database connection status."""
            self.progress.load()
            return {"status": "ok", "version": APP_VERSION}

        @self.app.get("/workouts")
        def list_workouts():
            return [w.summary(i) for i, w in enumerate(self.catalog)]

        @self.app.get("/workouts/{index}")
        def get_workout(index: int):
            data = self._workout_summary(index)
            w = self.catalog[index]
            data.update(
                {
                    "pre_warm_up": w.pre_warm_up.name,
                    "warm_up": w.warm_up.name,
                    "warm_up_exercises": [e.name for e in w.warm_up_exercises],
                    "cool_down": w.cool_down.name,
                    "images": {e.name: e.image for e in w.exercises},
                    "description": self.history.describe(index),
                }
            )
            return data

        @self.app.get("/home")
        def home():
            index = self.session.selected_index
            progress = self.progress.load()
            workout = self._workout_summary(index) if self.catalog else None
            item = progress.get(workout["id"], {}) if workout else {}
            return {
                "view": self.session.view,
                "selected_index": index,
                "workout": workout,
                "done": bool(item.get("done")),
                "in_progress": bool(item.get("inProgress")),
                "profile": self.profiles.load(),
            }

        @self.app.post("/select")
        def select_workout(index: int):
            workout = call(self.session.select, index)
            return workout.summary(index)

        @self.app.get("/progress")
        def get_progress():
            return self.progress.load()

        @self.app.delete("/progress")
        def reset_progress():
            self.progress.reset_all()
            return {"status": "reset"}

        @self.app.get("/history")
        def get_history():
            return self.history.cycle_groups()

        @self.app.post("/history/{index}/toggle")
        def toggle_done(index: int):
            return call(self.history.toggle_done, index)

        @self.app.post("/history/cycles/{name}/done")
        def mark_cycle_done(name: str):
            return call(self.history.mark_cycle_done, name)

        @self.app.post("/history/cycles/{name}/reset")
        def reset_cycle(name: str):
            return call(self.history.reset_cycle, name)

        @self.app.post("/history/cycles/{name}/collapse")
        def toggle_collapse(name: str):
            return self.history.toggle_collapse(name)

        @self.app.get("/settings")
        def get_settings():
            return self.session.settings.model_dump()

        @self.app.post("/settings")
        def update_settings(
            audio_cues: bool = None,
            track_reps: bool = None,
            enable_warmup: bool = None,
            enable_cooldown: bool = None,
            enable_glass_motion: bool = None,
        ):
            changes = {
                k: v
                for k, v in {
                    "audio_cues": audio_cues,
                    "track_reps": track_reps,
                    "enable_warmup": enable_warmup,
                    "enable_cooldown": enable_cooldown,
                    "enable_glass_motion": enable_glass_motion,
                }.items()
                if v is not None
            }
            return call(self.session.update_settings, **changes).model_dump()

        @self.app.get("/profile")
        def get_profile():
            profile = self.profiles.load()
            if profile is None:
                raise HTTPException(status_code=404, detail="no profile")
            return profile

        @self.app.post("/profile")
        def save_profile(name: str):
            name = name.strip()
            if not name:
                raise HTTPException(status_code=400, detail="name required")
            profile = {"name": name}
            self.profiles.save(profile)
            return profile

        @self.app.get("/profile/stats")
        def profile_stats():
            return self.statistics.profile_stats()

        @self.app.get("/exercises/{name}/history")
        def exercise_history(name: str):
            return self.statistics.exercise_history(name)

        @self.app.get("/music")
        def get_music():
            return {"video_id": self.ui_state.get_music_id()}

        @self.app.post("/music")
        def set_music(video_id: str):
            self.ui_state.set_music_id(video_id)
            return {"video_id": video_id}

        @self.app.delete("/music")
        def clear_music():
            self.ui_state.clear_music_id()
            return {"video_id": None}

        @self.app.get("/session")
        def get_session():
            return self.session.state()

        @self.app.post("/session/start")
        def start_session(index: int = None):
            return call(self.session.start_workout, index)

        @self.app.post("/session/pause")
        def pause_session():
            return call(self.session.pause)

        @self.app.post("/session/resume")
        def resume_session():
            return call(self.session.resume)

        @self.app.post("/session/advance")
        def advance_session(direction: int = 1):
            return call(self.session.advance, direction)

        @self.app.post("/session/tick")
        def tick_session(count: int = 1):
            if count < 1:
                raise HTTPException(status_code=400, detail="count must be positive")
            state = None
            for _ in range(count):
                state = self.session.tick()
            return state

        @self.app.post("/session/reset")
        def reset_session():
            return call(self.session.reset)

        @self.app.post("/session/exit")
        def exit_session():
            return call(self.session.exit)

        @self.app.post("/session/suspend")
        def suspend_session():
            return call(self.session.suspend)

        @self.app.post("/session/reps")
        def log_session_rep(index: int, value: str = None):
            return call(self.session.log_rep, index, value)

        @self.app.delete("/session/prompt")
        def dismiss_prompt():
            return call(self.session.dismiss_rep_prompt)

        @self.app.post("/session/finish")
        def finish_session():
            return call(self.session.finish)

        @self.app.post("/reps/open")
        def open_rep_tracking():
            return call(self.session.open_rep_tracking)

        @self.app.post("/reps")
        def save_reps(reps: List[Optional[int]] = Body(...)):
            return call(self.session.save_reps, reps)

        @self.app.post("/continue")
        def continue_to_next():
            return call(self.session.continue_to_next)

        @self.app.get("/settings/backup")
        def backup_db():
            with open(self.db_path, "rb") as f:
                data = f.read()
            return Response(
                content=data,
                media_type="application/octet-stream",
                headers={"Content-Disposition": "attachment; filename=backup.db"},
            )


if __name__ == "__main__":
    import uvicorn

    api = TimerAPI(start_ticker=True)
    uvicorn.run(api.app)
