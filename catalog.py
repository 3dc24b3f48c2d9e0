from __future__ import annotations
import csv
import json
import logging
import re
from importlib import resources
from typing import Iterable, Optional

from models import Exercise, Workout
from timing import assert_workout, parse_timing

logger = logging.getLogger(__name__)

BUILTIN_CSV = resources.files("workout_data").joinpath("builtin_workouts.csv")

CRAWLING_WARMUP = "Crawling Warm Up"
CRAWLING_WARMUP_NAMES = ["Pointers", "Hip Circles", "Twist and Reach"]
SIDELYING_WARMUP_NAMES = ["Backstroke", "ITB Leg Lifts", "Side-Lying Leg Lifts"]

DEFAULT_CUES = (
    "Maintain a straight back and engaged core.",
    "Focus on controlled, deliberate movements.",
    "Breathe steadily throughout the exercise.",
)


def slugify(text: str) -> str:
    slug = re.sub(r"\s+", "-", text.lower())
    return re.sub(r"[^\w-]+", "", slug)


def create_exercise(name: str) -> Exercise:
    return Exercise(
        name=name,
        image=f"https://picsum.photos/seed/{slugify(name)}/400/400",
        description=DEFAULT_CUES,
    )


def workout_uid(cycle: str, week: str, day: str, timing: str) -> str:
    return f"{cycle}|{week}|{day}|{timing}".lower()


def build_workout(raw: dict) -> Workout:
    """Turn a raw catalog record into a :class:`Workout`.

    Raises ``KeyError``/``TypeError`` for structurally broken records; use
    :func:`build_catalog` for lenient building.
    """
    timing = raw.get("timing") or ""
    parsed = parse_timing(timing, raw.get("rounds"))
    warm_up = raw["warmUp"]
    station_names = CRAWLING_WARMUP_NAMES if warm_up == CRAWLING_WARMUP else SIDELYING_WARMUP_NAMES
    exercises = raw["exercises"]
    if isinstance(exercises, str):
        raise TypeError("exercises must be a list of names")
    return Workout(
        id=workout_uid(raw["cycle"], raw["week"], raw["day"], timing),
        cycle=raw["cycle"],
        week=raw["week"],
        day=raw["day"],
        timing=timing,
        work=parsed["work"],
        rest=parsed["rest"],
        rounds=parsed["rounds"],
        pre_warm_up=create_exercise(raw["preWarmUp"]),
        warm_up=create_exercise(warm_up),
        warm_up_exercises=tuple(create_exercise(n) for n in station_names),
        exercises=tuple(create_exercise(n) for n in exercises),
        cool_down=create_exercise(raw["coolDown"]),
    )


def build_catalog(raws: Iterable[dict]) -> list[Workout]:
    """Build every record, keeping only those that pass validation."""
    workouts: list[Workout] = []
    for raw in raws:
        try:
            workout = build_workout(raw)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning("Skipping malformed workout record %r: %s", raw, e)
            continue
        if assert_workout(workout):
            workouts.append(workout)
    return workouts


def read_catalog_csv(path: str) -> list[dict]:
    with open(path, newline="", encoding="utf-8") as csvfile:
        reader = csv.DictReader(csvfile)
        records = []
        for row in reader:
            raw = {
                "cycle": row["Cycle"],
                "week": row["Week"],
                "day": row["Day"],
                "preWarmUp": row["Pre Warm Up"],
                "timing": row["Timing"],
                "warmUp": row["Warm Up"],
                "exercises": [e for e in row["Exercises"].split("|") if e],
                "coolDown": row["Cool Down"],
            }
            if row.get("Rounds"):
                raw["rounds"] = int(row["Rounds"])
            records.append(raw)
    return records


def load_builtin_catalog() -> list[Workout]:
    with resources.as_file(BUILTIN_CSV) as path:
        return build_catalog(read_catalog_csv(str(path)))


def _strip_comments(text: str) -> str:
    text = re.sub(r"/\*[\s\S]*?\*/", "", text)
    return re.sub(r"(^|[^:])//.*$", r"\1", text, flags=re.MULTILINE)


def _extract_array_text(text: str) -> str:
    start = text.find("[")
    end = text.rfind("]")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text.strip()


def _js_like_to_json(text: str) -> str:
    out = re.sub(r"([,{]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:", r'\1"\2":', text)
    return re.sub(r",\s*([}\]])", r"\1", out)


def parse_cycles_text(text: str) -> Optional[list]:
    """Leniently parse a user supplied workout file.

    Accepts plain JSON, or a JavaScript-like array literal with comments,
    bare keys, trailing commas and single-quoted strings.
    """
    if not text:
        return None
    stripped = _strip_comments(text)
    try:
        data = json.loads(stripped)
        if isinstance(data, list):
            return data
    except ValueError:
        pass

    arr = _js_like_to_json(_extract_array_text(stripped))
    try:
        data = json.loads(arr)
        if isinstance(data, list):
            return data
    except ValueError:
        pass

    try:
        data = json.loads(re.sub(r"'([^']*)'", r'"\1"', arr))
        if isinstance(data, list):
            return data
    except ValueError as e:
        logger.error("Failed to parse workout file: %s", e)
    return None


def load_catalog_file(path: str) -> list[Workout]:
    with open(path, "r", encoding="utf-8") as f:
        raws = parse_cycles_text(f.read())
    if raws is None:
        return []
    return build_catalog(raws)
