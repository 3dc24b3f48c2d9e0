import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from catalog import (
    BUILTIN_CSV,
    build_catalog,
    build_workout,
    create_exercise,
    load_builtin_catalog,
    load_catalog_file,
    parse_cycles_text,
    read_catalog_csv,
    slugify,
)


RAW = {
    "cycle": "Cycle 1",
    "week": "Week 1",
    "day": "Monday",
    "preWarmUp": "Standing March",
    "timing": "40/20",
    "warmUp": "Crawling Warm Up",
    "exercises": ["Parallel Leg Crunch", "Starfish Twist", "Stork Stance"],
    "coolDown": "Spiderman A-Frames",
}


def test_build_workout():
    w = build_workout(RAW)
    assert w.id == "cycle 1|week 1|monday|40/20"
    assert (w.work, w.rest, w.rounds) == (40, 20, 3)
    assert [e.name for e in w.warm_up_exercises] == ["Pointers", "Hip Circles", "Twist and Reach"]
    assert w.exercises[1].image == "https://picsum.photos/seed/starfish-twist/400/400"
    assert len(w.exercises[0].description) == 3


def test_side_lying_warmup_and_rounds_override():
    w = build_workout({**RAW, "warmUp": "Side-Lying Warm Up", "rounds": 5})
    assert w.warm_up_exercises[0].name == "Backstroke"
    assert w.rounds == 5


def test_build_catalog_skips_invalid_records(caplog):
    raws = [
        RAW,
        {**RAW, "exercises": []},
        {**RAW, "rounds": 0},
        {"cycle": "Cycle 9"},
    ]
    workouts = build_catalog(raws)
    assert len(workouts) == 1
    assert "Skipping malformed" in caplog.text


def test_builtin_catalog():
    workouts = load_builtin_catalog()
    assert len(workouts) == 102
    assert all(w.id == w.id.lower() for w in workouts)
    assert workouts[0].cycle == "Cycle 1"
    assert len({w.id for w in workouts}) == len(workouts)


def test_builtin_csv_is_package_data():
    assert BUILTIN_CSV.is_file()
    assert BUILTIN_CSV.name == "builtin_workouts.csv"
    assert len(read_catalog_csv(str(BUILTIN_CSV))) == 102


def test_slugify():
    assert slugify("Side-Lying Leg Lifts") == "side-lying-leg-lifts"
    assert create_exercise("A B").name == "A B"


def test_parse_cycles_text_variants():
    assert parse_cycles_text('[{"cycle": "C1"}]') == [{"cycle": "C1"}]
    js = """
    // custom plan
    export const CYCLES = [
      { cycle: 'C1', week: 'W1', /* note */ day: 'Mon', },
    ];
    """
    assert parse_cycles_text(js) == [{"cycle": "C1", "week": "W1", "day": "Mon"}]
    assert parse_cycles_text("not a list") is None
    assert parse_cycles_text("") is None


def test_load_catalog_file(tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(
        "[{cycle: 'C1', week: 'W1', day: 'Mon', preWarmUp: 'March', timing: '30/30x2',"
        " warmUp: 'Crawling Warm Up', exercises: ['Squat'], coolDown: 'Stretch'}]",
        encoding="utf-8",
    )
    workouts = load_catalog_file(str(path))
    assert len(workouts) == 1
    assert workouts[0].rounds == 2
