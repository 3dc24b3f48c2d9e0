import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from models import Exercise, Workout
from timing import assert_workout, parse_timing


@pytest.mark.parametrize(
    "timing, expected",
    [
        ("40/20", (40, 20, 3)),
        ("45/15x4", (45, 15, 4)),
        ("30-30", (30, 30, 3)),
        ("50 / 10 X 2", (50, 10, 2)),
    ],
)
def test_slash_grammar(timing, expected):
    result = parse_timing(timing)
    assert (result["work"], result["rest"], result["rounds"]) == expected


def test_key_value_grammar_wins():
    assert parse_timing("work=30, rest=10, rounds=5") == {"work": 30, "rest": 10, "rounds": 5}
    assert parse_timing("WORK=25") == {"work": 25, "rest": 20, "rounds": 3}


def test_later_duplicate_keys_overwrite():
    assert parse_timing("work=30 work=35")["work"] == 35


def test_unknown_keys_fall_through_to_slash():
    assert parse_timing("40/20 tempo=2") == {"work": 40, "rest": 20, "rounds": 3}


def test_unparseable_keeps_defaults():
    assert parse_timing("AMRAP") == {"work": 40, "rest": 20, "rounds": 3}
    assert parse_timing("") == {"work": 40, "rest": 20, "rounds": 3}
    assert parse_timing(None) == {"work": 40, "rest": 20, "rounds": 3}


@pytest.mark.parametrize("timing", ["40/20x4", "work=30 rounds=9", "nonsense", ""])
def test_override_rounds_always_wins(timing):
    assert parse_timing(timing, 7)["rounds"] == 7


def test_assert_workout_accepts_minimal_record():
    record = {"id": "a", "work": 40, "rest": 20, "rounds": 3, "exercises": [{"name": "A"}]}
    assert assert_workout(record)
    assert assert_workout(Workout("a", 40, 20, 3, (Exercise("A"),)))


@pytest.mark.parametrize(
    "changes",
    [
        {"rounds": 0},
        {"rounds": -1},
        {"exercises": []},
        {"id": ""},
        {"work": -5},
        {"rest": "20"},
        {"exercises": "A"},
    ],
)
def test_assert_workout_rejects(changes):
    record = {"id": "a", "work": 40, "rest": 20, "rounds": 3, "exercises": [{"name": "A"}]}
    record.update(changes)
    assert not assert_workout(record)


def test_assert_workout_logs_reason(caplog):
    assert not assert_workout(None)
    assert "missing" in caplog.text
