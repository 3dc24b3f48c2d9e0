from __future__ import annotations
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_WORK = 40
DEFAULT_REST = 20
DEFAULT_ROUNDS = 3

_KV_PATTERN = re.compile(r"([a-zA-Z]+)\s*=\s*(\d+)")
_SLASH_PATTERN = re.compile(r"^(\d+)\s*[/-]\s*(\d+)(?:\s*[xX]\s*(\d+))?")


def parse_timing(timing: str | None, override_rounds: int | None = None) -> dict[str, int]:
    """Parse a timing descriptor such as ``"40/20x3"`` or ``"work=40, rest=20"``.

    Key-value pairs are tried first and win if any of ``work``, ``rest`` or
    ``rounds`` is present. Otherwise a leading ``W/R`` (or ``W-R``) with an
    optional ``xN`` suffix is used. Unparseable input keeps the defaults.
    ``override_rounds`` always replaces the parsed round count.
    """
    values = {"work": DEFAULT_WORK, "rest": DEFAULT_REST, "rounds": DEFAULT_ROUNDS}
    text = (timing or "").strip()

    matched_kv = False
    for key, value in _KV_PATTERN.findall(text):
        key = key.lower()
        if key in values:
            values[key] = int(value)
            matched_kv = True

    if text and not matched_kv:
        match = _SLASH_PATTERN.match(text)
        if match:
            values["work"] = int(match.group(1))
            values["rest"] = int(match.group(2))
            if match.group(3):
                values["rounds"] = int(match.group(3))
        else:
            logger.debug("Unrecognised timing %r, using defaults", timing)

    if override_rounds is not None:
        values["rounds"] = override_rounds
    return values


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def assert_workout(workout: Any) -> bool:
    """Return ``True`` if ``workout`` can safely drive a timer session.

    Accepts a :class:`models.Workout` or a plain mapping. Failures are
    logged, never raised.
    """
    if workout is None:
        logger.warning("Validator failed: workout is missing")
        return False
    wid = _field(workout, "id")
    if not isinstance(wid, str) or not wid:
        logger.warning("Validator failed: workout has invalid id: %r", workout)
        return False
    work = _field(workout, "work")
    if not _is_int(work) or work < 0:
        logger.warning("Validator failed: workout %s has invalid work duration", wid)
        return False
    rest = _field(workout, "rest")
    if not _is_int(rest) or rest < 0:
        logger.warning("Validator failed: workout %s has invalid rest duration", wid)
        return False
    rounds = _field(workout, "rounds")
    if not _is_int(rounds) or rounds <= 0:
        logger.warning("Validator failed: workout %s has invalid rounds count", wid)
        return False
    exercises = _field(workout, "exercises")
    if (
        not isinstance(exercises, Sequence)
        or isinstance(exercises, str)
        or len(exercises) == 0
    ):
        logger.warning("Validator failed: workout %s has no exercises", wid)
        return False
    return True
