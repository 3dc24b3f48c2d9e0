from __future__ import annotations
from typing import Iterable, Optional


def parse_rep_value(value) -> Optional[int]:
    """Coerce user input to a rep count.

    ``None``, blank and non-numeric text become ``None``; negative counts
    raise ``ValueError``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("reps must be a number")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = int(float(text))
        except ValueError:
            return None
    elif isinstance(value, float):
        value = int(value)
    elif not isinstance(value, int):
        raise ValueError(f"unsupported rep value {value!r}")
    if value < 0:
        raise ValueError("reps cannot be negative")
    return value


class RepSessionBuffer:
    """Reps entered during the current session, one slot per exercise."""

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("size must be non-negative")
        self._values: list[Optional[int]] = [None] * size

    def __len__(self) -> int:
        return len(self._values)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._values):
            raise IndexError(f"exercise index {index} out of range")

    def set(self, index: int, value) -> Optional[int]:
        self._check_index(index)
        parsed = parse_rep_value(value)
        self._values[index] = parsed
        return parsed

    def get(self, index: int) -> Optional[int]:
        self._check_index(index)
        return self._values[index]

    def has_entries(self) -> bool:
        return any(v is not None for v in self._values)

    def to_list(self) -> list[Optional[int]]:
        return list(self._values)

    def as_reps(self) -> list[int]:
        return [v if v is not None else 0 for v in self._values]

    def load(self, values: Iterable[Optional[int]]) -> None:
        size = len(self._values)
        restored: list[Optional[int]] = []
        for v in list(values)[:size]:
            try:
                restored.append(parse_rep_value(v))
            except ValueError:
                restored.append(None)
        restored.extend([None] * (size - len(restored)))
        self._values = restored

    def reset(self) -> None:
        self._values = [None] * len(self._values)
