import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rep_buffer import RepSessionBuffer, parse_rep_value


@pytest.mark.parametrize(
    "value, expected",
    [(None, None), ("", None), ("  ", None), ("abc", None), ("12", 12), (" 7 ", 7), (3.9, 3), (0, 0)],
)
def test_parse_rep_value(value, expected):
    assert parse_rep_value(value) == expected


@pytest.mark.parametrize("value", [-1, "-3", True, [1]])
def test_parse_rep_value_rejects(value):
    with pytest.raises(ValueError):
        parse_rep_value(value)


def test_buffer_set_and_get():
    buf = RepSessionBuffer(3)
    assert len(buf) == 3
    assert not buf.has_entries()
    assert buf.set(1, "15") == 15
    assert buf.get(1) == 15
    assert buf.has_entries()
    assert buf.to_list() == [None, 15, None]
    assert buf.as_reps() == [0, 15, 0]


def test_buffer_index_checked():
    buf = RepSessionBuffer(2)
    with pytest.raises(IndexError):
        buf.set(2, 5)
    with pytest.raises(IndexError):
        buf.get(-1)


def test_buffer_load_pads_and_truncates():
    buf = RepSessionBuffer(3)
    buf.load([4, "bad", -2, 9])
    assert buf.to_list() == [4, None, None]
    buf.load([1])
    assert buf.to_list() == [1, None, None]
    buf.reset()
    assert buf.to_list() == [None, None, None]
