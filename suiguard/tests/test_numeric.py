"""Tests for suiguard.core.numeric."""

from __future__ import annotations

import pytest

from suiguard.core.numeric import clamp, round_half_up, safe_ratio


@pytest.mark.parametrize(
    "value, expected",
    [(46.5, 47), (45.5, 46), (0.5, 1), (-2.5, -2), (2.4999, 2), (60.5, 61), (10, 10)],
)
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_round_half_up_differs_from_builtin():
    assert round(46.5) == 46
    assert round_half_up(46.5) == 47


@pytest.mark.parametrize("value, expected", [(-1, 0), (0, 0), (55.5, 55.5), (101, 100)])
def test_clamp_default_range(value, expected):
    assert clamp(value) == expected


def test_clamp_custom_range():
    assert clamp(5, 10, 50) == 10
    assert clamp(70, 10, 50) == 50


def test_safe_ratio():
    assert safe_ratio(1, 4) == 0.25
    assert safe_ratio(3, 0) == 0.0
    assert safe_ratio(3, -1) == 0.0
