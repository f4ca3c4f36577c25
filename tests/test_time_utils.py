"""Unit tests for timestamp normalization."""

import pytest

from prompt_shape.time_utils import to_epoch_ms

EPOCH_2026 = 1767225600000  # 2026-01-01T00:00:00Z


@pytest.mark.parametrize("value", [
    "2026-01-01T00:00:00Z",
    "2026-01-01T00:00:00+00:00",
    "2026-01-01T00:00:00",
    "2026-01-01T01:00:00+01:00",
    EPOCH_2026,
    EPOCH_2026 / 1000,
    str(EPOCH_2026),
])
def test_equivalent_timestamps(value):
    assert to_epoch_ms(value) == EPOCH_2026


@pytest.mark.parametrize("value, extra_ms", [
    ("2026-01-01T00:00:00.250Z", 250),
    ("2026-01-01T00:00:00.12Z", 120),
    ("2026-01-01T00:00:00.5+00:00", 500),
    ("2026-01-01T00:00:00.1234567Z", 123),
])
def test_fractional_seconds(value, extra_ms):
    assert to_epoch_ms(value) == EPOCH_2026 + extra_ms


@pytest.mark.parametrize("value", [None, "", "yesterday", True, -5, float("nan"), {"t": 1}])
def test_unusable_values_are_zero(value):
    assert to_epoch_ms(value) == 0


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), "Infinity", "-Infinity", "1e999", "NaN"])
def test_non_finite_values_are_zero(value):
    assert to_epoch_ms(value) == 0
