from datetime import datetime, timedelta, timezone

import pytest

from services.inventory_service.app.analytics import calculate_turnover_rate, resolve_window


@pytest.mark.parametrize(
    ("stock_out", "days", "expected"),
    [
        (30, 30, 1.0),
        (10, 3, 3.33),
        (1, 8, 0.13),
        (0, 30, 0.0),
        (25, 0, 0.0),
    ],
)
def test_calculate_turnover_rate(stock_out: int, days: float, expected: float) -> None:
    assert calculate_turnover_rate(stock_out, days) == expected


def test_resolve_window_defaults_to_last_thirty_days() -> None:
    start, end = resolve_window(None, None)

    assert end.tzinfo is not None
    assert end - start == timedelta(days=30)


def test_resolve_window_treats_naive_bounds_as_utc() -> None:
    start, end = resolve_window(datetime(2026, 1, 1), datetime(2026, 1, 31, 12))

    assert start == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 31, 12, tzinfo=timezone.utc)


def test_resolve_window_converts_offsets_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))

    start, _ = resolve_window(datetime(2026, 1, 1, 2, tzinfo=plus_two), datetime(2026, 1, 2, tzinfo=timezone.utc))

    assert start == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_resolve_window_rejects_inverted_range() -> None:
    with pytest.raises(ValueError, match="startDate must not be after endDate"):
        resolve_window(datetime(2026, 2, 1), datetime(2026, 1, 1))
