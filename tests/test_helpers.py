from __future__ import annotations

from datetime import datetime, timezone

import pytest

from preorder.services.phone import normalize_phone
from preorder.services.pricing import calculate_total_cents
from preorder.services.week import week_key

NY = "America/New_York"


def test_week_key_is_monday_for_whole_week() -> None:
    # Monday 2024-06-03 00:30 through Sunday 2024-06-09 23:30, New York time (UTC-4)
    instants = [
        datetime(2024, 6, 3, 4, 30, tzinfo=timezone.utc),
        datetime(2024, 6, 5, 12, 0, tzinfo=timezone.utc),
        datetime(2024, 6, 8, 15, 0, tzinfo=timezone.utc),
        datetime(2024, 6, 10, 3, 30, tzinfo=timezone.utc),
    ]
    assert {week_key(i, NY) for i in instants} == {"2024-06-03"}


def test_week_key_rolls_over_on_local_monday() -> None:
    # 2024-06-10 03:59 UTC is still Sunday evening in New York
    assert week_key(datetime(2024, 6, 10, 3, 59, tzinfo=timezone.utc), NY) == "2024-06-03"
    assert week_key(datetime(2024, 6, 10, 4, 0, tzinfo=timezone.utc), NY) == "2024-06-10"


@pytest.mark.parametrize(
    ("instant", "expected"),
    [
        # spring forward: Sunday 2024-03-10 02:00 EST becomes 03:00 EDT
        (datetime(2024, 3, 4, 5, 0, tzinfo=timezone.utc), "2024-03-04"),
        (datetime(2024, 3, 10, 6, 30, tzinfo=timezone.utc), "2024-03-04"),
        (datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc), "2024-03-04"),
        (datetime(2024, 3, 11, 3, 59, tzinfo=timezone.utc), "2024-03-04"),
        (datetime(2024, 3, 11, 4, 0, tzinfo=timezone.utc), "2024-03-11"),
        # fall back: Sunday 2024-11-03 01:00-02:00 happens twice
        (datetime(2024, 10, 28, 4, 0, tzinfo=timezone.utc), "2024-10-28"),
        (datetime(2024, 11, 3, 5, 30, tzinfo=timezone.utc), "2024-10-28"),
        (datetime(2024, 11, 3, 6, 30, tzinfo=timezone.utc), "2024-10-28"),
        (datetime(2024, 11, 4, 4, 59, tzinfo=timezone.utc), "2024-10-28"),
        (datetime(2024, 11, 4, 5, 0, tzinfo=timezone.utc), "2024-11-04"),
    ],
)
def test_week_key_across_dst_changes(instant, expected) -> None:
    assert week_key(instant, NY) == expected


def test_week_key_naive_instant_is_utc() -> None:
    assert week_key(datetime(2024, 6, 10, 2, 0), NY) == "2024-06-03"
    assert week_key(datetime(2024, 6, 10, 2, 0), "UTC") == "2024-06-10"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("(555) 123-4567", "+15551234567"),
        ("1-555-123-4567", "+15551234567"),
        ("15551234567", "+15551234567"),
        ("+15551234567", "+15551234567"),
        ("+44 20 7946 0958", "+442079460958"),
        ("12345", "+12345"),
        ("", "+"),
        (None, "+"),
    ],
)
def test_normalize_phone(raw, expected) -> None:
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize(
    ("item", "options", "expected"),
    [
        ("bagel", {}, 300),
        ("bagel", {"spread": "Cream Cheese"}, 400),
        ("bagel", {"spread": "None"}, 300),
        ("bagel", {"spread": "Butter", "hashbrown": True}, 500),
        ("bagel", {"hashbrown": "none"}, 400),
        ("sandwich", {}, 700),
        ("sandwich", {"extraMeat": "bacon"}, 900),
        ("sandwich", {"extraMeat": "none", "hashbrown": "none"}, 700),
        ("sandwich", {"extraMeat": "sausage", "hashbrown": "yes"}, 1000),
        ("coffee", {"hashbrown": True}, 0),
    ],
)
def test_calculate_total_cents(item, options, expected) -> None:
    assert calculate_total_cents(item, options) == expected


def test_calculate_total_cents_without_options() -> None:
    assert calculate_total_cents("bagel", None) == 300
