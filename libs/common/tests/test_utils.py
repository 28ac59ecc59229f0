from __future__ import annotations

from datetime import datetime

import pytest
from common.utils import display_name, format_iso, now_utc_iso, pair_key, parse_iso_datetime

pytestmark = pytest.mark.unit


def test_pair_key_ignores_argument_order() -> None:
    assert pair_key("user-b", "user-a") == pair_key("user-a", "user-b")
    assert pair_key("user-a", "user-b") == "user-a:user-b"


def test_display_name_skips_blank_parts() -> None:
    assert display_name("Ada", "Lovelace") == "Ada Lovelace"
    assert display_name("Ada", "  ") == "Ada"
    assert display_name(None, None) == ""


def test_parse_iso_datetime_assumes_utc_for_naive_values() -> None:
    parsed = parse_iso_datetime("2026-02-12T10:00:00")
    assert parsed is not None
    assert parsed.utcoffset().total_seconds() == 0
    assert parse_iso_datetime("not a date") is None
    assert parse_iso_datetime(None) is None


def test_now_utc_iso_returns_parseable_utc_timestamp() -> None:
    parsed = datetime.fromisoformat(now_utc_iso())
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() is not None
    assert parsed.utcoffset().total_seconds() == 0


def test_format_iso_normalizes_to_sortable_utc() -> None:
    whole_second = format_iso(datetime(2026, 1, 1, 0, 0, 0))
    later = format_iso(datetime(2026, 1, 1, 0, 0, 0, 5))
    assert whole_second == "2026-01-01T00:00:00.000000+00:00"
    assert whole_second < later
