"""Unit tests for admin options and report date parsing."""

import pytest

from app.services.options_service import OptionsStore, sanitize_cache_duration, sanitize_default_range
from app.utils.tools import parse_report_date


class TestSanitizers:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (3600, 3600),
            ("120", 120),
            (-60, 60),
            ("1.5", 1),
            (" -90.9 ", 90),
            ("inf", 0),
            ("abc", 0),
            (None, 0),
            ("", 0),
        ],
    )
    def test_cache_duration(self, raw, expected):
        assert sanitize_cache_duration(raw) == expected

    @pytest.mark.parametrize("raw", ["30", "90", "365", "all"])
    def test_allowed_ranges_kept(self, raw):
        assert sanitize_default_range(raw) == raw

    def test_unknown_range_falls_back(self):
        assert sanitize_default_range("7") == "365"
        assert sanitize_default_range(None) == "365"


class TestOptionsStore:

    def test_defaults_without_file(self, tmp_path):
        store = OptionsStore(tmp_path / "options.yaml", default_cache_duration=3600)
        assert store.as_dict() == {"cache_duration": 3600, "default_range": "365"}

    def test_update_persists(self, tmp_path):
        path = tmp_path / "options.yaml"
        OptionsStore(path).update(cache_duration="-900", default_range="90")

        reloaded = OptionsStore(path)
        assert reloaded.get_cache_duration() == 900
        assert reloaded.get_default_range() == "90"

    def test_partial_update_keeps_other_field(self, tmp_path):
        store = OptionsStore(tmp_path / "options.yaml")
        store.update(cache_duration=0, default_range="all")
        store.update(cache_duration=60)
        assert store.as_dict() == {"cache_duration": 60, "default_range": "all"}

    def test_malformed_file_uses_defaults(self, tmp_path):
        path = tmp_path / "options.yaml"
        path.write_text("cache_duration: [unclosed\n", encoding="utf-8")
        assert OptionsStore(path, default_cache_duration=10).get_cache_duration() == 10

    def test_external_edit_seen_by_live_store(self, tmp_path):
        path = tmp_path / "options.yaml"
        store = OptionsStore(path)
        store.update(cache_duration=600)

        path.write_text("cache_duration: '90.5'\ndefault_range: '30'\n", encoding="utf-8")

        assert store.get_cache_duration() == 90
        assert store.get_default_range() == "30"


class TestParseReportDate:

    @pytest.mark.parametrize("value", ["2024-02-29", "2023-12-31"])
    def test_valid_dates(self, value):
        assert parse_report_date(value) == value

    @pytest.mark.parametrize("value", [None, "", "  "])
    def test_empty_means_unbounded(self, value):
        assert parse_report_date(value) is None

    @pytest.mark.parametrize("value", ["2024-02-30", "2023-02-29", "not-a-date", "2024/01/01", "2024-1-1"])
    def test_invalid_dates_rejected(self, value):
        with pytest.raises(ValueError):
            parse_report_date(value)
