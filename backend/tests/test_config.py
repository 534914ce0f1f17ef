"""Tests for config.py -- settings validation."""

import pytest
from pydantic import ValidationError

from config import Settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.port_range_start == 6100
        assert settings.port_range_end == 6200
        assert settings.bridge_port_offset == 1000
        assert settings.sandbox_max_age_seconds == 7200.0
        assert settings.sweep_interval_seconds == 300.0

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT_RANGE_START", "9000")
        monkeypatch.setenv("PORT_RANGE_END", "9010")
        settings = Settings(_env_file=None)
        assert (settings.port_range_start, settings.port_range_end) == (9000, 9010)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ('["http://a.test", "http://b.test"]', ["http://a.test", "http://b.test"]),
            ("http://a.test, http://b.test", ["http://a.test", "http://b.test"]),
            ("http://a.test", ["http://a.test"]),
        ],
    )
    def test_cors_origins_parsing(self, raw: str, expected: list[str]) -> None:
        assert Settings.parse_cors_origins(raw) == expected

    def test_empty_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, port_range_start=6200, port_range_end=6100)

    def test_overlapping_bridge_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, bridge_port_offset=50)

    def test_bridge_range_beyond_65535_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, port_range_start=65000, port_range_end=65100)
