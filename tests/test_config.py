"""
Tests for config.py
"""
from pathlib import Path

import pytest

from config import Settings


@pytest.mark.unit
class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("BITESPEED_DB_PATH", "BITESPEED_HOST", "BITESPEED_PORT",
                     "BITESPEED_LOG_LEVEL", "BITESPEED_REPAIR_ON_STARTUP"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)
        assert settings.db_path == Path("contacts.db")
        assert settings.port == 8000
        assert settings.log_level == "INFO"
        assert settings.repair_on_startup is False

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BITESPEED_DB_PATH", str(tmp_path / "other.db"))
        monkeypatch.setenv("BITESPEED_PORT", "9000")
        monkeypatch.setenv("BITESPEED_REPAIR_ON_STARTUP", "true")

        settings = Settings(_env_file=None)
        assert settings.db_path == tmp_path / "other.db"
        assert settings.port == 9000
        assert settings.repair_on_startup is True
