"""
Unit tests for settings.
"""

import pytest
from pydantic import ValidationError

from tablequeue.config import Settings
from tablequeue.constants import LIFETIME_DISABLED, LIFETIME_UNLIMITED


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("QUEUE_DELETED_LIFETIME", raising=False)
        monkeypatch.delenv("QUEUE_CLAIM_ORDER", raising=False)

        settings = Settings(_env_file=None)

        assert settings.queue_deleted_lifetime == LIFETIME_DISABLED
        assert settings.queue_claim_order == "desc"
        assert settings.queue_table_name == "queue_jobs"

    def test_env_overrides(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("QUEUE_NAME", "emails")
        monkeypatch.setenv("QUEUE_BURIED_LIFETIME", "-1")
        monkeypatch.setenv("QUEUE_CLAIM_ORDER", "asc")

        settings = Settings(_env_file=None)

        assert settings.queue_name == "emails"
        assert settings.queue_buried_lifetime == LIFETIME_UNLIMITED
        assert settings.queue_claim_order == "asc"

    def test_invalid_lifetime(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, queue_deleted_lifetime=-5)

    def test_invalid_claim_order(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, queue_claim_order="random")
