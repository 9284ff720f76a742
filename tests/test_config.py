"""Tests for settings and tier definitions."""

from pathlib import Path

import pytest

from quotagate.config import Settings
from quotagate.tiers import DEFAULT_LIMITS, ModelTier, QuotaWindowLimits, TierPreference


class TestTierPreference:
    """Tests for preference parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, TierPreference.AUTO),
            ("", TierPreference.AUTO),
            ("auto", TierPreference.AUTO),
            ("PRIMARY", TierPreference.PRIMARY),
            (" secondary ", TierPreference.SECONDARY),
            ("pro", TierPreference.PRIMARY),
            ("flash", TierPreference.SECONDARY),
            (ModelTier.PRIMARY, TierPreference.PRIMARY),
            (TierPreference.SECONDARY, TierPreference.SECONDARY),
        ],
    )
    def test_parse(self, raw, expected: TierPreference) -> None:
        """Test accepted spellings."""
        assert TierPreference.parse(raw) is expected

    def test_parse_unknown(self) -> None:
        """Test unknown preferences are rejected."""
        with pytest.raises(ValueError, match="Unknown tier preference"):
            TierPreference.parse("ultra")

    def test_forced_tier(self) -> None:
        """Test only explicit preferences force a tier."""
        assert TierPreference.AUTO.tier is None
        assert TierPreference.PRIMARY.tier is ModelTier.PRIMARY


class TestQuotaWindowLimits:
    """Tests for per-tier caps."""

    def test_defaults(self) -> None:
        """Test the published free-tier caps."""
        assert DEFAULT_LIMITS[ModelTier.PRIMARY] == QuotaWindowLimits(rpm=2, rpd=50)
        assert DEFAULT_LIMITS[ModelTier.SECONDARY] == QuotaWindowLimits(rpm=15, rpd=1500)

    def test_negative_caps_rejected(self) -> None:
        """Test caps cannot be negative."""
        with pytest.raises(ValueError):
            QuotaWindowLimits(rpm=-1, rpd=10)


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self) -> None:
        """Test default configuration."""
        settings = Settings(_env_file=None)
        assert settings.store_backend == "sql"
        assert settings.default_retry_budget == 3
        assert settings.tier_limits() == DEFAULT_LIMITS
        assert settings.model_ids()[ModelTier.SECONDARY] == "gemini-3-flash-preview"

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test variables from the environment win."""
        monkeypatch.setenv("PRIMARY_RPM", "5")
        monkeypatch.setenv("STORE_BACKEND", "memory")
        monkeypatch.setenv("PRIMARY_MODEL_ID", "gemini-2.5-pro")

        settings = Settings(_env_file=None)

        assert settings.store_backend == "memory"
        assert settings.tier_limits()[ModelTier.PRIMARY].rpm == 5
        assert settings.model_ids()[ModelTier.PRIMARY] == "gemini-2.5-pro"

    def test_data_dir(self) -> None:
        """Test the data directory follows the SQLite path."""
        settings = Settings(_env_file=None, database_url="sqlite:///var/lib/quotagate/state.db")
        assert settings.data_dir == Path("var/lib/quotagate")

        remote = Settings(_env_file=None, database_url="postgresql://db/quotagate")
        assert remote.data_dir == Path("data")
