"""Tests for prodshot.core.config - configuration management.

Tests cover:
- Default values for queue, synthesis and storage settings.
- Environment variable overrides via the PRODSHOT_ prefix.
- Automatic directory creation on initialisation.
- Pydantic validation constraints (rate limit, port range, log level).
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from prodshot.core.config import ProdshotConfig


def _fresh_config(temp_dir: Path, **overrides) -> ProdshotConfig:
    return ProdshotConfig(
        generated_dir=temp_dir / "generated",
        logos_dir=temp_dir / "logos",
        _env_file=None,
        **overrides,
    )


@pytest.fixture(autouse=True)
def _clear_prodshot_env(monkeypatch):
    """Keep the developer's PRODSHOT_* variables out of these tests."""
    for name in (
        "PRODSHOT_RATE_LIMIT_MAX",
        "PRODSHOT_RATE_LIMIT_WINDOW_SECONDS",
        "PRODSHOT_QUEUE_NAME",
        "PRODSHOT_SERVER_PORT",
        "PRODSHOT_HF_API_TOKEN",
        "PRODSHOT_HF_MODEL_ID",
        "PRODSHOT_EMBEDDED_WORKER",
    ):
        monkeypatch.delenv(name, raising=False)


class TestConfigDefaults:
    """Verify that ProdshotConfig provides sensible defaults."""

    def test_rate_limit_defaults(self, temp_dir: Path):
        """Five job starts per sixty seconds."""
        cfg = _fresh_config(temp_dir)
        assert cfg.rate_limit_max == 5
        assert cfg.rate_limit_window_seconds == 60.0

    def test_queue_name_default(self, temp_dir: Path):
        cfg = _fresh_config(temp_dir)
        assert cfg.queue_name == "image-generation"

    def test_wait_timeout_default(self, temp_dir: Path):
        """The blocking bridge waits five minutes by default."""
        cfg = _fresh_config(temp_dir)
        assert cfg.job_wait_timeout_seconds == 300.0

    def test_token_is_optional(self, temp_dir: Path):
        cfg = _fresh_config(temp_dir)
        assert cfg.hf_api_token is None

    def test_worker_embedded_by_default(self, temp_dir: Path):
        cfg = _fresh_config(temp_dir)
        assert cfg.embedded_worker is True

    def test_default_server_port(self, temp_dir: Path):
        cfg = _fresh_config(temp_dir)
        assert cfg.server_port == 3000


class TestEnvironmentOverrides:
    """PRODSHOT_* environment variables override defaults."""

    def test_rate_limit_from_env(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("PRODSHOT_RATE_LIMIT_MAX", "7")
        cfg = _fresh_config(temp_dir)
        assert cfg.rate_limit_max == 7

    def test_token_from_env_is_secret(self, monkeypatch, temp_dir: Path):
        """The token is stored as a SecretStr and never shown in repr."""
        monkeypatch.setenv("PRODSHOT_HF_API_TOKEN", "hf_abc")
        cfg = _fresh_config(temp_dir)
        assert cfg.hf_api_token.get_secret_value() == "hf_abc"
        assert "hf_abc" not in repr(cfg)

    def test_embedded_worker_from_env(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("PRODSHOT_EMBEDDED_WORKER", "false")
        cfg = _fresh_config(temp_dir)
        assert cfg.embedded_worker is False


class TestDirectoryCreation:
    """Storage directories are created on initialisation."""

    def test_creates_generated_and_logo_dirs(self, temp_dir: Path):
        cfg = _fresh_config(temp_dir)
        assert cfg.generated_dir.is_dir()
        assert cfg.logos_dir.is_dir()

    def test_creates_nested_dirs(self, temp_dir: Path):
        cfg = ProdshotConfig(
            generated_dir=temp_dir / "a" / "b" / "generated",
            logos_dir=temp_dir / "c" / "logos",
            _env_file=None,
        )
        assert cfg.generated_dir.is_dir()
        assert cfg.logos_dir.is_dir()


class TestDerivedValues:
    """Computed properties."""

    def test_hf_api_url_joins_base_and_model(self, temp_dir: Path):
        cfg = _fresh_config(
            temp_dir,
            hf_api_base_url="https://example.test/models/",
            hf_model_id="org/model",
        )
        assert cfg.hf_api_url == "https://example.test/models/org/model"


class TestValidation:
    """Pydantic constraints reject nonsensical values."""

    def test_rate_limit_must_be_positive(self, temp_dir: Path):
        with pytest.raises(ValidationError):
            _fresh_config(temp_dir, rate_limit_max=0)

    def test_window_must_be_positive(self, temp_dir: Path):
        with pytest.raises(ValidationError):
            _fresh_config(temp_dir, rate_limit_window_seconds=0)

    def test_port_range(self, temp_dir: Path):
        with pytest.raises(ValidationError):
            _fresh_config(temp_dir, server_port=70000)

    def test_log_level_literal(self, temp_dir: Path):
        with pytest.raises(ValidationError):
            _fresh_config(temp_dir, log_level="VERBOSE")
