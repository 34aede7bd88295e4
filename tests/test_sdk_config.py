"""Tests for SDK configuration loading."""

from pathlib import Path

import pytest

from complyance_sdk.config import SCHEMA_PATH, SDKConfig, config_from_dict, load_config
from complyance_sdk.errors import ConfigurationError, ErrorCode
from complyance_sdk.models import Environment, SourceType
from complyance_sdk.resilience.retry import RetryConfig

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "config" / "sdk.example.yaml"


def _write(tmp_path, text):
    path = tmp_path / "sdk.yaml"
    path.write_text(text)
    return path


class TestSDKConfig:
    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SDKConfig(api_key="  ")
        assert exc_info.value.code == ErrorCode.CONFIGURATION_ERROR

    def test_environment_string_parsed(self):
        cfg = SDKConfig(api_key="k", environment="PRODUCTION")
        assert cfg.environment == Environment.PRODUCTION

    def test_unknown_environment(self):
        with pytest.raises(ConfigurationError, match="Unknown environment"):
            SDKConfig(api_key="k", environment="mars")

    def test_find_source(self):
        cfg = config_from_dict({"api_key": "k", "sources": [{"name": "erp", "version": "1.0"}]})
        assert cfg.find_source("erp:1.0").name == "erp"
        assert cfg.find_source("erp:2.0") is None


class TestLoadConfig:
    def test_schema_is_packaged(self):
        assert SCHEMA_PATH.exists()

    def test_full_file(self, tmp_path):
        path = _write(tmp_path, """
api_key: secret
environment: production
queue_path: /var/lib/complyance/queue
correlation_id: corr-1
auto_generate_tax_destination: false
sources:
  - name: erp
    version: 2
    type: MARKETPLACE_APP
retry:
  preset: conservative
  max_attempts: 7
  jitter_factor: 0
circuit_breaker:
  failure_threshold: 5
  reset_timeout_seconds: 30
""")
        cfg = load_config(path)
        assert cfg.api_key == "secret"
        assert cfg.environment == Environment.PRODUCTION
        assert cfg.queue_path == Path("/var/lib/complyance/queue")
        assert cfg.correlation_id == "corr-1"
        assert cfg.auto_generate_tax_destination is False
        assert cfg.sources[0].id == "erp:2"
        assert cfg.sources[0].type == SourceType.MARKETPLACE_APP
        assert cfg.retry_config.max_attempts == 7
        assert cfg.retry_config.base_delay == 2000
        assert cfg.retry_config.jitter_factor == 0
        assert cfg.circuit_breaker.failure_threshold == 5
        assert cfg.circuit_breaker.reset_timeout_seconds == 30.0

    def test_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "api_key: k\n"))
        assert cfg.environment == Environment.SANDBOX
        assert cfg.queue_path == Path("./queue")
        assert cfg.retry_config == RetryConfig()
        assert cfg.circuit_breaker.failure_threshold == 3
        assert cfg.sources == []

    def test_environment_fallbacks(self, monkeypatch):
        monkeypatch.setenv("COMPLYANCE_API_KEY", "from-env")
        monkeypatch.setenv("COMPLYANCE_ENV", "dev")
        monkeypatch.setenv("COMPLYANCE_QUEUE_PATH", "/tmp/q")
        cfg = load_config()
        assert cfg.api_key == "from-env"
        assert cfg.environment == Environment.DEV
        assert cfg.queue_path == Path("/tmp/q")

    def test_file_wins_over_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("COMPLYANCE_API_KEY", "from-env")
        cfg = load_config(_write(tmp_path, "api_key: from-file\n"))
        assert cfg.api_key == "from-file"

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError, match="API key is required"):
            load_config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file_uses_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("COMPLYANCE_API_KEY", "k")
        assert load_config(_write(tmp_path, "")).api_key == "k"

    def test_non_mapping_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(_write(tmp_path, "- a\n- b\n"))

    @pytest.mark.parametrize("text", [
        "api_key: k\nunknown_key: 1\n",
        "api_key: k\nenvironment: mars\n",
        "api_key: k\nretry:\n  max_attempts: 0\n",
        "api_key: k\ncircuit_breaker:\n  failure_threshold: 0\n",
        "api_key: k\nsources:\n  - version: '1'\n",
    ])
    def test_schema_violations(self, tmp_path, text):
        with pytest.raises(ConfigurationError, match="Invalid SDK configuration"):
            load_config(_write(tmp_path, text))

    def test_example_file_loads(self, monkeypatch):
        monkeypatch.setenv("COMPLYANCE_API_KEY", "k")
        cfg = load_config(EXAMPLE_CONFIG)
        assert cfg.sources[0].id == "erp:1.0"
        assert cfg.retry_config.max_attempts == 5
