"""Tests for orchestrator configuration."""

import pytest
from pydantic import ValidationError

from workflow_orchestrator.config import (
    LogLevel,
    OrchestratorConfig,
    get_config,
    get_testing_config,
    load_config,
    reset_config,
)
from workflow_orchestrator.core.exceptions import ConfigurationError
from workflow_orchestrator.models.core import FailureCascadePolicy, RetryStrategy


class TestOrchestratorConfig:
    """Test cases for OrchestratorConfig."""

    def test_defaults(self):
        config = OrchestratorConfig()
        assert config.log_level == LogLevel.INFO
        assert config.event_publish_timeout == 5.0
        assert config.default_max_attempts == 1
        assert config.failure_cascade == FailureCascadePolicy.ISOLATE
        assert config.max_concurrent_executions == 10

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_ORCHESTRATOR_LOG_LEVEL", "debug")
        monkeypatch.setenv("WORKFLOW_ORCHESTRATOR_STRUCTURED_LOGGING", "yes")
        monkeypatch.setenv("WORKFLOW_ORCHESTRATOR_EVENT_PUBLISH_TIMEOUT", "2.5")
        monkeypatch.setenv("WORKFLOW_ORCHESTRATOR_FAILURE_CASCADE", "SKIP_DEPENDENTS")
        monkeypatch.setenv("WORKFLOW_ORCHESTRATOR_MAX_CONCURRENT_EXECUTIONS", "3")

        config = OrchestratorConfig.from_env()

        assert config.log_level == LogLevel.DEBUG
        assert config.structured_logging is True
        assert config.event_publish_timeout == 2.5
        assert config.failure_cascade == FailureCascadePolicy.SKIP_DEPENDENTS
        assert config.max_concurrent_executions == 3

    @pytest.mark.parametrize("key,value", [
        ("LOG_LEVEL", "verbose"),
        ("FAILURE_CASCADE", "retry_everything"),
        ("MAX_CONCURRENT_EXECUTIONS", "many"),
    ])
    def test_from_env_rejects_unparseable_values(self, monkeypatch, key, value):
        monkeypatch.setenv(f"WORKFLOW_ORCHESTRATOR_{key}", value)

        with pytest.raises(ConfigurationError, match=f"WORKFLOW_ORCHESTRATOR_{key}") as exc_info:
            OrchestratorConfig.from_env()

        assert exc_info.value.context["config_key"] == f"WORKFLOW_ORCHESTRATOR_{key}"

    @pytest.mark.parametrize("field,value", [
        ("event_publish_timeout", 0),
        ("max_concurrent_executions", 0),
        ("default_max_attempts", 0),
        ("default_max_attempts", 101),
        ("default_base_delay", -1),
    ])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            OrchestratorConfig(**{field: value})

    def test_default_retry_policy_disabled_by_default(self):
        policy = OrchestratorConfig().default_retry_policy()
        assert policy.enabled is False
        assert policy.total_attempts == 1

    def test_default_retry_policy_exponential(self):
        config = OrchestratorConfig(default_max_attempts=4, default_base_delay=0.5, max_retry_delay=2.0)
        policy = config.default_retry_policy()
        assert policy.strategy == RetryStrategy.EXPONENTIAL
        assert policy.total_attempts == 4
        assert [policy.get_delay(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 2.0]

    def test_testing_config(self):
        config = get_testing_config()
        assert config.log_level == LogLevel.WARNING
        assert config.event_publish_timeout == 1.0
        assert config.max_concurrent_executions == 50


class TestGlobalConfig:
    """Test cases for the process-wide configuration."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_config(self, monkeypatch):
        first = get_config()
        reset_config()
        monkeypatch.setenv("WORKFLOW_ORCHESTRATOR_MAX_CONCURRENT_EXECUTIONS", "7")
        second = get_config()
        assert second is not first
        assert second.max_concurrent_executions == 7

    def test_load_config_from_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WORKFLOW_ORCHESTRATOR_DEFAULT_MAX_ATTEMPTS", raising=False)
        env_file = tmp_path / "orchestrator.env"
        env_file.write_text("WORKFLOW_ORCHESTRATOR_DEFAULT_MAX_ATTEMPTS=5\n")

        config = load_config(str(env_file))

        assert config.default_max_attempts == 5
        assert get_config() is config
