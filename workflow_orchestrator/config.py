"""Configuration management for the Workflow Orchestrator."""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .models.core import FailureCascadePolicy, RetryPolicy, RetryStrategy

ENV_PREFIX = "WORKFLOW_ORCHESTRATOR_"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class OrchestratorConfig(BaseModel):
    """Orchestrator configuration settings."""

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")
    structured_logging: bool = Field(default=False, description="Emit JSON log records")

    # Event settings
    event_publish_timeout: float = Field(
        default=5.0,
        description="Seconds an event bus may take to accept an event"
    )

    # Retry defaults for actions that declare no retry policy
    default_max_attempts: int = Field(default=1, description="Attempts per action, including the first")
    default_base_delay: float = Field(default=1.0, description="Delay before the first retry in seconds")
    max_retry_delay: float = Field(default=30.0, description="Upper bound of any retry delay in seconds")

    # Execution engine settings
    failure_cascade: FailureCascadePolicy = Field(
        default=FailureCascadePolicy.ISOLATE,
        description="Treatment of nodes whose dependencies failed"
    )
    max_concurrent_executions: int = Field(
        default=10,
        description="Maximum number of concurrent workflow executions"
    )

    @field_validator('event_publish_timeout')
    @classmethod
    def validate_publish_timeout(cls, v):
        """Validate event publish timeout."""
        if v <= 0:
            raise ValueError("Event publish timeout must be positive")
        return v

    @field_validator('max_concurrent_executions')
    @classmethod
    def validate_max_concurrent_executions(cls, v):
        """Validate maximum concurrent executions."""
        if v < 1:
            raise ValueError("Maximum concurrent executions must be at least 1")
        return v

    @field_validator('default_max_attempts')
    @classmethod
    def validate_max_attempts(cls, v):
        if not 1 <= v <= 100:
            raise ValueError("Default max attempts must be between 1 and 100")
        return v

    @field_validator('default_base_delay', 'max_retry_delay')
    @classmethod
    def validate_delays(cls, v):
        if v < 0:
            raise ValueError("Retry delays must be non-negative")
        return v

    def default_retry_policy(self) -> RetryPolicy:
        """Retry policy applied to actions that do not declare their own."""
        if self.default_max_attempts <= 1:
            return RetryPolicy.none()
        return RetryPolicy(
            strategy=RetryStrategy.EXPONENTIAL,
            max_attempts=self.default_max_attempts,
            base_delay_seconds=min(self.default_base_delay, self.max_retry_delay),
            max_delay_seconds=self.max_retry_delay
        )

    def configure_logging(self):
        """Apply the logging settings to the root logger."""
        from .core.logging import setup_logging

        return setup_logging(
            level=self.log_level.value,
            log_file=self.log_file,
            log_format=self.log_format,
            structured=self.structured_logging,
            max_size=self.log_max_size,
            backup_count=self.log_backup_count
        )

    @classmethod
    def from_env(cls) -> 'OrchestratorConfig':
        """Create configuration from environment variables.

        Raises:
            ConfigurationError: If a variable cannot be converted to its setting's type
        """
        from .core.exceptions import ConfigurationError

        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"{ENV_PREFIX}{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            try:
                return type_func(value)
            except ValueError:
                raise ConfigurationError(
                    f"Invalid value for {ENV_PREFIX}{key}: {value!r}",
                    config_key=f"{ENV_PREFIX}{key}"
                )

        return cls(
            log_level=get_env("LOG_LEVEL", LogLevel.INFO, lambda v: LogLevel(v.upper())),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=get_env("LOG_FILE", None),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            structured_logging=get_env("STRUCTURED_LOGGING", False, bool),
            event_publish_timeout=get_env("EVENT_PUBLISH_TIMEOUT", 5.0, float),
            default_max_attempts=get_env("DEFAULT_MAX_ATTEMPTS", 1, int),
            default_base_delay=get_env("DEFAULT_BASE_DELAY", 1.0, float),
            max_retry_delay=get_env("MAX_RETRY_DELAY", 30.0, float),
            failure_cascade=get_env(
                "FAILURE_CASCADE", FailureCascadePolicy.ISOLATE, lambda v: FailureCascadePolicy(v.lower())
            ),
            max_concurrent_executions=get_env("MAX_CONCURRENT_EXECUTIONS", 10, int)
        )


# Global configuration instance
_config: Optional[OrchestratorConfig] = None


def get_config() -> OrchestratorConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = OrchestratorConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> OrchestratorConfig:
    """Load configuration from a .env file and environment variables."""
    global _config

    if config_file and os.path.exists(config_file):
        from dotenv import load_dotenv
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        from dotenv import load_dotenv
        load_dotenv('.env')

    _config = OrchestratorConfig.from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def get_testing_config() -> OrchestratorConfig:
    """Get testing configuration."""
    return OrchestratorConfig(
        log_level=LogLevel.WARNING,
        event_publish_timeout=1.0,
        default_base_delay=0.01,
        max_retry_delay=0.05,
        max_concurrent_executions=50
    )
