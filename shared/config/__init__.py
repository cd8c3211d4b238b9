"""Shared configuration base classes.

Every service settings class derives from these so that logging and Kafka
options are named the same way everywhere.
"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings

from shared.constants import Environment


class BaseLoggingConfig(BaseSettings):
    """Logging options common to all services."""

    app_log_level: str = "INFO"
    app_log_redaction_patterns: list[str] = [
        "password",
        "token",
        "secret",
        "authorization",
        "cookie",
    ]
    app_environment: str = "production"
    # auto: plain lines in development/testing, JSON elsewhere
    app_log_format: Literal["auto", "json", "plain"] = "auto"

    @property
    def plain_logs(self) -> bool:
        if self.app_log_format == "auto":
            return Environment.wants_plain_logs(self.app_environment)
        return self.app_log_format == "plain"


class BaseKafkaConfig(BaseSettings):
    """Kafka connection options common to all services."""

    kafka_bootstrap_servers: str = "kafka1:19092"
    kafka_client_id: Optional[str] = None
    kafka_start_attempts: int = 7
    kafka_start_max_backoff_s: float = 30.0


class BaseServiceConfig(BaseLoggingConfig, BaseKafkaConfig):
    """Base configuration combining logging and Kafka settings.

    Services inherit from this and set their own otel_service_name.
    """

    otel_service_name: str = "unknown"

    @property
    def kafka_client_name(self) -> str:
        return self.kafka_client_id or f"{self.otel_service_name}-consumer"


__all__ = ["BaseLoggingConfig", "BaseKafkaConfig", "BaseServiceConfig"]
