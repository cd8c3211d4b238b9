"""Shared utilities and components for the conditioning services."""

from .config import BaseKafkaConfig, BaseLoggingConfig, BaseServiceConfig
from .constants import Environment, Roles, Topics

__all__ = [
    "Environment",
    "Roles",
    "Topics",
    "BaseServiceConfig",
    "BaseLoggingConfig",
    "BaseKafkaConfig",
]
