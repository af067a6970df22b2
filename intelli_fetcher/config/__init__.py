"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    ErrorHandlingConfig,
    ErrorHandlingType,
    GlobalConfig,
    JobConfig,
    TaskConfig,
    TriggerConfig,
    parse_duration,
    parse_time_of_day,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "ErrorHandlingConfig",
    "ErrorHandlingType",
    "GlobalConfig",
    "JobConfig",
    "TaskConfig",
    "TriggerConfig",
    "parse_duration",
    "parse_time_of_day",
]
