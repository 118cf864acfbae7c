"""
Configuration system for the ThreadClear analysis engine
"""

from .models import (
    AIConfig,
    AnalysisOptions,
    CoreConfig,
    DetectorConfig,
    HealthConfig,
    LogLevel,
    ParsingConfig,
    ParsingMode,
    WebConfig,
)
from .manager import ConfigManager, ConfigValidationError

__all__ = [
    "AIConfig",
    "AnalysisOptions",
    "ConfigManager",
    "ConfigValidationError",
    "CoreConfig",
    "DetectorConfig",
    "HealthConfig",
    "LogLevel",
    "ParsingConfig",
    "ParsingMode",
    "WebConfig",
]
