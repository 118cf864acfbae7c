"""
Configuration Models - Pydantic models for type-safe configuration

Sections:
- Parsing (mode selection and hybrid thresholds)
- AI completion providers
- Detector tuning
- Health scoring weights
- Default per-request analysis toggles
- Web API server

Requires: pydantic>=2.0.0, pydantic-settings>=2.0.0
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ParsingMode(str, Enum):
    """Parsing mode selection for cost/performance trade-offs"""
    BASIC = "basic"          # regex only, no provider calls
    ADVANCED = "advanced"    # provider first, regex fallback
    AUTO = "auto"            # regex, escalating to the provider on ambiguous input

    @classmethod
    def from_label(cls, label: Optional[str], default: "ParsingMode" = None) -> "ParsingMode":
        if not label:
            return default or cls.AUTO
        try:
            return cls(label.strip().lower())
        except ValueError:
            return default or cls.AUTO


# ============================================================
# PER-REQUEST ANALYSIS TOGGLES
# ============================================================

class AnalysisOptions(BaseModel):
    """Per-request detector toggle map; every detector is on by default"""
    enable_unanswered_questions: bool = Field(default=True, description="Detect unanswered questions")
    enable_tension_points: bool = Field(default=True, description="Detect tension points")
    enable_misalignments: bool = Field(default=True, description="Detect misalignments and silent assumptions")
    enable_conversation_health: bool = Field(default=True, description="Compute conversation health")
    enable_suggested_actions: bool = Field(default=True, description="Generate suggested actions")
    enable_decisions: bool = Field(default=True, description="Track decisions and action items")
    enable_key_moments: bool = Field(default=True, description="Collect key moments")

    def enabled_detectors(self) -> Dict[str, bool]:
        return {
            "unanswered_questions": self.enable_unanswered_questions,
            "tension_points": self.enable_tension_points,
            "misalignments": self.enable_misalignments,
            "conversation_health": self.enable_conversation_health,
            "suggested_actions": self.enable_suggested_actions,
            "decisions": self.enable_decisions,
            "key_moments": self.enable_key_moments,
        }


# ============================================================
# SECTION CONFIGURATIONS
# ============================================================

class ParsingConfig(BaseModel):
    """Conversation parser configuration"""
    default_mode: ParsingMode = Field(default=ParsingMode.AUTO, description="Parsing mode when a request names none")
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0,
                                        description="Below this regex confidence, Auto mode escalates to the provider")
    complexity_threshold: float = Field(default=0.6, ge=0.0, le=1.0,
                                        description="Above this complexity score, Auto mode escalates to the provider")
    patterns_file: Optional[Path] = Field(default=None, description="Optional TOML file overriding keyword patterns")
    max_input_chars: int = Field(default=200_000, ge=1, description="Longest conversation text accepted")


class AIConfig(BaseModel):
    """AI completion provider configuration"""
    enabled: bool = Field(default=True, description="Allow provider calls at all")
    default_provider: Optional[str] = Field(default=None, description="Provider name: openai or anthropic")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-call timeout")
    retry_transient: bool = Field(default=True, description="Retry once on transient transport errors")
    providers: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Provider-specific configurations"
    )


class DetectorConfig(BaseModel):
    """Detector tuning"""
    timeout_seconds: float = Field(default=60.0, gt=0, description="Upper bound for a single detector")
    strong_overlap_ratio: float = Field(default=0.5, ge=0.0, le=1.0,
                                        description="Share of question tokens a later message must repeat to count as an answer")
    weak_overlap_ratio: float = Field(default=0.2, ge=0.0, le=1.0,
                                      description="Token overlap accepted together with a reply edge")
    token_similarity: int = Field(default=85, ge=0, le=100, description="rapidfuzz ratio for two tokens to match")
    reply_window_hours: Optional[float] = Field(default=None, gt=0,
                                                description="Cutoff for inferred reply edges (None = no cutoff)")
    misalignment_window: int = Field(default=3, ge=1, description="Messages ahead scanned for a contradicting statement")
    ai_context_messages: int = Field(default=2, ge=0, description="Surrounding messages sent with ambiguous misalignments")
    max_suggested_actions: int = Field(default=5, ge=1, description="Cap on suggested actions")
    draft_question_similarity: int = Field(default=80, ge=0, le=100,
                                           description="rapidfuzz ratio mapping AI coverage onto outstanding questions")


class HealthConfig(BaseModel):
    """Conversation health scoring"""
    responsiveness_weight: float = Field(default=1.0, ge=0.0)
    clarity_weight: float = Field(default=1.0, ge=0.0)
    alignment_weight: float = Field(default=1.0, ge=0.0)
    clarity_saturation: int = Field(default=4, ge=1, description="Misalignment count at which clarity reaches 0")
    alignment_saturation: int = Field(default=6, ge=1, description="Tension severity sum at which alignment reaches 0")
    recency_window_days: float = Field(default=7.0, gt=0, description="Age at which an unanswered question weighs fully")

    @model_validator(mode='after')
    def validate_weights(self):
        if self.responsiveness_weight + self.clarity_weight + self.alignment_weight <= 0:
            raise ValueError("At least one health weight must be positive")
        return self


class WebConfig(BaseModel):
    """Web API server configuration"""
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Web API server port")
    cors_origins: list = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not (1 <= v <= 65535):
            raise ValueError('Port must be between 1 and 65535')
        return v


# ============================================================
# ROOT CONFIGURATION
# ============================================================

class CoreConfig(BaseSettings):
    """Main configuration for the ThreadClear analysis engine"""

    name: str = Field(default="ThreadClear", description="Service name")
    version: str = Field(default="1.0.0", description="Version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Optional log file")

    parsing: ParsingConfig = Field(default_factory=ParsingConfig, description="Parser configuration")
    ai: AIConfig = Field(default_factory=AIConfig, description="AI provider configuration")
    detectors: DetectorConfig = Field(default_factory=DetectorConfig, description="Detector configuration")
    health: HealthConfig = Field(default_factory=HealthConfig, description="Health scoring configuration")
    analysis: AnalysisOptions = Field(default_factory=AnalysisOptions, description="Default detector toggles")
    web: WebConfig = Field(default_factory=WebConfig, description="Web API configuration")

    model_config = {
        "env_prefix": "THREADCLEAR_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @model_validator(mode='after')
    def validate_provider_selection(self):
        """The default provider must be one of the configured providers when any are listed"""
        if self.ai.default_provider and self.ai.providers and self.ai.default_provider not in self.ai.providers:
            raise ValueError(
                f"Default AI provider '{self.ai.default_provider}' has no entry under [ai.providers]"
            )
        return self
