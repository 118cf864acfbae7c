"""
API Schemas for the ThreadClear HTTP boundary

Every request and response model serializes with camelCase field names,
the same alias set the capsule models use.

Organization:
- Base classes for common patterns
- Analysis request/response models
- System models (health, errors)
"""

import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from ..analysis.models import CapsuleModel, DraftAnalysis, ThreadCapsule
from ..config.models import AnalysisOptions


# ============================================================
# BASE API SCHEMAS
# ============================================================

class BaseAPIRequest(CapsuleModel):
    """Base class for API request models"""
    pass


class BaseAPIResponse(CapsuleModel):
    """Base class for API response models"""
    success: bool = Field(description="Whether the operation was successful")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when response was generated"
    )


class ErrorResponse(BaseAPIResponse):
    """Standard error response format"""
    success: Literal[False] = Field(default=False)
    error: str = Field(description="Error message describing what went wrong")
    error_code: Optional[str] = Field(default=None, description="Machine-readable error code")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "success": False,
                    "error": "Conversation text is empty",
                    "errorCode": "INVALID_REQUEST",
                    "timestamp": 1704067200.123
                }
            ]
        }
    }


# ============================================================
# ANALYSIS SCHEMAS
# ============================================================

class DetectorToggles(CapsuleModel):
    """Per-request detector flags; omitted flags keep the server defaults"""
    enable_unanswered_questions: Optional[bool] = None
    enable_tension_points: Optional[bool] = None
    enable_misalignments: Optional[bool] = None
    enable_conversation_health: Optional[bool] = None
    enable_suggested_actions: Optional[bool] = None
    enable_decisions: Optional[bool] = None
    enable_key_moments: Optional[bool] = None

    def apply_to(self, defaults: AnalysisOptions) -> AnalysisOptions:
        overrides = {k: v for k, v in self.model_dump().items() if v is not None}
        return defaults.model_copy(update=overrides)


class AnalysisRequest(BaseAPIRequest):
    """Request to analyze a conversation"""
    conversation_text: str = Field(description="Raw conversation text")
    source_type: str = Field(default="Unknown", description="Email, Chat, Slack, SMS, ...")
    parsing_mode: Optional[str] = Field(default=None, description="basic, advanced or auto")
    draft: Optional[str] = Field(default=None, description="Optional reply draft to review")
    draft_author: Optional[str] = Field(default=None, description="Who is writing the draft")
    options: Optional[DetectorToggles] = Field(default=None, description="Per-detector flags")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "conversationText": "Alice: Can you send the proposal by Friday?\nBob: Working on it.",
                    "sourceType": "Chat",
                    "parsingMode": "basic",
                    "options": {"enableSuggestedActions": False}
                }
            ]
        }
    }


class ImageAnalysisRequest(BaseAPIRequest):
    """Request to analyze a conversation screenshot"""
    image_base64: str = Field(description="Base64-encoded image bytes")
    mime_type: str = Field(default="image/png", description="Image MIME type")
    parsing_mode: Optional[str] = Field(default=None, description="basic, advanced or auto")
    draft: Optional[str] = Field(default=None, description="Optional reply draft to review")
    options: Optional[DetectorToggles] = Field(default=None, description="Per-detector flags")


class AnalysisResponse(BaseAPIResponse):
    """Analysis result: the capsule and the optional draft review"""
    success: bool = Field(default=True)
    request_id: str = Field(description="Request identifier, also used in server logs")
    capsule: ThreadCapsule = Field(description="Analyzed conversation")
    draft_analysis: Optional[DraftAnalysis] = Field(default=None, description="Draft review, when a draft was sent")
    stages: List[str] = Field(default_factory=list, description="Pipeline stages completed")
    processing_time_ms: float = Field(default=0.0, description="Server-side processing time")


# ============================================================
# SYSTEM SCHEMAS
# ============================================================

class HealthResponse(BaseAPIResponse):
    """Service health check response"""
    success: bool = Field(default=True)
    status: Literal["healthy", "unhealthy"] = Field(description="Service status")
    version: str = Field(description="Service version")
    ai_provider: Optional[str] = Field(default=None, description="Configured AI provider, if any")
    uptime: Optional[float] = Field(default=None, description="Uptime in seconds")
    details: Dict[str, Any] = Field(default_factory=dict)
