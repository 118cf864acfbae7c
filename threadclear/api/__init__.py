"""
ThreadClear API Module

Request and response schemas for the HTTP boundary.
"""

from .schemas import (
    AnalysisRequest,
    AnalysisResponse,
    BaseAPIRequest,
    BaseAPIResponse,
    DetectorToggles,
    ErrorResponse,
    HealthResponse,
    ImageAnalysisRequest,
)

__all__ = [
    "BaseAPIRequest",
    "BaseAPIResponse",
    "ErrorResponse",
    "DetectorToggles",
    "AnalysisRequest",
    "ImageAnalysisRequest",
    "AnalysisResponse",
    "HealthResponse",
]
