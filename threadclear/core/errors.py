"""
Error Taxonomy

Exceptions raised inside the analysis engine. Only InvalidRequestError is
meant to reach callers; every other error is contained at detector level and
turned into a degraded result slot.
"""

from typing import Optional


class ThreadClearError(Exception):
    """Base class for all engine errors"""
    pass


class InvalidRequestError(ThreadClearError):
    """Request failed validation (e.g. empty conversation text)"""
    pass


class ParseAmbiguousError(ThreadClearError):
    """Regex segmentation confidence too low; handled by the hybrid fallback"""

    def __init__(self, confidence: float, reason: str = ""):
        self.confidence = confidence
        self.reason = reason
        super().__init__(f"Ambiguous conversation structure (confidence={confidence:.2f}) {reason}".strip())


class ProviderUnavailableError(ThreadClearError):
    """AI completion provider could not be reached or returned an error"""

    def __init__(self, message: str, provider: Optional[str] = None, transient: bool = False):
        self.provider = provider
        self.transient = transient
        super().__init__(message)


class ProviderTimeoutError(ProviderUnavailableError):
    """AI completion provider did not answer within the per-call timeout"""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, provider=provider, transient=True)


class MalformedProviderOutputError(ThreadClearError):
    """Completion did not contain usable JSON; treated like an unavailable provider"""
    pass
