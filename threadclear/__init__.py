"""
ThreadClear - Conversation Analysis Engine

Turns raw conversation text (email threads, chat exports, transcripts, OCR'd
screenshots) into a structured risk analysis: unanswered questions, tension,
misalignments, overall health and an optional draft-reply review.
"""

from .__version__ import __version__, __version_info__, VERSION

__author__ = "ThreadClear Project"

from .config.models import CoreConfig, AnalysisOptions, ParsingMode
from .core.engine import ConversationAnalysisEngine

__all__ = [
    "ConversationAnalysisEngine",
    "CoreConfig",
    "AnalysisOptions",
    "ParsingMode",
    "__version__",
    "VERSION",
]
