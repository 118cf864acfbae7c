"""Conversation parsing, capsule building and detectors."""

from .models import ThreadCapsule, ConversationAnalysis, DraftAnalysis, SourceType
from .patterns import PatternLibrary
from .parser import ConversationParser
from .capsule_builder import CapsuleBuilder
from .strategy import AnalysisStrategy, HybridStrategy, RegexOnlyStrategy, select_strategy
from .unanswered_questions import UnansweredQuestionDetector
from .tension_detector import TensionDetector
from .misalignment_detector import MisalignmentDetector
from .commitments import CommitmentTracker
from .health_scorer import HealthScorer
from .moments import KeyMomentCollector
from .suggested_actions import SuggestedActionGenerator
from .draft_analyzer import DraftAnalyzer

__all__ = [
    "ThreadCapsule",
    "ConversationAnalysis",
    "DraftAnalysis",
    "SourceType",
    "PatternLibrary",
    "ConversationParser",
    "CapsuleBuilder",
    "AnalysisStrategy",
    "HybridStrategy",
    "RegexOnlyStrategy",
    "select_strategy",
    "UnansweredQuestionDetector",
    "TensionDetector",
    "MisalignmentDetector",
    "CommitmentTracker",
    "HealthScorer",
    "KeyMomentCollector",
    "SuggestedActionGenerator",
    "DraftAnalyzer",
]
