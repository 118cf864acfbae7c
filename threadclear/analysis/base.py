"""
Base Interfaces for Conversation Detectors

Every detector reads an immutable capsule plus the request context and
returns a list of findings for its own result slot. Detectors never mutate
the capsule; the orchestrator merges their outputs.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set

from .models import ThreadCapsule

if TYPE_CHECKING:
    from ..core.context import AnalysisContext

logger = logging.getLogger(__name__)


class BaseDetector(ABC):
    """
    Base class for capsule detectors

    Subclasses set `slot` to the ConversationAnalysis field they fill.
    """

    slot: str = ""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def detect(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[Any]:
        """
        Run detection over a capsule

        Args:
            capsule: Parsed and graph-built conversation
            context: Request context (strategy, reference time, tuning)

        Returns:
            Findings for this detector's slot; empty when nothing was found
        """
        pass

    async def run(self, capsule: ThreadCapsule, context: "AnalysisContext") -> List[Any]:
        """detect() with timing recorded on the request context"""
        started = time.perf_counter()
        findings = await self.detect(capsule, context)
        context.record_detector(self.slot, (time.perf_counter() - started) * 1000, len(findings))
        self.logger.debug(f"{self.slot}: {len(findings)} finding(s) for capsule {capsule.capsule_id}")
        return findings

    @staticmethod
    def known_ids(capsule: ThreadCapsule, ids: Iterable[str]) -> List[str]:
        """Keep only message ids that exist in the capsule, preserving order"""
        valid: Set[str] = set(capsule.message_ids())
        seen: List[str] = []
        for message_id in ids:
            if message_id in valid and message_id not in seen:
                seen.append(message_id)
        return seen
