"""
Per-request analysis context

Carries everything a component needs for one request: the chosen strategy,
the reference time, toggles, tuning and the degraded-slot ledger. Nothing on
the context outlives the request.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from ..analysis.patterns import PatternLibrary
from ..analysis.strategy import AnalysisStrategy, RegexOnlyStrategy
from ..analysis.models import utc_now
from ..config.models import AnalysisOptions, DetectorConfig, HealthConfig, ParsingConfig

logger = logging.getLogger(__name__)


@dataclass
class AnalysisContext:
    """Request-scoped state shared by the parser, builder and detectors"""
    strategy: AnalysisStrategy = field(default_factory=RegexOnlyStrategy)
    now: datetime = field(default_factory=utc_now)
    options: AnalysisOptions = field(default_factory=AnalysisOptions)
    patterns: PatternLibrary = field(default_factory=PatternLibrary)
    parsing: ParsingConfig = field(default_factory=ParsingConfig)
    detectors: DetectorConfig = field(default_factory=DetectorConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    request_id: str = ""
    degraded: List[str] = field(default_factory=list)
    detector_stats: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def mark_degraded(self, slot: str, reason: str) -> None:
        """Record that a slot fell back or failed; logged without content"""
        if slot not in self.degraded:
            self.degraded.append(slot)
        logger.warning(f"[{self.request_id or '-'}] Degraded '{slot}': {reason}")

    def is_degraded(self, slot: str) -> bool:
        return slot in self.degraded

    def record_detector(self, slot: str, elapsed_ms: float, findings: int) -> None:
        """Timing and finding count for one detector run in this request"""
        self.detector_stats[slot] = {"time_ms": round(elapsed_ms, 2), "findings": findings}
