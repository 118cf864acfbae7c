"""
Data Models for the Conversation Analysis Engine

Contains the Pydantic models used to represent a parsed conversation
(the ThreadCapsule), the findings produced by detectors and the draft
reply assessment.

All models serialize with one canonical camelCase alias set; Python code
works with the snake_case attribute names only.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CapsuleModel(BaseModel):
    """Shared configuration for every model that crosses the API boundary"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> Dict:
        """Serialize using the canonical camelCase field names"""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================
# ENUMERATIONS
# ============================================================

class SourceType(str, Enum):
    EMAIL = "Email"
    CHAT = "Chat"
    IMAGE = "Image"
    AUDIO = "Audio"
    UNKNOWN = "Unknown"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "SourceType":
        """Map loose source labels ("slack", "sms", "email") onto the closed set"""
        if not label:
            return cls.UNKNOWN
        value = label.strip().lower()
        aliases = {
            "email": cls.EMAIL, "mail": cls.EMAIL, "outlook": cls.EMAIL, "gmail": cls.EMAIL,
            "chat": cls.CHAT, "slack": cls.CHAT, "teams": cls.CHAT, "discord": cls.CHAT,
            "sms": cls.CHAT, "simple": cls.CHAT, "text": cls.CHAT,
            "image": cls.IMAGE, "screenshot": cls.IMAGE,
            "audio": cls.AUDIO, "transcript": cls.AUDIO,
        }
        return aliases.get(value, cls.UNKNOWN)


class ParticipantRole(str, Enum):
    UNKNOWN = "Unknown"
    MANAGER = "Manager"
    EMPLOYEE = "Employee"
    CUSTOMER = "Customer"
    VENDOR = "Vendor"
    SUPPORT = "Support"
    EXECUTIVE = "Executive"


class SentimentPolarity(str, Enum):
    NEGATIVE = "Negative"
    NEUTRAL = "Neutral"
    POSITIVE = "Positive"


class UrgencyLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Severity(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"

    @property
    def weight(self) -> int:
        return {"Low": 1, "Moderate": 2, "High": 3}[self.value]


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return {"High": 0, "Medium": 1, "Low": 2}[self.value]


class EdgeType(str, Enum):
    RESPONSE = "Response"
    QUOTE = "Quote"
    REFERENCE = "Reference"


# ============================================================
# CONVERSATION STRUCTURE
# ============================================================

UNKNOWN_PARTICIPANT_ID = "unknown"


class Participant(CapsuleModel):
    """A distinct sender detected in the conversation"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: Optional[str] = None
    inferred_role: ParticipantRole = ParticipantRole.UNKNOWN

    @classmethod
    def unknown(cls) -> "Participant":
        return cls(id=UNKNOWN_PARTICIPANT_ID, name="Unknown")


class Sentiment(CapsuleModel):
    """Polarity and intensity; same shape whether regex- or AI-sourced"""
    polarity: SentimentPolarity = SentimentPolarity.NEUTRAL
    intensity: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def is_negative(self) -> bool:
        return self.polarity == SentimentPolarity.NEGATIVE


class LinguisticFeatures(CapsuleModel):
    """Per-message features derived synchronously at parse time"""
    contains_question: bool = False
    questions: List[str] = Field(default_factory=list)
    urgency_markers: List[str] = Field(default_factory=list)
    sentiment: SentimentPolarity = SentimentPolarity.NEUTRAL
    urgency: UrgencyLevel = UrgencyLevel.LOW
    word_count: int = 0
    sentence_count: int = 0
    politeness: float = Field(default=0.5, ge=0.0, le=1.0)


class Message(CapsuleModel):
    id: str
    participant_id: str
    timestamp: datetime
    timestamp_inferred: bool = False
    content: str
    response_to: Optional[str] = None
    linguistic_features: LinguisticFeatures = Field(default_factory=LinguisticFeatures)
    sentiment: Optional[Sentiment] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class GraphEdge(CapsuleModel):
    """Directed edge from a reply (source) to the message it answers (target)"""
    source: str
    target: str
    type: EdgeType = EdgeType.RESPONSE
    inferred: bool = False


class ConversationGraph(CapsuleModel):
    nodes: List[str] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


class ThreadMetadata(CapsuleModel):
    subject: str = ""
    platform: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration_days: float = 0.0
    message_count: int = 0
    participant_count: int = 0
    average_response_time_hours: Optional[float] = None
    median_response_time_hours: Optional[float] = None
    participant_activity: Dict[str, int] = Field(default_factory=dict)
    thread_initiator: Optional[str] = None


# ============================================================
# DETECTOR FINDINGS
# ============================================================

class UnansweredQuestion(CapsuleModel):
    question: str
    asked_by: str
    asked_at: datetime
    days_unanswered: float = Field(default=0.0, ge=0.0)
    message_id: str
    times_asked: int = 1


class TensionPoint(CapsuleModel):
    type: str
    severity: Severity
    description: str
    message_ids: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)


class Misalignment(CapsuleModel):
    type: str = "Understanding"
    severity: Severity = Severity.MODERATE
    description: str
    participants_involved: List[str] = Field(default_factory=list)
    message_ids: List[str] = Field(default_factory=list)
    suggested_resolution: Optional[str] = None


class SilentAssumption(CapsuleModel):
    assumption: str
    held_by: str
    message_id: str


class KeyMoment(CapsuleModel):
    message_id: str
    type: str
    description: str
    timestamp: datetime


class DecisionPoint(CapsuleModel):
    decision: str
    decided_by: str
    message_id: str
    timestamp: datetime


class ActionItem(CapsuleModel):
    action: str
    assigned_to: str = "Unassigned"
    requested_by: str
    message_id: str
    priority: Priority = Priority.MEDIUM
    status: str = "Pending"


class ConversationHealth(CapsuleModel):
    responsiveness_score: float = Field(default=0.0, ge=0.0, le=1.0)
    clarity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    alignment_score: float = Field(default=0.0, ge=0.0, le=1.0)
    health_score: float = Field(default=0.0, ge=0.0, le=1.0)
    risk_level: RiskLevel = RiskLevel.UNKNOWN
    issues: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @classmethod
    def not_computed(cls) -> "ConversationHealth":
        """Explicitly empty health value used for disabled or failed scoring"""
        return cls()


class ConversationAnalysis(CapsuleModel):
    """
    Detector results for one capsule.

    A None slot means "not computed"; an empty list means "computed, none
    found". Disabled detectors leave an explicitly empty slot, so only the
    toggle map tells "disabled" apart from "found nothing".
    """
    unanswered_questions: Optional[List[UnansweredQuestion]] = None
    tension_points: Optional[List[TensionPoint]] = None
    misalignments: Optional[List[Misalignment]] = None
    silent_assumptions: Optional[List[SilentAssumption]] = None
    key_moments: Optional[List[KeyMoment]] = None
    decisions: Optional[List[DecisionPoint]] = None
    action_items: Optional[List[ActionItem]] = None
    conversation_health: Optional[ConversationHealth] = None
    degraded: List[str] = Field(default_factory=list)

    def referenced_message_ids(self) -> List[str]:
        """Every message id cited by any finding"""
        ids: List[str] = []
        for question in self.unanswered_questions or []:
            ids.append(question.message_id)
        for point in self.tension_points or []:
            ids.extend(point.message_ids)
        for item in self.misalignments or []:
            ids.extend(item.message_ids)
        for assumption in self.silent_assumptions or []:
            ids.append(assumption.message_id)
        for moment in self.key_moments or []:
            ids.append(moment.message_id)
        for decision in self.decisions or []:
            ids.append(decision.message_id)
        for action in self.action_items or []:
            ids.append(action.message_id)
        return ids


class SuggestedAction(CapsuleModel):
    action: str
    priority: Priority = Priority.MEDIUM
    reasoning: Optional[str] = None
    evidence: List[str] = Field(default_factory=list)
    message_ids: List[str] = Field(default_factory=list)


class ThreadCapsule(CapsuleModel):
    """Root aggregate for one analyzed conversation; built and discarded per request"""
    capsule_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    version: str = "1.0.0"
    created_at: datetime = Field(default_factory=utc_now)
    source_type: SourceType = SourceType.UNKNOWN
    parsing_mode: str = "Basic"
    participants: List[Participant] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)
    conversation_graph: ConversationGraph = Field(default_factory=ConversationGraph)
    thread_metadata: ThreadMetadata = Field(default_factory=ThreadMetadata)
    analysis: ConversationAnalysis = Field(default_factory=ConversationAnalysis)
    suggested_actions: Optional[List[SuggestedAction]] = None
    summary: str = ""
    key_points: List[str] = Field(default_factory=list)

    def message_ids(self) -> List[str]:
        return [message.id for message in self.messages]

    def get_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def participant_name(self, participant_id: str) -> str:
        participant = self.get_participant(participant_id)
        return participant.name if participant else participant_id


# ============================================================
# DRAFT ANALYSIS
# ============================================================

class ToneAssessment(CapsuleModel):
    tone: str = "neutral"
    matches_conversation_tone: bool = False
    escalation_risk: str = "none"
    explanation: str = ""


class QuestionCoverage(CapsuleModel):
    question: str
    addressed: bool = False
    how_addressed: Optional[str] = None


class RiskFlag(CapsuleModel):
    type: str = ""
    description: str = ""
    severity: str = "low"
    suggestion: str = ""

    @property
    def is_high(self) -> bool:
        return self.severity.strip().lower() in ("high", "critical")


class DraftAnalysis(CapsuleModel):
    tone: ToneAssessment = Field(default_factory=ToneAssessment)
    questions_covered: List[QuestionCoverage] = Field(default_factory=list)
    questions_ignored: List[str] = Field(default_factory=list)
    new_questions_introduced: List[str] = Field(default_factory=list)
    risk_flags: List[RiskFlag] = Field(default_factory=list)
    completeness_score: int = Field(default=0, ge=0, le=10)
    suggestions: List[str] = Field(default_factory=list)
    overall_assessment: str = ""
    ready_to_send: bool = False
