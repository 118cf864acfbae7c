"""
Pattern Library - keyword and phrase lists used by the regex detectors

Categories ship with built-in defaults and can be overridden from an optional
TOML file where each top-level key is a category holding a list of phrases:

    urgency_indicators = ["asap", "urgent", "deadline"]
    positive_indicators = ["thanks", "great"]

Loaded once at startup and shared read-only between requests.
"""

import logging
import re
import tomllib
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


DEFAULT_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "question_indicators": (
        "what", "when", "where", "who", "whom", "whose", "which", "why", "how",
        "can", "could", "would", "should", "is", "are", "am", "was", "were",
        "do", "does", "did", "will", "have", "has", "may", "might", "shall",
    ),
    "urgency_indicators": (
        "asap", "urgent", "urgently", "immediately", "critical", "emergency",
        "right away", "as soon as possible", "right now", "eod", "end of day",
        "deadline",
    ),
    "frustration_indicators": (
        "frustrated", "frustrating", "annoyed", "disappointed", "upset", "angry",
        "concerned", "worried", "confused", "ridiculous", "unacceptable",
    ),
    "negative_tone_indicators": (
        "never", "worst", "terrible", "horrible", "awful", "hate", "stupid",
        "incompetent", "useless", "failed", "problem", "issue", "wrong",
    ),
    "positive_indicators": (
        "great", "excellent", "perfect", "thank", "thanks", "appreciate",
        "happy", "glad", "awesome", "wonderful", "good job", "well done",
    ),
    "repetition_indicators": (
        "again", "already asked", "still waiting", "follow up", "following up",
        "reminder", "third time", "second time", "once more", "as i said",
    ),
    "escalation_indicators": (
        "escalate", "escalating", "supervisor", "legal", "lawyer", "attorney",
        "complaint", "last time", "cancel the contract",
    ),
    "dismissive_indicators": (
        "whatever", "if you say so", "not my problem", "don't care",
        "okay then", "not my job",
    ),
    "action_request_indicators": (
        "can you", "could you", "please", "would you", "will you", "need you to",
        "must", "have to",
    ),
    "commitment_indicators": (
        "i will", "i'll", "we will", "we'll", "i can", "i am going to",
        "i'm going to", "let me",
    ),
    "decision_indicators": (
        "decided", "agreed", "confirmed", "approved", "let's go with",
        "we'll use", "final decision", "settled on",
    ),
    "disagreement_indicators": (
        "disagree", "don't think", "not sure about that", "actually",
        "incorrect", "that's not", "no,", "not what", "never said", "didn't agree",
    ),
    "confusion_indicators": (
        "confused", "don't understand", "unclear", "what do you mean",
        "not following", "lost me", "clarify",
    ),
    "assumption_indicators": (
        "i thought", "i understood", "i assumed", "i was under the impression",
        "my understanding was", "i believed", "i expected", "we assumed",
        "we thought",
    ),
    "completion_indicators": (
        "done", "finished", "completed", "sent it", "just sent", "attached",
        "here is", "here's", "taken care of", "shipped", "merged",
    ),
    "politeness_indicators": (
        "please", "thank", "thanks", "appreciate", "kindly", "would you mind",
        "sorry", "regards",
    ),
    "answer_lead_indicators": (
        "yes", "no", "yep", "nope", "sure", "will do", "done", "attached",
        "here is", "here's", "it is", "it's", "we can", "i can", "correct",
        "confirmed",
    ),
}

# Role keyword tables; scored against content, signature and sender address
DEFAULT_ROLE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Executive": ("ceo", "cfo", "cto", "coo", "president", "vp", "vice president",
                  "chief", "director", "founder", "board"),
    "Manager": ("manager", "lead", "head of", "supervisor", "team lead",
                "i'll assign", "my team", "approve", "approved", "priorities"),
    "Vendor": ("invoice", "quote", "our product", "our service", "pricing",
               "contract", "renewal", "sales", "account executive"),
    "Customer": ("my order", "my account", "i purchased", "refund", "i bought",
                 "as a customer", "your product", "your service", "subscription"),
    "Support": ("ticket", "support", "helpdesk", "help desk", "troubleshoot",
                "case number", "we apologize", "sorry for the inconvenience",
                "customer service"),
    "Employee": ("i'm working on", "i am working on", "my task", "i finished",
                 "i completed", "pull request", "standup", "sprint"),
}

DEFAULT_ROLE_ADDRESSES: Dict[str, Tuple[str, ...]] = {
    "Support": ("support", "help", "helpdesk", "service", "care"),
    "Vendor": ("sales", "billing", "accounts", "invoices"),
    "Executive": ("ceo", "cfo", "cto", "founder"),
}


def _phrase_regex(phrase: str) -> re.Pattern:
    return re.compile(r"(?<![\w])" + re.escape(phrase) + r"(?![\w])", re.IGNORECASE)


class PatternLibrary:
    """
    Read-only keyword categories with word-boundary aware matching.

    Matching is case-insensitive and a phrase only matches on word boundaries,
    so "now" does not fire inside "know".
    """

    def __init__(self, patterns: Optional[Dict[str, List[str]]] = None,
                 role_keywords: Optional[Dict[str, List[str]]] = None,
                 role_addresses: Optional[Dict[str, List[str]]] = None):
        merged: Dict[str, Tuple[str, ...]] = dict(DEFAULT_PATTERNS)
        for category, words in (patterns or {}).items():
            merged[category] = tuple(w.strip().lower() for w in words if w and w.strip())
        self._patterns = merged
        self.role_keywords: Dict[str, Tuple[str, ...]] = {
            role: tuple(w.lower() for w in words)
            for role, words in (role_keywords or DEFAULT_ROLE_KEYWORDS).items()
        }
        self.role_addresses: Dict[str, Tuple[str, ...]] = {
            role: tuple(w.lower() for w in words)
            for role, words in (role_addresses or DEFAULT_ROLE_ADDRESSES).items()
        }
        # Compiled once; the library is shared read-only across requests
        phrases = {phrase for words in self._patterns.values() for phrase in words}
        phrases.update(word for words in self.role_keywords.values() for word in words)
        self._compiled: Dict[str, re.Pattern] = {phrase: _phrase_regex(phrase) for phrase in phrases}

    @classmethod
    def from_file(cls, path: Optional[Path]) -> "PatternLibrary":
        """
        Load pattern overrides from TOML, falling back to defaults.

        Args:
            path: TOML file path; None or a missing file yields the defaults

        Returns:
            PatternLibrary instance
        """
        if path is None:
            return cls()
        path = Path(path)
        if not path.exists():
            logger.warning(f"Patterns file not found: {path}. Using default patterns.")
            return cls()
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error(f"Error loading patterns from {path}: {e}. Using default patterns.")
            return cls()

        roles = data.pop("roles", None)
        addresses = data.pop("role_addresses", None)
        patterns = {k: v for k, v in data.items() if isinstance(v, list)}
        logger.info(f"Loaded {len(patterns)} pattern categories from {path}")
        return cls(patterns=patterns, role_keywords=roles, role_addresses=addresses)

    def categories(self) -> List[str]:
        return list(self._patterns.keys())

    def get(self, category: str) -> Tuple[str, ...]:
        words = self._patterns.get(category)
        if words is None:
            logger.warning(f"Pattern category not found: {category}")
            return ()
        return words

    def _compile(self, phrase: str) -> re.Pattern:
        pattern = self._compiled.get(phrase)
        return pattern if pattern is not None else _phrase_regex(phrase)

    def contains_phrase(self, text: str, phrase: str) -> bool:
        return bool(text) and self._compile(phrase.lower()).search(text) is not None

    def find(self, text: str, category: str) -> List[str]:
        """Distinct phrases of a category present in text, in category order"""
        if not text or not text.strip():
            return []
        return [phrase for phrase in self.get(category) if self.contains_phrase(text, phrase)]

    def count(self, text: str, category: str) -> int:
        """Total occurrences of every phrase of a category"""
        if not text:
            return 0
        return sum(len(self._compile(phrase).findall(text)) for phrase in self.get(category))

    def contains(self, text: str, category: str) -> bool:
        if not text:
            return False
        return any(self.contains_phrase(text, phrase) for phrase in self.get(category))

    def starts_with(self, text: str, category: str) -> bool:
        """True when the text opens with one of the category's words"""
        if not text:
            return False
        lowered = text.lstrip().lower()
        for word in self.get(category):
            if lowered == word or lowered.startswith(word + " ") or lowered.startswith(word + ","):
                return True
        return False
