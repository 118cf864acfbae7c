"""
Linguistic feature extraction

Keyword/pattern scans computed synchronously for every parsed message:
questions, urgency markers, keyword sentiment, politeness and counts.
"""

import re
from typing import List, Tuple

from .models import LinguisticFeatures, Sentiment, SentimentPolarity, UrgencyLevel
from .patterns import PatternLibrary

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")
_ALL_CAPS_WORD_RE = re.compile(r"\b[A-Z]{3,}\b")
_MEDIUM_URGENCY_RE = re.compile(r"\b(soon|quickly|important|priority)\b", re.IGNORECASE)
_DEMAND_RE = re.compile(r"\b(must|need|have to|should have)\b", re.IGNORECASE)

# Common all-caps tokens that are not shouting
_CAPS_ALLOWLIST = {"ASAP", "EOD", "FYI", "USA", "API", "CEO", "CFO", "CTO", "PDF", "URL", "ETA", "SLA", "FAQ", "UTC"}

# Unterminated sentences shorter than this are not treated as questions ("Will do")
_MIN_UNTERMINATED_QUESTION_WORDS = 3


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text or "") if s and s.strip()]


def extract_questions(text: str, patterns: PatternLibrary) -> List[str]:
    """
    Sentences ending with "?" plus unterminated sentences that open with an
    interrogative lead word.
    """
    questions: List[str] = []
    for sentence in split_sentences(text):
        if sentence.endswith("?"):
            questions.append(sentence)
        elif (sentence[-1] not in ".!"
              and len(sentence.split()) >= _MIN_UNTERMINATED_QUESTION_WORDS
              and patterns.starts_with(sentence, "question_indicators")):
            questions.append(sentence)
    return questions


def has_emphasis(text: str) -> bool:
    """Double exclamation or a shouted (ALL-CAPS) word"""
    if "!!" in text:
        return True
    return any(word not in _CAPS_ALLOWLIST for word in _ALL_CAPS_WORD_RE.findall(text))


def score_sentiment(text: str, patterns: PatternLibrary) -> Sentiment:
    """
    Keyword sentiment.

    diff = negative hits - positive hits; intensity = 0.2 + 0.2 * |diff|,
    plus 0.1 for emphasis, clamped to 1. Balanced text is neutral with
    intensity 0.
    """
    negative = patterns.count(text, "frustration_indicators") + patterns.count(text, "negative_tone_indicators")
    positive = patterns.count(text, "positive_indicators")
    diff = negative - positive
    if diff == 0:
        return Sentiment(polarity=SentimentPolarity.NEUTRAL, intensity=0.0)

    intensity = 0.2 + 0.2 * abs(diff)
    if has_emphasis(text):
        intensity += 0.1
    polarity = SentimentPolarity.NEGATIVE if diff > 0 else SentimentPolarity.POSITIVE
    return Sentiment(polarity=polarity, intensity=round(min(1.0, intensity), 2))


def detect_urgency(text: str, markers: List[str]) -> UrgencyLevel:
    if markers or "!!!" in text:
        return UrgencyLevel.HIGH
    if _MEDIUM_URGENCY_RE.search(text) or "!!" in text:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


def detect_politeness(text: str, patterns: PatternLibrary) -> float:
    score = 0.5
    if patterns.contains(text, "politeness_indicators"):
        score += 0.3
    if _DEMAND_RE.search(text) and "please" not in text.lower():
        score -= 0.2
    if "!" in text:
        score -= 0.1
    return round(max(0.0, min(1.0, score)), 2)


def analyze_text(text: str, patterns: PatternLibrary) -> Tuple[LinguisticFeatures, Sentiment]:
    """Compute linguistic features and keyword sentiment for one message body"""
    questions = extract_questions(text, patterns)
    markers = patterns.find(text, "urgency_indicators")
    sentiment = score_sentiment(text, patterns)
    features = LinguisticFeatures(
        contains_question=bool(questions),
        questions=questions,
        urgency_markers=markers,
        sentiment=sentiment.polarity,
        urgency=detect_urgency(text, markers),
        word_count=len(text.split()),
        sentence_count=len(split_sentences(text)),
        politeness=detect_politeness(text, patterns),
    )
    return features, sentiment
