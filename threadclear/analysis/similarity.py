"""
Lexical overlap helpers backed by rapidfuzz

Content tokens are compared with a fuzzy ratio so that "invoice"/"invoices"
or small typos still count as the same word.
"""

import re
from dataclasses import dataclass
from typing import List, Set

from rapidfuzz import fuzz, process

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")

STOPWORDS: Set[str] = {
    "the", "and", "for", "are", "but", "not", "you", "your", "yours", "all", "any", "can",
    "had", "has", "have", "her", "his", "him", "she", "they", "them", "their", "our", "ours",
    "was", "were", "will", "would", "could", "should", "with", "this", "that", "these", "those",
    "from", "what", "when", "where", "which", "who", "whom", "why", "how", "did", "does", "doing",
    "done", "just", "about", "into", "than", "then", "there", "here", "also", "been", "being",
    "let", "know", "get", "got", "yet", "out", "its", "it's", "i'm", "we're", "you're", "please",
    "thanks", "thank", "hi", "hey", "hello", "yes", "okay", "ok", "sure", "one", "may", "might",
    "shall", "some", "more", "much", "very", "still", "again", "need", "want", "like", "today",
}


@dataclass
class Overlap:
    matched: int
    total: int

    @property
    def share(self) -> float:
        return self.matched / self.total if self.total else 0.0


def content_tokens(text: str) -> List[str]:
    """Distinct lowercase content words (length >= 3, stopwords removed), in order"""
    seen: List[str] = []
    for token in _TOKEN_RE.findall((text or "").lower()):
        token = token.strip("'-")
        if len(token) < 3 or token in STOPWORDS or token in seen:
            continue
        seen.append(token)
    return seen


def token_overlap(reference: str, candidate: str, similarity: int = 85) -> Overlap:
    """How many content tokens of `reference` reappear (fuzzily) in `candidate`"""
    wanted = content_tokens(reference)
    available = content_tokens(candidate)
    if not wanted or not available:
        return Overlap(0, len(wanted))
    matched = 0
    for token in wanted:
        if token in available:
            matched += 1
            continue
        if process.extractOne(token, available, scorer=fuzz.ratio, score_cutoff=similarity) is not None:
            matched += 1
    return Overlap(matched, len(wanted))


def same_text(a: str, b: str, threshold: int = 90) -> bool:
    """Near-duplicate check for repeated questions and deduplicated suggestions"""
    if not a or not b:
        return False
    return fuzz.token_set_ratio(a.lower(), b.lower()) >= threshold
