"""Tests for per-message linguistic features and the pattern library"""

from threadclear.analysis.features import analyze_text, extract_questions, score_sentiment, split_sentences
from threadclear.analysis.models import SentimentPolarity, UrgencyLevel
from threadclear.analysis.patterns import PatternLibrary


class TestQuestions:

    def test_terminated_and_lead_word_questions(self, patterns):
        questions = extract_questions("Can you send it? I will check. what time works for you", patterns)
        assert questions == ["Can you send it?", "what time works for you"]

    def test_short_unterminated_phrases_are_not_questions(self, patterns):
        assert extract_questions("Will do", patterns) == []

    def test_sentence_split_on_newlines(self):
        assert split_sentences("First line\nSecond one. Third!") == ["First line", "Second one.", "Third!"]


class TestSentimentAndUrgency:

    def test_negative_keywords(self, patterns):
        sentiment = score_sentiment("This is terrible and I am frustrated", patterns)
        assert sentiment.polarity == SentimentPolarity.NEGATIVE
        assert sentiment.intensity == 0.6

    def test_emphasis_raises_intensity(self, patterns):
        sentiment = score_sentiment("This is TERRIBLE", patterns)
        assert sentiment.intensity == 0.5

    def test_positive_keywords(self, patterns):
        sentiment = score_sentiment("Thanks, great work", patterns)
        assert sentiment.polarity == SentimentPolarity.POSITIVE

    def test_balanced_is_neutral(self, patterns):
        sentiment = score_sentiment("Great, but there is a problem", patterns)
        assert sentiment.polarity == SentimentPolarity.NEUTRAL
        assert sentiment.intensity == 0.0

    def test_urgency_levels(self, patterns):
        high, _ = analyze_text("Need this ASAP", patterns)
        medium, _ = analyze_text("Please do it soon", patterns)
        low, _ = analyze_text("ok", patterns)
        assert high.urgency == UrgencyLevel.HIGH and high.urgency_markers == ["asap"]
        assert medium.urgency == UrgencyLevel.MEDIUM
        assert low.urgency == UrgencyLevel.LOW


class TestPatternLibrary:

    def test_word_boundaries(self, patterns):
        assert patterns.find("I know the answer", "urgency_indicators") == []
        assert patterns.find("Fix it right now", "urgency_indicators") == ["right now"]

    def test_overrides_from_toml(self, tmp_path):
        path = tmp_path / "patterns.toml"
        path.write_text('urgency_indicators = ["pronto"]\n\n[roles]\nExecutive = ["boss"]\n', encoding="utf-8")

        library = PatternLibrary.from_file(path)

        assert library.get("urgency_indicators") == ("pronto",)
        assert library.role_keywords == {"Executive": ("boss",)}
        assert library.get("positive_indicators")

    def test_missing_file_uses_defaults(self, tmp_path):
        library = PatternLibrary.from_file(tmp_path / "absent.toml")
        assert "asap" in library.get("urgency_indicators")

    def test_lookups_do_not_mutate_the_shared_library(self, patterns):
        compiled = dict(patterns._compiled)
        assert "right now" in compiled

        assert patterns.contains_phrase("Ship the widget today", "ship the widget")
        assert patterns.find("It is URGENT", "urgency_indicators") == ["urgent"]

        assert patterns._compiled == compiled
