"""Tests for LexiconSentimentScorer: axis scoring, shifts and trends."""
from datetime import datetime, timezone

import pytest

from carewatch.shared.models import EmotionalSnapshot, ShiftDirection
from carewatch.services.conversation_analysis.sentiment_scorer import LexiconSentimentScorer


@pytest.fixture
def scorer():
    return LexiconSentimentScorer()


class TestAnalyzeSentiment:
    """Tests for per-utterance axis scoring."""

    def test_crisis_phrase_scores_high_anxiety(self, scorer):
        snapshot = scorer.analyze_sentiment("I want to die")
        assert snapshot.anxiety == pytest.approx(4 / 6)
        assert snapshot.overall == -1.0

    def test_general_anxiety(self, scorer):
        snapshot = scorer.analyze_sentiment("I'm so scared and worried")
        assert snapshot.anxiety == pytest.approx(2 / 6)
        assert snapshot.overall < 0

    def test_confusion_markers(self, scorer):
        snapshot = scorer.analyze_sentiment("I don't know where I am or what time it is")
        assert snapshot.confusion >= 0.6

    def test_typographic_apostrophe_still_matches(self, scorer):
        snapshot = scorer.analyze_sentiment("I don’t know")
        assert snapshot.confusion == pytest.approx(1 / 5)

    def test_agitation_markers(self, scorer):
        snapshot = scorer.analyze_sentiment("I hate this, I'm so angry")
        assert snapshot.agitation == pytest.approx(3 / 6)

    def test_positive_text(self, scorer):
        snapshot = scorer.analyze_sentiment("What a wonderful, happy day")
        assert snapshot.positivity == pytest.approx(0.5)
        assert snapshot.overall == pytest.approx(0.5)

    def test_neutral_text(self, scorer):
        snapshot = scorer.analyze_sentiment("The soup was warm")
        assert snapshot.overall == 0.0

    @pytest.mark.parametrize("text", ["", "   ", None, 12])
    def test_empty_or_invalid_text_is_neutral(self, scorer, text):
        snapshot = scorer.analyze_sentiment(text)
        assert snapshot.anxiety == 0.0
        assert snapshot.agitation == 0.0
        assert snapshot.confusion == 0.0
        assert snapshot.positivity == 0.0
        assert snapshot.overall == 0.0

    def test_axes_clamped_to_one(self, scorer):
        snapshot = scorer.analyze_sentiment("terrified panic terrified panic hopeless")
        assert snapshot.anxiety == 1.0
        assert snapshot.overall == -1.0

    def test_long_utterance_is_diluted(self, scorer):
        text = "worried " + "word " * 39
        snapshot = scorer.analyze_sentiment(text)
        assert snapshot.anxiety == pytest.approx(1 / 12)

    def test_timestamp_carried(self, scorer):
        ts = datetime(2026, 1, 14, 17, 0, tzinfo=timezone.utc)
        assert scorer.analyze_sentiment("hello", ts).timestamp == ts

    def test_word_boundaries(self, scorer):
        # "madison" must not count as "mad"
        assert scorer.analyze_sentiment("I live on Madison Avenue").agitation == 0.0


class TestMarkerDetection:

    def test_detect_anxiety_markers(self, scorer):
        markers = scorer.detect_anxiety_markers("I'm scared and worried")
        assert set(markers) == {"scared", "worried"}

    def test_detect_markers_empty_text(self, scorer):
        assert scorer.detect_markers("", "confusion") == []

    def test_unknown_axis_raises(self, scorer):
        with pytest.raises(ValueError):
            scorer.detect_markers("hello", "boredom")


class TestEmotionalShift:

    def test_significant_decline(self, scorer):
        previous = EmotionalSnapshot(positivity=0.5, overall=0.5)
        current = EmotionalSnapshot(anxiety=0.2, overall=-0.2)

        shift = scorer.detect_emotional_shift(previous, current)

        assert shift.direction == ShiftDirection.DECLINING
        assert shift.magnitude == pytest.approx(0.7)
        assert shift.significant is True
        assert dict(shift.category_shifts)["anxiety"] == pytest.approx(0.2)

    def test_small_improvement_not_significant(self, scorer):
        previous = EmotionalSnapshot(overall=0.0)
        current = EmotionalSnapshot(positivity=0.1, overall=0.1)

        shift = scorer.detect_emotional_shift(previous, current)

        assert shift.direction == ShiftDirection.IMPROVING
        assert shift.significant is False

    def test_equal_readings_are_stable(self, scorer):
        snapshot = EmotionalSnapshot(overall=0.2, positivity=0.2)
        shift = scorer.detect_emotional_shift(snapshot, snapshot)
        assert shift.direction == ShiftDirection.STABLE
        assert shift.magnitude == 0.0

    def test_missing_operand(self, scorer):
        shift = scorer.detect_emotional_shift(None, EmotionalSnapshot())
        assert shift.magnitude == 0.0
        assert shift.direction == ShiftDirection.STABLE
        assert shift.significant is False


class TestCalculateTrend:

    def test_declining_series(self, scorer):
        trend = scorer.calculate_trend([0.2, 0.1, -0.2, -0.5])
        assert trend.direction == ShiftDirection.DECLINING
        assert trend.slope == pytest.approx(-0.24)
        assert trend.confidence == 1.0

    def test_improving_series(self, scorer):
        trend = scorer.calculate_trend([-0.5, -0.2, 0.1, 0.3])
        assert trend.direction == ShiftDirection.IMPROVING

    def test_insufficient_data(self, scorer):
        trend = scorer.calculate_trend([0.1, 0.2])
        assert trend.direction == ShiftDirection.INSUFFICIENT_DATA
        assert trend.strength == 0.0

    def test_empty_series(self, scorer):
        assert scorer.calculate_trend([]).direction == ShiftDirection.INSUFFICIENT_DATA
        assert scorer.calculate_trend(None).direction == ShiftDirection.INSUFFICIENT_DATA

    def test_flat_series_is_stable(self, scorer):
        assert scorer.calculate_trend([0.0, 0.0, 0.0]).direction == ShiftDirection.STABLE

    def test_oscillating_series_is_stable(self, scorer):
        trend = scorer.calculate_trend([0.0, 0.1, 0.0, 0.1, 0.0, 0.1])
        assert trend.direction == ShiftDirection.STABLE

    def test_noisy_decline(self, scorer):
        trend = scorer.calculate_trend([0.5, 0.6, 0.0, -0.3, -0.2])
        assert trend.direction == ShiftDirection.DECLINING
        assert trend.segment_delta == pytest.approx(-0.7)

    def test_accepts_snapshots(self, scorer):
        series = [
            EmotionalSnapshot(positivity=0.5, overall=0.5),
            EmotionalSnapshot(positivity=0.2, overall=0.2),
            EmotionalSnapshot(anxiety=0.2, overall=-0.3),
        ]
        assert scorer.calculate_trend(series).direction == ShiftDirection.DECLINING

    def test_small_strict_rise_is_improving(self, scorer):
        assert scorer.calculate_trend([0.0, 0.01, 0.02]).direction == ShiftDirection.IMPROVING

    def test_small_strict_fall_is_declining(self, scorer):
        assert scorer.calculate_trend([0.02, 0.01, 0.0]).direction == ShiftDirection.DECLINING
