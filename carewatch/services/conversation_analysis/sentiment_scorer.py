"""Lexicon sentiment scorer - per-utterance emotional reading.

Scores caller speech on four clinically relevant axes (anxiety, agitation,
confusion, positivity) by counting lexicon markers, and analyses how the
overall mood moves across a call.
"""
import logging
import statistics
from typing import Dict, List, Optional, Sequence, Union

from datetime import datetime

from carewatch.shared.models import EmotionalShift, EmotionalSnapshot, MoodTrend, ShiftDirection
from .config import AnalysisConfig, DEFAULT_LEXICON, Lexicon
from .text_normalizer import compile_phrases, normalize_text

logger = logging.getLogger(__name__)

MoodPoint = Union[float, EmotionalSnapshot]


class LexiconSentimentScorer:
    """Maps free text to a bounded four-axis EmotionalSnapshot.

    Each axis sums the severity points of every marker occurrence, divides
    by the axis saturation (scaled up for long utterances so rambling
    speech is not over-scored) and clamps to 0.0-1.0. The signed overall
    score weights anxiety highest, reflecting clinical priority.
    """

    AXES = ("anxiety", "agitation", "confusion", "positivity")

    def __init__(
        self,
        lexicon: Optional[Lexicon] = None,
        config: Optional[AnalysisConfig] = None,
    ):
        """Initialize scorer with compiled marker patterns.

        Args:
            lexicon: Marker vocabularies (defaults to the built-in lexicon)
            config: Weights, saturations and shift/trend thresholds
        """
        self.lexicon = lexicon or DEFAULT_LEXICON
        self.config = config or AnalysisConfig()
        self._compiled = {}
        for axis in self.AXES:
            markers = self.lexicon.sentiment_markers(axis)
            self._compiled[axis] = [
                (regex, phrase, markers[phrase])
                for regex, phrase in compile_phrases(markers)
            ]

        logger.info(
            "SENTIMENT_SCORER_INITIALIZED",
            extra={
                "lexicon_version": self.lexicon.version,
                "marker_counts": {axis: len(c) for axis, c in self._compiled.items()},
            }
        )

    def analyze_sentiment(
        self,
        text: Optional[str],
        timestamp: Optional[datetime] = None,
    ) -> EmotionalSnapshot:
        """Score one utterance.

        Empty, whitespace-only or non-string input yields a neutral
        (all-zero) snapshot rather than an error.

        Args:
            text: Caller utterance
            timestamp: When the utterance occurred

        Returns:
            EmotionalSnapshot with each axis in 0.0-1.0 and overall in -1.0-1.0
        """
        normalized = normalize_text(text)
        if not normalized:
            return EmotionalSnapshot.neutral(timestamp)

        word_count = len(normalized.split())
        length_scale = max(1.0, word_count / self.config.long_utterance_words)

        scores: Dict[str, float] = {}
        for axis in self.AXES:
            points = self._marker_points(normalized, axis)
            saturation = getattr(self.config, f"{axis}_saturation") * length_scale
            scores[axis] = min(points / saturation, 1.0)

        overall = self.calculate_overall_mood(**scores)
        return EmotionalSnapshot(overall=overall, timestamp=timestamp, **scores)

    def calculate_overall_mood(
        self,
        anxiety: float,
        agitation: float,
        confusion: float,
        positivity: float,
    ) -> float:
        """Weighted signed mood, clamped to -1.0..1.0 (negative = distressed)."""
        cfg = self.config
        overall = (
            positivity * cfg.positivity_weight
            - anxiety * cfg.anxiety_weight
            - agitation * cfg.agitation_weight
            - confusion * cfg.confusion_weight
        )
        return max(-1.0, min(overall, 1.0))

    def detect_markers(self, text: Optional[str], axis: str) -> List[str]:
        """Marker phrases of one axis present in ``text`` (longest first)."""
        if axis not in self._compiled:
            raise ValueError(f"Unknown sentiment axis: {axis}")
        normalized = normalize_text(text)
        if not normalized:
            return []
        return [
            phrase for regex, phrase, _ in self._compiled[axis]
            if regex.search(normalized)
        ]

    def detect_anxiety_markers(self, text: Optional[str]) -> List[str]:
        return self.detect_markers(text, "anxiety")

    def _marker_points(self, normalized: str, axis: str) -> int:
        return sum(
            points * len(regex.findall(normalized))
            for regex, _, points in self._compiled[axis]
        )

    def detect_emotional_shift(
        self,
        previous: Optional[EmotionalSnapshot],
        current: Optional[EmotionalSnapshot],
    ) -> EmotionalShift:
        """Compare two consecutive readings.

        Direction is the sign of the overall change; ``significant`` marks
        changes larger than ``shift_threshold`` worth surfacing mid-trend.
        """
        if previous is None or current is None:
            return EmotionalShift(
                magnitude=0.0,
                direction=ShiftDirection.STABLE,
                overall_shift=0.0,
            )

        overall_shift = current.overall - previous.overall
        magnitude = abs(overall_shift)
        if overall_shift > 0:
            direction = ShiftDirection.IMPROVING
        elif overall_shift < 0:
            direction = ShiftDirection.DECLINING
        else:
            direction = ShiftDirection.STABLE

        return EmotionalShift(
            magnitude=magnitude,
            direction=direction,
            overall_shift=overall_shift,
            category_shifts=tuple(
                (axis, current.axis(axis) - previous.axis(axis))
                for axis in ("anxiety", "agitation", "confusion")
            ),
            significant=magnitude > self.config.shift_threshold,
            timestamp=current.timestamp,
        )

    def calculate_trend(self, series: Optional[Sequence[MoodPoint]]) -> MoodTrend:
        """Classify the direction of a mood series.

        Below ``min_trend_points`` the trend is reported as insufficient
        data. Otherwise a strictly monotone series takes its own direction;
        any other series needs a least-squares slope beyond
        ``trend_slope_threshold`` that agrees with the late-minus-early
        segment delta, so a single noisy turn cannot flip the result.

        Args:
            series: Overall mood values or EmotionalSnapshots, oldest first

        Returns:
            MoodTrend with direction, strength (|slope|) and confidence
        """
        values = [
            point.overall if isinstance(point, EmotionalSnapshot) else float(point)
            for point in (series or [])
        ]
        n = len(values)
        if n < self.config.min_trend_points:
            return MoodTrend(direction=ShiftDirection.INSUFFICIENT_DATA)

        x_mean = (n - 1) / 2
        y_mean = statistics.mean(values)
        numerator = sum((i - x_mean) * (v - y_mean) for i, v in enumerate(values))
        denominator = sum((i - x_mean) ** 2 for i in range(n))
        slope = numerator / denominator

        segment = max(1, n // 3)
        segment_delta = statistics.mean(values[-segment:]) - statistics.mean(values[:segment])

        steps = [b - a for a, b in zip(values, values[1:])]
        if all(step > 0 for step in steps):
            direction = ShiftDirection.IMPROVING
        elif all(step < 0 for step in steps):
            direction = ShiftDirection.DECLINING
        elif abs(slope) > self.config.trend_slope_threshold and slope * segment_delta > 0:
            direction = ShiftDirection.IMPROVING if slope > 0 else ShiftDirection.DECLINING
        else:
            direction = ShiftDirection.STABLE

        strength = abs(slope)
        return MoodTrend(
            direction=direction,
            strength=strength,
            slope=slope,
            segment_delta=segment_delta,
            confidence=min(strength * 10, 1.0),
        )
