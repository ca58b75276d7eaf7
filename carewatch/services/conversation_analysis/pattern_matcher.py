"""Clinical pattern matcher for dementia-care conversations.

Independent phrase rules per clinical category, plus the call-level
heuristics built on top of them: sundowning risk, UTI indicators,
confusion-onset classification and repetition scoring.

None of these heuristics is a diagnosis. They exist to tell a caregiver
where to look first.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from carewatch.shared.models import (
    AssessmentLevel,
    ClinicalPatternMatch,
    EmotionalSnapshot,
    PatternCategory,
    Severity,
    SleepPatterns,
    SundowningAssessment,
    UTIAssessment,
)
from .config import AnalysisConfig, DEFAULT_LEXICON, Lexicon
from .similarity import similarity
from .text_normalizer import compile_phrases, normalize_text

logger = logging.getLogger(__name__)

# Characters of context kept either side of a match
EXCERPT_RADIUS = 50

# Base severity per category before modifier words are applied
CATEGORY_SEVERITY: Dict[PatternCategory, Severity] = {
    PatternCategory.HOSPITAL_REQUEST: Severity.CRITICAL,
    PatternCategory.CRISIS_LANGUAGE: Severity.CRITICAL,
    PatternCategory.PAIN_COMPLAINT: Severity.HIGH,
    PatternCategory.DELUSIONAL_CONTENT: Severity.HIGH,
    PatternCategory.MEDICATION_CONCERN: Severity.MEDIUM,
    PatternCategory.STAFF_COMPLAINT: Severity.MEDIUM,
    PatternCategory.SUNDOWNING: Severity.MEDIUM,
    PatternCategory.TOILETING: Severity.MEDIUM,
}

_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]

# Pain intensity grades
PAIN_SEVERE_INTENSITY = 0.9
PAIN_INTENSIFIED_INTENSITY = 0.7
PAIN_DEFAULT_INTENSITY = 0.5
PAIN_MILD_INTENSITY = 0.3

ONSET_SUDDEN = "sudden_onset"
ONSET_GRADUAL = "gradual"
ONSET_CHRONIC = "chronic"
ONSET_PATTERNS = (ONSET_SUDDEN, ONSET_GRADUAL, ONSET_CHRONIC)

SUNDOWNING_RECOMMENDATIONS = {
    AssessmentLevel.LOW: "Continue monitoring. Maintain regular routine and adequate lighting.",
    AssessmentLevel.MODERATE: "Increase supervision. Consider calming activities and reduce stimulation.",
    AssessmentLevel.HIGH: "Immediate intervention needed. Implement calming strategies, check for triggers.",
}

UTI_RECOMMENDATIONS = {
    AssessmentLevel.LOW: "Continue normal monitoring. Ensure adequate hydration.",
    AssessmentLevel.MODERATE: "Monitor closely for additional symptoms. Consider medical evaluation.",
    AssessmentLevel.HIGH: "Urgent medical evaluation recommended. Document symptoms for healthcare provider.",
}


class ClinicalPatternMatcher:
    """Detects clinical patterns in caller utterances.

    At most one match is reported per category per utterance (the longest
    matching phrase); several categories may match the same utterance.
    """

    def __init__(
        self,
        lexicon: Optional[Lexicon] = None,
        config: Optional[AnalysisConfig] = None,
    ):
        self.lexicon = lexicon or DEFAULT_LEXICON
        self.config = config or AnalysisConfig()

        self._category_patterns = {
            category: compile_phrases(phrases)
            for category, phrases in self.lexicon.pattern_phrases.items()
        }
        self._critical_words = compile_phrases(self.lexicon.severity_critical_words)
        self._high_words = compile_phrases(self.lexicon.severity_high_words)
        self._pain_severe = compile_phrases(self.lexicon.pain_severe_words)
        self._pain_intensifiers = compile_phrases(self.lexicon.pain_intensifiers)
        self._pain_mitigators = compile_phrases(self.lexicon.pain_mitigators)
        self._hospital_request_phrases = compile_phrases(self.lexicon.hospital_request_phrases)
        self._sleep_terms = compile_phrases(self.lexicon.sleep_terms)
        self._health_worry_terms = compile_phrases(self.lexicon.health_worry_terms)

        logger.info(
            "PATTERN_MATCHER_INITIALIZED",
            extra={
                "lexicon_version": self.lexicon.version,
                "categories": [c.value for c in self._category_patterns],
            }
        )

    def detect_patterns(
        self,
        text: Optional[str],
        timestamp: Optional[datetime] = None,
    ) -> List[ClinicalPatternMatch]:
        """Run every category rule over one utterance.

        Args:
            text: Caller utterance
            timestamp: Detection time (defaults to now)

        Returns:
            One ClinicalPatternMatch per matching category, in category order
        """
        normalized = normalize_text(text)
        if not normalized:
            return []

        detected_at = timestamp or datetime.now()
        display = " ".join(text.split())
        if len(display) != len(normalized):
            display = normalized

        matches = []
        for category, patterns in self._category_patterns.items():
            for regex, phrase in patterns:
                found = regex.search(normalized)
                if not found:
                    continue
                intensity = None
                if category == PatternCategory.PAIN_COMPLAINT:
                    intensity = self.assess_pain_intensity(normalized)
                matches.append(ClinicalPatternMatch(
                    category=category,
                    match=phrase,
                    excerpt=self._extract_excerpt(display, found.start(), found.end()),
                    detected_at=detected_at,
                    severity=self.assess_severity(category, normalized),
                    intensity=intensity,
                ))
                break

        return matches

    def is_hospital_request(self, text: Optional[str]) -> bool:
        """True when the utterance asks for a hospital, doctor or ambulance.

        "My doctor came by" mentions a doctor but asks for nothing.
        """
        return _any_match(self._hospital_request_phrases, normalize_text(text))

    def assess_severity(self, category: PatternCategory, text: str) -> Severity:
        """Category severity, escalated (never lowered) by modifier words.

        A hospital mention that is not a request starts at medium.
        """
        severity = CATEGORY_SEVERITY.get(category, Severity.LOW)
        normalized = normalize_text(text)
        if category == PatternCategory.HOSPITAL_REQUEST and not self.is_hospital_request(normalized):
            severity = Severity.MEDIUM
        if _any_match(self._critical_words, normalized):
            return Severity.CRITICAL
        if _any_match(self._high_words, normalized):
            return max(severity, Severity.HIGH, key=_SEVERITY_ORDER.index)
        return severity

    def assess_pain_intensity(self, text: str) -> float:
        """Grade a pain complaint from its qualifying words.

        Severe words win over mitigators, mitigators over intensifiers
        ("not too bad" is mild even though it contains "bad").
        """
        normalized = normalize_text(text)
        if _any_match(self._pain_severe, normalized):
            return PAIN_SEVERE_INTENSITY
        if _any_match(self._pain_mitigators, normalized):
            return PAIN_MILD_INTENSITY
        if _any_match(self._pain_intensifiers, normalized):
            return PAIN_INTENSIFIED_INTENSITY
        return PAIN_DEFAULT_INTENSITY

    @staticmethod
    def _extract_excerpt(text: str, start: int, end: int) -> str:
        begin = max(0, start - EXCERPT_RADIUS)
        finish = min(len(text), end + EXCERPT_RADIUS)
        return text[begin:finish].strip()

    def detect_sundowning_risk(
        self,
        time_of_day: Union[datetime, int],
        observed_behaviors: Iterable[str] = (),
    ) -> SundowningAssessment:
        """Score late-day agitation risk.

        One point each for: the hour falling inside the late-day window,
        any recognised sundowning behaviour, and multiple behaviours.
        0 points is low, 1 moderate, 2 or more high. A late-day call with a
        single behaviour is therefore already high, one level above the
        call-floor rule, which needs several behaviours for high.

        Args:
            time_of_day: Datetime of the call or an hour 0-23
            observed_behaviors: Behaviour labels (e.g. "agitation",
                "wanting_to_leave"); unrecognised labels are ignored

        Returns:
            SundowningAssessment
        """
        hour = time_of_day.hour if isinstance(time_of_day, datetime) else int(time_of_day)
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour must be 0-23, got {hour}")

        cfg = self.config
        known = self.lexicon.sundowning_behaviors
        matched = [
            behavior for behavior in observed_behaviors or ()
            if any(k in normalize_text(behavior).replace("_", " ") for k in known)
        ]

        score = 0
        factors = []
        if cfg.sundowning_window_start_hour <= hour <= cfg.sundowning_window_end_hour:
            score += 1
            factors.append("late_day_time_window")
        if matched:
            score += 1
            factors.append("behavioral_indicators_present")
        if len(matched) >= cfg.sundowning_multiple_behaviors:
            score += 1
            factors.append("multiple_behavioral_indicators")

        if score >= 2:
            level = AssessmentLevel.HIGH
        elif score == 1:
            level = AssessmentLevel.MODERATE
        else:
            level = AssessmentLevel.LOW

        return SundowningAssessment(
            level=level,
            factors=factors,
            time_of_day=hour,
            behavior_count=len(matched),
            recommendation=SUNDOWNING_RECOMMENDATIONS[level],
        )

    def assess_uti_indicators(
        self,
        confusion_level: float,
        onset_pattern: str,
        urinary_symptoms: bool = False,
    ) -> UTIAssessment:
        """Flag confusion profiles consistent with a urinary tract infection.

        Sudden severe confusion in an older adult is the key indicator;
        the same level of confusion with a gradual or chronic history is
        weaker evidence.

        Raises:
            ValueError: If confusion_level is outside 0-1 or the onset
                pattern is unknown
        """
        if not 0.0 <= confusion_level <= 1.0:
            raise ValueError(f"confusion_level must be 0.0-1.0, got {confusion_level}")
        if onset_pattern not in ONSET_PATTERNS:
            raise ValueError(f"Unknown onset pattern: {onset_pattern}")

        cfg = self.config
        indicators = []
        sudden = onset_pattern == ONSET_SUDDEN
        if sudden and confusion_level > cfg.uti_high_confusion:
            risk = AssessmentLevel.HIGH
            indicators.append("sudden_severe_confusion")
        elif sudden and confusion_level > cfg.uti_moderate_confusion:
            risk = AssessmentLevel.MODERATE
            indicators.append("moderate_sudden_confusion")
        elif confusion_level > cfg.uti_high_confusion:
            risk = AssessmentLevel.MODERATE
            indicators.append("severe_confusion_gradual")
        else:
            risk = AssessmentLevel.LOW

        if urinary_symptoms:
            indicators.append("urinary_symptoms_reported")
            if risk == AssessmentLevel.LOW and confusion_level > cfg.uti_moderate_confusion:
                risk = AssessmentLevel.MODERATE

        return UTIAssessment(
            risk=risk,
            indicators=indicators,
            confusion_level=confusion_level,
            onset_pattern=onset_pattern,
            recommendation=UTI_RECOMMENDATIONS[risk],
        )

    def classify_confusion_onset(
        self,
        confusion_series: Sequence[Union[float, EmotionalSnapshot]],
    ) -> str:
        """Classify how confusion developed over a call.

        ``sudden_onset`` when any consecutive reading jumps by at least
        ``sudden_onset_rise``; ``chronic`` when confusion was already high
        at the first reading; ``gradual`` otherwise (including no data).
        """
        values = [
            v.confusion if isinstance(v, EmotionalSnapshot) else float(v)
            for v in confusion_series or ()
        ]
        if not values:
            return ONSET_GRADUAL
        rises = [b - a for a, b in zip(values, values[1:])]
        if any(rise >= self.config.sudden_onset_rise for rise in rises):
            return ONSET_SUDDEN
        if values[0] >= self.config.chronic_confusion_baseline:
            return ONSET_CHRONIC
        return ONSET_GRADUAL

    def calculate_repetition_score(self, utterances: Sequence[str]) -> float:
        """Pairwise repetition score for a window of utterances (0-1).

        Mean pairwise similarity, boosted by the share of near-identical
        pairs (capped at 0.5), capped at 1.0. Fewer than two utterances
        score 0.
        """
        items = list(utterances or ())
        if len(items) < 2:
            return 0.0

        total = 0.0
        comparisons = 0
        high_pairs = 0
        for i in range(len(items)):
            for j in range(i + 1, len(items)):
                score = similarity(items[i], items[j])
                total += score
                comparisons += 1
                if score > self.config.repetition_similarity_threshold:
                    high_pairs += 1

        average = total / comparisons
        boost = min(high_pairs / comparisons, 0.5)
        return min(average + boost, 1.0)

    def assess_sleep_patterns(
        self,
        call_time: Union[datetime, int],
        utterances: Iterable[str],
    ) -> SleepPatterns:
        """Classify the call hour and count utterances that mention sleep.

        Before ``early_call_hour`` is early, after ``late_call_hour`` is late.
        More than ``sleep_issue_mentions`` sleep mentions flags a possible
        sleep problem.
        """
        hour = call_time.hour if isinstance(call_time, datetime) else int(call_time)
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour must be 0-23, got {hour}")

        cfg = self.config
        if hour < cfg.early_call_hour:
            label = "early"
        elif hour > cfg.late_call_hour:
            label = "late"
        else:
            label = "normal"

        mentions = sum(
            1 for text in utterances or ()
            if _any_match(self._sleep_terms, normalize_text(text))
        )
        return SleepPatterns(
            call_time=label,
            sleep_mentions=mentions,
            potential_sleep_issues=mentions > cfg.sleep_issue_mentions,
        )

    def count_hypochondria_events(self, utterances: Iterable[str]) -> int:
        """Utterances naming several distinct health worries at once."""
        threshold = self.config.hypochondria_term_count
        events = 0
        for text in utterances or ():
            normalized = normalize_text(text)
            terms = {phrase for regex, phrase in self._health_worry_terms if regex.search(normalized)}
            if len(terms) >= threshold:
                events += 1
        return events


def _any_match(patterns, text: str) -> bool:
    return any(regex.search(text) for regex, _ in patterns)
