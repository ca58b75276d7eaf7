"""Conversation state tracker - one instance per live call.

Events arrive one at a time in chronological order from the call
orchestrator. Each caller turn is scored, pattern-matched and folded into
the session's append-only collections; companion turns are de-duplicated
and classified so that redirections can be judged on the caller's next
turn. Once closed, a session only serves read-only reductions.
"""
import logging
import statistics
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from carewatch.shared.models import (
    AnxietyEvent,
    CaregiverInsights,
    ClinicalPatternMatch,
    ConversationSummary,
    EmotionalShift,
    EmotionalSnapshot,
    FunctionCallPayload,
    Interaction,
    InteractionType,
    InterruptionPayload,
    PatternCategory,
    RedirectionOutcome,
    RepetitionEntry,
    ResponsePayload,
    ResponseType,
    UtterancePayload,
)
from carewatch.shared.utils import hash_pii, hash_text_for_audit
from .coherence import CoherenceAssessor
from .config import AnalysisConfig, DEFAULT_LEXICON, Lexicon
from .pattern_matcher import ClinicalPatternMatcher
from .secondary_analyzer import SecondaryAssessment
from .sentiment_scorer import LexiconSentimentScorer
from .session_summarizer import SessionSummarizer
from .similarity import max_similarity, similarity
from .text_normalizer import compile_phrases, fingerprint, normalize_text
from .topic_extractor import TopicExtractor

logger = logging.getLogger(__name__)

EMOTION_AXES = ("anxiety", "agitation", "confusion", "positivity")

REQUEST_SOURCE_UTTERANCE = "utterance"
REQUEST_SOURCE_TRANSFER = "transfer"


class SessionClosedError(RuntimeError):
    """Tracking or closing attempted on a session that is already closed."""
    pass


class MalformedEventError(ValueError):
    """Structurally invalid event (missing timestamp, empty function name)."""
    pass


@dataclass(frozen=True)
class _PendingRedirection:
    topic: str
    text: str
    timestamp: datetime
    baseline_mood: float
    anxiety_event_count: int


class ConversationSession:
    """Accumulates per-call analysis state.

    Every collection is append-only while the session is open. The
    duplicate-response window belongs to the session, so concurrent calls
    never see each other's companion turns.
    """

    def __init__(
        self,
        call_sid: str,
        start_time: datetime,
        config: Optional[AnalysisConfig] = None,
        lexicon: Optional[Lexicon] = None,
        sentiment_scorer: Optional[LexiconSentimentScorer] = None,
        pattern_matcher: Optional[ClinicalPatternMatcher] = None,
        coherence_assessor: Optional[CoherenceAssessor] = None,
        topic_extractor: Optional[TopicExtractor] = None,
    ):
        """Open a session for one call.

        Args:
            call_sid: Call identifier from the telephony platform
            start_time: When the call connected
            config: Thresholds (defaults to AnalysisConfig())
            lexicon: Marker vocabularies shared by the default components
            sentiment_scorer: Injected scorer (built from lexicon if omitted)
            pattern_matcher: Injected matcher (built from lexicon if omitted)
            coherence_assessor: Injected assessor
            topic_extractor: Injected topic extractor

        Raises:
            MalformedEventError: If call_sid or start_time is missing
        """
        if not call_sid:
            raise MalformedEventError("call_sid is required")
        if start_time is None:
            raise MalformedEventError("start_time is required")

        self.call_sid = call_sid
        self.call_sid_hash = hash_pii(call_sid)
        self.start_time = start_time
        self.config = config or AnalysisConfig()
        self.lexicon = lexicon or DEFAULT_LEXICON
        self.sentiment_scorer = sentiment_scorer or LexiconSentimentScorer(self.lexicon, self.config)
        self.pattern_matcher = pattern_matcher or ClinicalPatternMatcher(self.lexicon, self.config)
        self.coherence_assessor = coherence_assessor or CoherenceAssessor(self.lexicon, self.config)
        self.topic_extractor = topic_extractor or TopicExtractor(self.lexicon)

        self.interactions: List[Interaction] = []
        self.mood_progression: List[EmotionalSnapshot] = []
        self.anxiety_events: List[AnxietyEvent] = []
        self.agitation_markers: List[AnxietyEvent] = []
        self.confusion_indicators = 0
        self.emotional_shifts: List[EmotionalShift] = []
        self.hospital_requests = 0
        self.interruption_count = 0
        self.repetitions: Dict[str, RepetitionEntry] = {}
        self.coherence_scores: List[float] = []
        self.topics: Counter = Counter()
        self.response_latencies: List[float] = []
        self.successful_redirections: List[RedirectionOutcome] = []
        self.failed_redirections: List[RedirectionOutcome] = []

        self._patterns: Dict[PatternCategory, List[ClinicalPatternMatch]] = {
            category: [] for category in PatternCategory
        }
        self._recent_responses: List[Tuple[datetime, str]] = []
        self._pending_redirection: Optional[_PendingRedirection] = None
        # (source, timestamp) of a counted hospital request not yet paired
        self._unpaired_request: Optional[Tuple[str, datetime]] = None
        self._end_time: Optional[datetime] = None
        self._redirection_phrases = compile_phrases(self.lexicon.redirection_phrases)
        self._reassurance_phrases = compile_phrases(self.lexicon.reassurance_phrases)

        logger.info(
            "SESSION_STARTED",
            extra={
                "call_sid_hash": self.call_sid_hash,
                "start_time": start_time.isoformat(),
                "lexicon_version": self.lexicon.version,
            }
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_closed(self) -> bool:
        return self._end_time is not None

    @property
    def end_time(self) -> Optional[datetime]:
        return self._end_time

    @end_time.setter
    def end_time(self, value: datetime) -> None:
        self.close(value)

    def close(self, end_time: datetime) -> None:
        """Transition the session to closed.

        Raises:
            SessionClosedError: If the session is already closed
            MalformedEventError: If end_time is missing or precedes start_time
        """
        self._ensure_open()
        self._require_timestamp(end_time)
        if end_time < self.start_time:
            raise MalformedEventError(
                f"end_time {end_time.isoformat()} precedes start_time "
                f"{self.start_time.isoformat()}"
            )
        self._end_time = end_time

        logger.info(
            "SESSION_CLOSED",
            extra={
                "call_sid_hash": self.call_sid_hash,
                "interaction_count": len(self.interactions),
                "duration_seconds": (end_time - self.start_time).total_seconds(),
            }
        )

    def _ensure_open(self) -> None:
        if self.is_closed:
            raise SessionClosedError("Session is closed")

    @staticmethod
    def _require_timestamp(timestamp: Optional[datetime]) -> None:
        if not isinstance(timestamp, datetime):
            raise MalformedEventError("Event timestamp is required")

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def patterns(self, category: PatternCategory) -> List[ClinicalPatternMatch]:
        return list(self._patterns[category])

    @property
    def medication_concerns(self) -> List[ClinicalPatternMatch]:
        return self.patterns(PatternCategory.MEDICATION_CONCERN)

    @property
    def pain_complaints(self) -> List[ClinicalPatternMatch]:
        return self.patterns(PatternCategory.PAIN_COMPLAINT)

    @property
    def staff_complaints(self) -> List[ClinicalPatternMatch]:
        return self.patterns(PatternCategory.STAFF_COMPLAINT)

    @property
    def delusional_statements(self) -> List[ClinicalPatternMatch]:
        return self.patterns(PatternCategory.DELUSIONAL_CONTENT)

    @property
    def sundowning_statements(self) -> List[ClinicalPatternMatch]:
        return self.patterns(PatternCategory.SUNDOWNING)

    @property
    def toileting_mentions(self) -> List[ClinicalPatternMatch]:
        return self.patterns(PatternCategory.TOILETING)

    @property
    def crisis_statements(self) -> List[ClinicalPatternMatch]:
        return self.patterns(PatternCategory.CRISIS_LANGUAGE)

    def user_utterances(self) -> List[str]:
        return [
            i.text or "" for i in self.interactions
            if i.type == InteractionType.USER_UTTERANCE
        ]

    @property
    def repetition_score(self) -> float:
        """Repetition over the last ``repetition_window`` caller turns."""
        window = self.user_utterances()[-self.config.repetition_window:]
        return self.pattern_matcher.calculate_repetition_score(window)

    def axis_means(self) -> Dict[str, float]:
        if not self.mood_progression:
            return {axis: 0.0 for axis in EMOTION_AXES}
        return {
            axis: statistics.mean(s.axis(axis) for s in self.mood_progression)
            for axis in EMOTION_AXES
        }

    def observed_behaviors(self) -> List[str]:
        """Sundowning-relevant behaviours observed so far in the call."""
        behaviors = []
        if self.agitation_markers:
            behaviors.append("agitation")
        if self.confusion_indicators:
            behaviors.append("confusion")
        if self._patterns[PatternCategory.SUNDOWNING]:
            behaviors.append("wanting to leave")
        if self.anxiety_events:
            behaviors.append("anxiety")
        if any(entry.count > 1 for entry in self.repetitions.values()):
            behaviors.append("repetitive questions")
        return behaviors

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track_user_utterance(
        self,
        text: Optional[str],
        timestamp: datetime,
        latency: Optional[float] = None,
    ) -> Interaction:
        """Fold one caller turn into the session.

        Args:
            text: What the caller said (empty text is scored neutral)
            timestamp: When the turn ended
            latency: Milliseconds between the companion's turn and this one

        Returns:
            The recorded Interaction

        Raises:
            SessionClosedError: If the session is closed
            MalformedEventError: If timestamp is missing or latency negative
        """
        self._ensure_open()
        self._require_timestamp(timestamp)
        if latency is not None and latency < 0:
            raise MalformedEventError(f"Latency must be non-negative, got {latency}")

        text = text if isinstance(text, str) else ""
        text_hash = hash_text_for_audit(text)
        context = self._recent_context()

        interaction = Interaction(
            type=InteractionType.USER_UTTERANCE,
            timestamp=timestamp,
            payload=UtterancePayload(latency_ms=latency),
            text=text,
        )
        self.interactions.append(interaction)

        snapshot, anxiety_markers, agitation_markers = self._score_turn(text, timestamp, text_hash)
        previous = self.mood_progression[-1] if self.mood_progression else None
        self.mood_progression.append(snapshot)
        self._record_emotional_events(text, timestamp, snapshot, anxiety_markers, agitation_markers)
        if previous is not None:
            shift = self.sentiment_scorer.detect_emotional_shift(previous, snapshot)
            if shift.significant:
                self.emotional_shifts.append(shift)

        matches, requested = self._match_patterns(text, timestamp, text_hash)
        for match in matches:
            self._patterns[match.category].append(match)
        if requested:
            self._count_hospital_request(REQUEST_SOURCE_UTTERANCE, timestamp)

        self._track_repetition(text, timestamp)

        if text.strip() and context:
            self.coherence_scores.append(
                self.coherence_assessor.calculate_coherence(text, context)
            )

        for category in self.topic_extractor.identify_topics(text):
            self.topics[category] += 1

        self._resolve_redirection(snapshot)

        if latency is not None:
            self.response_latencies.append(latency)

        logger.info(
            "USER_UTTERANCE_TRACKED",
            extra={
                "call_sid_hash": self.call_sid_hash,
                "text_hash": text_hash,
                "text_length": len(text),
                "overall_mood": round(snapshot.overall, 3),
                "pattern_types": [m.category.value for m in matches],
            }
        )
        if matches:
            logger.info(
                "CLINICAL_PATTERNS_DETECTED",
                extra={
                    "call_sid_hash": self.call_sid_hash,
                    "text_hash": text_hash,
                    "patterns": [
                        {"type": m.category.value, "severity": m.severity.value}
                        for m in matches
                    ],
                }
            )
        return interaction

    def track_assistant_response(
        self,
        text: Optional[str],
        timestamp: datetime,
    ) -> Optional[Interaction]:
        """Record a companion turn unless it duplicates a recent one.

        Returns:
            The recorded Interaction, or None when suppressed as a duplicate
        """
        self._ensure_open()
        self._require_timestamp(timestamp)
        text = text if isinstance(text, str) else ""

        if self._is_duplicate_response(text, timestamp):
            logger.info(
                "ASSISTANT_RESPONSE_SUPPRESSED",
                extra={"call_sid_hash": self.call_sid_hash, "text_hash": hash_text_for_audit(text)}
            )
            return None

        response_type = self.classify_response(text)
        topic = self.topic_extractor.primary_topic(text)
        interaction = Interaction(
            type=InteractionType.ASSISTANT_RESPONSE,
            timestamp=timestamp,
            payload=ResponsePayload(response_type=response_type, length=len(text), topic=topic),
            text=text,
        )
        self.interactions.append(interaction)
        self._recent_responses.append((timestamp, text))

        if response_type == ResponseType.REDIRECTION:
            baseline = self.mood_progression[-1].overall if self.mood_progression else 0.0
            self._pending_redirection = _PendingRedirection(
                topic=topic or "general",
                text=text,
                timestamp=timestamp,
                baseline_mood=baseline,
                anxiety_event_count=len(self.anxiety_events),
            )

        logger.debug(
            "ASSISTANT_RESPONSE_TRACKED",
            extra={
                "call_sid_hash": self.call_sid_hash,
                "response_type": response_type.value,
                "text_length": len(text),
            }
        )
        return interaction

    def track_interruption(self, timestamp: datetime) -> Interaction:
        """Record the caller talking over the companion."""
        self._ensure_open()
        self._require_timestamp(timestamp)
        self.interruption_count += 1
        interaction = Interaction(
            type=InteractionType.INTERRUPTION,
            timestamp=timestamp,
            payload=InterruptionPayload(count=self.interruption_count),
        )
        self.interactions.append(interaction)
        return interaction

    def track_function_call(
        self,
        function_name: Optional[str],
        args: Optional[Mapping[str, Any]],
        timestamp: datetime,
    ) -> Interaction:
        """Record a companion tool invocation.

        The transfer function counts as a hospital / staff request unless
        it follows a spoken request inside ``transfer_request_window_seconds``.

        Raises:
            SessionClosedError: If the session is closed
            MalformedEventError: If the function name is missing or empty,
                args is not a mapping, or timestamp is missing
        """
        self._ensure_open()
        if not isinstance(function_name, str) or not function_name.strip():
            raise MalformedEventError("Function call requires a function name")
        if args is not None and not isinstance(args, Mapping):
            raise MalformedEventError("Function call args must be a mapping")
        self._require_timestamp(timestamp)

        interaction = Interaction(
            type=InteractionType.FUNCTION_CALL,
            timestamp=timestamp,
            payload=FunctionCallPayload(function_name=function_name, args=dict(args or {})),
        )
        self.interactions.append(interaction)

        if function_name == self.config.transfer_function_name:
            counted = self._count_hospital_request(REQUEST_SOURCE_TRANSFER, timestamp)
            logger.warning(
                "TRANSFER_REQUESTED",
                extra={
                    "call_sid_hash": self.call_sid_hash,
                    "counted": counted,
                    "hospital_requests": self.hospital_requests,
                }
            )
        return interaction

    # ------------------------------------------------------------------
    # Per-turn helpers
    # ------------------------------------------------------------------

    def _score_turn(
        self,
        text: str,
        timestamp: datetime,
        text_hash: str,
    ) -> Tuple[EmotionalSnapshot, List[str], List[str]]:
        try:
            snapshot = self.sentiment_scorer.analyze_sentiment(text, timestamp)
            anxiety_markers = self.sentiment_scorer.detect_markers(text, "anxiety")
            agitation_markers = self.sentiment_scorer.detect_markers(text, "agitation")
        except Exception as e:
            logger.error(
                "SENTIMENT_ANALYSIS_FAILED",
                extra={
                    "call_sid_hash": self.call_sid_hash,
                    "text_hash": text_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return EmotionalSnapshot.neutral(timestamp), [], []
        return snapshot, anxiety_markers, agitation_markers

    def _match_patterns(
        self,
        text: str,
        timestamp: datetime,
        text_hash: str,
    ) -> Tuple[List[ClinicalPatternMatch], bool]:
        try:
            matches = self.pattern_matcher.detect_patterns(text, timestamp)
            requested = self.pattern_matcher.is_hospital_request(text)
        except Exception as e:
            logger.error(
                "PATTERN_MATCHING_FAILED",
                extra={
                    "call_sid_hash": self.call_sid_hash,
                    "text_hash": text_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return [], False
        return matches, requested

    def _count_hospital_request(self, source: str, timestamp: datetime) -> bool:
        """Count a hospital request once across its spoken and transfer forms.

        A request from one source pairs with an unpaired request from the
        other source inside the transfer window and is not counted again.
        """
        pending = self._unpaired_request
        window = self.config.transfer_request_window_seconds
        if (
            pending is not None
            and pending[0] != source
            and abs((timestamp - pending[1]).total_seconds()) <= window
        ):
            self._unpaired_request = None
            return False
        self.hospital_requests += 1
        self._unpaired_request = (source, timestamp)
        return True

    def _record_emotional_events(
        self,
        text: str,
        timestamp: datetime,
        snapshot: EmotionalSnapshot,
        anxiety_markers: List[str],
        agitation_markers: List[str],
    ) -> None:
        cfg = self.config
        if snapshot.anxiety >= cfg.anxiety_event_threshold:
            self.anxiety_events.append(AnxietyEvent(
                text=text,
                timestamp=timestamp,
                intensity=snapshot.anxiety,
                markers=tuple(anxiety_markers),
            ))
        if snapshot.agitation >= cfg.agitation_event_threshold:
            self.agitation_markers.append(AnxietyEvent(
                text=text,
                timestamp=timestamp,
                intensity=snapshot.agitation,
                markers=tuple(agitation_markers),
            ))
        if snapshot.confusion >= cfg.confusion_event_threshold:
            self.confusion_indicators += 1

    def _track_repetition(self, text: str, timestamp: datetime) -> None:
        key = fingerprint(text)
        if not key:
            return
        entry = self.repetitions.get(key)
        if entry is None:
            best_score = 0.0
            for existing_key, existing in self.repetitions.items():
                score = similarity(key, existing_key)
                if score >= self.config.repetition_similarity_threshold and score > best_score:
                    entry, best_score = existing, score
        if entry is None:
            entry = RepetitionEntry(fingerprint=key)
            self.repetitions[key] = entry
        entry.record(timestamp)

    def _recent_context(self) -> List[str]:
        texts = [i.text for i in self.interactions if i.text and i.text.strip()]
        return texts[-self.config.coherence_context_size:]

    def _resolve_redirection(self, snapshot: EmotionalSnapshot) -> None:
        pending = self._pending_redirection
        if pending is None:
            return
        self._pending_redirection = None

        mood_change = snapshot.overall - pending.baseline_mood
        outcome = RedirectionOutcome(
            topic=pending.topic,
            response_text=pending.text,
            timestamp=pending.timestamp,
            mood_change=mood_change,
        )
        new_anxiety = len(self.anxiety_events) > pending.anxiety_event_count
        if mood_change >= 0 and not new_anxiety:
            self.successful_redirections.append(outcome)
        else:
            self.failed_redirections.append(outcome)

    def _is_duplicate_response(self, text: str, timestamp: datetime) -> bool:
        window = self.config.duplicate_window_seconds
        self._recent_responses = [
            (ts, previous) for ts, previous in self._recent_responses
            if (timestamp - ts).total_seconds() <= window
        ]
        candidates = [
            previous for ts, previous in self._recent_responses
            if abs((timestamp - ts).total_seconds()) <= window
        ]
        return max_similarity(text, candidates) >= self.config.duplicate_similarity_threshold

    def classify_response(self, text: Optional[str]) -> ResponseType:
        """Classify a companion turn for support-effectiveness tracking."""
        normalized = normalize_text(text)
        if any(regex.search(normalized) for regex, _ in self._redirection_phrases):
            return ResponseType.REDIRECTION
        if any(regex.search(normalized) for regex, _ in self._reassurance_phrases):
            return ResponseType.REASSURANCE
        if normalized.endswith("?"):
            return ResponseType.QUESTION
        return ResponseType.DIRECT_ANSWER

    # ------------------------------------------------------------------
    # Reductions
    # ------------------------------------------------------------------

    def generate_summary(self, now: Optional[datetime] = None) -> ConversationSummary:
        return SessionSummarizer(self.config).summarize(self, now=now)

    def generate_caregiver_insights(self) -> CaregiverInsights:
        return SessionSummarizer(self.config).generate_caregiver_insights(self)

    def cross_check(self, assessment: SecondaryAssessment) -> Dict[str, Any]:
        """Compare a secondary emotion assessment with the lexicon axis means.

        The secondary signal is confirmatory only: disagreement is reported,
        never used to override the deterministic scores.
        """
        means = self.axis_means()
        deltas = {
            axis: round(getattr(assessment, axis) - means[axis], 3)
            for axis in EMOTION_AXES
        }
        agrees = all(abs(d) <= self.config.cross_check_tolerance for d in deltas.values())

        logger.info(
            "SECONDARY_CROSS_CHECK_COMPLETED",
            extra={
                "call_sid_hash": self.call_sid_hash,
                "model_name": assessment.model_name,
                "agrees": agrees,
            }
        )
        return {
            "modelName": assessment.model_name,
            "confidence": round(assessment.confidence, 3),
            "deltas": deltas,
            "agrees": agrees,
        }
