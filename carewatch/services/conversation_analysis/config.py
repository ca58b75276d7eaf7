"""Conversation analysis configuration: thresholds and clinical lexicons.

Thresholds live in AnalysisConfig and marker vocabularies live in Lexicon.
Both are plain data injected into the scorer, matcher and tracker so that
clinical categories can be tuned without touching control flow.

The sundowning and UTI cut-offs below keep the shape of the heuristics
used on the call floor (late-day window x behaviour count, onset pattern x
confusion level). The literal values are tunable and have not been
clinically validated.
"""
import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Union

from carewatch.shared.models import PatternCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisConfig:
    """Thresholds, windows and weights for one analysis deployment."""

    # Sentiment axis weights for the overall score (anxiety highest)
    anxiety_weight: float = 1.5
    agitation_weight: float = 1.3
    confusion_weight: float = 1.2
    positivity_weight: float = 1.0

    # Raw marker points that saturate an axis at 1.0
    anxiety_saturation: float = 6.0
    agitation_saturation: float = 6.0
    confusion_saturation: float = 5.0
    positivity_saturation: float = 4.0
    # Utterances longer than this are diluted proportionally
    long_utterance_words: int = 20

    # Per-turn event thresholds
    anxiety_event_threshold: float = 0.3
    agitation_event_threshold: float = 0.3
    confusion_event_threshold: float = 0.3

    # Shift / trend analysis
    shift_threshold: float = 0.3
    min_trend_points: int = 3
    trend_slope_threshold: float = 0.05

    # Similarity
    duplicate_window_seconds: float = 5.0
    duplicate_similarity_threshold: float = 0.85
    repetition_similarity_threshold: float = 0.8
    repetition_window: int = 10
    high_repetition_threshold: float = 0.7

    # Coherence
    coherence_context_size: int = 3
    low_coherence_threshold: float = 0.3

    # Sundowning heuristic
    sundowning_window_start_hour: int = 15
    sundowning_window_end_hour: int = 20
    sundowning_multiple_behaviors: int = 3

    # UTI heuristic
    uti_high_confusion: float = 0.7
    uti_moderate_confusion: float = 0.5
    sudden_onset_rise: float = 0.4
    chronic_confusion_baseline: float = 0.5

    # Risk assessment
    critical_hospital_requests: int = 2
    # A transferCall this soon after a counted spoken request is the same request
    transfer_request_window_seconds: float = 30.0
    critical_pain_intensity: float = 0.9
    staff_complaint_threshold: int = 1

    # Sleep and health-worry indicators (hours are local call-start hours)
    early_call_hour: int = 9
    late_call_hour: int = 20
    sleep_issue_mentions: int = 2
    hypochondria_term_count: int = 2

    # Secondary analysis cross-check
    cross_check_tolerance: float = 0.3

    # Function that transfers the caller to staff / emergency services
    transfer_function_name: str = "transferCall"

    def __post_init__(self):
        if self.min_trend_points < 2:
            raise ValueError(f"min_trend_points must be >= 2, got {self.min_trend_points}")
        if self.duplicate_window_seconds < 0:
            raise ValueError("duplicate_window_seconds must be non-negative")
        if self.critical_hospital_requests < 1:
            raise ValueError("critical_hospital_requests must be >= 1")
        if self.transfer_request_window_seconds < 0:
            raise ValueError("transfer_request_window_seconds must be non-negative")


# ==========================================================================
# SENTIMENT LEXICONS (marker phrase -> severity points)
# ==========================================================================
ANXIETY_MARKERS: Dict[str, int] = {
    # Crisis phrases: suicidal ideation gets the highest weight
    "want to die": 4,
    "wanting to die": 4,
    "better off dead": 4,
    "end my life": 4,
    "kill myself": 4,
    "suicidal": 4,
    "no point in living": 4,
    "can't go on": 4,
    "give up": 4,
    # Severe distress
    "terrified": 2,
    "panic": 2,
    "hospital": 2,
    "emergency": 2,
    "hopeless": 2,
    "life is meaningless": 2,
    "nothing to live for": 2,
    # General anxiety
    "worried": 1,
    "scared": 1,
    "afraid": 1,
    "nervous": 1,
    "anxious": 1,
    "frightened": 1,
    "concerned": 1,
    "upset": 1,
    "stressed": 1,
    "overwhelmed": 1,
    "helpless": 1,
    "wrong": 1,
    "hurt": 1,
    "help me": 1,
}

AGITATION_MARKERS: Dict[str, int] = {
    "furious": 2,
    "hate": 2,
    "liar": 2,
    "angry": 1,
    "mad": 1,
    "upset": 1,
    "frustrated": 1,
    "annoyed": 1,
    "irritated": 1,
    "mean to me": 1,
    "being mean": 1,
    "so mean": 1,
    "rude": 1,
    "stealing": 1,
    "stop it": 1,
    "leave me alone": 1,
}

CONFUSION_MARKERS: Dict[str, int] = {
    "where am i": 2,
    "where i am": 2,
    "who are you": 2,
    "what time": 2,
    "confused": 1,
    "lost": 1,
    "forget": 1,
    "forgot": 1,
    "don't know": 1,
    "can't remember": 1,
    "mixed up": 1,
    "unclear": 1,
    "foggy": 1,
    "blank": 1,
}

POSITIVITY_MARKERS: Dict[str, int] = {
    "happy": 1,
    "good": 1,
    "nice": 1,
    "wonderful": 1,
    "love": 1,
    "loved": 1,
    "laugh": 1,
    "smile": 1,
    "joy": 1,
    "pleasant": 1,
    "beautiful": 1,
    "peaceful": 1,
    "comfortable": 1,
    "better": 1,
    "fine": 1,
}

# ==========================================================================
# CLINICAL PATTERN PHRASES
# ==========================================================================
PATTERN_PHRASES: Dict[PatternCategory, FrozenSet[str]] = {
    PatternCategory.MEDICATION_CONCERN: frozenset({
        "medicine", "medicines", "medication", "medications", "pill", "pills",
        "dose", "prescription", "tablet", "tablets", "drug", "drugs", "meds",
    }),
    PatternCategory.PAIN_COMPLAINT: frozenset({
        "hurt", "hurts", "hurting", "pain", "painful", "ache", "aches",
        "aching", "sore", "burning", "stabbing", "throbbing",
    }),
    PatternCategory.HOSPITAL_REQUEST: frozenset({
        "hospital", "emergency", "ambulance", "doctor", "urgent care", "911",
    }),
    PatternCategory.STAFF_COMPLAINT: frozenset({
        "mean to me", "being mean", "so mean", "very mean", "is mean", "are mean",
        "was mean", "were mean", "rude", "ignore", "ignores", "ignoring", "ignored me",
        "won't help", "stealing", "stole", "unfair", "cruel", "yelled at me",
    }),
    PatternCategory.DELUSIONAL_CONTENT: frozenset({
        "someone in my room", "they're watching", "watching me", "stealing",
        "conspiracy", "spying", "following me", "poisoning me", "poisoned",
    }),
    PatternCategory.SUNDOWNING: frozenset({
        "go home", "where am i", "need to leave", "get me out", "want to go",
        "take me home", "want to leave",
    }),
    PatternCategory.TOILETING: frozenset({
        "bathroom", "toilet", "restroom", "pee", "wet myself", "soiled",
    }),
    PatternCategory.CRISIS_LANGUAGE: frozenset({
        "want to die", "wanting to die", "better off dead", "end my life",
        "kill myself", "suicidal", "no point in living", "nothing to live for",
    }),
}

# Phrasings that ask for a doctor, a hospital or an ambulance. A bare mention of
# "doctor" or "hospital" is matched as a pattern but is not a request.
HOSPITAL_REQUEST_PHRASES: FrozenSet[str] = frozenset({
    "take me to the hospital", "take me to a hospital", "take me to the doctor",
    "go to the hospital", "go to hospital", "go to the emergency room",
    "need the hospital", "need a hospital", "want the hospital",
    "want to see the doctor", "want to see a doctor", "need to see a doctor",
    "need to see the doctor", "need a doctor", "need the doctor",
    "get me a doctor", "call a doctor", "call the doctor",
    "call an ambulance", "call the ambulance", "get an ambulance",
    "need an ambulance", "send an ambulance", "call 911", "911",
    "it's an emergency", "this is an emergency", "urgent care",
})

SEVERITY_CRITICAL_WORDS: FrozenSet[str] = frozenset({
    "emergency", "911", "ambulance", "urgent",
})
SEVERITY_HIGH_WORDS: FrozenSet[str] = frozenset({
    "severe", "terrible", "excruciating", "can't stand",
})

# Pain intensity grading
PAIN_SEVERE_WORDS: FrozenSet[str] = frozenset({
    "excruciating", "unbearable", "worst", "agony", "can't stand", "severe",
    "terrible", "everywhere",
})
PAIN_INTENSIFIERS: FrozenSet[str] = frozenset({
    "really", "so much", "very", "a lot", "bad", "badly", "awful",
})
PAIN_MITIGATORS: FrozenSet[str] = frozenset({
    "a little", "a bit", "slightly", "mild", "not too bad",
})

# Sleep and rest vocabulary for the sleep-pattern indicator
SLEEP_TERMS: FrozenSet[str] = frozenset({
    "tired", "sleep", "sleeping", "slept", "sleepy", "nap", "napping", "rest",
    "resting", "exhausted", "insomnia", "awake",
})

# Health-worry vocabulary; several in one utterance suggests health anxiety
HEALTH_WORRY_TERMS: FrozenSet[str] = frozenset({
    "sick", "disease", "cancer", "dying", "pain", "hurt", "hurts", "doctor",
    "hospital", "medicine", "ill",
})

# Behaviour flags that count toward sundowning risk
SUNDOWNING_BEHAVIORS: FrozenSet[str] = frozenset({
    "agitation", "confusion", "wanting to leave", "restlessness",
    "repetitive questions", "anxiety", "disorientation",
})

# ==========================================================================
# TOPICS, STOP WORDS, RESPONSE CLASSIFICATION
# ==========================================================================
TOPIC_CATEGORIES: Dict[str, FrozenSet[str]] = {
    "family": frozenset({
        "ryan", "son", "daughter", "family", "grandchildren", "children",
        "husband", "wife", "mother", "father", "brother", "sister",
        "grandson", "granddaughter", "relatives", "visit", "visitors",
    }),
    "health": frozenset({
        "doctor", "medicine", "medication", "pills", "pain", "sick",
        "hospital", "nurse", "appointment", "prescription", "treatment",
        "blood", "pressure", "heart", "memory", "tired",
    }),
    "facility": frozenset({
        "room", "staff", "nurse", "food", "bed", "dining", "activities",
        "hallway", "bathroom", "shower", "laundry", "aide", "schedule",
    }),
    "memories": frozenset({
        "hawaii", "dog", "house", "home", "used to", "remember", "long ago",
        "young", "childhood", "school", "work", "job", "friends", "church",
        "vacation", "trip", "wedding", "birthday", "christmas", "garden",
        "cooking", "golden retriever",
    }),
    "emotions": frozenset({
        "sad", "happy", "lonely", "scared", "worried", "angry", "confused",
        "anxious", "peaceful", "upset", "calm", "relaxed", "grateful",
    }),
    "activities": frozenset({
        "walk", "exercise", "read", "television", "music", "sing", "dance",
        "games", "cards", "puzzle", "painting", "bake", "shopping",
    }),
    "time": frozenset({
        "morning", "afternoon", "evening", "night", "today", "yesterday",
        "tomorrow", "weekend", "clock", "time",
    }),
}

STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "is", "at", "which", "on", "a", "an", "and", "or", "but", "in",
    "with", "to", "for", "of", "as", "by", "that", "this", "it", "he", "she",
    "they", "we", "you", "i", "me", "my", "your", "his", "her", "their",
    "be", "have", "do", "will", "can", "could", "would", "should", "may",
    "might", "must", "am", "are", "was", "were", "been", "being", "had",
    "has", "did", "does", "done", "get", "got", "go", "going", "went",
    "so", "very", "just", "about", "what", "there", "here", "im", "its",
    "we're", "you're", "i'm", "it's", "that's", "our", "us", "too", "much",
})

RESPONSE_MARKERS: FrozenSet[str] = frozenset({
    "yes", "yeah", "no", "okay", "ok", "oh", "right", "sure", "well",
})

REDIRECTION_PHRASES: FrozenSet[str] = frozenset({
    "let's talk about", "lets talk about", "how about", "what about",
    "tell me about", "shall we", "do you remember", "i'd love to hear",
    "why don't we", "speaking of",
})
REASSURANCE_PHRASES: FrozenSet[str] = frozenset({
    "i understand", "it's okay", "it's alright", "don't worry", "you're safe",
    "i'm here", "that sounds", "you are safe",
})


@dataclass(frozen=True)
class Lexicon:
    """Marker vocabularies consumed by the scorer, matcher and extractor."""
    anxiety_markers: Mapping[str, int] = field(default_factory=lambda: dict(ANXIETY_MARKERS))
    agitation_markers: Mapping[str, int] = field(default_factory=lambda: dict(AGITATION_MARKERS))
    confusion_markers: Mapping[str, int] = field(default_factory=lambda: dict(CONFUSION_MARKERS))
    positivity_markers: Mapping[str, int] = field(default_factory=lambda: dict(POSITIVITY_MARKERS))
    pattern_phrases: Mapping[PatternCategory, FrozenSet[str]] = field(
        default_factory=lambda: dict(PATTERN_PHRASES)
    )
    hospital_request_phrases: FrozenSet[str] = HOSPITAL_REQUEST_PHRASES
    severity_critical_words: FrozenSet[str] = SEVERITY_CRITICAL_WORDS
    severity_high_words: FrozenSet[str] = SEVERITY_HIGH_WORDS
    pain_severe_words: FrozenSet[str] = PAIN_SEVERE_WORDS
    pain_intensifiers: FrozenSet[str] = PAIN_INTENSIFIERS
    pain_mitigators: FrozenSet[str] = PAIN_MITIGATORS
    sundowning_behaviors: FrozenSet[str] = SUNDOWNING_BEHAVIORS
    sleep_terms: FrozenSet[str] = SLEEP_TERMS
    health_worry_terms: FrozenSet[str] = HEALTH_WORRY_TERMS
    topic_categories: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: dict(TOPIC_CATEGORIES)
    )
    stop_words: FrozenSet[str] = STOP_WORDS
    response_markers: FrozenSet[str] = RESPONSE_MARKERS
    redirection_phrases: FrozenSet[str] = REDIRECTION_PHRASES
    reassurance_phrases: FrozenSet[str] = REASSURANCE_PHRASES
    version: str = "default"

    def sentiment_markers(self, axis: str) -> Mapping[str, int]:
        """Marker table for one sentiment axis."""
        try:
            return getattr(self, f"{axis}_markers")
        except AttributeError:
            raise ValueError(f"Unknown sentiment axis: {axis}") from None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: "Lexicon" = None) -> "Lexicon":
        """Overlay a JSON-style mapping on a base lexicon.

        Keys absent from ``data`` keep the base value. Sentiment tables are
        ``{phrase: points}`` objects, pattern phrases are keyed by category
        value (``"pain_complaint"``), and everything else is a list.
        """
        base = base or cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown lexicon keys: {sorted(unknown)}")

        overrides: Dict[str, Any] = {}
        for key, value in data.items():
            if key.endswith("_markers") and key != "response_markers":
                overrides[key] = {str(k).lower(): int(v) for k, v in value.items()}
            elif key == "pattern_phrases":
                merged = dict(base.pattern_phrases)
                for category, phrases in value.items():
                    merged[PatternCategory(category)] = _phrase_set(phrases)
                overrides[key] = merged
            elif key == "topic_categories":
                overrides[key] = {str(k): _phrase_set(v) for k, v in value.items()}
            elif key == "version":
                overrides[key] = str(value)
            else:
                overrides[key] = _phrase_set(value)
        return replace(base, **overrides)


def _phrase_set(values) -> FrozenSet[str]:
    if isinstance(values, str):
        raise ValueError("Lexicon phrase lists must be lists, not strings")
    return frozenset(str(v).lower() for v in values)


DEFAULT_LEXICON = Lexicon()


def load_lexicon(path: Union[str, Path], base: Lexicon = DEFAULT_LEXICON) -> Lexicon:
    """Load a lexicon override file (JSON) on top of ``base``.

    Args:
        path: JSON file produced by the clinical team
        base: Lexicon whose values are kept for keys the file omits

    Returns:
        The merged Lexicon

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON or has unknown keys
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.error("LEXICON_LOAD_FAILED", extra={"path": str(path), "error": str(e)})
        raise ValueError(f"Lexicon file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Lexicon file {path} must contain a JSON object")

    lexicon = Lexicon.from_dict(data, base=base)
    logger.info(
        "LEXICON_LOADED",
        extra={
            "path": str(path),
            "version": lexicon.version,
            "override_keys": sorted(data),
        }
    )
    return lexicon
