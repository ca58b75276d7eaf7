"""Conversation domain models: interactions, emotional snapshots, clinical matches.

Every record here is immutable. A ConversationSession appends them to its
own collections as a call progresses and never edits them afterwards.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class InteractionType(Enum):
    """Discriminant for the Interaction tagged variant."""
    USER_UTTERANCE = "user_utterance"
    ASSISTANT_RESPONSE = "assistant_response"
    INTERRUPTION = "interruption"
    FUNCTION_CALL = "function_call"


class ResponseType(Enum):
    """Light classification of companion turns for support-effectiveness."""
    REDIRECTION = "redirection"
    REASSURANCE = "reassurance"
    QUESTION = "question"
    DIRECT_ANSWER = "direct_answer"


class PatternCategory(Enum):
    """Clinical pattern categories detected in caller speech."""
    MEDICATION_CONCERN = "medication_concern"
    PAIN_COMPLAINT = "pain_complaint"
    HOSPITAL_REQUEST = "hospital_request"
    STAFF_COMPLAINT = "staff_complaint"
    DELUSIONAL_CONTENT = "delusional_content"
    SUNDOWNING = "sundowning"
    TOILETING = "toileting"
    CRISIS_LANGUAGE = "crisis_language"  # Suicidal ideation, always critical


class Severity(Enum):
    """Severity attached to a single pattern match."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ShiftDirection(Enum):
    """Direction of mood movement, shared by shifts and trends."""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class UtterancePayload:
    latency_ms: Optional[float] = None


@dataclass(frozen=True)
class ResponsePayload:
    response_type: ResponseType
    length: int
    topic: Optional[str] = None


@dataclass(frozen=True)
class InterruptionPayload:
    count: int


@dataclass(frozen=True)
class FunctionCallPayload:
    function_name: str
    args: Dict[str, Any] = field(default_factory=dict)


InteractionPayload = Union[
    UtterancePayload, ResponsePayload, InterruptionPayload, FunctionCallPayload
]

_PAYLOAD_TYPES = {
    InteractionType.USER_UTTERANCE: UtterancePayload,
    InteractionType.ASSISTANT_RESPONSE: ResponsePayload,
    InteractionType.INTERRUPTION: InterruptionPayload,
    InteractionType.FUNCTION_CALL: FunctionCallPayload,
}


@dataclass(frozen=True)
class Interaction:
    """One conversational event in the append-only interaction log.

    The payload type is fixed by ``type``; a mismatch is rejected at
    construction so consumers can dispatch on ``type`` alone.
    """
    type: InteractionType
    timestamp: datetime
    payload: InteractionPayload
    text: Optional[str] = None

    def __post_init__(self):
        expected = _PAYLOAD_TYPES[self.type]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"{self.type.value} interaction requires {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "text": self.text,
        }
        payload = self.payload
        if isinstance(payload, UtterancePayload):
            result["latency"] = payload.latency_ms
        elif isinstance(payload, ResponsePayload):
            result["responseType"] = payload.response_type.value
            result["length"] = payload.length
            result["topic"] = payload.topic
        elif isinstance(payload, InterruptionPayload):
            result["count"] = payload.count
        elif isinstance(payload, FunctionCallPayload):
            result["functionName"] = payload.function_name
            result["args"] = dict(payload.args)
        return result


@dataclass(frozen=True)
class EmotionalSnapshot:
    """Four-axis emotional reading of one caller utterance.

    Axes are bounded to 0.0-1.0; ``overall`` is their weighted signed
    combination in -1.0..1.0 (negative = distressed).
    """
    anxiety: float = 0.0
    agitation: float = 0.0
    confusion: float = 0.0
    positivity: float = 0.0
    overall: float = 0.0
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        for axis in ("anxiety", "agitation", "confusion", "positivity"):
            value = getattr(self, axis)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{axis} must be 0.0-1.0, got {value}")
        if not -1.0 <= self.overall <= 1.0:
            raise ValueError(f"overall must be -1.0-1.0, got {self.overall}")

    @classmethod
    def neutral(cls, timestamp: Optional[datetime] = None) -> "EmotionalSnapshot":
        return cls(timestamp=timestamp)

    def axis(self, name: str) -> float:
        return getattr(self, name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anxiety": round(self.anxiety, 3),
            "agitation": round(self.agitation, 3),
            "confusion": round(self.confusion, 3),
            "positivity": round(self.positivity, 3),
            "overall": round(self.overall, 3),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass(frozen=True)
class ClinicalPatternMatch:
    """A detected occurrence of a clinical pattern in caller speech."""
    category: PatternCategory
    match: str
    excerpt: str
    detected_at: datetime
    severity: Severity = Severity.MEDIUM
    intensity: Optional[float] = None   # Graded categories (pain) only

    def __post_init__(self):
        if self.intensity is not None and not 0.0 <= self.intensity <= 1.0:
            raise ValueError(f"Intensity must be 0.0-1.0, got {self.intensity}")

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.category.value,
            "match": self.match,
            "text": self.excerpt,
            "timestamp": self.detected_at.isoformat(),
            "severity": self.severity.value,
        }
        if self.intensity is not None:
            result["intensity"] = self.intensity
        return result


@dataclass(frozen=True)
class EmotionalShift:
    """Change in overall mood between two consecutive caller turns."""
    magnitude: float
    direction: ShiftDirection
    overall_shift: float
    category_shifts: Tuple[Tuple[str, float], ...] = ()
    significant: bool = False
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "magnitude": round(self.magnitude, 3),
            "direction": self.direction.value,
            "overallShift": round(self.overall_shift, 3),
            "categoryShifts": {k: round(v, 3) for k, v in self.category_shifts},
            "significant": self.significant,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass(frozen=True)
class AnxietyEvent:
    """A caller turn whose anxiety (or agitation) crossed the event threshold."""
    text: str
    timestamp: datetime
    intensity: float
    markers: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "intensity": round(self.intensity, 3),
            "markers": list(self.markers),
        }


@dataclass
class RepetitionEntry:
    """Occurrences of one normalized caller concern. Only ever grows."""
    fingerprint: str
    count: int = 0
    timestamps: List[datetime] = field(default_factory=list)

    def record(self, timestamp: datetime) -> None:
        self.count += 1
        self.timestamps.append(timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.fingerprint,
            "count": self.count,
            "timestamps": [t.isoformat() for t in self.timestamps],
        }


@dataclass(frozen=True)
class RedirectionOutcome:
    """Result of a companion redirection, judged on the caller's next turn."""
    topic: str
    response_text: str
    timestamp: datetime
    mood_change: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "text": self.response_text,
            "timestamp": self.timestamp.isoformat(),
            "moodChange": round(self.mood_change, 3),
        }
