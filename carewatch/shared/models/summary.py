"""Derived, read-only records produced at the end of a call.

Generated once from a finished ConversationSession and handed to the
persistence collaborator. ``to_dict()`` output keeps the camelCase field
names of the stored conversation history.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .conversation import (
    AnxietyEvent,
    ClinicalPatternMatch,
    EmotionalShift,
    RedirectionOutcome,
    RepetitionEntry,
    ShiftDirection,
)


class RiskPriority(Enum):
    """Caregiver follow-up priority for a call.

    CRITICAL requires at least one hard trigger; ELEVATED covers lesser
    but noteworthy contributors; everything else is ROUTINE.
    """
    ROUTINE = "routine"
    ELEVATED = "elevated"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    RiskPriority.ROUTINE: 0,
    RiskPriority.ELEVATED: 1,
    RiskPriority.CRITICAL: 2,
}


class AssessmentLevel(Enum):
    """Graded level used by the sundowning and UTI heuristics."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


@dataclass(frozen=True)
class SundowningAssessment:
    level: AssessmentLevel
    factors: List[str]
    time_of_day: int
    behavior_count: int
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "factors": list(self.factors),
            "timeOfDay": self.time_of_day,
            "behaviorCount": self.behavior_count,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class UTIAssessment:
    risk: AssessmentLevel
    indicators: List[str]
    confusion_level: float
    onset_pattern: str
    recommendation: str

    @property
    def medical_attention_needed(self) -> bool:
        return self.risk == AssessmentLevel.HIGH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk": self.risk.value,
            "indicators": list(self.indicators),
            "confusionLevel": round(self.confusion_level, 3),
            "timePattern": self.onset_pattern,
            "recommendation": self.recommendation,
            "medicalAttentionNeeded": self.medical_attention_needed,
        }


@dataclass(frozen=True)
class MoodTrend:
    """Direction and strength of the mood series over a call."""
    direction: ShiftDirection
    strength: float = 0.0
    slope: float = 0.0
    segment_delta: float = 0.0
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "strength": round(self.strength, 4),
            "slope": round(self.slope, 4),
            "segmentDelta": round(self.segment_delta, 4),
            "confidence": round(self.confidence, 3),
        }


@dataclass(frozen=True)
class CallMetadata:
    call_sid: str
    start_time: datetime
    end_time: Optional[datetime]
    duration: int  # Seconds, never below 1
    day_of_week: str
    time_of_day: str

    def __post_init__(self):
        if self.duration < 1:
            raise ValueError(f"Duration must be at least 1 second, got {self.duration}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "callSid": self.call_sid,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "dayOfWeek": self.day_of_week,
            "timeOfDay": self.time_of_day,
        }


@dataclass(frozen=True)
class ConversationMetrics:
    total_utterances: int
    user_utterances: int
    assistant_responses: int
    total_interactions: int
    interruption_count: int
    average_response_latency: int  # Milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalUtterances": self.total_utterances,
            "userUtterances": self.user_utterances,
            "assistantResponses": self.assistant_responses,
            "totalInteractions": self.total_interactions,
            "interruptionCount": self.interruption_count,
            "averageResponseLatency": self.average_response_latency,
        }


@dataclass(frozen=True)
class MentalStateIndicators:
    anxiety_level: float = 0.0
    anxiety_peak: float = 0.0
    agitation_level: float = 0.0
    agitation_peak: float = 0.0
    confusion_level: float = 0.0
    confusion_peak: float = 0.0
    positivity_level: float = 0.0
    overall_mood: float = 0.0
    overall_mood_trend: ShiftDirection = ShiftDirection.INSUFFICIENT_DATA
    anxiety_events: List[AnxietyEvent] = field(default_factory=list)
    agitation_markers: List[AnxietyEvent] = field(default_factory=list)
    confusion_indicators: int = 0
    significant_shifts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anxietyLevel": round(self.anxiety_level, 3),
            "anxietyPeak": round(self.anxiety_peak, 3),
            "agitationLevel": round(self.agitation_level, 3),
            "agitationPeak": round(self.agitation_peak, 3),
            "confusionLevel": round(self.confusion_level, 3),
            "confusionPeak": round(self.confusion_peak, 3),
            "positivityLevel": round(self.positivity_level, 3),
            "overallMood": round(self.overall_mood, 3),
            "overallMoodTrend": self.overall_mood_trend.value,
            "anxietyEvents": [e.to_dict() for e in self.anxiety_events],
            "agitationMarkers": [e.to_dict() for e in self.agitation_markers],
            "confusionIndicators": self.confusion_indicators,
            "significantShifts": self.significant_shifts,
        }


@dataclass(frozen=True)
class SleepPatterns:
    """Call-start time of day and how often the caller talked about sleep."""
    call_time: str = "normal"
    sleep_mentions: int = 0
    potential_sleep_issues: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "callTime": self.call_time,
            "sleepMentions": self.sleep_mentions,
            "potentialSleepIssues": self.potential_sleep_issues,
        }


@dataclass(frozen=True)
class ClinicalIndicators:
    medication_mentions: List[ClinicalPatternMatch] = field(default_factory=list)
    pain_complaints: List[ClinicalPatternMatch] = field(default_factory=list)
    hospital_requests: int = 0
    staff_complaints: List[ClinicalPatternMatch] = field(default_factory=list)
    delusional_statements: List[ClinicalPatternMatch] = field(default_factory=list)
    sundowning_statements: List[ClinicalPatternMatch] = field(default_factory=list)
    toileting_mentions: List[ClinicalPatternMatch] = field(default_factory=list)
    crisis_statements: List[ClinicalPatternMatch] = field(default_factory=list)
    paranoia_level: str = "none"
    sleep_patterns: SleepPatterns = field(default_factory=SleepPatterns)
    hypochondria_events: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "medicationMentions": [m.to_dict() for m in self.medication_mentions],
            "painComplaints": [m.to_dict() for m in self.pain_complaints],
            "hospitalRequests": self.hospital_requests,
            "staffComplaints": [m.to_dict() for m in self.staff_complaints],
            "delusionalStatements": [m.to_dict() for m in self.delusional_statements],
            "sundowningStatements": [m.to_dict() for m in self.sundowning_statements],
            "toiletingMentions": [m.to_dict() for m in self.toileting_mentions],
            "crisisStatements": [m.to_dict() for m in self.crisis_statements],
            "paranoiaLevel": self.paranoia_level,
            "sleepPatterns": self.sleep_patterns.to_dict(),
            "hypochondriaEvents": self.hypochondria_events,
        }


@dataclass(frozen=True)
class BehavioralPatterns:
    repetition_score: float
    repetitions: List[RepetitionEntry]
    average_coherence: Optional[float]
    low_coherence_events: int
    sundowning_risk: SundowningAssessment
    uti_risk: UTIAssessment
    response_latency: int
    engagement_quality: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repetitionScore": round(self.repetition_score, 3),
            "repetitions": [r.to_dict() for r in self.repetitions],
            "averageCoherence": (
                round(self.average_coherence, 3)
                if self.average_coherence is not None else None
            ),
            "lowCoherenceEvents": self.low_coherence_events,
            "sundowningRisk": self.sundowning_risk.to_dict(),
            "utiRisk": self.uti_risk.to_dict(),
            "responseLatency": self.response_latency,
            "engagementQuality": dict(self.engagement_quality),
        }


@dataclass(frozen=True)
class SupportEffectiveness:
    successful_redirections: List[RedirectionOutcome] = field(default_factory=list)
    failed_redirections: List[RedirectionOutcome] = field(default_factory=list)

    @property
    def redirection_success_rate(self) -> Optional[float]:
        total = len(self.successful_redirections) + len(self.failed_redirections)
        if total == 0:
            return None
        return len(self.successful_redirections) / total

    def to_dict(self) -> Dict[str, Any]:
        rate = self.redirection_success_rate
        return {
            "successfulRedirections": [r.to_dict() for r in self.successful_redirections],
            "failedRedirections": [r.to_dict() for r in self.failed_redirections],
            "redirectionSuccessRate": round(rate, 3) if rate is not None else None,
        }


@dataclass(frozen=True)
class ConversationSummary:
    """Call-end reduction of a ConversationSession."""
    call_metadata: CallMetadata
    conversation_metrics: ConversationMetrics
    mental_state_indicators: MentalStateIndicators
    clinical_indicators: ClinicalIndicators
    behavioral_patterns: BehavioralPatterns
    support_effectiveness: SupportEffectiveness
    topic_analysis: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "callSid": self.call_metadata.call_sid,
            "callMetadata": self.call_metadata.to_dict(),
            "conversationMetrics": self.conversation_metrics.to_dict(),
            "mentalStateIndicators": self.mental_state_indicators.to_dict(),
            "clinicalIndicators": self.clinical_indicators.to_dict(),
            "behavioralPatterns": self.behavioral_patterns.to_dict(),
            "supportEffectiveness": self.support_effectiveness.to_dict(),
            "topicAnalysis": dict(self.topic_analysis),
        }


@dataclass(frozen=True)
class RiskFactor:
    """One contributor to the risk assessment and its caregiver alert."""
    name: str
    priority: RiskPriority
    alert: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "priority": self.priority.value, "alert": self.alert}


@dataclass(frozen=True)
class RiskAssessment:
    priority: RiskPriority
    factors: List[RiskFactor] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority.value,
            "factors": [f.name for f in self.factors],
        }


@dataclass(frozen=True)
class TrendAnalysis:
    trend: MoodTrend
    significant_shifts: List[EmotionalShift] = field(default_factory=list)

    @property
    def mood_trend(self) -> ShiftDirection:
        return self.trend.direction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moodTrend": self.trend.direction.value,
            "strength": round(self.trend.strength, 4),
            "slope": round(self.trend.slope, 4),
            "confidence": round(self.trend.confidence, 3),
            "significantShifts": [s.to_dict() for s in self.significant_shifts],
        }


@dataclass(frozen=True)
class CaregiverInsights:
    """Caregiver-facing reduction: alerts, trend, risk and recommendations.

    ``immediate_alerts`` is generated from ``risk_assessment.factors`` so
    the two can never disagree.
    """
    call_sid: str
    trend_analysis: TrendAnalysis
    risk_assessment: RiskAssessment
    recommendations: Dict[str, List[str]] = field(default_factory=dict)
    current_concerns: List[str] = field(default_factory=list)

    @property
    def immediate_alerts(self) -> List[str]:
        return [factor.alert for factor in self.risk_assessment.factors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "callSid": self.call_sid,
            "immediateAlerts": self.immediate_alerts,
            "trendAnalysis": self.trend_analysis.to_dict(),
            "riskAssessment": self.risk_assessment.to_dict(),
            "recommendations": {k: list(v) for k, v in self.recommendations.items()},
            "currentConcerns": list(self.current_concerns),
        }
