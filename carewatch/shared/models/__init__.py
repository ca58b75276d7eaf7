"""Shared domain models for the carewatch engine."""
from .conversation import (
    AnxietyEvent,
    ClinicalPatternMatch,
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
    Severity,
    ShiftDirection,
    UtterancePayload,
)
from .summary import (
    AssessmentLevel,
    BehavioralPatterns,
    CallMetadata,
    CaregiverInsights,
    ClinicalIndicators,
    ConversationMetrics,
    ConversationSummary,
    MentalStateIndicators,
    MoodTrend,
    RiskAssessment,
    RiskFactor,
    RiskPriority,
    SleepPatterns,
    SundowningAssessment,
    SupportEffectiveness,
    TrendAnalysis,
    UTIAssessment,
)

__all__ = [
    "AnxietyEvent",
    "ClinicalPatternMatch",
    "EmotionalShift",
    "EmotionalSnapshot",
    "FunctionCallPayload",
    "Interaction",
    "InteractionType",
    "InterruptionPayload",
    "PatternCategory",
    "RedirectionOutcome",
    "RepetitionEntry",
    "ResponsePayload",
    "ResponseType",
    "Severity",
    "ShiftDirection",
    "UtterancePayload",
    "AssessmentLevel",
    "BehavioralPatterns",
    "CallMetadata",
    "CaregiverInsights",
    "ClinicalIndicators",
    "ConversationMetrics",
    "ConversationSummary",
    "MentalStateIndicators",
    "MoodTrend",
    "RiskAssessment",
    "RiskFactor",
    "RiskPriority",
    "SleepPatterns",
    "SundowningAssessment",
    "SupportEffectiveness",
    "TrendAnalysis",
    "UTIAssessment",
]
