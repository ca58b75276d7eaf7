"""Session summarizer - call-end reduction for caregivers.

Turns a ConversationSession into the ConversationSummary stored with the
call and the CaregiverInsights shown on the caregiver dashboard. Both are
pure reductions over the session's collections; nothing here mutates the
session.
"""
import logging
import statistics
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from carewatch.shared.models import (
    BehavioralPatterns,
    CallMetadata,
    CaregiverInsights,
    ClinicalIndicators,
    ConversationMetrics,
    ConversationSummary,
    InteractionType,
    MentalStateIndicators,
    RiskAssessment,
    RiskFactor,
    RiskPriority,
    ShiftDirection,
    SupportEffectiveness,
    TrendAnalysis,
)
from .config import AnalysisConfig

if TYPE_CHECKING:
    from .session import ConversationSession

logger = logging.getLogger(__name__)

# Engagement scoring (latency in milliseconds)
QUICK_RESPONSE_MS = 1000
SLOW_RESPONSE_MS = 3000
FREQUENT_INTERRUPTIONS = 2
TIP_INTERRUPTIONS = 2


def time_of_day(timestamp: datetime) -> str:
    """Coarse part of day used in call metadata."""
    hour = timestamp.hour
    if hour < 6:
        return "night"
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    if hour < 21:
        return "evening"
    return "night"


def paranoia_level(staff_complaint_count: int) -> str:
    if staff_complaint_count == 0:
        return "none"
    if staff_complaint_count > 3:
        return "high"
    if staff_complaint_count > 1:
        return "moderate"
    return "low"


def _mean(values) -> float:
    values = list(values)
    return statistics.mean(values) if values else 0.0


def _unique(values) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class SessionSummarizer:
    """Generates summaries and caregiver insights from a session.

    Risk priority follows fixed rules. CRITICAL needs a hard trigger
    (repeated hospital requests, severe pain, crisis language); ELEVATED
    covers lesser contributors; anything else is ROUTINE. Each contributing
    factor carries exactly one caregiver alert.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    def summarize(
        self,
        session: "ConversationSession",
        now: Optional[datetime] = None,
    ) -> ConversationSummary:
        """Build the stored ConversationSummary.

        Args:
            session: Open or closed session
            now: Reference time for open sessions (defaults to the current
                time in the session's timezone)

        Returns:
            ConversationSummary

        Logs:
            - SESSION_SUMMARY_STARTED: Before summarization
            - SESSION_SUMMARY_COMPLETED: After summarization
        """
        logger.info(
            "SESSION_SUMMARY_STARTED",
            extra={
                "call_sid_hash": session.call_sid_hash,
                "interaction_count": len(session.interactions),
                "closed": session.is_closed,
            }
        )

        summary = ConversationSummary(
            call_metadata=self._call_metadata(session, now),
            conversation_metrics=self._conversation_metrics(session),
            mental_state_indicators=self._mental_state(session),
            clinical_indicators=self._clinical_indicators(session),
            behavioral_patterns=self._behavioral_patterns(session),
            support_effectiveness=SupportEffectiveness(
                successful_redirections=list(session.successful_redirections),
                failed_redirections=list(session.failed_redirections),
            ),
            topic_analysis=dict(session.topics),
        )

        logger.info(
            "SESSION_SUMMARY_COMPLETED",
            extra={
                "call_sid_hash": session.call_sid_hash,
                "duration": summary.call_metadata.duration,
                "mood_trend": summary.mental_state_indicators.overall_mood_trend.value,
                "hospital_requests": summary.clinical_indicators.hospital_requests,
            }
        )
        return summary

    def _call_metadata(self, session: "ConversationSession", now: Optional[datetime]) -> CallMetadata:
        start = session.start_time
        end = session.end_time
        reference = end or now or datetime.now(start.tzinfo)
        duration = max(round((reference - start).total_seconds()), 1)
        return CallMetadata(
            call_sid=session.call_sid,
            start_time=start,
            end_time=end,
            duration=duration,
            day_of_week=start.strftime("%A"),
            time_of_day=time_of_day(start),
        )

    def _conversation_metrics(self, session: "ConversationSession") -> ConversationMetrics:
        counts = {t: 0 for t in InteractionType}
        for interaction in session.interactions:
            counts[interaction.type] += 1
        user = counts[InteractionType.USER_UTTERANCE]
        assistant = counts[InteractionType.ASSISTANT_RESPONSE]
        return ConversationMetrics(
            total_utterances=user,
            user_utterances=user,
            assistant_responses=assistant,
            total_interactions=len(session.interactions),
            interruption_count=session.interruption_count,
            average_response_latency=round(_mean(session.response_latencies)),
        )

    def _mental_state(self, session: "ConversationSession") -> MentalStateIndicators:
        progression = session.mood_progression
        means = session.axis_means()

        def peak(axis: str) -> float:
            return max((s.axis(axis) for s in progression), default=0.0)

        trend = session.sentiment_scorer.calculate_trend(progression)
        return MentalStateIndicators(
            anxiety_level=means["anxiety"],
            anxiety_peak=peak("anxiety"),
            agitation_level=means["agitation"],
            agitation_peak=peak("agitation"),
            confusion_level=means["confusion"],
            confusion_peak=peak("confusion"),
            positivity_level=means["positivity"],
            overall_mood=_mean(s.overall for s in progression),
            overall_mood_trend=trend.direction,
            anxiety_events=list(session.anxiety_events),
            agitation_markers=list(session.agitation_markers),
            confusion_indicators=session.confusion_indicators,
            significant_shifts=len(session.emotional_shifts),
        )

    def _clinical_indicators(self, session: "ConversationSession") -> ClinicalIndicators:
        staff_complaints = session.staff_complaints
        matcher = session.pattern_matcher
        utterances = session.user_utterances()
        return ClinicalIndicators(
            medication_mentions=session.medication_concerns,
            pain_complaints=session.pain_complaints,
            hospital_requests=session.hospital_requests,
            staff_complaints=staff_complaints,
            delusional_statements=session.delusional_statements,
            sundowning_statements=session.sundowning_statements,
            toileting_mentions=session.toileting_mentions,
            crisis_statements=session.crisis_statements,
            paranoia_level=paranoia_level(len(staff_complaints)),
            sleep_patterns=matcher.assess_sleep_patterns(session.start_time, utterances),
            hypochondria_events=matcher.count_hypochondria_events(utterances),
        )

    def _behavioral_patterns(self, session: "ConversationSession") -> BehavioralPatterns:
        matcher = session.pattern_matcher
        progression = session.mood_progression
        peak_confusion = max((s.confusion for s in progression), default=0.0)
        coherence = session.coherence_scores

        return BehavioralPatterns(
            repetition_score=session.repetition_score,
            repetitions=[e for e in session.repetitions.values() if e.count > 1],
            average_coherence=statistics.mean(coherence) if coherence else None,
            low_coherence_events=sum(
                1 for score in coherence if score < self.config.low_coherence_threshold
            ),
            sundowning_risk=matcher.detect_sundowning_risk(
                session.start_time, session.observed_behaviors()
            ),
            uti_risk=matcher.assess_uti_indicators(
                peak_confusion,
                matcher.classify_confusion_onset(progression),
                urinary_symptoms=bool(session.toileting_mentions),
            ),
            response_latency=round(_mean(session.response_latencies)),
            engagement_quality=self.assess_engagement_quality(session),
        )

    def assess_engagement_quality(self, session: "ConversationSession") -> Dict[str, Any]:
        """Latency / interruption engagement score (0-100, starts at 50)."""
        score = 50
        indicators = []
        if session.response_latencies:
            average = _mean(session.response_latencies)
            if average < QUICK_RESPONSE_MS:
                indicators.append("Quick responses - good engagement")
                score += 20
            elif average > SLOW_RESPONSE_MS:
                indicators.append("Slow responses - possible disengagement")
                score -= 20

        if session.interruption_count < FREQUENT_INTERRUPTIONS:
            indicators.append("Low interruptions - active listening")
            score += 10
        else:
            indicators.append("Frequent interruptions - possible agitation")
            score -= 10

        if score > 70:
            level = "high"
        elif score < 30:
            level = "low"
        else:
            level = "moderate"
        return {"level": level, "score": score, "indicators": indicators}

    def generate_caregiver_insights(self, session: "ConversationSession") -> CaregiverInsights:
        """Build the caregiver-facing insights for a session.

        Logs:
            - CAREGIVER_INSIGHTS_GENERATED at CRITICAL, WARNING or INFO
              depending on the risk priority
        """
        trend = session.sentiment_scorer.calculate_trend(session.mood_progression)
        factors = self.assess_risk_factors(session, trend.direction)
        priority = max(
            (f.priority for f in factors),
            key=lambda p: p.rank,
            default=RiskPriority.ROUTINE,
        )

        insights = CaregiverInsights(
            call_sid=session.call_sid,
            trend_analysis=TrendAnalysis(
                trend=trend,
                significant_shifts=list(session.emotional_shifts),
            ),
            risk_assessment=RiskAssessment(priority=priority, factors=factors),
            recommendations=self._recommendations(session),
            current_concerns=self._current_concerns(session),
        )

        log_extra = {
            "call_sid_hash": session.call_sid_hash,
            "priority": priority.value,
            "factors": [f.name for f in factors],
        }
        if priority == RiskPriority.CRITICAL:
            logger.critical("CAREGIVER_INSIGHTS_GENERATED", extra=log_extra)
        elif priority == RiskPriority.ELEVATED:
            logger.warning("CAREGIVER_INSIGHTS_GENERATED", extra=log_extra)
        else:
            logger.info("CAREGIVER_INSIGHTS_GENERATED", extra=log_extra)
        return insights

    def assess_risk_factors(
        self,
        session: "ConversationSession",
        mood_trend: ShiftDirection,
    ) -> List[RiskFactor]:
        """Contributing risk factors, hard triggers first."""
        cfg = self.config
        factors = []

        requests = session.hospital_requests
        if requests >= cfg.critical_hospital_requests:
            factors.append(RiskFactor(
                name="repeated_hospital_requests",
                priority=RiskPriority.CRITICAL,
                alert=f"Asked for the hospital or emergency help {requests} times "
                      f"during the call. Check on them now.",
            ))

        pain = session.pain_complaints
        if any((m.intensity or 0.0) >= cfg.critical_pain_intensity for m in pain):
            factors.append(RiskFactor(
                name="severe_pain",
                priority=RiskPriority.CRITICAL,
                alert="Reported severe pain. Arrange a physical check as soon as possible.",
            ))

        if session.crisis_statements:
            factors.append(RiskFactor(
                name="crisis_language",
                priority=RiskPriority.CRITICAL,
                alert="Expressed thoughts of death or self-harm. Follow the crisis protocol immediately.",
            ))

        if 0 < requests < cfg.critical_hospital_requests:
            factors.append(RiskFactor(
                name="hospital_request",
                priority=RiskPriority.ELEVATED,
                alert="Asked for the hospital or a doctor. Confirm whether medical help is needed.",
            ))

        if pain and not any(f.name == "severe_pain" for f in factors):
            factors.append(RiskFactor(
                name="pain_complaint",
                priority=RiskPriority.ELEVATED,
                alert=f"Mentioned pain {len(pain)} time(s). Ask staff to follow up.",
            ))

        staff = session.staff_complaints
        if len(staff) >= cfg.staff_complaint_threshold:
            factors.append(RiskFactor(
                name="staff_complaints",
                priority=RiskPriority.ELEVATED,
                alert=f"Complained about staff {len(staff)} time(s). Review their care situation.",
            ))

        if session.delusional_statements:
            factors.append(RiskFactor(
                name="delusional_content",
                priority=RiskPriority.ELEVATED,
                alert="Made statements suggesting paranoia or delusions. Monitor for escalation.",
            ))

        if mood_trend == ShiftDirection.DECLINING:
            factors.append(RiskFactor(
                name="declining_mood",
                priority=RiskPriority.ELEVATED,
                alert="Mood declined over the course of the call. Consider a follow-up call.",
            ))

        return factors

    def _recommendations(self, session: "ConversationSession") -> Dict[str, List[str]]:
        tips = []
        if session.interruption_count > TIP_INTERRUPTIONS:
            tips.append("Frequent interruptions - possible agitation or engagement issues")
        return {
            "reuseTopics": _unique(r.topic for r in session.successful_redirections),
            "avoidTopics": _unique(r.topic for r in session.failed_redirections),
            "communicationTips": tips,
        }

    def _current_concerns(self, session: "ConversationSession") -> List[str]:
        concerns = []
        if session.medication_concerns:
            concerns.append("Mentioned medication concerns - verify with facility staff")
        if session.toileting_mentions:
            concerns.append("Mentioned toileting needs - check on bathroom assistance")
        if session.repetition_score >= self.config.high_repetition_threshold:
            concerns.append("High repetition in conversation - monitor for increased confusion")
        return concerns
