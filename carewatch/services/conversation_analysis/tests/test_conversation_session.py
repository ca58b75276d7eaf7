"""Tests for ConversationSession state tracking."""
import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from carewatch.shared.models import (
    InteractionType,
    PatternCategory,
    ResponseType,
    RiskPriority,
    ShiftDirection,
)
from carewatch.shared.utils import configure_pii_salt
from carewatch.services.conversation_analysis.config import AnalysisConfig
from carewatch.services.conversation_analysis.secondary_analyzer import SecondaryAssessment
from carewatch.services.conversation_analysis.session import (
    ConversationSession,
    MalformedEventError,
    SessionClosedError,
)


START = datetime(2026, 1, 14, 17, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return START + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def session():
    return ConversationSession("CA_test_001", START)


class TestSessionLifecycle:
    """Tests for the open / closed state machine."""

    def test_new_session_is_open(self, session):
        assert session.is_closed is False
        assert session.end_time is None

    def test_close(self, session):
        session.close(at(60))
        assert session.is_closed is True
        assert session.end_time == at(60)

    def test_end_time_setter_closes(self, session):
        session.end_time = at(60)
        assert session.is_closed is True

    def test_second_close_raises(self, session):
        session.close(at(60))
        with pytest.raises(SessionClosedError):
            session.close(at(61))

    def test_end_before_start_raises(self, session):
        with pytest.raises(MalformedEventError):
            session.close(at(-10))
        assert session.is_closed is False

    @pytest.mark.parametrize("track", [
        lambda s: s.track_user_utterance("hello", at(70)),
        lambda s: s.track_assistant_response("hello", at(70)),
        lambda s: s.track_interruption(at(70)),
        lambda s: s.track_function_call("transferCall", {}, at(70)),
    ])
    def test_tracking_after_close_raises(self, session, track):
        session.track_user_utterance("hello", at(1))
        session.close(at(60))
        with pytest.raises(SessionClosedError):
            track(session)
        assert len(session.interactions) == 1

    def test_logs_carry_hashed_call_sid(self, caplog):
        caplog.set_level(logging.DEBUG)
        session = ConversationSession("CA_private_sid", START)
        session.track_user_utterance("I need to go to the hospital", at(1))
        session.track_assistant_response("Let's talk about your garden.", at(2))
        session.track_function_call("transferCall", {}, at(3))
        session.close(at(10))

        assert caplog.records
        for record in caplog.records:
            assert "CA_private_sid" not in str(record.__dict__)
        started = next(r for r in caplog.records if r.getMessage() == "SESSION_STARTED")
        assert started.call_sid_hash == session.call_sid_hash

    def test_missing_call_sid_raises(self):
        with pytest.raises(MalformedEventError):
            ConversationSession("", START)

    def test_missing_timestamp_raises(self, session):
        with pytest.raises(MalformedEventError):
            session.track_user_utterance("hello", None)
        assert session.interactions == []
        assert session.mood_progression == []

    def test_negative_latency_raises(self, session):
        with pytest.raises(MalformedEventError):
            session.track_user_utterance("hello", at(1), latency=-5)
        assert session.interactions == []


class TestTrackUserUtterance:

    def test_records_interaction_and_snapshot(self, session):
        interaction = session.track_user_utterance("I'm so scared and worried", at(1), latency=800)

        assert interaction.type == InteractionType.USER_UTTERANCE
        assert interaction.payload.latency_ms == 800
        assert session.interactions == [interaction]
        assert len(session.mood_progression) == 1
        assert session.response_latencies == [800]

    def test_anxiety_event_recorded(self, session):
        session.track_user_utterance("I'm so scared and worried", at(1))

        assert len(session.anxiety_events) == 1
        event = session.anxiety_events[0]
        assert event.intensity == pytest.approx(2 / 6)
        assert set(event.markers) == {"scared", "worried"}

    def test_agitation_marker_recorded(self, session):
        session.track_user_utterance("I hate this, I'm so angry", at(1))
        assert len(session.agitation_markers) == 1

    def test_confusion_indicator_counted(self, session):
        session.track_user_utterance("I don't know where I am or what time it is", at(1))
        assert session.confusion_indicators == 1

    def test_empty_text_is_neutral(self, session):
        session.track_user_utterance("", at(1))

        assert session.mood_progression[0].overall == 0.0
        assert session.repetitions == {}
        assert session.coherence_scores == []

    def test_significant_shift_recorded(self, session):
        session.track_user_utterance("What a wonderful happy day", at(1))
        session.track_user_utterance("I want to die", at(5))

        assert len(session.emotional_shifts) == 1
        assert session.emotional_shifts[0].direction == ShiftDirection.DECLINING

    def test_patterns_folded_into_collections(self, session):
        session.track_user_utterance("Where are my pills? My back hurts", at(1))

        assert len(session.medication_concerns) == 1
        assert len(session.pain_complaints) == 1
        assert session.patterns(PatternCategory.STAFF_COMPLAINT) == []

    def test_hospital_match_increments_counter(self, session):
        session.track_user_utterance("I need to go to the hospital", at(1))
        assert session.hospital_requests == 1

    def test_doctor_mention_is_not_a_request(self, session):
        session.track_user_utterance("My doctor came by this morning, he is nice", at(1))
        session.track_user_utterance("The doctor said I am doing fine", at(10))

        assert session.hospital_requests == 0
        assert len(session.patterns(PatternCategory.HOSPITAL_REQUEST)) == 2
        assert session.generate_caregiver_insights().risk_assessment.priority == RiskPriority.ROUTINE

    def test_collections_are_copies(self, session):
        session.track_user_utterance("My back hurts", at(1))
        session.pain_complaints.clear()
        assert len(session.pain_complaints) == 1

    def test_topics_counted(self, session):
        session.track_user_utterance("I miss my dog in Hawaii and want to see Ryan", at(1))
        assert session.topics["memories"] == 1
        assert session.topics["family"] == 1

    def test_coherence_scored_against_context(self, session):
        session.track_user_utterance("Hello", at(1))
        session.track_assistant_response("We were talking about your dog", at(2))
        session.track_assistant_response("You mentioned you had a golden retriever", at(3))
        session.track_user_utterance("Yes, I loved that dog so much", at(4))

        assert len(session.coherence_scores) == 1
        assert session.coherence_scores[0] > 0.7

    def test_first_utterance_has_no_coherence_score(self, session):
        session.track_user_utterance("Hello there", at(1))
        assert session.coherence_scores == []


class TestScoringFailures:
    """Per-turn failures degrade to neutral values instead of raising."""

    def test_scorer_failure_yields_neutral_snapshot(self):
        scorer = MagicMock()
        scorer.analyze_sentiment.side_effect = Exception("scorer exploded")
        session = ConversationSession("CA_fail", START, sentiment_scorer=scorer)

        session.track_user_utterance("I'm so scared", at(1))

        assert len(session.interactions) == 1
        assert session.mood_progression[0].overall == 0.0
        assert session.anxiety_events == []

    def test_matcher_failure_yields_no_patterns(self):
        matcher = MagicMock()
        matcher.detect_patterns.side_effect = Exception("matcher exploded")
        session = ConversationSession("CA_fail", START, pattern_matcher=matcher)

        session.track_user_utterance("My back hurts", at(1))

        assert session.pain_complaints == []
        assert len(session.mood_progression) == 1


class TestRepetition:

    def test_repeated_question_counted(self, session):
        for i in range(3):
            session.track_user_utterance("Where is Ryan?", at(i * 10))

        entry = session.repetitions["where is ryan"]
        assert entry.count == 3
        assert len(entry.timestamps) == 3

    def test_near_identical_folded_into_entry(self, session):
        session.track_user_utterance("Where is Ryan?", at(1))
        session.track_user_utterance("Where's Ryan?", at(20))

        assert len(session.repetitions) == 1
        assert session.repetitions["where is ryan"].count == 2

    def test_distinct_utterances_get_own_entries(self, session):
        session.track_user_utterance("Where is Ryan?", at(1))
        session.track_user_utterance("I had soup for lunch", at(20))
        assert len(session.repetitions) == 2

    def test_entries_only_grow(self, session):
        counts = []
        for i in range(4):
            session.track_user_utterance("Where is Ryan?", at(i))
            counts.append(session.repetitions["where is ryan"].count)
        assert counts == sorted(counts)

    def test_repetition_score(self, session):
        for i in range(3):
            session.track_user_utterance("Where is Ryan?", at(i * 10))
        assert session.repetition_score == 1.0


class TestTrackAssistantResponse:

    def test_records_response(self, session):
        interaction = session.track_assistant_response("It is a lovely day.", at(1))

        assert interaction.type == InteractionType.ASSISTANT_RESPONSE
        assert interaction.payload.response_type == ResponseType.DIRECT_ANSWER
        assert interaction.payload.length == len("It is a lovely day.")

    def test_duplicate_within_window_suppressed(self, session):
        assert session.track_assistant_response("How are you today?", at(0)) is not None
        assert session.track_assistant_response("How are you today?", at(3)) is None
        assert session.track_assistant_response("How are you today", at(4)) is None
        assert len(session.interactions) == 1

    def test_duplicate_outside_window_recorded(self, session):
        session.track_assistant_response("How are you today?", at(0))
        assert session.track_assistant_response("How are you today?", at(10)) is not None
        assert len(session.interactions) == 2

    def test_different_response_in_window_recorded(self, session):
        session.track_assistant_response("How are you today?", at(0))
        assert session.track_assistant_response("Shall we look at photos of Hawaii?", at(1))

    def test_duplicate_window_is_per_session(self):
        first = ConversationSession("CA_a", START)
        second = ConversationSession("CA_b", START)

        first.track_assistant_response("How are you today?", at(0))
        assert second.track_assistant_response("How are you today?", at(1)) is not None

    def test_window_follows_config(self):
        session = ConversationSession("CA_c", START, config=AnalysisConfig(duplicate_window_seconds=30))
        session.track_assistant_response("How are you today?", at(0))
        assert session.track_assistant_response("How are you today?", at(20)) is None

    @pytest.mark.parametrize("text,expected", [
        ("Let's talk about your garden.", ResponseType.REDIRECTION),
        ("Do you remember your trip to Hawaii?", ResponseType.REDIRECTION),
        ("I understand, that must be hard.", ResponseType.REASSURANCE),
        ("Did you sleep well?", ResponseType.QUESTION),
        ("It is Tuesday.", ResponseType.DIRECT_ANSWER),
    ])
    def test_classification(self, session, text, expected):
        assert session.classify_response(text) == expected


class TestRedirections:

    def test_successful_redirection(self, session):
        session.track_user_utterance("I'm so scared", at(1))
        session.track_assistant_response(
            "Let's talk about your garden. Do you remember the roses?", at(2)
        )
        session.track_user_utterance("Oh I love my garden, it was beautiful", at(3))

        assert len(session.successful_redirections) == 1
        assert session.failed_redirections == []
        outcome = session.successful_redirections[0]
        assert outcome.topic == "memories"
        assert outcome.mood_change > 0

    def test_failed_redirection(self, session):
        session.track_user_utterance("I am fine", at(1))
        session.track_assistant_response("How about we talk about your son?", at(2))
        session.track_user_utterance("I'm worried and scared, where am I", at(3))

        assert session.successful_redirections == []
        assert len(session.failed_redirections) == 1
        assert session.failed_redirections[0].topic == "family"

    def test_redirection_resolved_once(self, session):
        session.track_assistant_response("Let's talk about your garden.", at(1))
        session.track_user_utterance("Lovely", at(2))
        session.track_user_utterance("Yes", at(3))
        total = len(session.successful_redirections) + len(session.failed_redirections)
        assert total == 1


class TestInterruptionsAndFunctionCalls:

    def test_interruptions_counted(self, session):
        session.track_interruption(at(1))
        interaction = session.track_interruption(at(2))

        assert session.interruption_count == 2
        assert interaction.payload.count == 2
        assert interaction.text is None

    def test_transfer_call_counts_as_hospital_request(self, session):
        session.track_function_call("transferCall", {"reason": "caller asked"}, at(1))

        assert session.hospital_requests == 1
        assert session.interactions[0].type == InteractionType.FUNCTION_CALL
        assert session.interactions[0].payload.args == {"reason": "caller asked"}

    def test_other_function_does_not_count(self, session):
        session.track_function_call("recallMemory", None, at(1))
        assert session.hospital_requests == 0
        assert session.interactions[0].payload.args == {}

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_missing_function_name_raises(self, session, name):
        with pytest.raises(MalformedEventError):
            session.track_function_call(name, {}, at(1))
        assert session.interactions == []
        assert session.hospital_requests == 0

    def test_non_mapping_args_raises(self, session):
        with pytest.raises(MalformedEventError):
            session.track_function_call("transferCall", ["x"], at(1))
        assert session.hospital_requests == 0

    def test_transfer_after_spoken_request_counted_once(self, session):
        session.track_user_utterance("Please take me to the hospital", at(1))
        session.track_function_call("transferCall", {"reason": "hospital"}, at(2))

        assert session.hospital_requests == 1
        assert session.generate_caregiver_insights().risk_assessment.priority == RiskPriority.ELEVATED

    def test_spoken_request_after_transfer_counted_once(self, session):
        session.track_function_call("transferCall", {}, at(1))
        session.track_user_utterance("Call an ambulance", at(3))
        assert session.hospital_requests == 1

    def test_transfer_outside_window_counted_again(self, session):
        session.track_user_utterance("Please take me to the hospital", at(1))
        session.track_function_call("transferCall", {}, at(121))
        assert session.hospital_requests == 2

    def test_second_transfer_counted(self, session):
        session.track_user_utterance("Please take me to the hospital", at(1))
        session.track_function_call("transferCall", {}, at(2))
        session.track_function_call("transferCall", {}, at(3))
        assert session.hospital_requests == 2

    def test_transfer_window_follows_config(self):
        session = ConversationSession(
            "CA_window", START, config=AnalysisConfig(transfer_request_window_seconds=0)
        )
        session.track_user_utterance("Please take me to the hospital", at(1))
        session.track_function_call("transferCall", {}, at(2))
        assert session.hospital_requests == 2


class TestSessionReductions:

    def test_hospital_pain_staff_scenario_is_critical(self, session):
        session.track_user_utterance("I need to go to the hospital", at(5))
        session.track_user_utterance("My back hurts so much", at(15))
        session.track_user_utterance("The nurse was rude to me", at(25))
        session.track_user_utterance("Take me to the hospital please", at(35))
        session.close(at(60))

        summary = session.generate_summary()
        insights = session.generate_caregiver_insights()

        assert summary.clinical_indicators.hospital_requests == 2
        assert len(summary.clinical_indicators.pain_complaints) == 1
        assert len(summary.clinical_indicators.staff_complaints) == 1
        assert insights.risk_assessment.priority == RiskPriority.CRITICAL
        names = [f.name for f in insights.risk_assessment.factors]
        assert "repeated_hospital_requests" in names
        assert "pain_complaint" in names
        assert "staff_complaints" in names
        assert len(insights.immediate_alerts) == len(insights.risk_assessment.factors)

    def test_where_is_ryan_scenario(self, session):
        for i, text in enumerate(["Where is Ryan?", "Where is Ryan?", "Where is Ryan?", "Where's Ryan?"]):
            session.track_user_utterance(text, at(i * 15))
        session.close(at(90))

        summary = session.generate_summary()
        insights = session.generate_caregiver_insights()

        assert summary.behavioral_patterns.repetition_score >= 0.7
        assert summary.behavioral_patterns.repetitions[0].count == 4
        assert any("repetition" in concern.lower() for concern in insights.current_concerns)

    def test_hospital_pain_and_staff_in_two_turns(self, session):
        session.track_user_utterance("I need to go to the hospital, my back hurts", at(5))
        session.track_user_utterance("the nurses are being mean", at(15))
        session.close(at(30))

        clinical = session.generate_summary().clinical_indicators
        assert len(session.patterns(PatternCategory.HOSPITAL_REQUEST)) == 1
        assert len(clinical.pain_complaints) == 1
        assert len(clinical.staff_complaints) == 1
        assert clinical.staff_complaints[0].match == "being mean"
        assert clinical.hospital_requests == 1

    def test_where_is_ryan_three_times(self, session):
        for i in range(3):
            session.track_user_utterance("Where is Ryan?", at(i * 15))
        session.close(at(60))

        entries = list(session.repetitions.values())
        assert len(entries) == 1
        assert entries[0].count == 3
        assert session.generate_summary().behavioral_patterns.repetition_score >= 0.7

    def test_summary_is_json_serializable(self, session):
        session.track_user_utterance("My back hurts", at(1), latency=1200)
        session.track_assistant_response("I'm sorry to hear that.", at(2))
        session.track_interruption(at(3))
        session.track_function_call("transferCall", {}, at(4))
        session.close(at(10))

        data = session.generate_summary().to_dict()
        json.dumps(data)
        assert data["callSid"] == "CA_test_001"
        assert data["callMetadata"]["duration"] == 10
        assert data["clinicalIndicators"]["hospitalRequests"] == 1
        assert data["conversationMetrics"]["interruptionCount"] == 1
        json.dumps(session.generate_caregiver_insights().to_dict())

    def test_duration_floor(self, session):
        session.close(START + timedelta(milliseconds=200))
        assert session.generate_summary().call_metadata.duration == 1

    def test_open_session_measures_to_now(self, session):
        summary = session.generate_summary(now=at(65))
        assert summary.call_metadata.duration == 65
        assert summary.call_metadata.end_time is None

    def test_summary_does_not_mutate_session(self, session):
        session.track_user_utterance("Where is Ryan?", at(1))
        session.close(at(10))
        before = len(session.interactions)
        session.generate_summary()
        session.generate_caregiver_insights()
        assert len(session.interactions) == before


class TestCrossCheck:

    def test_agreeing_assessment(self, session):
        session.track_user_utterance("I'm so scared and worried", at(1))
        assessment = SecondaryAssessment(
            anxiety=0.4, agitation=0.0, confusion=0.0, positivity=0.1,
            confidence=0.9, model_name="test-model",
        )

        result = session.cross_check(assessment)

        assert result["agrees"] is True
        assert result["modelName"] == "test-model"
        assert set(result["deltas"]) == {"anxiety", "agitation", "confusion", "positivity"}

    def test_disagreeing_assessment(self, session):
        session.track_user_utterance("What a wonderful happy day", at(1))
        assessment = SecondaryAssessment(
            anxiety=0.9, agitation=0.0, confusion=0.0, positivity=0.0,
            confidence=0.9, model_name="test-model",
        )
        assert session.cross_check(assessment)["agrees"] is False
