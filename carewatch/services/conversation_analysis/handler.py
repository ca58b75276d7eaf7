"""Conversation Analysis HTTP handler - event ingest for live calls.

The call orchestrator opens a session when a call connects, posts one
event per conversational turn, and closes the session when the call ends.
Closing returns the summary and caregiver insights; persisting them is the
caller's job.

No PII in logs: call identifiers are logged via hash_pii(), conversation
text only via hash_text_for_audit().
"""
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from flask import Flask, request, jsonify

from carewatch.shared.utils import configure_pii_salt, hash_pii
from .coherence import CoherenceAssessor
from .config import AnalysisConfig, DEFAULT_LEXICON, load_lexicon
from .pattern_matcher import ClinicalPatternMatcher
from .secondary_analyzer import TransformerEmotionAnalyzer
from .sentiment_scorer import LexiconSentimentScorer
from .session import ConversationSession, MalformedEventError, SessionClosedError
from .topic_extractor import TopicExtractor

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

# Initialize components
config = AnalysisConfig(
    critical_hospital_requests=int(os.getenv("CRITICAL_HOSPITAL_REQUESTS", "2")),
    duplicate_window_seconds=float(os.getenv("DUPLICATE_WINDOW_SECONDS", "5.0")),
)
lexicon_path = os.getenv("LEXICON_PATH")
lexicon = load_lexicon(lexicon_path) if lexicon_path else DEFAULT_LEXICON

# Stateless after construction, so shared by every session
sentiment_scorer = LexiconSentimentScorer(lexicon, config)
pattern_matcher = ClinicalPatternMatcher(lexicon, config)
coherence_assessor = CoherenceAssessor(lexicon, config)
topic_extractor = TopicExtractor(lexicon)

secondary_analyzer = TransformerEmotionAnalyzer(
    enabled=os.getenv("SECONDARY_ANALYSIS_ENABLED", "false").lower() == "true",
)

# Open sessions by call SID. Each session has its own lock, held for a
# whole event or close request; _sessions_lock guards the two dicts.
sessions: Dict[str, ConversationSession] = {}
session_locks: Dict[str, threading.Lock] = {}
_sessions_lock = threading.Lock()


def _parse_timestamp(value, field_name: str = "timestamp") -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        raise MalformedEventError(f"Missing required field: {field_name}")
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise MalformedEventError(f"Invalid {field_name}: {value}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _get_session(call_sid: str) -> Tuple[Optional[ConversationSession], Optional[threading.Lock]]:
    with _sessions_lock:
        return sessions.get(call_sid), session_locks.get(call_sid)


def _json_object():
    """Request body as a dict, or None when it is missing or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for ECS/ALB."""
    return jsonify({
        "status": "healthy",
        "service": "conversation-analysis",
        "lexicon_version": lexicon.version,
        "open_sessions": len(sessions),
        "secondary_analyzer": secondary_analyzer.get_status(),
    }), 200


@app.route("/sessions", methods=["POST"])
def open_session():
    """Open an analysis session when a call connects.

    Request Body:
        {
            "callSid": "CA123",
            "startTime": "2026-01-14T15:00:00Z" (optional, defaults to now)
        }
    """
    try:
        data = _json_object()
        if not data:
            return jsonify({"error": "Request body must be a JSON object"}), 400

        call_sid = data.get("callSid")
        if not call_sid:
            logger.warning("SESSION_OPEN_INVALID", extra={"reason": "missing_call_sid"})
            return jsonify({"error": "Missing required field: callSid"}), 400

        start_time = (
            _parse_timestamp(data["startTime"], "startTime")
            if data.get("startTime") else datetime.now(timezone.utc)
        )

        with _sessions_lock:
            if call_sid in sessions:
                logger.warning(
                    "SESSION_OPEN_CONFLICT",
                    extra={"call_sid_hash": hash_pii(call_sid)}
                )
                return jsonify({"error": "Session already open"}), 409
            sessions[call_sid] = ConversationSession(
                call_sid=call_sid,
                start_time=start_time,
                config=config,
                lexicon=lexicon,
                sentiment_scorer=sentiment_scorer,
                pattern_matcher=pattern_matcher,
                coherence_assessor=coherence_assessor,
                topic_extractor=topic_extractor,
            )
            session_locks[call_sid] = threading.Lock()

        logger.info(
            "SESSION_OPENED",
            extra={"call_sid_hash": hash_pii(call_sid), "start_time": start_time.isoformat()}
        )
        return jsonify({
            "callSid": call_sid,
            "startTime": start_time.isoformat(),
            "status": "open",
        }), 201

    except MalformedEventError as e:
        return jsonify({"error": str(e)}), 400


@app.route("/sessions/<call_sid>/events", methods=["POST"])
def track_event(call_sid: str):
    """Track one conversational event.

    Request Body (by type):
        {"type": "user_utterance", "text": "...", "timestamp": "...", "latency": 1200}
        {"type": "assistant_response", "text": "...", "timestamp": "..."}
        {"type": "interruption", "timestamp": "..."}
        {"type": "function_call", "functionName": "transferCall", "args": {}, "timestamp": "..."}

    Response:
        {
            "callSid": "CA123",
            "recorded": true | false (false when a duplicate response was suppressed),
            "interaction": {...} | null
        }
    """
    session, lock = _get_session(call_sid)
    if session is None:
        return jsonify({"error": "Unknown session"}), 404

    data = _json_object()
    if not data:
        return jsonify({"error": "Request body must be a JSON object"}), 400

    with lock:
        try:
            return _track(session, call_sid, data)

        except (MalformedEventError, TypeError, ValueError) as e:
            logger.warning(
                "EVENT_REJECTED",
                extra={"call_sid_hash": hash_pii(call_sid), "reason": str(e)}
            )
            return jsonify({"error": str(e)}), 400

        except SessionClosedError as e:
            return jsonify({"error": str(e)}), 409


def _track(session: ConversationSession, call_sid: str, data: dict):
    event_type = data.get("type")
    timestamp = _parse_timestamp(data.get("timestamp"))

    if event_type == "user_utterance":
        latency = data.get("latency")
        interaction = session.track_user_utterance(
            data.get("text"),
            timestamp,
            latency=float(latency) if latency is not None else None,
        )
    elif event_type == "assistant_response":
        interaction = session.track_assistant_response(data.get("text"), timestamp)
    elif event_type == "interruption":
        interaction = session.track_interruption(timestamp)
    elif event_type == "function_call":
        interaction = session.track_function_call(
            data.get("functionName"), data.get("args"), timestamp
        )
    else:
        logger.warning(
            "EVENT_REJECTED",
            extra={"call_sid_hash": hash_pii(call_sid), "reason": "unknown_type"}
        )
        return jsonify({"error": f"Unknown event type: {event_type}"}), 400

    return jsonify({
        "callSid": call_sid,
        "recorded": interaction is not None,
        "interaction": interaction.to_dict() if interaction else None,
    }), 200


@app.route("/sessions/<call_sid>/close", methods=["POST"])
def close_session(call_sid: str):
    """Close a session and return its summary and caregiver insights.

    The session is discarded once closed. Events still waiting on the
    session lock are answered with 409 or 404 once the close finishes.

    Request Body:
        {"endTime": "2026-01-14T15:10:00Z"} (optional, defaults to now)

    Response:
        {
            "summary": {...},
            "insights": {...},
            "crossCheck": {...} (only when secondary analysis is available)
        }
    """
    session, lock = _get_session(call_sid)
    if session is None:
        return jsonify({"error": "Unknown session"}), 404

    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    with lock:
        try:
            end_time = (
                _parse_timestamp(data["endTime"], "endTime")
                if data.get("endTime") else datetime.now(timezone.utc)
            )
            session.close(end_time)

        except MalformedEventError as e:
            return jsonify({"error": str(e)}), 400

        except SessionClosedError as e:
            return jsonify({"error": str(e)}), 409

        with _sessions_lock:
            sessions.pop(call_sid, None)
            session_locks.pop(call_sid, None)

        try:
            return _summarize(session, call_sid)

        except Exception as e:
            logger.error(
                "SESSION_CLOSE_ERROR",
                extra={
                    "call_sid_hash": hash_pii(call_sid),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return jsonify({"error": "Summarization failed"}), 500


def _summarize(session: ConversationSession, call_sid: str):
    summary = session.generate_summary()
    insights = session.generate_caregiver_insights()
    response = {
        "summary": summary.to_dict(),
        "insights": insights.to_dict(),
    }

    if secondary_analyzer.is_available:
        assessment = secondary_analyzer.assess(session.user_utterances())
        response["crossCheck"] = session.cross_check(assessment)

    logger.info(
        "SESSION_CLOSE_COMPLETED",
        extra={
            "call_sid_hash": hash_pii(call_sid),
            "priority": insights.risk_assessment.priority.value,
            "duration": summary.call_metadata.duration,
        }
    )
    return jsonify(response), 200


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    port = int(os.getenv("PORT", "8003"))
    app.run(host="0.0.0.0", port=port, debug=False)
