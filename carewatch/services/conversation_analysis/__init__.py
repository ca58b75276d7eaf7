"""Conversation Analysis: emotional and clinical profiling of companion calls.

Ingests a live, turn-by-turn transcript of a call between an older adult
with cognitive decline and a conversational companion, and produces a
structured profile for caregivers.

Key responsibilities:
- Per turn: lexicon sentiment scoring, clinical pattern matching,
  repetition and coherence tracking
- Per call: summary, mood trend, risk assessment and caregiver alerts
- Optional: transformer emotion model as a confirmatory cross-check

Endpoints:
- POST /sessions - Open a session
- POST /sessions/<call_sid>/events - Track one event
- POST /sessions/<call_sid>/close - Close and summarize
- GET /health - Health check
"""

from .config import AnalysisConfig, Lexicon, DEFAULT_LEXICON, load_lexicon
from .sentiment_scorer import LexiconSentimentScorer
from .pattern_matcher import ClinicalPatternMatcher
from .coherence import CoherenceAssessor
from .topic_extractor import TopicExtractor
from .similarity import levenshtein_distance, similarity
from .session import ConversationSession, SessionClosedError, MalformedEventError
from .session_summarizer import SessionSummarizer
from .secondary_analyzer import TransformerEmotionAnalyzer, SecondaryAssessment

__all__ = [
    "AnalysisConfig",
    "Lexicon",
    "DEFAULT_LEXICON",
    "load_lexicon",
    "LexiconSentimentScorer",
    "ClinicalPatternMatcher",
    "CoherenceAssessor",
    "TopicExtractor",
    "levenshtein_distance",
    "similarity",
    "ConversationSession",
    "SessionClosedError",
    "MalformedEventError",
    "SessionSummarizer",
    "TransformerEmotionAnalyzer",
    "SecondaryAssessment",
]
