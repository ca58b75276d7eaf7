"""Coherence assessor - does a caller turn follow the conversation?"""
from typing import Optional, Sequence

from .config import AnalysisConfig, DEFAULT_LEXICON, Lexicon
from .text_normalizer import content_words, tokenize


NEUTRAL_COHERENCE = 0.5
NO_OVERLAP_COHERENCE = 0.1
OVERLAP_BASE = 0.6
OVERLAP_WEIGHT = 0.4
RESPONSE_MARKER_BONUS = 0.15


class CoherenceAssessor:
    """Scores topical continuity of an utterance against recent context.

    Content words (stop words and conversational response markers
    removed, lightly stemmed) are compared with the content words of the
    last few turns. Any overlap anchors the score at 0.6 and scales up to
    1.0 with the share of overlapping words; none drops it to 0.1. An
    utterance opening with a response marker ("yes", "okay") is answering
    something and gets a small bonus.
    """

    def __init__(
        self,
        lexicon: Optional[Lexicon] = None,
        config: Optional[AnalysisConfig] = None,
    ):
        self.lexicon = lexicon or DEFAULT_LEXICON
        self.config = config or AnalysisConfig()
        self._ignored = self.lexicon.stop_words | self.lexicon.response_markers

    def calculate_coherence(
        self,
        utterance: Optional[str],
        recent_context: Sequence[str],
    ) -> float:
        """Score one utterance in 0.0-1.0.

        Args:
            utterance: Caller utterance
            recent_context: Preceding turn texts, oldest first

        Returns:
            Coherence score; 0.5 (neutral) when there is no context or the
            utterance has no content words
        """
        words = set(content_words(utterance, self._ignored))
        context_words = set()
        for text in recent_context or ():
            context_words.update(content_words(text, self._ignored))

        if not words or not context_words:
            return NEUTRAL_COHERENCE

        overlap = words & context_words
        if overlap:
            score = OVERLAP_BASE + OVERLAP_WEIGHT * (len(overlap) / len(words))
        else:
            score = NO_OVERLAP_COHERENCE

        tokens = tokenize(utterance)
        if tokens and tokens[0] in self.lexicon.response_markers:
            score += RESPONSE_MARKER_BONUS

        return max(0.0, min(score, 1.0))
