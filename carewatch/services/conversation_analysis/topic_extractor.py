"""Topic extraction for topic analysis and redirection outcomes."""
from typing import Dict, List, Optional

from .config import DEFAULT_LEXICON, Lexicon
from .text_normalizer import compile_phrases, normalize_text


class TopicExtractor:
    """Keyword categorisation of turns (family, health, memories, ...)."""

    def __init__(self, lexicon: Optional[Lexicon] = None):
        self.lexicon = lexicon or DEFAULT_LEXICON
        self._categories = {
            category: compile_phrases(keywords)
            for category, keywords in self.lexicon.topic_categories.items()
        }

    def identify_topics(self, text: Optional[str]) -> Dict[str, List[str]]:
        """Map each matching topic category to its matched keywords.

        Keywords are returned sorted; categories with no match are omitted.
        """
        normalized = normalize_text(text)
        if not normalized:
            return {}

        topics = {}
        for category, patterns in self._categories.items():
            found = sorted(phrase for regex, phrase in patterns if regex.search(normalized))
            if found:
                topics[category] = found
        return topics

    def primary_topic(self, text: Optional[str]) -> Optional[str]:
        """Category with the most keyword hits (first declared wins ties)."""
        topics = self.identify_topics(text)
        if not topics:
            return None
        return max(topics, key=lambda category: len(topics[category]))
