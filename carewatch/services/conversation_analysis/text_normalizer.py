"""Text normalization shared by the scorer, matcher and trackers.

Transcripts arrive from speech-to-text and typed chat, so apostrophes,
casing and punctuation vary between turns that say the same thing.
"""
import re
from typing import FrozenSet, Iterable, List, Tuple

# Typographic apostrophes/quotes produced by transcription and mobile keyboards
_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "ʼ": "'", "`": "'"})
_NON_WORD = re.compile(r"[^\w\s']")
_WHITESPACE = re.compile(r"\s+")
_TOKEN = re.compile(r"[a-z0-9']+")

# Longest first so "ing" is tried before "s"
_SUFFIXES: Tuple[str, ...] = ("ing", "ed", "es", "s")


def normalize_text(text) -> str:
    """Lower-case, unify apostrophes and collapse whitespace.

    Non-string input is treated as empty.
    """
    if not isinstance(text, str):
        return ""
    return _WHITESPACE.sub(" ", text.translate(_APOSTROPHES).lower()).strip()


def fingerprint(text) -> str:
    """Normalized form used as the repetition-registry key.

    Punctuation is dropped so "Where is Ryan?" and "where is ryan" share a key.
    """
    stripped = _NON_WORD.sub(" ", normalize_text(text))
    return _WHITESPACE.sub(" ", stripped).strip()


def tokenize(text) -> List[str]:
    return _TOKEN.findall(normalize_text(text))


def stem(token: str) -> str:
    """Strip one common English suffix, keeping at least three characters."""
    for suffix in _SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            return token[: -len(suffix)]
    return token


def content_words(text, stop_words: FrozenSet[str]) -> List[str]:
    """Stemmed tokens with stop words and very short tokens removed."""
    return [
        stem(token)
        for token in tokenize(text)
        if token not in stop_words and len(token) > 2
    ]


def compile_phrase(phrase: str) -> "re.Pattern":
    """Word-boundary regex for a lexicon phrase.

    ``\\b`` is only applied on sides that start/end with a word character
    so phrases such as "911" and "can't" still match.
    """
    escaped = re.escape(phrase.lower())
    prefix = r"\b" if phrase[:1].isalnum() else ""
    suffix = r"\b" if phrase[-1:].isalnum() else ""
    return re.compile(f"{prefix}{escaped}{suffix}")


def compile_phrases(phrases: Iterable[str]) -> List[Tuple["re.Pattern", str]]:
    """Compile phrases longest-first for deterministic first-match order."""
    ordered = sorted(set(phrases), key=lambda p: (-len(p), p))
    return [(compile_phrase(phrase), phrase) for phrase in ordered if phrase]
