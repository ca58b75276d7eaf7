"""Tests for text normalization and edit-distance similarity."""
import pytest

from carewatch.services.conversation_analysis.similarity import (
    levenshtein_distance,
    max_similarity,
    similarity,
)
from carewatch.services.conversation_analysis.text_normalizer import (
    compile_phrase,
    content_words,
    fingerprint,
    normalize_text,
    stem,
)


class TestNormalization:

    def test_lowercase_and_whitespace(self):
        assert normalize_text("  Where   IS Ryan? ") == "where is ryan?"

    def test_typographic_apostrophe(self):
        assert normalize_text("I don’t know") == "i don't know"

    def test_non_string_is_empty(self):
        assert normalize_text(None) == ""
        assert normalize_text(42) == ""

    def test_fingerprint_drops_punctuation(self):
        assert fingerprint("Where is Ryan?") == fingerprint("where is ryan")

    def test_stem_keeps_short_words(self):
        assert stem("walking") == "walk"
        assert stem("dogs") == "dog"
        assert stem("is") == "is"
        assert stem("yes") == "yes"

    def test_content_words_remove_stop_words(self):
        assert content_words("I loved the dog", frozenset({"the"})) == ["lov", "dog"]

    def test_phrase_with_digits_matches(self):
        assert compile_phrase("911").search("call 911 now")

    def test_phrase_with_apostrophe_matches(self):
        assert compile_phrase("can't remember").search("i can't remember")

    def test_phrase_respects_word_boundaries(self):
        assert not compile_phrase("pain").search("painting class")


class TestLevenshteinDistance:

    def test_identical(self):
        assert levenshtein_distance("abc", "abc") == 0

    def test_empty_operand(self):
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "") == 3

    def test_classic_examples(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("flaw", "lawn") == 2


class TestSimilarity:

    def test_identical_is_one(self):
        assert similarity("Where is Ryan?", "Where is Ryan?") == 1.0

    def test_case_and_whitespace_insensitive(self):
        assert similarity("Hello", "  hello ") == 1.0

    def test_empty_is_zero(self):
        assert similarity("", "hello") == 0.0
        assert similarity("hello", "") == 0.0
        assert similarity("", "") == 0.0

    def test_symmetric(self):
        assert similarity("kitten", "sitting") == similarity("sitting", "kitten")
        assert similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_unrelated_text_is_low(self):
        assert similarity("Where is Ryan?", "The purple elephant flies at midnight") < 0.5

    def test_bounded(self):
        score = similarity("How are you today?", "How are you doing today?")
        assert 0.0 <= score <= 1.0

    def test_max_similarity(self):
        assert max_similarity("hello", ["help", "hello"]) == 1.0
        assert max_similarity("hello", []) == 0.0
