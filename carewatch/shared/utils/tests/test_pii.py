"""Tests for PII hashing helpers."""
import pytest

from carewatch.shared.utils import configure_pii_salt, hash_pii, hash_text_for_audit
from carewatch.shared.utils import pii


TEST_SALT = "test_salt_that_is_at_least_32_characters_long"


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt(TEST_SALT)


class TestConfigurePiiSalt:

    def test_short_salt_raises(self):
        with pytest.raises(ValueError):
            configure_pii_salt("too_short")

    def test_empty_salt_raises(self):
        with pytest.raises(ValueError):
            configure_pii_salt("")


class TestHashPii:

    def test_hash_is_deterministic(self):
        assert hash_pii("CA1234567890") == hash_pii("CA1234567890")

    def test_hash_differs_per_value(self):
        assert hash_pii("CA1") != hash_pii("CA2")

    def test_hash_is_hex_sha256(self):
        digest = hash_pii("CA1234567890")
        assert len(digest) == 64
        int(digest, 16)

    def test_hash_does_not_contain_value(self):
        assert "CA1234567890" not in hash_pii("CA1234567890")

    def test_salt_changes_hash(self):
        before = hash_pii("CA1234567890")
        configure_pii_salt("another_salt_that_is_also_32_characters_long")
        assert hash_pii("CA1234567890") != before

    def test_unconfigured_salt_raises(self, monkeypatch):
        monkeypatch.setattr(pii, "_PII_SALT", None)
        with pytest.raises(RuntimeError):
            hash_pii("CA1234567890")


class TestHashTextForAudit:

    def test_fingerprint_length(self):
        assert len(hash_text_for_audit("Where is Ryan?")) == 16

    def test_same_text_same_fingerprint(self):
        assert hash_text_for_audit("Where is Ryan?") == hash_text_for_audit("Where is Ryan?")

    def test_none_treated_as_empty(self):
        assert hash_text_for_audit(None) == hash_text_for_audit("")

    def test_does_not_need_salt(self, monkeypatch):
        monkeypatch.setattr(pii, "_PII_SALT", None)
        assert hash_text_for_audit("hello")
