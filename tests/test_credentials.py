"""Tests for vaultward.auth.credentials."""

from __future__ import annotations

import pytest

from vaultward.auth import credentials


class TestVerifierHash:
    def test_roundtrip(self):
        stored = credentials.hash_verifier("correct horse")
        assert stored.startswith("pbkdf2_sha256$1000$")
        assert credentials.verify_verifier("correct horse", stored)
        assert not credentials.verify_verifier("correct horse!", stored)

    def test_salted(self):
        assert credentials.hash_verifier("same") != credentials.hash_verifier("same")

    def test_explicit_iterations_and_salt(self):
        a = credentials.hash_verifier("pw", iterations=10, salt=b"0" * 16)
        b = credentials.hash_verifier("pw", iterations=10, salt=b"0" * 16)
        assert a == b
        assert a.split("$")[1] == "10"

    @pytest.mark.parametrize(
        "stored",
        [None, "", "plaintext", "md5$1$abc$def", "pbkdf2_sha256$notanint$AAAA$AAAA", "pbkdf2_sha256$1$%%%$AAAA"],
    )
    def test_malformed_hash_never_verifies(self, stored):
        assert credentials.verify_verifier("anything", stored) is False

    def test_dummy_verify_is_always_false(self):
        assert credentials.dummy_verify("correct horse") is False


class TestTokens:
    def test_new_tokens_are_unique(self):
        assert credentials.new_token() != credentials.new_token()

    def test_token_length_follows_config(self):
        assert len(credentials.new_token()) >= 40

    def test_hash_token_is_sha256_hex(self):
        digest = credentials.hash_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
