"""Tests for key field validators."""

import pytest
from fakes import make_npub

from keywarden.core.modules.key.validators import validate_nip05, validate_npub
from keywarden.errors import ValidationError


class TestValidateNpub:
    """Tests for npub validation."""

    def test_valid(self):
        npub = make_npub(42)
        assert validate_npub(npub) == npub

    def test_surrounding_whitespace_stripped(self):
        npub = make_npub(42)
        assert validate_npub(f"  {npub}\n") == npub

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "npub1",
            "nsec1" + "q" * 58,
            "npub1" + "q" * 57,
            "npub1" + "q" * 59,
            "npub1" + "b" * 58,  # b is not in the bech32 alphabet
            "NPUB1" + "Q" * 58,
            "npub1" + "q" * 29 + " " + "q" * 28,
        ],
    )
    def test_invalid(self, value):
        with pytest.raises(ValidationError, match="Invalid public key format"):
            validate_npub(value)


class TestValidateNip05:
    """Tests for NIP-05 identifiers."""

    def test_lowercased(self):
        assert validate_nip05("Alice@Example.COM") == "alice@example.com"

    def test_root_identifier(self):
        assert validate_nip05("_@example.com") == "_@example.com"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_is_absent(self, value):
        assert validate_nip05(value) is None

    @pytest.mark.parametrize("value", ["alice", "@example.com", "alice@", "alice@localhost", "al ice@example.com"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_nip05(value)
