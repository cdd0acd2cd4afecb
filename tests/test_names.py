"""Tests for name generation and format rules."""

from __future__ import annotations

import random
import re
from unittest.mock import MagicMock

import pytest

from sitehost.domains.names import (
    ADJECTIVES,
    NOUNS,
    RESERVED_WORDS,
    NameGenerator,
    NameScope,
    is_valid_label,
    validate_domain_name,
    validate_label,
    validate_slug,
    validate_subdomain,
    validate_username,
)
from sitehost.errors import GenerationExhausted, InvalidFormat


def fixed_rng(number: int = 42) -> MagicMock:
    """Random source that always picks the first word and the same number."""
    rng = MagicMock()
    rng.choice.side_effect = lambda seq: seq[0]
    rng.randint.return_value = number
    return rng


class TestFormatRules:
    """Tests for label, username and domain validation."""

    @pytest.mark.parametrize("label", ["abc", "my-site", "a1b2c3", "x" * 63])
    def test_valid_labels(self, label):
        assert is_valid_label(label) is True

    @pytest.mark.parametrize("label", ["ab", "-abc", "abc-", "ABC", "a_b", "a.b", "x" * 64, "www", "api"])
    def test_invalid_labels(self, label):
        assert is_valid_label(label) is False

    def test_reserved_words(self):
        for word in RESERVED_WORDS:
            with pytest.raises(InvalidFormat, match="reserved"):
                validate_label(word)

    def test_validate_slug_lowercases(self):
        assert validate_slug("  Portfolio ") == "portfolio"

    def test_validate_slug_message(self):
        with pytest.raises(InvalidFormat, match="Site URL"):
            validate_slug("a")

    @pytest.mark.parametrize("username", ["bob", "Alice_99", "a-b-c", "x" * 30])
    def test_valid_usernames(self, username):
        assert validate_username(username) == username

    @pytest.mark.parametrize("username", ["ab", "x" * 31, "has space", "dot.ted", "admin"])
    def test_invalid_usernames(self, username):
        with pytest.raises(InvalidFormat):
            validate_username(username)

    def test_validate_subdomain(self):
        assert validate_subdomain("Alice-Fox1.app", ".app") == "alice-fox1.app"
        with pytest.raises(InvalidFormat, match="must end with"):
            validate_subdomain("alice-fox1.cloud", ".app")
        with pytest.raises(InvalidFormat):
            validate_subdomain("-bad.app", ".app")

    def test_validate_domain_name(self):
        assert validate_domain_name("WWW.Example.com.") == "www.example.com"
        for bad in ("localhost", "example", "exa mple.com", "-a.com"):
            with pytest.raises(InvalidFormat):
                validate_domain_name(bad)


class TestNameGenerator:
    """Tests for NameGenerator."""

    def test_make_prefix(self):
        generator = NameGenerator()
        assert generator.make_prefix("Alice_Smith!", NameScope.SUBDOMAIN) == "alicesmith"
        assert generator.make_prefix("x" * 40, NameScope.SLUG) == "x" * 20
        assert generator.make_prefix("!!!", NameScope.SUBDOMAIN) == "user"
        assert generator.make_prefix("", NameScope.SLUG) == "site"

    def test_generate_format(self):
        generator = NameGenerator(rng=random.Random(7))
        for _ in range(50):
            name = generator.generate("alice", NameScope.SUBDOMAIN, ".app")
            assert re.fullmatch(r"alice-[a-z]+\d{1,4}\.app", name)
            assert is_valid_label(name[: -len(".app")])

    def test_generate_uses_word_lists(self):
        name = NameGenerator(rng=fixed_rng(7)).generate("My Portfolio", NameScope.SLUG)
        assert name == f"myportfolio-{ADJECTIVES[0]}{NOUNS[0]}7"

    def test_generate_unique_first_candidate(self):
        generator = NameGenerator(rng=fixed_rng())
        name = generator.generate_unique("alice", NameScope.SUBDOMAIN, lambda c: True, ".app")
        assert name == f"alice-{ADJECTIVES[0]}{NOUNS[0]}42.app"

    def test_generate_unique_suffix_before_extension(self):
        base = f"alice-{ADJECTIVES[0]}{NOUNS[0]}42"
        taken = {f"{base}.app", f"{base}-1.app"}
        generator = NameGenerator(rng=fixed_rng())

        name = generator.generate_unique(
            "alice", NameScope.SUBDOMAIN, lambda c: c not in taken, ".app"
        )
        assert name == f"{base}-2.app"

    def test_generate_unique_never_returns_taken(self):
        generator = NameGenerator(rng=random.Random(1))
        taken: set[str] = set()
        for _ in range(25):
            name = generator.generate_unique("site", NameScope.SLUG, lambda c: c not in taken)
            assert name not in taken
            taken.add(name)

    def test_generate_unique_exhausted(self):
        generator = NameGenerator(max_attempts=5, rng=fixed_rng())
        predicate = MagicMock(return_value=False)

        with pytest.raises(GenerationExhausted) as exc_info:
            generator.generate_unique("alice", NameScope.SUBDOMAIN, predicate, ".app")

        assert exc_info.value.attempts == 5
        assert exc_info.value.status == 503
        assert predicate.call_count == 5
