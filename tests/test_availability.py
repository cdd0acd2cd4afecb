"""Tests for the availability checker and the site locator."""

from __future__ import annotations

import pytest

from sitehost.domains.availability import AvailabilityChecker
from sitehost.domains.locator import SiteLocator
from sitehost.domains.names import NameScope
from sitehost.storage.models import Site, User


def make_user(username: str, subdomain: str, slugs=(), extension: str = ".app") -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash="x",
        domain_extension=extension,
        subdomain=subdomain,
    )
    user.sites = [Site(name=slug.title(), slug=slug) for slug in slugs]
    return user


@pytest.fixture
def users() -> list[User]:
    return [
        make_user("alice", "alice-happyfox1.app", ["portfolio", "blog"]),
        make_user("bob", "bob-calmriver2.cloud", ["shop"], extension=".cloud"),
    ]


class TestAvailabilityChecker:
    """Tests for AvailabilityChecker."""

    def test_subdomain_taken(self, users):
        checker = AvailabilityChecker(users)
        assert checker.is_subdomain_available("alice-happyfox1.app", ".app") is False
        assert checker.is_subdomain_available("alice-happyfox9.app", ".app") is True

    def test_subdomain_label_taken_across_extensions(self, users):
        """The hostname label must be free even under a different extension."""
        checker = AvailabilityChecker(users)
        assert checker.is_subdomain_available("alice-happyfox1.cloud", ".cloud") is False

    def test_subdomain_conflicts_with_slug_in_both_scopes(self, users):
        assert AvailabilityChecker(users).is_subdomain_available("portfolio.app", ".app") is False
        per_user = AvailabilityChecker(users, unique_slugs_globally=False)
        assert per_user.is_subdomain_available("portfolio.app", ".app") is False

    def test_slug_global_scope(self, users):
        checker = AvailabilityChecker(users)
        assert checker.is_slug_available("portfolio") is False
        assert checker.is_slug_available("shop", users[0]) is False
        assert checker.is_slug_available("bob-calmriver2") is False
        assert checker.is_slug_available("gallery") is True

    def test_slug_per_user_scope(self, users):
        checker = AvailabilityChecker(users, unique_slugs_globally=False)
        assert checker.is_slug_available("portfolio", users[0]) is False
        assert checker.is_slug_available("portfolio", users[1]) is True

    def test_slug_per_user_scope_rejects_user_labels(self, users):
        """A slug may not shadow any user's hostname label."""
        checker = AvailabilityChecker(users, unique_slugs_globally=False)
        assert checker.is_slug_available("alice-happyfox1", users[1]) is False
        assert checker.is_slug_available("bob-calmriver2", users[1]) is False

    def test_slug_per_user_scope_needs_user(self, users):
        checker = AvailabilityChecker(users, unique_slugs_globally=False)
        with pytest.raises(ValueError):
            checker.is_slug_available("portfolio")

    def test_accepts_mapping(self, users):
        checker = AvailabilityChecker({user.id: user for user in users})
        assert checker.is_available("blog", NameScope.SLUG) is False
        assert checker.is_available("bob-calmriver2.cloud", NameScope.SUBDOMAIN, extension=".cloud") is False

    def test_reads_state_at_call_time(self, users):
        checker = AvailabilityChecker(users)
        assert checker.is_slug_available("gallery") is True
        users[1].sites.append(Site(name="Gallery", slug="gallery"))
        assert checker.is_slug_available("gallery") is False

    def test_predicate(self, users):
        predicate = AvailabilityChecker(users).predicate(NameScope.SUBDOMAIN, extension=".app")
        assert predicate("alice-happyfox1.app") is False
        assert predicate("carol-boldhawk3.app") is True

    def test_username_and_email(self, users):
        checker = AvailabilityChecker(users)
        assert checker.is_username_available("ALICE") is False
        assert checker.is_username_available("carol") is True
        assert checker.is_email_available("Bob@Example.com") is False


class TestSiteLocator:
    """Tests for SiteLocator."""

    def test_locate_by_slug(self, users):
        located = SiteLocator(users).locate("shop")
        assert located is not None
        assert located.user.username == "bob"
        assert located.site.slug == "shop"

    def test_locate_case_insensitive(self, users):
        assert SiteLocator(users).locate("Portfolio").site.slug == "portfolio"

    def test_locate_miss(self, users):
        assert SiteLocator(users).locate("missing") is None

    def test_locate_skips_unpublished(self, users):
        users[0].sites[0].published = False
        assert SiteLocator(users).locate("portfolio") is None

    def test_first_match_in_registry_order(self, users):
        users[1].sites.append(Site(name="Blog", slug="blog"))
        assert SiteLocator(users).locate("blog").user.username == "alice"
        assert SiteLocator(list(reversed(users))).locate("blog").user.username == "bob"

    def test_locate_owner(self, users):
        assert SiteLocator(users).locate_owner("bob-calmriver2").username == "bob"
        assert SiteLocator(users).locate_owner("bob-calmriver2.cloud") is None

    def test_locate_for_user(self, users):
        locator = SiteLocator(users)
        assert locator.locate_for_user(users[0], "blog").site.slug == "blog"
        assert locator.locate_for_user(users[0], "shop") is None

    def test_locate_custom_domain_requires_verification(self, users):
        site = users[0].sites[0]
        site.custom_domain = "www.alice.dev"
        locator = SiteLocator(users)
        assert locator.locate_custom_domain("www.alice.dev") is None

        site.custom_domain_verified = True
        assert locator.locate_custom_domain("www.alice.dev").site is site
