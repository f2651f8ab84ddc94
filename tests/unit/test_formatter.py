"""
Unit tests for ci_recipients.formatter.

Tests identity-to-address resolution and recipient list formatting.
"""

from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from ci_common.models import Identity, User
from ci_recipients.formatter import (
    DirectoryIdentityResolver,
    EmailAddressResolver,
    RecipientFormatter,
    validate_email,
)


def make_user(name, email, is_active=True):
    return User(
        id=f"id-{email}",
        name=name,
        email=email,
        created_at=datetime.now(UTC),
        is_active=is_active,
    )


class TestValidateEmail:
    @pytest.mark.parametrize(
        "email", ["jane@example.com", "j.doe+ci@mail.example.org", "a_b@x.io"]
    )
    def test_valid(self, email):
        assert validate_email(email)

    @pytest.mark.parametrize("email", ["jdoe", "jane@", "@example.com", "jane@localhost"])
    def test_invalid(self, email):
        assert not validate_email(email)


class TestEmailAddressResolver:
    """Test suite for EmailAddressResolver."""

    def test_valid_address_passes_through(self):
        resolver = EmailAddressResolver()

        assert resolver.resolve(Identity("Jane", "jane@example.com")) == "jane@example.com"

    def test_bare_user_id_without_domain_is_unresolvable(self):
        assert EmailAddressResolver().resolve(Identity("jdoe", "jdoe")) is None

    def test_bare_user_id_gets_default_domain(self):
        resolver = EmailAddressResolver(default_domain="@example.com")

        assert resolver.resolve(Identity("jdoe", "jdoe")) == "jdoe@example.com"

    def test_default_domain_not_applied_to_full_address(self):
        resolver = EmailAddressResolver(default_domain="example.com")

        assert resolver.resolve(Identity("Jane", "jane@corp.org")) == "jane@corp.org"


class TestDirectoryIdentityResolver:
    """Test suite for DirectoryIdentityResolver."""

    def test_match_by_email_case_insensitive(self):
        resolver = DirectoryIdentityResolver([make_user("Jane Doe", "jane@example.com")])

        assert resolver.resolve(Identity("J", "JANE@example.com")) == "jane@example.com"

    def test_match_by_display_name(self):
        resolver = DirectoryIdentityResolver([make_user("Jane Doe", "jane@example.com")])

        assert resolver.resolve(Identity("Jane Doe", "jdoe")) == "jane@example.com"

    def test_inactive_user_is_undeliverable(self):
        resolver = DirectoryIdentityResolver(
            [make_user("Jane Doe", "jane@example.com", is_active=False)],
            fallback=EmailAddressResolver(),
        )

        assert resolver.resolve(Identity("Jane", "jane@example.com")) is None

    def test_unknown_identity_uses_fallback(self):
        resolver = DirectoryIdentityResolver([], fallback=EmailAddressResolver())

        assert resolver.resolve(Identity("Bob", "bob@example.com")) == "bob@example.com"

    def test_unknown_identity_without_fallback(self):
        resolver = DirectoryIdentityResolver([])

        assert resolver.resolve(Identity("Bob", "bob@example.com")) is None


class TestRecipientFormatter:
    """Test suite for RecipientFormatter."""

    def test_sorted_and_deduplicated(self):
        formatter = RecipientFormatter(EmailAddressResolver())
        identities = [
            Identity("Zed", "zed@example.com"),
            Identity("Amy", "amy@example.com"),
            Identity("Amy Upper", "AMY@example.com"),
        ]

        assert formatter.format(identities) == ["amy@example.com", "zed@example.com"]

    def test_unresolvable_identities_dropped(self):
        formatter = RecipientFormatter(EmailAddressResolver())
        identities = [Identity("jdoe", "jdoe"), Identity("Jane", "jane@example.com")]

        assert formatter.format(identities) == ["jane@example.com"]

    def test_resolver_error_drops_only_that_identity(self):
        def resolve(identity):
            if identity.address == "bad@example.com":
                raise RuntimeError("directory down")
            return identity.address

        resolver = Mock()
        resolver.resolve.side_effect = resolve
        formatter = RecipientFormatter(resolver)

        result = formatter.format(
            [Identity("Bad", "bad@example.com"), Identity("Good", "good@example.com")]
        )

        assert result == ["good@example.com"]

    def test_empty_input(self):
        assert RecipientFormatter(EmailAddressResolver()).format([]) == []

    def test_accepts_any_iterable(self):
        formatter = RecipientFormatter(EmailAddressResolver())
        gen = (Identity(n, f"{n}@example.com") for n in ["b", "a"])

        assert formatter.format(gen) == ["a@example.com", "b@example.com"]
