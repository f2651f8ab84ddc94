"""
Mapping of contributor identities to deliverable e-mail addresses.

Identity resolution is supplied by the host. Identities that cannot be
mapped to an address are dropped so that one unknown contributor never
blocks the rest of a notification.
"""

import logging
import re
from collections.abc import Iterable
from typing import Protocol

from ci_common.models import Identity, User

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_email(email: str) -> bool:
    """Validate email format."""
    return EMAIL_PATTERN.match(email) is not None


class IdentityResolver(Protocol):
    def resolve(self, identity: Identity) -> str | None:
        """Return a deliverable address for ``identity``, or None."""
        ...


class EmailAddressResolver:
    """
    Uses the identity's own address when it is a valid e-mail.

    Bare user ids (no ``@``) get ``default_domain`` appended when one is
    configured, e.g. ``jdoe`` -> ``jdoe@example.com``.
    """

    def __init__(self, default_domain: str | None = None):
        self.default_domain = default_domain.lstrip("@") if default_domain else None

    def resolve(self, identity: Identity) -> str | None:
        address = identity.address.strip()
        if "@" not in address and self.default_domain:
            address = f"{address}@{self.default_domain}"
        return address if validate_email(address) else None


class DirectoryIdentityResolver:
    """
    Resolves identities against the registered user address book.

    Identities are matched by e-mail first, then by display name. Inactive
    users are undeliverable. Identities with no matching user are passed to
    the fallback resolver, if any.
    """

    def __init__(
        self, users: Iterable[User], fallback: IdentityResolver | None = None
    ):
        self.fallback = fallback
        self._by_email: dict[str, User] = {}
        self._by_name: dict[str, User] = {}
        for user in users:
            self._by_email[user.email.lower()] = user
            self._by_name.setdefault(user.name.lower(), user)

    def resolve(self, identity: Identity) -> str | None:
        user = self._by_email.get(identity.address.lower()) or self._by_name.get(
            identity.name.lower()
        )
        if user is not None:
            return user.email if user.is_active else None
        if self.fallback is not None:
            return self.fallback.resolve(identity)
        return None


class RecipientFormatter:
    """Turns a set of identities into an ordered list of recipient addresses."""

    def __init__(self, resolver: IdentityResolver):
        self.resolver = resolver

    def format(self, identities: Iterable[Identity]) -> list[str]:
        """
        Resolve, deduplicate and sort recipient addresses.

        Args:
            identities: Contributors to notify

        Returns:
            Sorted list of unique addresses; unresolvable identities are
            omitted
        """
        addresses: dict[str, str] = {}
        for identity in identities:
            try:
                address = self.resolver.resolve(identity)
            except Exception as e:
                logger.warning(f"Failed to resolve address for {identity}: {e}")
                continue

            if not address:
                logger.debug(f"No deliverable address for {identity}, skipping")
                continue

            addresses.setdefault(address.lower(), address)

        return [addresses[key] for key in sorted(addresses)]
