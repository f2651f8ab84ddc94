"""
Recipient report shared by the HTTP service and the admin CLI.
"""

from dataclasses import dataclass, field
from typing import Any

from ci_common.history import JobHistory
from ci_common.models import BuildRecord, Identity

from .formatter import IdentityResolver, RecipientFormatter
from .providers import build_providers, collect_recipients


@dataclass
class RecipientReport:
    """Outcome of resolving recipients for one triggering build."""

    build: BuildRecord
    anchor: BuildRecord | None
    providers: list[str]
    identities: list[Identity] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert report to dictionary format (for API responses)."""
        return {
            "job": self.build.job,
            "number": self.build.number,
            "outcome": self.build.outcome.value,
            "anchor": self.anchor.number if self.anchor else None,
            "providers": self.providers,
            "identities": [identity.to_dict() for identity in self.identities],
            "recipients": self.recipients,
        }


def build_report(
    history: JobHistory,
    build: BuildRecord,
    provider_names: list[str],
    resolver: IdentityResolver,
) -> RecipientReport:
    """
    Resolve identities with the named providers and format their addresses.

    Raises:
        ValueError: If a provider name is unknown
    """
    providers = build_providers(provider_names, history)
    identities = collect_recipients(providers, build)
    return RecipientReport(
        build=build,
        anchor=history.last_successful_before(build.job, build.number),
        providers=list(provider_names),
        identities=sorted(identities, key=lambda identity: identity.address),
        recipients=RecipientFormatter(resolver).format(identities),
    )
