"""
Recipient providers selectable by configuration.

Each provider answers "who should hear about this build" in its own way.
Providers are plain classes sharing the ``recipients_for`` contract and are
looked up by name, so the host can configure any combination of them.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Protocol

from ci_common.history import HistoryDependencyGraph, JobHistory
from ci_common.models import BuildRecord, Identity

from .resolver import CommitterWindowResolver
from .upstream import UpstreamCollector

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS = ("upstream-committers-since-last-success",)


class RecipientProvider(Protocol):
    name: str

    def recipients_for(self, build: BuildRecord) -> set[Identity]: ...


class DevelopersProvider:
    """Contributors in the triggering build's own change set."""

    name = "developers"

    def __init__(self, history: JobHistory):
        self.history = history

    def recipients_for(self, build: BuildRecord) -> set[Identity]:
        return set(build.change_set)


class UpstreamCommittersProvider:
    """Contributors of the origin builds of the triggering build only."""

    name = "upstream-committers"

    def __init__(self, history: JobHistory):
        self.collector = UpstreamCollector(HistoryDependencyGraph(history))

    def recipients_for(self, build: BuildRecord) -> set[Identity]:
        identities: set[Identity] = set()
        for origin in self.collector.origins_of(build):
            identities.update(origin.change_set)
        return identities


class CulpritsProvider:
    """
    Contributors to the job's own builds since the last success.

    Unlike the upstream variant, culprits only looks at change sets recorded
    on the job itself. With no earlier success, only the triggering build's
    change set is used.
    """

    name = "culprits"

    def __init__(self, history: JobHistory):
        self.history = history

    def recipients_for(self, build: BuildRecord) -> set[Identity]:
        anchor = self.history.last_successful_before(build.job, build.number)
        if anchor is None:
            return set(build.change_set)

        identities = set(build.change_set)
        for windowed in self.history.builds_between(
            build.job, anchor.number, build.number
        ):
            identities.update(windowed.change_set)
        return identities


PROVIDERS: dict[str, Callable[[JobHistory], RecipientProvider]] = {
    CommitterWindowResolver.name: CommitterWindowResolver,
    UpstreamCommittersProvider.name: UpstreamCommittersProvider,
    DevelopersProvider.name: DevelopersProvider,
    CulpritsProvider.name: CulpritsProvider,
}


def parse_provider_names(value: str | None) -> list[str]:
    """
    Split a comma-separated provider list, falling back to the defaults.

    Unknown names are logged and skipped so that a typo in configuration
    does not silence every notification.
    """
    if not value:
        return list(DEFAULT_PROVIDERS)

    names = []
    for raw in value.split(","):
        name = raw.strip()
        if not name:
            continue
        if name not in PROVIDERS:
            logger.warning(f"Ignoring unknown recipient provider: {name}")
            continue
        if name not in names:
            names.append(name)

    if not names:
        logger.warning(
            f"No valid recipient providers in {value!r}, using "
            f"{', '.join(DEFAULT_PROVIDERS)}"
        )
        return list(DEFAULT_PROVIDERS)
    return names


def build_providers(
    names: Iterable[str], history: JobHistory
) -> list[RecipientProvider]:
    """
    Instantiate providers by name over a job history.

    Raises:
        ValueError: If a name is not a registered provider
    """
    providers = []
    for name in names:
        factory = PROVIDERS.get(name)
        if factory is None:
            raise ValueError(
                f"Unknown recipient provider: {name} "
                f"(choose from {', '.join(sorted(PROVIDERS))})"
            )
        providers.append(factory(history))
    return providers


def collect_recipients(
    providers: Iterable[RecipientProvider], build: BuildRecord
) -> set[Identity]:
    """
    Union the identities of several providers for one build.

    A provider that fails is logged and skipped; the others still
    contribute, so a notification is never aborted by resolution errors.
    """
    identities: set[Identity] = set()
    for provider in providers:
        try:
            identities.update(provider.recipients_for(build))
        except Exception as e:
            logger.error(
                f"Recipient provider {provider.name} failed for {build}: {e}",
                exc_info=True,
            )
    return identities
