"""
Committer window resolution.

Given the build that fired a notification, finds every contributor whose
change went into any build of the same job since its last successful build,
following upstream causes for builds without changes of their own.
"""

import logging

from ci_common.history import DependencyGraph, HistoryDependencyGraph, JobHistory
from ci_common.models import BuildRecord, Identity

from .upstream import UpstreamCollector

logger = logging.getLogger(__name__)


class CommitterWindowResolver:
    """
    Resolves upstream committers since the job's last successful build.

    The window runs from the anchor (exclusive) to the triggering build
    (inclusive). The anchor is looked up on every call, so once a later build
    succeeds, earlier contributors drop out of the next window.
    """

    name = "upstream-committers-since-last-success"

    def __init__(self, history: JobHistory, graph: DependencyGraph | None = None):
        self.history = history
        self.collector = UpstreamCollector(graph or HistoryDependencyGraph(history))

    def window_for(self, build: BuildRecord) -> tuple[BuildRecord | None, list[BuildRecord]]:
        """
        Compute the anchor and the window of builds for a triggering build.

        Returns:
            Tuple of (anchor, window). The window is empty when there is no
            anchor.
        """
        anchor = self.history.last_successful_before(build.job, build.number)
        if anchor is None:
            return None, []

        window = self.history.builds_between(build.job, anchor.number, build.number)
        # The host may notify before it has appended the triggering build
        if not window or window[-1].number != build.number:
            window.append(build)
        return anchor, window

    def recipients_for(self, build: BuildRecord) -> set[Identity]:
        """
        Resolve the contributors to notify for a triggering build.

        Args:
            build: The build whose completion triggered the notification

        Returns:
            Set of identities, deduplicated by address. Empty when the job has
            no successful build before ``build``.
        """
        anchor, window = self.window_for(build)
        if anchor is None:
            logger.debug(
                f"No successful build of {build.job} before #{build.number}; "
                "no committers to notify"
            )
            return set()

        identities: set[Identity] = set()
        for windowed in window:
            for origin in self.collector.origins_of(windowed):
                identities.update(origin.change_set)

        logger.debug(
            f"Resolved {len(identities)} committer(s) for {build} "
            f"over {len(window)} build(s) since {anchor}"
        )
        return identities
