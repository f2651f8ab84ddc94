"""
Upstream origin collection.

A downstream job usually has no SCM of its own, so the contributors of one of
its builds are whoever contributed to the upstream build(s) that triggered
it. The collector follows upstream causes until it reaches builds that carry
a change set of their own.
"""

import logging
from collections.abc import Iterator

from ci_common.history import DependencyGraph
from ci_common.models import BuildRecord, BuildRef

logger = logging.getLogger(__name__)


class UpstreamCollector:
    """
    Finds the origin builds whose change sets account for a given build.

    The walk is iterative and keeps an explicit visited set per call, so a
    malformed (cyclic) cause graph cannot loop forever or exhaust the stack.
    """

    def __init__(self, graph: DependencyGraph):
        self.graph = graph

    def origins_of(self, build: BuildRecord) -> set[BuildRecord]:
        """
        Collect the origin builds for ``build``.

        Args:
            build: Build to resolve

        Returns:
            ``{build}`` if it has its own change set, otherwise the union of
            the origins of its upstream causes (empty for a build started
            manually with no changes)
        """
        if build.change_set:
            return {build}

        origins: set[BuildRecord] = set()
        finished: set[BuildRef] = set()
        on_path: set[BuildRef] = {build.ref}
        stack: list[tuple[BuildRecord, Iterator[BuildRecord]]] = [
            (build, iter(self.graph.causes_of(build)))
        ]

        while stack:
            current, causes = stack[-1]
            cause = next(causes, None)

            if cause is None:
                stack.pop()
                on_path.discard(current.ref)
                finished.add(current.ref)
                continue

            ref = cause.ref
            if ref in on_path:
                logger.warning(
                    f"Upstream cause cycle detected: {current} -> {cause} "
                    f"while resolving {build}; ignoring the cyclic edge"
                )
                continue
            if ref in finished:
                # Diamond fan-in, already accounted for
                continue

            if cause.change_set:
                origins.add(cause)
                finished.add(ref)
                continue

            on_path.add(ref)
            stack.append((cause, iter(self.graph.causes_of(cause))))

        names = ", ".join(str(origin.ref) for origin in sorted(origins, key=_ref_of))
        logger.debug(f"Origins of {build}: {names or '(none)'}")
        return origins


def _ref_of(build: BuildRecord) -> BuildRef:
    return build.ref
