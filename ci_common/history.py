"""
Per-job build history and the upstream dependency view over it.

The in-memory history is append-only: each job's builds are held in an
immutable tuple that is replaced (never mutated) when a build is appended.
Readers grab the current tuple and work on that snapshot, so resolution
never has to lock against the build executor appending new records.
"""

import bisect
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from .models import BuildRecord, BuildRef

logger = logging.getLogger(__name__)


def _build_number(build: BuildRecord) -> int:
    return build.number


class JobHistory(ABC):
    """Read-only queries over the ordered build history of each job."""

    @abstractmethod
    def last_successful_before(self, job: str, number: int) -> BuildRecord | None:
        """
        Find the anchor build for a job.

        Args:
            job: Job name
            number: Build number to look before (exclusive)

        Returns:
            The SUCCESS build with the greatest number strictly below
            ``number``, or None if there is none
        """

    @abstractmethod
    def builds_between(self, job: str, after: int, upto: int) -> list[BuildRecord]:
        """
        List builds of a job with number in ``(after, upto]``, ascending.
        """

    @abstractmethod
    def get_build(self, ref: BuildRef) -> BuildRecord | None:
        """Look up a single build, None if unknown or rotated out."""


class DependencyGraph(ABC):
    """Resolves the upstream builds that caused a given build."""

    @abstractmethod
    def causes_of(self, build: BuildRecord) -> list[BuildRecord]:
        pass


class InMemoryJobHistory(JobHistory):
    """
    Thread-safe append-only job history.

    Appends are serialized by a lock; reads are lock-free against the
    snapshot tuple current at the time of the call.

    Each job keeps the highest build number it has ever seen. Rotation drops
    records but never lowers that mark, so a number is never handed out
    twice and old upstream cause refs cannot point at a newer build.
    """

    def __init__(
        self,
        builds: Iterable[BuildRecord] = (),
        last_numbers: Mapping[str, int] | None = None,
    ):
        self._lock = threading.Lock()
        self._builds: dict[str, tuple[BuildRecord, ...]] = {}
        self._last_number: dict[str, int] = {}
        for build in sorted(builds, key=lambda b: (b.job, b.number)):
            self.append(build)
        # Marks of builds that were pruned before this history was loaded
        for job, number in (last_numbers or {}).items():
            self._last_number[job] = max(number, self.last_number(job))

    def _snapshot(self, job: str) -> tuple[BuildRecord, ...]:
        return self._builds.get(job, ())

    def last_number(self, job: str) -> int:
        """Highest build number ever appended to ``job``, 0 if none."""
        return self._last_number.get(job, 0)

    def append(self, build: BuildRecord) -> None:
        """
        Append a completed build to its job's history.

        Raises:
            ValueError: If the build number is not greater than every number
                the job has used before, including rotated builds
        """
        with self._lock:
            last = self._last_number.get(build.job, 0)
            if build.number <= last:
                raise ValueError(
                    f"Build {build} is not newer than {build.job}#{last}"
                )
            self._builds[build.job] = self._builds.get(build.job, ()) + (build,)
            self._last_number[build.job] = build.number

    def rotate(self, job: str, keep: int) -> int:
        """
        Drop all but the newest ``keep`` builds of a job.

        Returns:
            Number of builds discarded
        """
        if keep < 0:
            raise ValueError("keep must not be negative")

        with self._lock:
            current = self._builds.get(job, ())
            if len(current) <= keep:
                return 0
            retained = current[len(current) - keep :] if keep else ()
            self._builds[job] = retained
            dropped = len(current) - len(retained)

        logger.info(f"Rotated {dropped} build(s) out of {job} history")
        return dropped

    def jobs(self) -> list[str]:
        return sorted(self._builds)

    def builds(self, job: str) -> list[BuildRecord]:
        return list(self._snapshot(job))

    def last_build(self, job: str) -> BuildRecord | None:
        snapshot = self._snapshot(job)
        return snapshot[-1] if snapshot else None

    def get_build(self, ref: BuildRef) -> BuildRecord | None:
        snapshot = self._snapshot(ref.job)
        index = bisect.bisect_left(snapshot, ref.number, key=_build_number)
        if index < len(snapshot) and snapshot[index].number == ref.number:
            return snapshot[index]
        return None

    def last_successful_before(self, job: str, number: int) -> BuildRecord | None:
        snapshot = self._snapshot(job)
        end = bisect.bisect_left(snapshot, number, key=_build_number)
        for build in reversed(snapshot[:end]):
            if build.is_success:
                return build
        return None

    def builds_between(self, job: str, after: int, upto: int) -> list[BuildRecord]:
        snapshot = self._snapshot(job)
        start = bisect.bisect_right(snapshot, after, key=_build_number)
        end = bisect.bisect_right(snapshot, upto, key=_build_number)
        return list(snapshot[start:end])


class HistoryDependencyGraph(DependencyGraph):
    """Dependency view that resolves upstream cause refs through a history."""

    def __init__(self, history: JobHistory):
        self.history = history

    def causes_of(self, build: BuildRecord) -> list[BuildRecord]:
        causes = []
        for ref in build.upstream_causes:
            cause = self.history.get_build(ref)
            if cause is None:
                # Rotated out or never recorded
                logger.debug(f"Upstream cause {ref} of {build} is not in history")
                continue
            causes.append(cause)
        return causes
