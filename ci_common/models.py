"""
Data models for build notification resolution.

These models represent the domain objects used throughout the application,
independent of the underlying storage mechanism. Build records are immutable
once created so they can be shared freely between readers.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# "First Person <first@example.com>"
_AUTHOR_PATTERN = re.compile(r"^\s*(?P<name>[^<]*?)\s*<(?P<address>[^>]+)>\s*$")


class BuildOutcome(str, Enum):
    """Final result of a build, fixed at completion."""

    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    ABORTED = "ABORTED"
    NOT_BUILT = "NOT_BUILT"


@dataclass(frozen=True)
class Identity:
    """
    A contributor attached to a build's change set.

    Two identities are the same contributor when their addresses match;
    the display name is informational only.
    """

    name: str = field(compare=False)
    address: str

    def to_dict(self) -> dict[str, str]:
        """Convert identity to dictionary format (for API responses)."""
        return {"name": self.name, "address": self.address}

    def __str__(self) -> str:
        if self.name and self.name != self.address:
            return f"{self.name} <{self.address}>"
        return self.address


def parse_identity(author: str) -> Identity:
    """
    Build an Identity from an SCM author string.

    Accepts "Name <address>", a bare e-mail address, or a bare user id
    (used as both name and address).

    Raises:
        ValueError: If the author string is empty
    """
    author = author.strip()
    if not author:
        raise ValueError("Author must not be empty")

    match = _AUTHOR_PATTERN.match(author)
    if match:
        address = match.group("address").strip()
        name = match.group("name").strip() or address
        return Identity(name=name, address=address)

    return Identity(name=author, address=author)


@dataclass(frozen=True, order=True)
class BuildRef:
    """Key of a single build: job name plus build number."""

    job: str
    number: int

    def to_dict(self) -> dict[str, Any]:
        return {"job": self.job, "number": self.number}

    def __str__(self) -> str:
        return f"{self.job}#{self.number}"


def parse_build_ref(value: str) -> BuildRef:
    """
    Parse a "job#number" build reference.

    Raises:
        ValueError: If the value is not of the form "job#number" with a
            positive number
    """
    job, sep, number = value.strip().rpartition("#")
    if not sep or not job:
        raise ValueError(f"Invalid build reference {value!r}, expected JOB#NUMBER")
    try:
        parsed = int(number)
    except ValueError:
        raise ValueError(f"Invalid build number in {value!r}") from None
    if parsed < 1:
        raise ValueError(f"Invalid build number in {value!r}")
    return BuildRef(job, parsed)


@dataclass(frozen=True)
class BuildRecord:
    """
    Snapshot of one completed execution of a job.

    Records compare and hash by (job, number). The change set holds the
    contributors attached directly to this build; upstream causes point at
    the builds of other jobs that triggered it.
    """

    job: str
    number: int
    outcome: BuildOutcome = field(compare=False)
    change_set: tuple[Identity, ...] = field(default=(), compare=False)
    upstream_causes: tuple[BuildRef, ...] = field(default=(), compare=False)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(UTC), compare=False
    )

    @property
    def ref(self) -> BuildRef:
        return BuildRef(self.job, self.number)

    @property
    def is_success(self) -> bool:
        return self.outcome is BuildOutcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert build to dictionary format (for API responses)."""
        return {
            "job": self.job,
            "number": self.number,
            "outcome": self.outcome.value,
            "changes": [identity.to_dict() for identity in self.change_set],
            "causes": [cause.to_dict() for cause in self.upstream_causes],
            "created_at": self.created_at.isoformat(),
        }

    def __str__(self) -> str:
        return f"{self.job}#{self.number}"


@dataclass
class User:
    """
    Represents a registered user in the notification address book.

    Inactive users are known but must not receive notifications.
    """

    id: str  # UUID
    name: str  # Display name
    email: str  # Email address (unique)
    created_at: datetime
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert user to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": self.created_at.isoformat(),
            "is_active": self.is_active,
        }
