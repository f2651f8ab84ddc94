"""
Abstract repository interface for build and address-book persistence.

This module defines the contract that any database implementation must follow,
allowing easy swapping between SQLite, PostgreSQL, MySQL, etc.
"""

from abc import ABC, abstractmethod

from .history import InMemoryJobHistory
from .models import BuildRecord, User


class BuildRepository(ABC):
    """
    Abstract base class for build record storage operations.

    Build records are append-only: once recorded they are never updated,
    only pruned by retention.
    """

    @abstractmethod
    async def record_build(self, build: BuildRecord) -> None:
        """
        Persist a completed build with its change set and upstream causes.

        Args:
            build: BuildRecord to persist

        Raises:
            ValueError: If the build number is not greater than every number
                ever recorded for the job, pruned builds included
        """
        pass

    @abstractmethod
    async def get_build(self, job: str, number: int) -> BuildRecord | None:
        """
        Retrieve a single build.

        Args:
            job: Job name
            number: Build number

        Returns:
            BuildRecord if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_builds(self, job: str) -> list[BuildRecord]:
        """
        List all retained builds of a job in ascending build number order.
        """
        pass

    @abstractmethod
    async def list_job_names(self) -> list[str]:
        """List the names of all jobs with at least one retained build."""
        pass

    @abstractmethod
    async def load_history(self) -> InMemoryJobHistory:
        """
        Materialize every retained build into an in-memory history.

        Returns:
            InMemoryJobHistory snapshot used for recipient resolution
        """
        pass

    @abstractmethod
    async def prune_builds(self, job: str, keep: int) -> int:
        """
        Delete all but the newest ``keep`` builds of a job.

        The job keeps its highest recorded number, so a later
        ``record_build`` still has to use a larger one.

        Returns:
            Number of builds deleted
        """
        pass

    # Address book methods
    #
    # Registered users map contributor identities to deliverable addresses;
    # inactive users are known but never notified.

    @abstractmethod
    async def create_user(self, user: User) -> None:
        """
        Register a notification recipient.

        Raises:
            Exception: If the e-mail address is already registered
        """
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None:
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass

    @abstractmethod
    async def update_user_active_status(self, user_id: str, is_active: bool) -> None:
        """Opt a recipient out of (or back into) notifications."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the database (create tables, etc.).

        Called once at application startup.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close database connections and cleanup resources.

        Called at application shutdown.
        """
        pass
