"""
CI Common module.

This module contains shared domain models and interfaces used across
the notification components (recipients, server, persistence, admin).

The common module has no dependencies on other ci_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .history import (
    DependencyGraph,
    HistoryDependencyGraph,
    InMemoryJobHistory,
    JobHistory,
)
from .models import (
    BuildOutcome,
    BuildRecord,
    BuildRef,
    Identity,
    User,
    parse_build_ref,
    parse_identity,
)
from .repository import BuildRepository

__all__ = [
    "BuildOutcome",
    "BuildRecord",
    "BuildRef",
    "BuildRepository",
    "DependencyGraph",
    "HistoryDependencyGraph",
    "Identity",
    "InMemoryJobHistory",
    "JobHistory",
    "User",
    "parse_build_ref",
    "parse_identity",
]
