import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from ci_common.history import InMemoryJobHistory
from ci_common.models import BuildOutcome, BuildRecord, BuildRef, parse_identity
from ci_common.repository import BuildRepository
from ci_persistence.sqlite_repository import SQLiteBuildRepository
from ci_recipients.formatter import DirectoryIdentityResolver, EmailAddressResolver
from ci_recipients.providers import parse_provider_names
from ci_recipients.report import build_report

logger = logging.getLogger(__name__)

# Global instances (initialized at startup)
repository: BuildRepository | None = None
history: InMemoryJobHistory | None = None
# Serializes build writes so the database and the history never diverge
write_lock: asyncio.Lock | None = None


def get_database_path() -> str:
    """
    Get the database path from environment or use default.

    Environment variables:
    - CI_NOTIFY_DB_PATH: Custom database path (useful for testing)
    """
    return os.environ.get("CI_NOTIFY_DB_PATH", "ci_notify.db")


def get_provider_names() -> list[str]:
    """
    Get the configured recipient providers.

    Environment variables:
    - CI_RECIPIENT_PROVIDERS: Comma-separated provider names
      (default: upstream-committers-since-last-success)
    """
    return parse_provider_names(os.environ.get("CI_RECIPIENT_PROVIDERS"))


def get_default_email_domain() -> str | None:
    """
    Get the domain appended to bare user ids when resolving addresses.

    Environment variables:
    - CI_DEFAULT_EMAIL_DOMAIN: e.g. "example.com" (default: none)
    """
    return os.environ.get("CI_DEFAULT_EMAIL_DOMAIN") or None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI app.

    Handles startup and shutdown events:
    - Startup: Initialize the database and load the job history into memory
    - Shutdown: Close database connections
    """
    global repository, history, write_lock

    db_path = get_database_path()
    repository = SQLiteBuildRepository(db_path)
    await repository.initialize()
    history = await repository.load_history()
    write_lock = asyncio.Lock()
    logger.info(f"Notification server ready (database: {db_path})")

    yield

    if repository:
        await repository.close()
    repository = None
    history = None
    write_lock = None


app = FastAPI(lifespan=lifespan)


def get_repository() -> BuildRepository:
    """
    Get the global repository instance.

    Raises:
        RuntimeError: If repository is not initialized
    """
    if repository is None:
        raise RuntimeError("Repository not initialized")
    return repository


def get_history() -> InMemoryJobHistory:
    """
    Get the global job history.

    Raises:
        RuntimeError: If history is not loaded
    """
    if history is None:
        raise RuntimeError("Job history not loaded")
    return history


def get_write_lock() -> asyncio.Lock:
    """
    Get the lock guarding build writes.

    Raises:
        RuntimeError: If the server has not started
    """
    if write_lock is None:
        raise RuntimeError("Write lock not initialized")
    return write_lock


class CauseIn(BaseModel):
    job: str = Field(min_length=1)
    number: int = Field(ge=1)


class BuildIn(BaseModel):
    """A completed build reported by the build executor."""

    job: str = Field(min_length=1)
    number: int = Field(ge=1)
    outcome: BuildOutcome
    changes: list[str] = Field(default_factory=list)  # "Name <email>" authors
    causes: list[CauseIn] = Field(default_factory=list)


def require_build(hist: InMemoryJobHistory, job: str, number: int) -> BuildRecord:
    build = hist.get_build(BuildRef(job, number))
    if build is None:
        raise HTTPException(status_code=404, detail="Build not found")
    return build


@app.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns:
        Dictionary with status="ok" if server is running
    """
    return {"status": "ok"}


@app.post("/builds", status_code=201)
async def record_build(
    payload: BuildIn,
    repo: BuildRepository = Depends(get_repository),
    hist: InMemoryJobHistory = Depends(get_history),
    lock: asyncio.Lock = Depends(get_write_lock),
) -> dict[str, Any]:
    """
    Record a completed build and make it visible to recipient resolution.

    Returns:
        The recorded build

    Raises:
        HTTPException: 422 if an author string is empty
        HTTPException: 409 if the build number is not newer than every
            number the job has used, pruned builds included
    """
    try:
        change_set = tuple(parse_identity(author) for author in payload.changes)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    build = BuildRecord(
        job=payload.job,
        number=payload.number,
        outcome=payload.outcome,
        change_set=change_set,
        upstream_causes=tuple(
            BuildRef(cause.job, cause.number) for cause in payload.causes
        ),
    )

    async with lock:
        last = hist.last_number(build.job)
        if build.number <= last:
            raise HTTPException(
                status_code=409,
                detail=f"Build {build} is not newer than {build.job}#{last}",
            )
        try:
            await repo.record_build(build)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))
        hist.append(build)

    logger.info(f"Recorded build {build} ({build.outcome.value})")
    return build.to_dict()


@app.get("/jobs")
async def list_jobs(
    hist: InMemoryJobHistory = Depends(get_history),
) -> list[dict[str, Any]]:
    """
    List all jobs with their latest build.

    Returns:
        List of dictionaries with job, builds and last_build
    """
    jobs = []
    for job in hist.jobs():
        last = hist.last_build(job)
        jobs.append(
            {
                "job": job,
                "builds": len(hist.builds(job)),
                "last_build": last.to_dict() if last else None,
            }
        )
    return jobs


@app.get("/jobs/{job}/builds")
async def list_builds(
    job: str, hist: InMemoryJobHistory = Depends(get_history)
) -> list[dict[str, Any]]:
    """List the retained builds of a job, oldest first (empty if unknown)."""
    return [build.to_dict() for build in hist.builds(job)]


@app.delete("/jobs/{job}/builds")
async def prune_builds(
    job: str,
    keep: int = Query(..., ge=0),
    repo: BuildRepository = Depends(get_repository),
    hist: InMemoryJobHistory = Depends(get_history),
    lock: asyncio.Lock = Depends(get_write_lock),
) -> dict[str, Any]:
    """
    Apply retention to a job: keep only its newest ``keep`` builds.

    The database and the in-memory history are pruned together. Build
    numbers of pruned builds stay reserved.

    Returns:
        Dictionary with job, deleted and retained counts
    """
    async with lock:
        deleted = await repo.prune_builds(job, keep)
        hist.rotate(job, keep)

    return {"job": job, "deleted": deleted, "retained": len(hist.builds(job))}


@app.get("/jobs/{job}/builds/{number}")
async def get_build(
    job: str, number: int, hist: InMemoryJobHistory = Depends(get_history)
) -> dict[str, Any]:
    """
    Get a single build.

    Raises:
        HTTPException: 404 if the build is not in history
    """
    return require_build(hist, job, number).to_dict()


@app.get("/jobs/{job}/builds/{number}/recipients")
async def get_recipients(
    job: str,
    number: int,
    provider: list[str] | None = Query(None),
    repo: BuildRepository = Depends(get_repository),
    hist: InMemoryJobHistory = Depends(get_history),
) -> dict[str, Any]:
    """
    Resolve who should be notified about a build.

    Args:
        job: Job name
        number: Build number of the triggering build
        provider: Recipient providers to use (default: CI_RECIPIENT_PROVIDERS)

    Returns:
        Dictionary with the anchor build number, the contributing identities
        and the deliverable recipient addresses

    Raises:
        HTTPException: 404 if the build is not in history
        HTTPException: 400 if a provider name is unknown
    """
    build = require_build(hist, job, number)
    provider_names = provider or get_provider_names()

    users = await repo.list_users()
    resolver = DirectoryIdentityResolver(
        users, fallback=EmailAddressResolver(get_default_email_domain())
    )

    try:
        report = build_report(hist, build, provider_names, resolver)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return report.to_dict()
