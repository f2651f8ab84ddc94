"""
Admin CLI for the CI notification system.

Provides commands for managing the recipient address book, recording and
pruning build history, and resolving recipients offline against the local
database.
"""

import asyncio
import json
import logging
import os
import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path

import click

from ci_common.models import (
    BuildOutcome,
    BuildRecord,
    BuildRef,
    User,
    parse_build_ref,
    parse_identity,
)
from ci_persistence.sqlite_repository import SQLiteBuildRepository
from ci_recipients.formatter import (
    DirectoryIdentityResolver,
    EmailAddressResolver,
    validate_email,
)
from ci_recipients.providers import PROVIDERS, parse_provider_names
from ci_recipients.report import build_report


def get_db_path() -> str:
    """Get the database path from environment variable or default."""
    return os.environ.get(
        "CI_NOTIFY_DB_PATH", str(Path.home() / ".ci" / "notify.db")
    )


def get_repository() -> SQLiteBuildRepository:
    """Get the repository instance."""
    db_path = Path(get_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteBuildRepository(str(db_path))


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


def _parse_causes(ctx, param, values: tuple[str, ...]) -> tuple[BuildRef, ...]:
    try:
        return tuple(parse_build_ref(value) for value in values)
    except ValueError as e:
        raise click.BadParameter(str(e))


@click.group()
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Logging level (default: WARNING)",
)
def cli(log_level: str):
    """CI Notify Admin - Manage builds, users and notification recipients."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.group()
def user():
    """Manage the recipient address book."""
    pass


@cli.group()
def build():
    """Manage recorded build history."""
    pass


# ============================================================================
# User Commands
# ============================================================================


@user.command("create")
@click.option("--name", required=True, help="Display name as it appears in commits")
@click.option("--email", required=True, help="Address notifications are sent to")
def user_create(name: str, email: str):
    """
    Register a notification recipient.

    Contributors are matched to recipients by e-mail first, then by display
    name, so NAME should match the author name used in commits.
    """
    if not validate_email(email):
        click.echo(f"Error: Invalid email format: {email}", err=True)
        sys.exit(1)

    async def create():
        repo = get_repository()
        await repo.initialize()

        try:
            if await repo.get_user_by_email(email):
                click.echo(f"Error: {email} is already registered", err=True)
                sys.exit(1)

            recipient = User(
                id=str(uuid.uuid4()),
                name=name,
                email=email,
                created_at=datetime.now(UTC),
            )
            await repo.create_user(recipient)
        finally:
            await repo.close()

        click.echo(f"✓ Registered {recipient.name} <{recipient.email}>")

    run_async(create())


@user.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def user_list(json_output: bool):
    """Show the address book."""

    async def list_users():
        repo = get_repository()
        await repo.initialize()

        try:
            users = await repo.list_users()
        finally:
            await repo.close()

        if json_output:
            click.echo(json.dumps([u.to_dict() for u in users], indent=2))
            return

        if not users:
            click.echo("Address book is empty.")
            return

        click.echo(f"\n{'Name':<25} {'Email':<35} {'Notified':<8}")
        click.echo("-" * 70)
        for u in users:
            click.echo(f"{u.name:<25} {u.email:<35} {'yes' if u.is_active else 'no':<8}")
        click.echo()

    run_async(list_users())


def _set_notified(email: str, notified: bool) -> None:
    async def update():
        repo = get_repository()
        await repo.initialize()

        try:
            recipient = await repo.get_user_by_email(email)
            if not recipient:
                click.echo(f"Error: No recipient registered as {email}", err=True)
                sys.exit(1)
            await repo.update_user_active_status(recipient.id, notified)
        finally:
            await repo.close()

        if notified:
            click.echo(f"✓ {email} will be notified again")
        else:
            click.echo(f"✓ {email} will no longer be notified")

    run_async(update())


@user.command("deactivate")
@click.argument("email")
def user_deactivate(email: str):
    """Stop notifying EMAIL, even when they are a culprit."""
    _set_notified(email, False)


@user.command("activate")
@click.argument("email")
def user_activate(email: str):
    """Resume notifying EMAIL."""
    _set_notified(email, True)


# ============================================================================
# Build Commands
# ============================================================================


@build.command("record")
@click.option("--job", required=True, help="Job name")
@click.option("--number", required=True, type=click.IntRange(min=1), help="Build number")
@click.option(
    "--outcome",
    required=True,
    type=click.Choice([o.value for o in BuildOutcome], case_sensitive=False),
    help="Build result",
)
@click.option(
    "--change",
    "changes",
    multiple=True,
    help='Change set author, e.g. "Jane Doe <jane@example.com>" (repeatable)',
)
@click.option(
    "--cause",
    "causes",
    multiple=True,
    callback=_parse_causes,
    help="Upstream build that triggered this one, as JOB#NUMBER (repeatable)",
)
def build_record(
    job: str,
    number: int,
    outcome: str,
    changes: tuple[str, ...],
    causes: tuple[BuildRef, ...],
):
    """Record a completed build."""
    try:
        change_set = tuple(parse_identity(author) for author in changes)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    record = BuildRecord(
        job=job,
        number=number,
        outcome=BuildOutcome(outcome.upper()),
        change_set=change_set,
        upstream_causes=causes,
    )

    async def create():
        repo = get_repository()
        await repo.initialize()

        try:
            await repo.record_build(record)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        finally:
            await repo.close()

        click.echo(f"✓ Recorded {record} ({record.outcome.value})")

    run_async(create())


@build.command("list")
@click.argument("job")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def build_list(job: str, json_output: bool):
    """List the recorded builds of a job."""

    async def list_builds():
        repo = get_repository()
        await repo.initialize()

        try:
            builds = await repo.list_builds(job)
        finally:
            await repo.close()

        if json_output:
            click.echo(json.dumps([b.to_dict() for b in builds], indent=2))
            return

        if not builds:
            click.echo(f"No builds found for {job}.")
            return

        click.echo(f"\n{'#':<8} {'Outcome':<10} {'Changes':<40} {'Causes':<20}")
        click.echo("-" * 80)
        for b in builds:
            authors = ", ".join(identity.address for identity in b.change_set) or "-"
            causes = ", ".join(str(cause) for cause in b.upstream_causes) or "-"
            click.echo(f"{b.number:<8} {b.outcome.value:<10} {authors:<40} {causes:<20}")
        click.echo()

    run_async(list_builds())


@build.command("prune")
@click.argument("job")
@click.option(
    "--keep", required=True, type=click.IntRange(min=0), help="Number of newest builds to keep"
)
def build_prune(job: str, keep: int):
    """
    Delete all but the newest builds of JOB from the local database.

    A running server keeps resolving against the history it loaded at
    startup until it restarts; use `ci-notify prune` to prune through the
    server instead.
    """

    async def prune():
        repo = get_repository()
        await repo.initialize()

        try:
            deleted = await repo.prune_builds(job, keep)
        finally:
            await repo.close()

        click.echo(f"✓ Pruned {deleted} build(s) of {job}")

    run_async(prune())


# ============================================================================
# Recipient Commands
# ============================================================================


@cli.command("recipients")
@click.argument("job")
@click.argument("number", type=click.IntRange(min=1))
@click.option(
    "--provider",
    "providers",
    multiple=True,
    type=click.Choice(sorted(PROVIDERS)),
    help="Recipient provider (repeatable, default: CI_RECIPIENT_PROVIDERS)",
)
@click.option(
    "--default-domain",
    envvar="CI_DEFAULT_EMAIL_DOMAIN",
    help="Domain appended to bare user ids",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def recipients(
    job: str,
    number: int,
    providers: tuple[str, ...],
    default_domain: str | None,
    json_output: bool,
):
    """Show who would be notified about build NUMBER of JOB."""
    provider_names = list(providers) or parse_provider_names(
        os.environ.get("CI_RECIPIENT_PROVIDERS")
    )

    async def resolve():
        repo = get_repository()
        await repo.initialize()

        try:
            history = await repo.load_history()
            users = await repo.list_users()
        finally:
            await repo.close()

        triggering = history.get_build(BuildRef(job, number))
        if triggering is None:
            click.echo(f"Error: Build not found: {job}#{number}", err=True)
            sys.exit(1)

        resolver = DirectoryIdentityResolver(
            users, fallback=EmailAddressResolver(default_domain)
        )
        report = build_report(history, triggering, provider_names, resolver)

        if json_output:
            click.echo(json.dumps(report.to_dict(), indent=2))
            return

        anchor = f"#{report.anchor.number}" if report.anchor else "(none)"
        click.echo(f"\nBuild:      {triggering} ({triggering.outcome.value})")
        click.echo(f"Anchor:     {anchor}")
        click.echo(f"Providers:  {', '.join(report.providers)}")
        if not report.recipients:
            click.echo("Recipients: (none)")
        else:
            click.echo("Recipients:")
            for address in report.recipients:
                click.echo(f"  {address}")
        click.echo()

    run_async(resolve())


if __name__ == "__main__":
    cli()
