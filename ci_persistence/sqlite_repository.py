"""
SQLite implementation of the build repository.

Uses aiosqlite for async operations. Can be easily replaced with
PostgreSQL/MySQL implementations.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

import aiosqlite

from ci_common.history import InMemoryJobHistory
from ci_common.models import BuildOutcome, BuildRecord, BuildRef, Identity, User
from ci_common.repository import BuildRepository

logger = logging.getLogger(__name__)

BuildKey = tuple[str, int]


class SQLiteBuildRepository(BuildRepository):
    """
    SQLite-based build storage implementation.

    Uses a single database file with multiple tables:
    - builds: One row per completed build, keyed by (job, number)
    - changes: Change set entries (authors) with foreign key to builds
    - causes: Upstream cause references with foreign key to builds
    - jobs: Highest build number ever recorded per job (survives pruning)
    - users: Address book used to resolve notification recipients
    """

    def __init__(self, db_path: str = "ci_notify.db"):
        """
        Initialize the SQLite repository.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            # Enable foreign key constraints (cascading deletes on prune)
            await self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    async def initialize(self) -> None:
        """
        Create database tables if they don't exist.

        Schema:
        - builds table: (job, number) primary key, outcome, created_at
        - changes table: ordered authors of each build's change set
        - causes table: upstream (job, number) references of each build;
          upstream builds are not foreign keys since they may be pruned
        - jobs table: per-job high-water build number, never pruned
        - users table: User accounts (id, name, email, created_at, is_active)
        """
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS builds (
                job TEXT NOT NULL,
                number INTEGER NOT NULL,
                outcome TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (job, number)
            )
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS changes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job TEXT NOT NULL,
                number INTEGER NOT NULL,
                position INTEGER NOT NULL,
                author_name TEXT NOT NULL,
                author_address TEXT NOT NULL,
                FOREIGN KEY (job, number) REFERENCES builds(job, number) ON DELETE CASCADE
            )
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_changes_build
            ON changes(job, number)
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS causes (
                job TEXT NOT NULL,
                number INTEGER NOT NULL,
                upstream_job TEXT NOT NULL,
                upstream_number INTEGER NOT NULL,
                PRIMARY KEY (job, number, upstream_job, upstream_number),
                FOREIGN KEY (job, number) REFERENCES builds(job, number) ON DELETE CASCADE
            )
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                job TEXT PRIMARY KEY,
                last_number INTEGER NOT NULL
            )
        """)

        # Databases written before the jobs table existed
        await conn.execute("""
            INSERT OR IGNORE INTO jobs (job, last_number)
            SELECT job, MAX(number) FROM builds GROUP BY job
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT UNIQUE NOT NULL,
                created_at TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1
            )
        """)

        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def record_build(self, build: BuildRecord) -> None:
        """
        Persist a completed build with its change set and upstream causes.

        The number check and the inserts run under a write lock, so two
        reports of the same build cannot both pass the check.

        Args:
            build: BuildRecord to persist

        Raises:
            ValueError: If the build number is not newer than every number
                recorded for the job, including pruned builds
        """
        conn = await self._get_connection()

        async with self._write_lock:
            latest = await self._last_number(conn, build.job)
            if latest is not None and build.number <= latest:
                raise ValueError(f"Build {build} is not newer than {build.job}#{latest}")

            try:
                await conn.execute(
                    "INSERT INTO builds (job, number, outcome, created_at) VALUES (?, ?, ?, ?)",
                    (
                        build.job,
                        build.number,
                        build.outcome.value,
                        build.created_at.isoformat(),
                    ),
                )
                await conn.executemany(
                    """
                    INSERT INTO changes (job, number, position, author_name, author_address)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (build.job, build.number, position, identity.name, identity.address)
                        for position, identity in enumerate(build.change_set)
                    ],
                )
                await conn.executemany(
                    """
                    INSERT OR IGNORE INTO causes (job, number, upstream_job, upstream_number)
                    VALUES (?, ?, ?, ?)
                    """,
                    [
                        (build.job, build.number, cause.job, cause.number)
                        for cause in build.upstream_causes
                    ],
                )
                await conn.execute(
                    """
                    INSERT INTO jobs (job, last_number) VALUES (?, ?)
                    ON CONFLICT(job) DO UPDATE SET last_number = excluded.last_number
                    """,
                    (build.job, build.number),
                )
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                # Another writer on the same database file got there first
                await conn.rollback()
                raise ValueError(f"Build {build} is already recorded") from e
            except Exception:
                await conn.rollback()
                raise

        logger.debug(f"Recorded build {build} ({build.outcome.value})")

    async def _last_number(self, conn: aiosqlite.Connection, job: str) -> int | None:
        cursor = await conn.execute(
            "SELECT last_number FROM jobs WHERE job = ?", (job,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def get_build(self, job: str, number: int) -> BuildRecord | None:
        """
        Retrieve a build with its change set and causes.

        Args:
            job: Job name
            number: Build number

        Returns:
            BuildRecord if found, None otherwise
        """
        builds = await self._select_builds("WHERE job = ? AND number = ?", (job, number))
        return builds[0] if builds else None

    async def list_builds(self, job: str) -> list[BuildRecord]:
        """List all retained builds of a job, oldest first."""
        return await self._select_builds("WHERE job = ?", (job,))

    async def list_job_names(self) -> list[str]:
        conn = await self._get_connection()

        cursor = await conn.execute("SELECT DISTINCT job FROM builds ORDER BY job")
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def load_history(self) -> InMemoryJobHistory:
        """
        Materialize every retained build into an in-memory history.

        Returns:
            InMemoryJobHistory with all builds of all jobs
        """
        builds = await self._select_builds("", ())

        conn = await self._get_connection()
        cursor = await conn.execute("SELECT job, last_number FROM jobs")
        last_numbers = {job: number for job, number in await cursor.fetchall()}

        logger.info(f"Loaded {len(builds)} build(s) into job history")
        return InMemoryJobHistory(builds, last_numbers)

    async def prune_builds(self, job: str, keep: int) -> int:
        """
        Delete all but the newest ``keep`` builds of a job.

        Change sets and causes of the deleted builds go with them. The job's
        high-water number is kept, so pruned numbers are never reused.

        Returns:
            Number of builds deleted
        """
        if keep < 0:
            raise ValueError("keep must not be negative")

        conn = await self._get_connection()

        async with self._write_lock:
            if keep == 0:
                cursor = await conn.execute("DELETE FROM builds WHERE job = ?", (job,))
            else:
                cursor = await conn.execute(
                    "SELECT number FROM builds WHERE job = ? ORDER BY number DESC LIMIT 1 OFFSET ?",
                    (job, keep - 1),
                )
                row = await cursor.fetchone()
                if row is None:
                    return 0
                cursor = await conn.execute(
                    "DELETE FROM builds WHERE job = ? AND number < ?", (job, row[0])
                )

            deleted = cursor.rowcount
            await conn.commit()

        logger.info(f"Pruned {deleted} build(s) of {job}")
        return deleted

    async def _select_builds(
        self, where: str, params: tuple[object, ...]
    ) -> list[BuildRecord]:
        """
        Load builds matching a WHERE clause together with their details.

        The same clause filters the builds, changes and causes tables, which
        all share the (job, number) columns.
        """
        conn = await self._get_connection()

        cursor = await conn.execute(
            f"SELECT job, number, outcome, created_at FROM builds {where} ORDER BY job, number",
            params,
        )
        build_rows = await cursor.fetchall()
        if not build_rows:
            return []

        cursor = await conn.execute(
            f"""
            SELECT job, number, author_name, author_address
            FROM changes {where}
            ORDER BY job, number, position
            """,
            params,
        )
        change_rows = await cursor.fetchall()

        cursor = await conn.execute(
            f"""
            SELECT job, number, upstream_job, upstream_number
            FROM causes {where}
            ORDER BY job, number, upstream_job, upstream_number
            """,
            params,
        )
        cause_rows = await cursor.fetchall()

        return _assemble_builds(build_rows, change_rows, cause_rows)

    # Address book methods

    async def create_user(self, user: User) -> None:
        """
        Register a notification recipient.

        Raises:
            aiosqlite.IntegrityError: If the e-mail address is already registered
        """
        conn = await self._get_connection()

        await conn.execute(
            "INSERT INTO users (id, name, email, created_at, is_active) VALUES (?, ?, ?, ?, ?)",
            (
                user.id,
                user.name,
                user.email,
                user.created_at.isoformat(),
                int(user.is_active),
            ),
        )
        await conn.commit()
        logger.info(f"Registered recipient {user.name} <{user.email}>")

    async def get_user_by_email(self, email: str) -> User | None:
        conn = await self._get_connection()

        cursor = await conn.execute(f"{_USER_COLUMNS} WHERE email = ?", (email,))
        row = await cursor.fetchone()
        return _user_from_row(row) if row else None

    async def list_users(self) -> list[User]:
        """
        List the address book, alphabetically by display name.

        The whole book is loaded for every recipient query and matched by
        e-mail and name in memory.
        """
        conn = await self._get_connection()

        cursor = await conn.execute(f"{_USER_COLUMNS} ORDER BY name COLLATE NOCASE, email")
        return [_user_from_row(row) for row in await cursor.fetchall()]

    async def update_user_active_status(self, user_id: str, is_active: bool) -> None:
        """Opt a recipient out of (or back into) notifications."""
        conn = await self._get_connection()

        await conn.execute(
            "UPDATE users SET is_active = ? WHERE id = ?", (int(is_active), user_id)
        )
        await conn.commit()


_USER_COLUMNS = "SELECT id, name, email, created_at, is_active FROM users"


def _user_from_row(row: Iterable) -> User:
    user_id, name, email, created_at_str, is_active = row
    return User(
        id=user_id,
        name=name,
        email=email,
        created_at=datetime.fromisoformat(created_at_str),
        is_active=bool(is_active),
    )


def _assemble_builds(
    build_rows: Iterable, change_rows: Iterable, cause_rows: Iterable
) -> list[BuildRecord]:
    changes: dict[BuildKey, list[Identity]] = defaultdict(list)
    for job, number, author_name, author_address in change_rows:
        changes[(job, number)].append(Identity(name=author_name, address=author_address))

    causes: dict[BuildKey, list[BuildRef]] = defaultdict(list)
    for job, number, upstream_job, upstream_number in cause_rows:
        causes[(job, number)].append(BuildRef(upstream_job, upstream_number))

    builds = []
    for job, number, outcome, created_at_str in build_rows:
        builds.append(
            BuildRecord(
                job=job,
                number=number,
                outcome=BuildOutcome(outcome),
                change_set=tuple(changes.get((job, number), ())),
                upstream_causes=tuple(causes.get((job, number), ())),
                created_at=datetime.fromisoformat(created_at_str),
            )
        )
    return builds
