"""Schema migrations for the release database.

Provides utilities for:
- Discovering migration files by numeric prefix ordering.
- Validating that SQL migrations can be re-run safely
  (IF NOT EXISTS, DROP ... IF EXISTS, CREATE OR REPLACE patterns).
- Applying every migration in order through a DB-API connection.

Supabase deployments apply the same files with ``supabase db push``;
``PostgresReleaseStore.migrate()`` calls :func:`apply_migrations`.

Idempotency Contract:
    Every migration file MUST satisfy:
    1. All CREATE TABLE use IF NOT EXISTS.
    2. All CREATE INDEX use IF NOT EXISTS.
    3. All CREATE FUNCTION use CREATE OR REPLACE.
    4. ALTER TABLE ADD COLUMN uses IF NOT EXISTS.
    5. No bare DROP TABLE/DROP INDEX/DROP FUNCTION (IF EXISTS variants only).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..observability import get_logger

logger = get_logger(__name__)

# Migration file discovery pattern: NNN_description.sql
_MIGRATION_RE = re.compile(r'^(\d{3})_.*\.sql$')

# Directory containing migration SQL files.
MIGRATIONS_DIR = Path(__file__).parent


@dataclass(frozen=True, slots=True)
class MigrationFile:
    """A discovered migration file with its sequence number."""

    sequence: int
    filename: str
    path: Path

    def read_sql(self) -> str:
        return self.path.read_text()


@dataclass
class ValidationResult:
    """Result of idempotency validation for a single migration file."""

    path: Path
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return len(self.errors) == 0


# (pattern, message, severity); patterns run against one stripped line.
_UNSAFE_PATTERNS: list[tuple[re.Pattern[str], str, str]] = [
    (
        re.compile(r'^create\s+table\s+(?!.*if\s+not\s+exists)', re.IGNORECASE),
        'CREATE TABLE without IF NOT EXISTS',
        'error',
    ),
    (
        re.compile(r'^create\s+(unique\s+)?index\s+(?!.*if\s+not\s+exists)', re.IGNORECASE),
        'CREATE INDEX without IF NOT EXISTS',
        'error',
    ),
    (
        re.compile(r'^create\s+function\s+', re.IGNORECASE),
        'CREATE FUNCTION without OR REPLACE',
        'error',
    ),
    (
        re.compile(r'^drop\s+(table|index|function)\s+(?!.*if\s+exists)', re.IGNORECASE),
        'DROP without IF EXISTS',
        'error',
    ),
    (
        re.compile(r'^(?:alter\s+table\s+\S+\s+)?add\s+column\s+(?!.*if\s+not\s+exists)', re.IGNORECASE),
        'ADD COLUMN without IF NOT EXISTS',
        'warning',
    ),
]


def discover_migrations(
    directory: Path | None = None,
) -> list[MigrationFile]:
    """Discover and return migration files sorted by sequence number.

    Args:
        directory: Path to search. Defaults to this package's directory.

    Returns:
        Sorted list of MigrationFile entries.

    Raises:
        ValueError: If duplicate sequence numbers are found.
    """
    d = directory or MIGRATIONS_DIR
    results: list[MigrationFile] = []
    seen_seqs: dict[int, str] = {}

    for p in sorted(d.iterdir()):
        if not p.is_file():
            continue
        m = _MIGRATION_RE.match(p.name)
        if not m:
            continue
        seq = int(m.group(1))
        if seq in seen_seqs:
            raise ValueError(
                f'Duplicate migration sequence {seq:03d}: '
                f'{seen_seqs[seq]} and {p.name}'
            )
        seen_seqs[seq] = p.name
        results.append(MigrationFile(sequence=seq, filename=p.name, path=p))

    results.sort(key=lambda mf: mf.sequence)
    return results


def validate_idempotency(sql_path: Path) -> ValidationResult:
    """Check a migration SQL file for statements that fail on re-run."""
    result = ValidationResult(path=sql_path)

    for i, line in enumerate(sql_path.read_text().splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith('--'):
            continue
        for pattern, msg, severity in _UNSAFE_PATTERNS:
            if pattern.search(stripped):
                target = result.errors if severity == 'error' else result.warnings
                target.append(f'Line {i}: {msg}')

    return result


def validate_all(directory: Path | None = None) -> dict[str, ValidationResult]:
    """Validate all discovered migrations; maps filename to result."""
    return {
        mf.filename: validate_idempotency(mf.path)
        for mf in discover_migrations(directory)
    }


def apply_migrations(connection: Any, directory: Path | None = None) -> list[str]:
    """Run every migration in sequence order on a DB-API connection.

    Each file executes in its own transaction. A file that violates the
    idempotency contract is refused before anything runs.

    Returns:
        Filenames applied, in order.

    Raises:
        ValueError: If any migration fails validation.
    """
    migrations = discover_migrations(directory)
    for mf in migrations:
        result = validate_idempotency(mf.path)
        if not result.ok:
            raise ValueError(f'{mf.filename} is not idempotent: {"; ".join(result.errors)}')

    applied: list[str] = []
    for mf in migrations:
        with connection:
            with connection.cursor() as cursor:
                cursor.execute(mf.read_sql())
        applied.append(mf.filename)
        logger.info("migration_applied", migration=mf.filename)
    return applied
