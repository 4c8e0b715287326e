"""
Schema migrations for the Vaultward store.

Migrations are plain ``NNN_name.sql`` files shipped inside the package
(``vaultward/db/migrations``). Each applied file is recorded in
``schema_migrations`` with its SHA-256; an applied file whose contents
changed afterwards is reported as DRIFT and blocks further applies.

Usage:
    vaultward-migrate status          # applied / pending / DRIFT per file
    vaultward-migrate apply           # apply everything pending
    vaultward-migrate apply 002       # apply one version
    vaultward-migrate apply --dry-run
    vaultward-migrate check           # verify tables and the audit trigger exist
"""

from __future__ import annotations

import hashlib
import logging
import re
import sys
from pathlib import Path

from psycopg2.extras import RealDictCursor

from vaultward.db.connection import get_connection

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

_FILENAME_RE = re.compile(r"^(\d{3}[a-z]?)_[\w-]+\.sql$")

REQUIRED_TABLES = (
    "principals",
    "sessions",
    "vaults",
    "memberships",
    "key_envelopes",
    "envelope_digests",
    "items",
    "audit_log",
)
AUDIT_TRIGGER = "audit_log_no_update"


class MigrationDrift(RuntimeError):
    """An applied migration file no longer matches its recorded checksum."""


def discover(migrations_dir: Path | None = None) -> list[tuple[str, Path]]:
    """(version, path) for every migration file, in version order."""
    found = []
    for path in sorted((migrations_dir or MIGRATIONS_DIR).glob("*.sql")):
        match = _FILENAME_RE.match(path.name)
        if match:
            found.append((match.group(1), path))
    return found


def checksum(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _ensure_table(cur) -> None:
    cur.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version     TEXT PRIMARY KEY,
            filename    TEXT NOT NULL,
            checksum    TEXT NOT NULL,
            applied_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)


def _recorded(cur) -> dict[str, dict]:
    cur.execute("SELECT version, filename, checksum, applied_at FROM schema_migrations")
    return {r["version"]: dict(r) for r in cur.fetchall()}


def _classify(files: list[tuple[str, Path]], recorded: dict[str, dict]) -> list[dict]:
    rows = []
    for version, path in files:
        entry = recorded.get(version)
        if entry is None:
            state = "pending"
        elif entry["checksum"] != checksum(path):
            state = "DRIFT"
        else:
            state = "applied"
        rows.append({
            "version": version,
            "filename": path.name,
            "status": state,
            "applied_at": entry["applied_at"] if entry else None,
        })
    return rows


def status(migrations_dir: Path | None = None) -> list[dict]:
    files = discover(migrations_dir)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        _ensure_table(cur)
        return _classify(files, _recorded(cur))


def apply(
    version: str | None = None,
    dry_run: bool = False,
    migrations_dir: Path | None = None,
) -> list[str]:
    """Apply pending migrations in one transaction. Returns the versions applied.

    Raises MigrationDrift before touching anything if an applied file changed.
    """
    files = discover(migrations_dir)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        _ensure_table(cur)
        rows = _classify(files, _recorded(cur))

        drifted = [r["filename"] for r in rows if r["status"] == "DRIFT"]
        if drifted:
            raise MigrationDrift(f"Applied migrations changed on disk: {', '.join(drifted)}")

        paths = dict(files)
        pending = [r["version"] for r in rows if r["status"] == "pending" and version in (None, r["version"])]
        for v in pending:
            path = paths[v]
            if dry_run:
                logger.info("[dry-run] would apply %s", path.name)
                continue
            cur.execute(path.read_text())
            cur.execute(
                "INSERT INTO schema_migrations (version, filename, checksum) VALUES (%s, %s, %s)",
                (v, path.name, checksum(path)),
            )
            logger.info("Applied %s", path.name)

    if not pending:
        logger.info("Schema is up to date")
    return pending


def check() -> list[str]:
    """Return what the live schema is missing (tables, audit trigger). Empty means healthy."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        cur.execute(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = ANY(%s)",
            (list(REQUIRED_TABLES),),
        )
        present = {r["table_name"] for r in cur.fetchall()}
        cur.execute("SELECT 1 FROM pg_trigger WHERE tgname = %s", (AUDIT_TRIGGER,))
        has_trigger = cur.fetchone() is not None

    missing = [f"table {t}" for t in REQUIRED_TABLES if t not in present]
    if not has_trigger:
        missing.append(f"trigger {AUDIT_TRIGGER}")
    return missing


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = sys.argv[1:] if argv is None else argv
    command = args[0] if args else "status"

    if command == "status":
        for r in status():
            at = str(r["applied_at"])[:19] if r["applied_at"] else ""
            print(f"{r['version']:<6} {r['filename']:<40} {r['status']:<8} {at}")
        return 0

    if command == "apply":
        dry_run = "--dry-run" in args
        version = next((a for a in args[1:] if a != "--dry-run"), None)
        try:
            apply(version=version, dry_run=dry_run)
        except MigrationDrift as e:
            print(str(e), file=sys.stderr)
            return 2
        return 0

    if command == "check":
        missing = check()
        for item in missing:
            print(f"missing: {item}", file=sys.stderr)
        return 1 if missing else 0

    print("Usage: vaultward-migrate [status | apply [VERSION] [--dry-run] | check]", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
