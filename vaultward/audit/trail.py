"""
Vaultward Audit Trail — append-only log of policy-relevant events.

Every mutating operation appends exactly one entry per mutation, using the
same cursor (and therefore the same transaction) as the mutation itself.
A failed append raises and aborts the whole enclosing operation; there is
no fire-and-forget path. The table is append-only: no update or delete
exists here, and a trigger rejects them at the database level.

Ordering: timestamp, then id (insertion order) for ties.

Usage:
    from vaultward.audit import trail
    trail.append(cur, actor_id=pid, action=AuditAction.VAULT_CREATED,
                 target_id=vault_id, target_kind=TargetKind.VAULT)
    entries = trail.query(AuditQuery(actor_id=pid, limit=20))
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from psycopg2.extras import Json, RealDictCursor

from vaultward.config import get_config
from vaultward.db.connection import get_connection
from vaultward.errors import TransientError
from vaultward.models import AuditAction, AuditEntry, TargetKind
from vaultward.schemas import AuditQuery

logger = logging.getLogger(__name__)

_COLUMNS = "id, actor_id, action, target_id, target_kind, timestamp, ip_address, metadata"


def _entry_from_row(row: dict) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        actor_id=row["actor_id"],
        action=row["action"],
        target_id=row["target_id"],
        target_kind=row["target_kind"],
        timestamp=row["timestamp"],
        ip_address=row.get("ip_address"),
        metadata=row.get("metadata") or {},
    )


def append(
    cur,
    *,
    actor_id: str | None,
    action: AuditAction,
    target_id: str,
    target_kind: TargetKind,
    ip_address: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEntry:
    """Append one entry inside the caller's transaction. Raises on failure."""
    cur.execute(
        f"""
        INSERT INTO audit_log
            (actor_id, action, target_id, target_kind, timestamp, ip_address, metadata)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING {_COLUMNS}
        """,
        (
            actor_id,
            action.value,
            target_id,
            target_kind.value,
            datetime.now(UTC),
            ip_address,
            Json(metadata or {}),
        ),
    )
    row = cur.fetchone()
    if row is None:
        raise TransientError("Audit entry was not recorded")
    logger.debug("Audit %s by %s on %s:%s", action.value, actor_id, target_kind.value, target_id)
    return _entry_from_row(row)


def _where(filters: AuditQuery) -> tuple[str, list]:
    clauses = ["1=1"]
    params: list = []
    if filters.actor_id:
        clauses.append("actor_id = %s")
        params.append(filters.actor_id)
    if filters.action:
        clauses.append("action = %s")
        params.append(filters.action.value)
    if filters.target_id:
        clauses.append("target_id = %s")
        params.append(filters.target_id)
    if filters.target_kind:
        clauses.append("target_kind = %s")
        params.append(filters.target_kind.value)
    if filters.since:
        clauses.append("timestamp >= %s")
        params.append(filters.since)
    if filters.until:
        clauses.append("timestamp <= %s")
        params.append(filters.until)
    return " AND ".join(clauses), params


def query(filters: AuditQuery | None = None) -> list[AuditEntry]:
    """Query the trail with filters, paginated by limit/offset."""
    filters = filters or AuditQuery()
    cfg = get_config().audit
    limit = min(filters.limit or cfg.default_limit, cfg.max_limit)
    direction = "DESC" if filters.newest_first else "ASC"
    where, params = _where(filters)

    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        cur.execute(
            f"SELECT {_COLUMNS} FROM audit_log WHERE {where} "
            f"ORDER BY timestamp {direction}, id {direction} LIMIT %s OFFSET %s",
            [*params, limit, filters.offset],
        )
        return [_entry_from_row(r) for r in cur.fetchall()]


def count(filters: AuditQuery | None = None) -> int:
    """Count entries matching the filters (ignores limit/offset)."""
    where, params = _where(filters or AuditQuery())
    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute(f"SELECT count(*) FROM audit_log WHERE {where}", params)
        row = cur.fetchone()
        return row[0] if row else 0


def stats() -> dict:
    """Get audit trail statistics."""
    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute("""
            SELECT
                COUNT(*) as total,
                COUNT(DISTINCT action) as actions,
                MIN(timestamp) as earliest,
                MAX(timestamp) as latest
            FROM audit_log
        """)
        row = cur.fetchone()

        cur.execute("""
            SELECT action, COUNT(*) FROM audit_log
            GROUP BY action ORDER BY COUNT(*) DESC LIMIT 20
        """)
        by_action = cur.fetchall()

    return {
        "total_events": row[0],
        "unique_actions": row[1],
        "earliest": row[2].isoformat() if row[2] else None,
        "latest": row[3].isoformat() if row[3] else None,
        "by_action": {r[0]: r[1] for r in by_action},
    }
