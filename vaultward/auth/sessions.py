"""
Session DAL — durable (principal, device) session records.

One row per (principal, device fingerprint). Logging in again on the same
device rotates the token and clears any revocation; a refresh rotates the
token of a live row and moves its expiry. Revocation is explicit
and persisted; nothing about sessions lives in process memory.
"""

from __future__ import annotations

from datetime import datetime

from vaultward.models import Session

_COLUMNS = (
    "id, principal_id, device_fingerprint, device_name, user_agent, ip_address, "
    "created_at, last_seen_at, expires_at, revoked_at"
)


def session_from_row(row: dict) -> Session:
    return Session(
        id=row["id"],
        principal_id=row["principal_id"],
        device_fingerprint=row["device_fingerprint"],
        device_name=row.get("device_name") or "",
        user_agent=row.get("user_agent") or "",
        ip_address=row.get("ip_address"),
        created_at=row.get("created_at"),
        last_seen_at=row.get("last_seen_at"),
        expires_at=row.get("expires_at"),
        revoked_at=row.get("revoked_at"),
    )


def upsert_session(
    cur,
    *,
    session_id: str,
    principal_id: str,
    device_fingerprint: str,
    device_name: str,
    user_agent: str,
    ip_address: str | None,
    token_hash: str,
    now: datetime,
    expires_at: datetime,
) -> Session:
    cur.execute(
        f"""
        INSERT INTO sessions (
            id, principal_id, device_fingerprint, device_name, user_agent, ip_address,
            token_hash, created_at, last_seen_at, expires_at
        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (principal_id, device_fingerprint) DO UPDATE SET
            device_name = EXCLUDED.device_name,
            user_agent = EXCLUDED.user_agent,
            ip_address = EXCLUDED.ip_address,
            token_hash = EXCLUDED.token_hash,
            last_seen_at = EXCLUDED.last_seen_at,
            expires_at = EXCLUDED.expires_at,
            revoked_at = NULL
        RETURNING {_COLUMNS}
        """,
        (
            session_id,
            principal_id,
            device_fingerprint,
            device_name,
            user_agent,
            ip_address,
            token_hash,
            now,
            now,
            expires_at,
        ),
    )
    return session_from_row(cur.fetchone())


def get_live_session_by_token(cur, token_hash: str, now: datetime) -> Session | None:
    """Return the session for a token if unrevoked, unexpired, and its principal is active."""
    cur.execute(
        f"""
        SELECT {", ".join("s." + c for c in _COLUMNS.split(", "))}
        FROM sessions s
        JOIN principals p ON p.id = s.principal_id
        WHERE s.token_hash = %s
          AND s.revoked_at IS NULL
          AND s.expires_at > %s
          AND p.disabled_at IS NULL
        """,
        (token_hash, now),
    )
    row = cur.fetchone()
    return session_from_row(row) if row else None


def touch_session(cur, session_id: str, now: datetime, ip_address: str | None = None) -> None:
    cur.execute(
        "UPDATE sessions SET last_seen_at = %s, ip_address = COALESCE(%s, ip_address) WHERE id = %s",
        (now, ip_address, session_id),
    )


def refresh_session(
    cur,
    session_id: str,
    principal_id: str,
    *,
    token_hash: str,
    now: datetime,
    expires_at: datetime,
) -> Session | None:
    """Swap the token of a live session and move its expiry. None if the session is not live."""
    cur.execute(
        f"""
        UPDATE sessions SET token_hash = %s, last_seen_at = %s, expires_at = %s
        WHERE id = %s AND principal_id = %s AND revoked_at IS NULL AND expires_at > %s
        RETURNING {_COLUMNS}
        """,
        (token_hash, now, expires_at, session_id, principal_id, now),
    )
    row = cur.fetchone()
    return session_from_row(row) if row else None


def list_sessions(cur, principal_id: str, now: datetime) -> list[Session]:
    """Live (unrevoked, unexpired) sessions of a principal, most recently seen first."""
    cur.execute(
        f"""
        SELECT {_COLUMNS} FROM sessions
        WHERE principal_id = %s AND revoked_at IS NULL AND expires_at > %s
        ORDER BY last_seen_at DESC
        """,
        (principal_id, now),
    )
    return [session_from_row(r) for r in cur.fetchall()]


def revoke_session(cur, session_id: str, principal_id: str, now: datetime) -> bool:
    """Revoke one of the principal's own sessions. False if not theirs or already revoked."""
    cur.execute(
        """
        UPDATE sessions SET revoked_at = %s
        WHERE id = %s AND principal_id = %s AND revoked_at IS NULL
        """,
        (now, session_id, principal_id),
    )
    return cur.rowcount > 0


def revoke_all_sessions(cur, principal_id: str, now: datetime, *, keep_session_id: str | None = None) -> int:
    cur.execute(
        """
        UPDATE sessions SET revoked_at = %s
        WHERE principal_id = %s AND revoked_at IS NULL AND id IS DISTINCT FROM %s
        """,
        (now, principal_id, keep_session_id),
    )
    return cur.rowcount
