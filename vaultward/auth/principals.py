"""
Principal DAL — authenticated identities.

Principals are never hard-deleted: audit entries reference them forever.
Disabling sets ``disabled_at``; a disabled principal resolves to no
relation on any vault and cannot authenticate.
"""

from __future__ import annotations

from datetime import datetime

from vaultward.models import Principal

_COLUMNS = "id, email, created_at, disabled_at"


def principal_from_row(row: dict) -> Principal:
    return Principal(
        id=row["id"],
        email=row["email"],
        created_at=row.get("created_at"),
        disabled_at=row.get("disabled_at"),
    )


def insert_principal(
    cur,
    *,
    principal_id: str,
    email: str,
    verifier_hash: str,
    now: datetime,
) -> Principal:
    cur.execute(
        f"""
        INSERT INTO principals (id, email, verifier_hash, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {_COLUMNS}
        """,
        (principal_id, email, verifier_hash, now, now),
    )
    return principal_from_row(cur.fetchone())


def get_principal(cur, principal_id: str) -> Principal | None:
    cur.execute(f"SELECT {_COLUMNS} FROM principals WHERE id = %s", (principal_id,))
    row = cur.fetchone()
    return principal_from_row(row) if row else None


def get_active_principal(cur, principal_id: str) -> Principal | None:
    """Return the principal only if it exists and is not disabled."""
    principal = get_principal(cur, principal_id)
    if principal is None or not principal.is_active:
        return None
    return principal


def get_principal_by_email(cur, email: str) -> Principal | None:
    cur.execute(f"SELECT {_COLUMNS} FROM principals WHERE email = %s", (email,))
    row = cur.fetchone()
    return principal_from_row(row) if row else None


def get_verifier_hash(cur, principal_id: str, *, for_update: bool = False) -> str | None:
    sql = "SELECT verifier_hash FROM principals WHERE id = %s AND disabled_at IS NULL"
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql, (principal_id,))
    row = cur.fetchone()
    return row["verifier_hash"] if row else None


def update_verifier(cur, principal_id: str, verifier_hash: str, now: datetime) -> None:
    cur.execute(
        "UPDATE principals SET verifier_hash = %s, updated_at = %s WHERE id = %s",
        (verifier_hash, now, principal_id),
    )


def disable_principal(cur, principal_id: str, now: datetime) -> bool:
    cur.execute(
        """
        UPDATE principals SET disabled_at = %s, updated_at = %s
        WHERE id = %s AND disabled_at IS NULL
        """,
        (now, now, principal_id),
    )
    return cur.rowcount > 0
