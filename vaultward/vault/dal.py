"""
Vault DAL — vault, membership and item rows.

Functions take a RealDictCursor so the registry can compose several of them
into one transaction. ``for_update=True`` takes the row lock that
serializes all membership mutations of one vault.
"""

from __future__ import annotations

import logging
from datetime import datetime

from vaultward.models import Item, Membership, Role, Vault, VaultKind, VaultState

logger = logging.getLogger(__name__)

_VAULT_COLUMNS = "id, name, kind, owner_id, state, created_at, updated_at"
_MEMBER_COLUMNS = "id, vault_id, principal_id, role, added_at"
_ITEM_COLUMNS = (
    "id, vault_id, encrypted_payload, created_at, updated_at, "
    "last_viewed_at, last_copied_at, is_deleted, deleted_at"
)


def vault_from_row(row: dict) -> Vault:
    return Vault(
        id=row["id"],
        name=row["name"],
        kind=VaultKind(row["kind"]),
        owner_id=row["owner_id"],
        state=VaultState(row["state"]),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def membership_from_row(row: dict) -> Membership:
    return Membership(
        id=row["id"],
        vault_id=row["vault_id"],
        principal_id=row["principal_id"],
        role=Role(row["role"]),
        added_at=row.get("added_at"),
    )


# ─── Vaults ──────────────────────────────────────────────────────────────


def insert_vault(
    cur,
    *,
    vault_id: str,
    name: str,
    kind: VaultKind,
    owner_id: str,
    now: datetime,
) -> Vault:
    cur.execute(
        f"""
        INSERT INTO vaults (id, name, kind, owner_id, state, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING {_VAULT_COLUMNS}
        """,
        (vault_id, name, kind.value, owner_id, VaultState.ACTIVE.value, now, now),
    )
    return vault_from_row(cur.fetchone())


def get_vault(cur, vault_id: str, *, for_update: bool = False) -> Vault | None:
    """Return an ACTIVE vault, or None. Deleted vaults are invisible."""
    sql = f"SELECT {_VAULT_COLUMNS} FROM vaults WHERE id = %s AND state = %s"
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql, (vault_id, VaultState.ACTIVE.value))
    row = cur.fetchone()
    return vault_from_row(row) if row else None


def list_vaults_for(cur, principal_id: str) -> list[dict]:
    """Active vaults the principal owns or belongs to, newest first.

    Each row carries the vault columns plus ``member_role`` (None for the
    owner), ``member_count`` and ``item_count``.
    """
    cur.execute(
        """
        SELECT v.id, v.name, v.kind, v.owner_id, v.state, v.created_at, v.updated_at,
               m.role AS member_role,
               (SELECT count(*) FROM memberships mm WHERE mm.vault_id = v.id) AS member_count,
               (SELECT count(*) FROM items i WHERE i.vault_id = v.id AND NOT i.is_deleted) AS item_count
        FROM vaults v
        LEFT JOIN memberships m ON m.vault_id = v.id AND m.principal_id = %s
        WHERE v.state = %s AND (v.owner_id = %s OR m.principal_id IS NOT NULL)
        ORDER BY v.created_at DESC
        """,
        (principal_id, VaultState.ACTIVE.value, principal_id),
    )
    return [dict(r) for r in cur.fetchall()]


def list_owned_vault_ids(cur, owner_id: str, *, for_update: bool = False) -> list[str]:
    sql = "SELECT id FROM vaults WHERE owner_id = %s AND state = %s ORDER BY id"
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql, (owner_id, VaultState.ACTIVE.value))
    return [r["id"] for r in cur.fetchall()]


def get_personal_vault_id(cur, owner_id: str) -> str | None:
    cur.execute(
        "SELECT id FROM vaults WHERE owner_id = %s AND kind = %s AND state = %s",
        (owner_id, VaultKind.PERSONAL.value, VaultState.ACTIVE.value),
    )
    row = cur.fetchone()
    return row["id"] if row else None


def rename_vault(cur, vault_id: str, name: str, now: datetime) -> Vault:
    cur.execute(
        f"""
        UPDATE vaults SET name = %s, updated_at = %s
        WHERE id = %s AND state = %s
        RETURNING {_VAULT_COLUMNS}
        """,
        (name, now, vault_id, VaultState.ACTIVE.value),
    )
    return vault_from_row(cur.fetchone())


def mark_vault_deleted(cur, vault_id: str, now: datetime) -> None:
    """Terminal transition ACTIVE -> DELETED."""
    cur.execute(
        "UPDATE vaults SET state = %s, updated_at = %s WHERE id = %s AND state = %s",
        (VaultState.DELETED.value, now, vault_id, VaultState.ACTIVE.value),
    )


# ─── Memberships ─────────────────────────────────────────────────────────


def get_membership(cur, vault_id: str, principal_id: str, *, for_update: bool = False) -> Membership | None:
    sql = f"SELECT {_MEMBER_COLUMNS} FROM memberships WHERE vault_id = %s AND principal_id = %s"
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql, (vault_id, principal_id))
    row = cur.fetchone()
    return membership_from_row(row) if row else None


def list_memberships(cur, vault_id: str) -> list[Membership]:
    cur.execute(
        f"SELECT {_MEMBER_COLUMNS} FROM memberships WHERE vault_id = %s ORDER BY added_at, id",
        (vault_id,),
    )
    return [membership_from_row(r) for r in cur.fetchall()]


def insert_membership(
    cur,
    *,
    membership_id: str,
    vault_id: str,
    principal_id: str,
    role: Role,
    now: datetime,
) -> Membership:
    cur.execute(
        f"""
        INSERT INTO memberships (id, vault_id, principal_id, role, added_at)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {_MEMBER_COLUMNS}
        """,
        (membership_id, vault_id, principal_id, role.value, now),
    )
    return membership_from_row(cur.fetchone())


def update_membership_role(cur, vault_id: str, principal_id: str, role: Role) -> Membership:
    cur.execute(
        f"""
        UPDATE memberships SET role = %s
        WHERE vault_id = %s AND principal_id = %s
        RETURNING {_MEMBER_COLUMNS}
        """,
        (role.value, vault_id, principal_id),
    )
    return membership_from_row(cur.fetchone())


def delete_membership(cur, vault_id: str, principal_id: str) -> bool:
    cur.execute(
        "DELETE FROM memberships WHERE vault_id = %s AND principal_id = %s",
        (vault_id, principal_id),
    )
    return cur.rowcount > 0


# ─── Item cascade ────────────────────────────────────────────────────────


def soft_delete_vault_items(cur, vault_id: str, now: datetime) -> int:
    """Mark every live item of a vault deleted. Returns the count."""
    cur.execute(
        """
        UPDATE items SET is_deleted = TRUE, deleted_at = %s, updated_at = %s
        WHERE vault_id = %s AND NOT is_deleted
        """,
        (now, now, vault_id),
    )
    return cur.rowcount


# ─── Items ───────────────────────────────────────────────────────────────


def item_from_row(row: dict) -> Item:
    return Item(
        id=row["id"],
        vault_id=row["vault_id"],
        encrypted_payload=row["encrypted_payload"],
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        last_viewed_at=row.get("last_viewed_at"),
        last_copied_at=row.get("last_copied_at"),
        is_deleted=bool(row.get("is_deleted")),
        deleted_at=row.get("deleted_at"),
    )


def insert_item(cur, *, item_id: str, vault_id: str, encrypted_payload: str, now: datetime) -> Item:
    cur.execute(
        f"""
        INSERT INTO items (id, vault_id, encrypted_payload, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {_ITEM_COLUMNS}
        """,
        (item_id, vault_id, encrypted_payload, now, now),
    )
    return item_from_row(cur.fetchone())


def get_item(cur, item_id: str, *, for_update: bool = False) -> Item | None:
    """Return an item (deleted or not), or None."""
    sql = f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = %s"
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql, (item_id,))
    row = cur.fetchone()
    return item_from_row(row) if row else None


def list_items(cur, vault_id: str, *, include_deleted: bool = False) -> list[Item]:
    sql = f"SELECT {_ITEM_COLUMNS} FROM items WHERE vault_id = %s"
    if not include_deleted:
        sql += " AND NOT is_deleted"
    sql += " ORDER BY created_at DESC, id"
    cur.execute(sql, (vault_id,))
    return [item_from_row(r) for r in cur.fetchall()]


def update_item_payload(cur, item_id: str, encrypted_payload: str, now: datetime) -> Item:
    cur.execute(
        f"""
        UPDATE items SET encrypted_payload = %s, updated_at = %s
        WHERE id = %s
        RETURNING {_ITEM_COLUMNS}
        """,
        (encrypted_payload, now, item_id),
    )
    return item_from_row(cur.fetchone())


def mark_item_viewed(cur, item_id: str, now: datetime) -> None:
    cur.execute("UPDATE items SET last_viewed_at = %s WHERE id = %s", (now, item_id))


def mark_item_copied(cur, item_id: str, now: datetime) -> None:
    cur.execute("UPDATE items SET last_copied_at = %s WHERE id = %s", (now, item_id))


def set_item_deleted(cur, item_id: str, deleted: bool, now: datetime) -> None:
    """Soft delete (deleted=True) or restore (deleted=False)."""
    cur.execute(
        "UPDATE items SET is_deleted = %s, deleted_at = %s, updated_at = %s WHERE id = %s",
        (deleted, now if deleted else None, now, item_id),
    )


def shred_item(cur, item_id: str) -> bool:
    """Hard delete. There is no restore after this."""
    cur.execute("DELETE FROM items WHERE id = %s", (item_id,))
    return cur.rowcount > 0
