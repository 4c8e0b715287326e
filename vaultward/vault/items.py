"""
Item storage — encrypted items inside a vault.

Items are opaque ciphertext. The only access-control input here is
``access.authorize`` with READ_ITEMS, WRITE_ITEMS or DELETE_ITEMS; this
module never looks at roles itself.

An item the caller cannot see is NotFound, whether it is missing, soft-
deleted, or in a vault the caller has no relation to. Soft delete sets
the flag and timestamp and can be restored; shred removes the row.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from psycopg2.extras import RealDictCursor

from vaultward.audit import trail
from vaultward.db.connection import get_connection
from vaultward.errors import NotFound
from vaultward.models import AuditAction, Capability, Item, TargetKind
from vaultward.schemas import ItemPayload, parse
from vaultward.vault import access, dal

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


def _load(cur, caller_id: str, item_id: str, capability: Capability, *, deleted: bool = False) -> Item:
    """Fetch an item and authorize the caller on its vault. ``deleted`` selects trashed items."""
    item = dal.get_item(cur, item_id, for_update=capability is not Capability.READ_ITEMS)
    if item is None or item.is_deleted != deleted:
        raise NotFound("Item")
    access.authorize(cur, caller_id, item.vault_id, capability, resource="Item")
    return item


def _audit(cur, caller_id: str, action: AuditAction, item: Item, ip_address: str | None) -> None:
    trail.append(
        cur,
        actor_id=caller_id,
        action=action,
        target_id=item.id,
        target_kind=TargetKind.ITEM,
        ip_address=ip_address,
        metadata={"vault_id": item.vault_id},
    )


def create_item(caller_id: str, vault_id: str, encrypted_payload: str, *, ip_address: str | None = None) -> Item:
    payload = parse(ItemPayload, encrypted_payload=encrypted_payload)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        access.authorize(cur, caller_id, vault_id, Capability.WRITE_ITEMS)
        item = dal.insert_item(
            cur,
            item_id=str(uuid.uuid4()),
            vault_id=vault_id,
            encrypted_payload=payload.encrypted_payload,
            now=_now(),
        )
        _audit(cur, caller_id, AuditAction.ITEM_CREATED, item, ip_address)
    return item


def list_items(caller_id: str, vault_id: str) -> list[Item]:
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        access.authorize(cur, caller_id, vault_id, Capability.READ_ITEMS)
        return dal.list_items(cur, vault_id)


def list_trash(caller_id: str, vault_id: str) -> list[Item]:
    """Soft-deleted items that can still be restored."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        access.authorize(cur, caller_id, vault_id, Capability.DELETE_ITEMS)
        return [i for i in dal.list_items(cur, vault_id, include_deleted=True) if i.is_deleted]


def get_item(caller_id: str, item_id: str, *, ip_address: str | None = None) -> Item:
    """Read an item; stamps last_viewed_at and records ITEM_VIEWED."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        item = _load(cur, caller_id, item_id, Capability.READ_ITEMS)
        now = _now()
        dal.mark_item_viewed(cur, item_id, now)
        item.last_viewed_at = now
        _audit(cur, caller_id, AuditAction.ITEM_VIEWED, item, ip_address)
    return item


def record_copy(caller_id: str, item_id: str, *, ip_address: str | None = None) -> None:
    """Client copied a secret from this item to the clipboard."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        item = _load(cur, caller_id, item_id, Capability.READ_ITEMS)
        dal.mark_item_copied(cur, item_id, _now())
        _audit(cur, caller_id, AuditAction.ITEM_COPIED, item, ip_address)


def update_item(caller_id: str, item_id: str, encrypted_payload: str, *, ip_address: str | None = None) -> Item:
    payload = parse(ItemPayload, encrypted_payload=encrypted_payload)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        _load(cur, caller_id, item_id, Capability.WRITE_ITEMS)
        updated = dal.update_item_payload(cur, item_id, payload.encrypted_payload, _now())
        _audit(cur, caller_id, AuditAction.ITEM_UPDATED, updated, ip_address)
    return updated


def delete_item(caller_id: str, item_id: str, *, ip_address: str | None = None) -> None:
    """Soft delete: restorable until shredded."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        item = _load(cur, caller_id, item_id, Capability.DELETE_ITEMS)
        dal.set_item_deleted(cur, item_id, True, _now())
        _audit(cur, caller_id, AuditAction.ITEM_DELETED, item, ip_address)


def restore_item(caller_id: str, item_id: str, *, ip_address: str | None = None) -> None:
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        item = _load(cur, caller_id, item_id, Capability.DELETE_ITEMS, deleted=True)
        dal.set_item_deleted(cur, item_id, False, _now())
        _audit(cur, caller_id, AuditAction.ITEM_RESTORED, item, ip_address)


def shred_item(caller_id: str, item_id: str, *, ip_address: str | None = None) -> None:
    """Permanently remove an item, live or soft-deleted."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        item = dal.get_item(cur, item_id, for_update=True)
        if item is None:
            raise NotFound("Item")
        access.authorize(cur, caller_id, item.vault_id, Capability.DELETE_ITEMS, resource="Item")
        dal.shred_item(cur, item_id)
        _audit(cur, caller_id, AuditAction.ITEM_SHREDDED, item, ip_address)
    logger.info("Item %s shredded by %s", item_id, caller_id)
