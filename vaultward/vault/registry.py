"""
Vault Registry — vault and membership lifecycle.

Every mutation runs in one transaction:
    lock the vault row -> authorize -> mutate state + envelopes -> append audit
The audit entry is written through the same cursor after the mutation,
so a failed audit write rolls the mutation back; the caller never sees a
success without its record.

Vault state machine: ACTIVE -> DELETED (terminal). A deleted vault is
indistinguishable from a missing one (NotFound).

Membership ids in this API are the member's principal id; a membership is
unique per (vault, principal).

Usage:
    from vaultward.vault import registry
    vault = registry.create_vault(owner_id, "Team", VaultKind.GROUP, envelope)
    registry.add_member(owner_id, vault.id, bob_id, Role.READ_ONLY, bob_envelope)
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from psycopg2.extras import RealDictCursor

from vaultward.audit import trail
from vaultward.auth import principals
from vaultward.db.connection import get_connection
from vaultward.errors import Conflict, NotFound
from vaultward.models import (
    AuditAction,
    Capability,
    Member,
    Membership,
    Owner,
    Role,
    TargetKind,
    Vault,
    VaultKind,
    VaultSummary,
    VaultView,
)
from vaultward.schemas import (
    AddMemberRequest,
    ChangeRoleRequest,
    CreateVaultRequest,
    RenameVaultRequest,
    parse,
)
from vaultward.vault import access, dal, envelopes

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


# ─── Creation ────────────────────────────────────────────────────────────


def create_vault_in(
    cur,
    owner_id: str,
    name: str,
    kind: VaultKind,
    owner_envelope: str,
    *,
    ip_address: str | None = None,
) -> Vault:
    """Create a vault inside an existing transaction (used by registration)."""
    vault = dal.insert_vault(
        cur,
        vault_id=str(uuid.uuid4()),
        name=name,
        kind=kind,
        owner_id=owner_id,
        now=_now(),
    )
    envelopes.put(cur, vault.id, owner_id, owner_envelope)
    trail.append(
        cur,
        actor_id=owner_id,
        action=AuditAction.VAULT_CREATED,
        target_id=vault.id,
        target_kind=TargetKind.VAULT,
        ip_address=ip_address,
        metadata={"name": vault.name, "kind": vault.kind.value},
    )
    return vault


def create_vault(
    owner_id: str,
    name: str,
    kind: VaultKind | str,
    owner_envelope: str,
    *,
    ip_address: str | None = None,
) -> Vault:
    """Create an ACTIVE vault owned by ``owner_id`` with its owner envelope."""
    req = parse(CreateVaultRequest, name=name, kind=kind, envelope=owner_envelope)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        if principals.get_active_principal(cur, owner_id) is None:
            raise NotFound("Principal")
        vault = create_vault_in(cur, owner_id, req.name, req.kind, req.envelope, ip_address=ip_address)
    logger.info("Vault %s (%s) created by %s", vault.id, vault.kind.value, owner_id)
    return vault


# ─── Reads ───────────────────────────────────────────────────────────────


def list_vaults(caller_id: str) -> list[VaultSummary]:
    """Every active vault the caller owns or belongs to."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        if principals.get_active_principal(cur, caller_id) is None:
            return []
        rows = dal.list_vaults_for(cur, caller_id)

    summaries: list[VaultSummary] = []
    for row in rows:
        vault = dal.vault_from_row(row)
        relation = Owner() if vault.owner_id == caller_id else Member(Role(row["member_role"]))
        summaries.append(
            VaultSummary(
                vault=vault,
                relation=relation,
                member_count=int(row.get("member_count") or 0),
                item_count=int(row.get("item_count") or 0),
            )
        )
    return summaries


def open_vault(caller_id: str, vault_id: str, *, ip_address: str | None = None) -> VaultView:
    """Return vault details with the caller's own envelope (requires READ_ITEMS)."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        vault, relation = access.authorize(cur, caller_id, vault_id, Capability.READ_ITEMS)
        envelope = envelopes.get(cur, vault_id, caller_id)
        if envelope is None:
            logger.error("Vault %s has no envelope for holder %s", vault_id, caller_id)
            raise NotFound("Vault")
        members = dal.list_memberships(cur, vault_id)
        trail.append(
            cur,
            actor_id=caller_id,
            action=AuditAction.VAULT_ACCESSED,
            target_id=vault_id,
            target_kind=TargetKind.VAULT,
            ip_address=ip_address,
        )
    return VaultView(vault=vault, relation=relation, key_envelope=envelope, members=members)


def list_members(caller_id: str, vault_id: str) -> list[Membership]:
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        access.authorize(cur, caller_id, vault_id, Capability.READ_ITEMS)
        return dal.list_memberships(cur, vault_id)


# ─── Mutations ───────────────────────────────────────────────────────────


def rename_vault(caller_id: str, vault_id: str, name: str, *, ip_address: str | None = None) -> Vault:
    req = parse(RenameVaultRequest, name=name)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        vault, _ = access.authorize(cur, caller_id, vault_id, Capability.RENAME_VAULT, lock=True)
        renamed = dal.rename_vault(cur, vault_id, req.name, _now())
        trail.append(
            cur,
            actor_id=caller_id,
            action=AuditAction.VAULT_RENAMED,
            target_id=vault_id,
            target_kind=TargetKind.VAULT,
            ip_address=ip_address,
            metadata={"old_name": vault.name, "new_name": renamed.name},
        )
    return renamed


def add_member(
    caller_id: str,
    vault_id: str,
    target_id: str,
    role: Role | str,
    envelope: str,
    *,
    ip_address: str | None = None,
) -> Membership:
    """Grant ``target_id`` a role with an envelope the caller re-wrapped client-side."""
    req = parse(AddMemberRequest, principal_id=target_id, role=role, envelope=envelope)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        vault, _ = access.authorize(cur, caller_id, vault_id, Capability.MANAGE_MEMBERS, lock=True)

        if principals.get_active_principal(cur, req.principal_id) is None:
            raise NotFound("Principal")
        if req.principal_id == vault.owner_id:
            raise Conflict("The vault owner cannot be added as a member")
        if dal.get_membership(cur, vault_id, req.principal_id) is not None:
            raise Conflict("Principal is already a member of this vault")

        membership = dal.insert_membership(
            cur,
            membership_id=str(uuid.uuid4()),
            vault_id=vault_id,
            principal_id=req.principal_id,
            role=req.role,
            now=_now(),
        )
        envelopes.put(cur, vault_id, req.principal_id, req.envelope)
        trail.append(
            cur,
            actor_id=caller_id,
            action=AuditAction.MEMBER_ADDED,
            target_id=membership.id,
            target_kind=TargetKind.MEMBERSHIP,
            ip_address=ip_address,
            metadata={"vault_id": vault_id, "principal_id": req.principal_id, "role": req.role.value},
        )
    logger.info("Member %s added to vault %s as %s by %s", req.principal_id, vault_id, req.role.value, caller_id)
    return membership


def change_member_role(
    caller_id: str,
    vault_id: str,
    member_id: str,
    new_role: Role | str,
    *,
    ip_address: str | None = None,
) -> Membership:
    req = parse(ChangeRoleRequest, role=new_role)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        access.authorize(cur, caller_id, vault_id, Capability.MANAGE_MEMBERS, lock=True)

        current = dal.get_membership(cur, vault_id, member_id, for_update=True)
        if current is None:
            raise NotFound("Member")
        if current.role == req.role:
            raise Conflict(f"Member already holds role {req.role.value}")

        updated = dal.update_membership_role(cur, vault_id, member_id, req.role)
        trail.append(
            cur,
            actor_id=caller_id,
            action=AuditAction.MEMBER_ROLE_CHANGED,
            target_id=updated.id,
            target_kind=TargetKind.MEMBERSHIP,
            ip_address=ip_address,
            metadata={
                "vault_id": vault_id,
                "principal_id": member_id,
                "old_role": current.role.value,
                "new_role": req.role.value,
            },
        )
    return updated


def _remove_membership(
    cur,
    caller_id: str,
    membership: Membership,
    *,
    ip_address: str | None,
    cascade: bool = False,
) -> None:
    """Delete a membership row and its envelope, then audit it."""
    dal.delete_membership(cur, membership.vault_id, membership.principal_id)
    envelopes.delete(cur, membership.vault_id, membership.principal_id)
    metadata = {"vault_id": membership.vault_id, "principal_id": membership.principal_id, "role": membership.role.value}
    if cascade:
        metadata["cascade"] = True
    trail.append(
        cur,
        actor_id=caller_id,
        action=AuditAction.MEMBER_REMOVED,
        target_id=membership.id,
        target_kind=TargetKind.MEMBERSHIP,
        ip_address=ip_address,
        metadata=metadata,
    )


def remove_member(caller_id: str, vault_id: str, member_id: str, *, ip_address: str | None = None) -> None:
    """Revoke a member: row and envelope go together, irreversibly."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        access.authorize(cur, caller_id, vault_id, Capability.MANAGE_MEMBERS, lock=True)

        membership = dal.get_membership(cur, vault_id, member_id, for_update=True)
        if membership is None:
            raise NotFound("Member")
        _remove_membership(cur, caller_id, membership, ip_address=ip_address)
    logger.info("Member %s removed from vault %s by %s", member_id, vault_id, caller_id)


def delete_vault(caller_id: str, vault_id: str, *, ip_address: str | None = None) -> None:
    """Owner-only. Cascades memberships, envelopes and items; vault becomes DELETED.

    Membership removals are audited first, then exactly one VAULT_DELETED.
    A retry on an already deleted vault raises NotFound.
    """
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        vault, _ = access.authorize(cur, caller_id, vault_id, Capability.DELETE_VAULT, lock=True)

        members = dal.list_memberships(cur, vault_id)
        for membership in members:
            _remove_membership(cur, caller_id, membership, ip_address=ip_address, cascade=True)
        envelopes.delete_for_vault(cur, vault_id)
        now = _now()
        items_deleted = dal.soft_delete_vault_items(cur, vault_id, now)
        dal.mark_vault_deleted(cur, vault_id, now)
        trail.append(
            cur,
            actor_id=caller_id,
            action=AuditAction.VAULT_DELETED,
            target_id=vault_id,
            target_kind=TargetKind.VAULT,
            ip_address=ip_address,
            metadata={"name": vault.name, "members_removed": len(members), "items_deleted": items_deleted},
        )
    logger.info("Vault %s deleted by %s (%d members removed)", vault_id, caller_id, len(members))
