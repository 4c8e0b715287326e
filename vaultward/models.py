"""
Data models for Vaultward.

Records are plain dataclasses built from RealDictCursor rows, no ORM.
Enums are StrEnums so their values go straight into SQL parameters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class VaultKind(StrEnum):
    PERSONAL = "personal"
    GROUP = "group"
    STEALTH = "stealth"
    ORGANIZATION = "organization"


class VaultState(StrEnum):
    ACTIVE = "active"
    DELETED = "deleted"


class Role(StrEnum):
    """Membership roles. The owner is not a role, see Owner below."""

    ADMIN = "admin"
    MEMBER = "member"
    READ_ONLY = "read_only"


class Capability(StrEnum):
    READ_ITEMS = "read_items"
    WRITE_ITEMS = "write_items"
    DELETE_ITEMS = "delete_items"
    MANAGE_MEMBERS = "manage_members"
    RENAME_VAULT = "rename_vault"
    DELETE_VAULT = "delete_vault"


class Decision(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


class TargetKind(StrEnum):
    PRINCIPAL = "principal"
    SESSION = "session"
    VAULT = "vault"
    MEMBERSHIP = "membership"
    ITEM = "item"


class AuditAction(StrEnum):
    PRINCIPAL_REGISTERED = "principal.registered"
    PRINCIPAL_DISABLED = "principal.disabled"
    LOGIN_SUCCEEDED = "auth.login"
    LOGIN_FAILED = "auth.login_failed"
    LOGOUT = "auth.logout"
    SESSION_REVOKED = "auth.session_revoked"
    SESSION_REFRESHED = "auth.session_refreshed"
    CREDENTIAL_ROTATED = "auth.credential_rotated"
    VAULT_CREATED = "vault.created"
    VAULT_RENAMED = "vault.renamed"
    VAULT_ACCESSED = "vault.accessed"
    VAULT_DELETED = "vault.deleted"
    MEMBER_ADDED = "member.added"
    MEMBER_ROLE_CHANGED = "member.role_changed"
    MEMBER_REMOVED = "member.removed"
    ITEM_CREATED = "item.created"
    ITEM_VIEWED = "item.viewed"
    ITEM_UPDATED = "item.updated"
    ITEM_COPIED = "item.copied"
    ITEM_DELETED = "item.deleted"
    ITEM_RESTORED = "item.restored"
    ITEM_SHREDDED = "item.shredded"


# ─── Principal-on-vault relation ─────────────────────────────────────────


@dataclass(frozen=True)
class Owner:
    """The distinguished owner relation. Never stored as a membership row."""

    @property
    def key(self) -> str:
        return "owner"


@dataclass(frozen=True)
class Member:
    """A membership relation carrying its role."""

    role: Role

    @property
    def key(self) -> str:
        return self.role.value


Relation = Owner | Member


# ─── Records ─────────────────────────────────────────────────────────────


@dataclass
class Principal:
    id: str
    email: str
    created_at: datetime | None = None
    disabled_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.disabled_at is None


@dataclass
class Vault:
    id: str
    name: str
    kind: VaultKind
    owner_id: str
    state: VaultState = VaultState.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Membership:
    id: str
    vault_id: str
    principal_id: str
    role: Role
    added_at: datetime | None = None


@dataclass
class Item:
    id: str
    vault_id: str
    encrypted_payload: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_viewed_at: datetime | None = None
    last_copied_at: datetime | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None


@dataclass
class AuditEntry:
    id: int
    actor_id: str | None
    action: str
    target_id: str
    target_kind: str
    timestamp: datetime
    ip_address: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Session:
    """A durable (principal, device) session."""

    id: str
    principal_id: str
    device_fingerprint: str
    device_name: str = ""
    user_agent: str = ""
    ip_address: str | None = None
    created_at: datetime | None = None
    last_seen_at: datetime | None = None
    expires_at: datetime | None = None
    revoked_at: datetime | None = None


# ─── Composite results ───────────────────────────────────────────────────


@dataclass
class VaultSummary:
    vault: Vault
    relation: Relation
    member_count: int = 0
    item_count: int = 0


@dataclass
class VaultView:
    """What a holder sees when opening a vault: its own envelope, never another's."""

    vault: Vault
    relation: Relation
    key_envelope: str
    members: list[Membership] = field(default_factory=list)


@dataclass
class AuthContext:
    """Resolved identity handed to the rest of the system by the AuthGateway."""

    principal_id: str
    session_id: str
    device_fingerprint: str
    ip_address: str | None = None


@dataclass
class IssuedSession:
    """Returned once at login, registration or refresh. The only time the raw token exists."""

    session: Session
    token: str
    principal: Principal
    personal_vault_id: str | None = None
    personal_envelope: str | None = None
