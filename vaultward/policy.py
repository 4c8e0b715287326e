"""
Access Policy Engine — the single capability matrix for vault access.

Pure and side-effect free: no database access, no exceptions. Roles are
data, not types; a decision is one lookup in CAPABILITY_MATRIX keyed by
the principal's relation to the vault (Owner, or Member(role)).

Callers translate a DENY into NotFound (no relation at all, so existence
must not leak) or Forbidden (relation exists, capability missing). That
translation lives in vaultward.vault.access.

Usage:
    from vaultward.policy import decide, relation_of
    relation = relation_of(principal_id, vault, membership)
    if decide(relation, Capability.WRITE_ITEMS) is Decision.ALLOW: ...
"""

from __future__ import annotations

from types import MappingProxyType

from vaultward.models import (
    Capability,
    Decision,
    Member,
    Membership,
    Owner,
    Relation,
    Role,
    Vault,
    VaultState,
)

_ALL = frozenset(Capability)

# Owner is the only holder of DELETE_VAULT; no membership role may ever gain it.
CAPABILITY_MATRIX: MappingProxyType[str, frozenset[Capability]] = MappingProxyType({
    "owner": _ALL,
    Role.ADMIN.value: frozenset({
        Capability.READ_ITEMS,
        Capability.WRITE_ITEMS,
        Capability.DELETE_ITEMS,
        Capability.MANAGE_MEMBERS,
    }),
    Role.MEMBER.value: frozenset({
        Capability.READ_ITEMS,
        Capability.WRITE_ITEMS,
        Capability.DELETE_ITEMS,
    }),
    Role.READ_ONLY.value: frozenset({
        Capability.READ_ITEMS,
    }),
})


def relation_of(
    principal_id: str | None,
    vault: Vault | None,
    membership: Membership | None = None,
) -> Relation | None:
    """Resolve a principal's relation to a vault.

    Returns None for an unknown principal, a missing or deleted vault, or a
    membership row that belongs to another vault/principal.
    """
    if not principal_id or vault is None or vault.state != VaultState.ACTIVE:
        return None
    if vault.owner_id == principal_id:
        return Owner()
    if (
        membership is not None
        and membership.vault_id == vault.id
        and membership.principal_id == principal_id
    ):
        return Member(membership.role)
    return None


def capabilities_for(relation: Relation | None) -> frozenset[Capability]:
    """Return the capability set granted by a relation (empty for None)."""
    if relation is None:
        return frozenset()
    return CAPABILITY_MATRIX.get(relation.key, frozenset())


def decide(relation: Relation | None, capability: Capability) -> Decision:
    """Allow iff the relation's row in the matrix contains the capability."""
    if capability in capabilities_for(relation):
        return Decision.ALLOW
    return Decision.DENY


def is_allowed(relation: Relation | None, capability: Capability) -> bool:
    return decide(relation, capability) is Decision.ALLOW
