"""
Vault access enforcement — the one place a DENY becomes an error.

Every vault, membership, envelope and item operation goes through
``authorize()``. It loads the caller's relation to the vault, asks the
AccessPolicyEngine, and translates a DENY:

- no relation (unknown principal, disabled principal, missing or deleted
  vault, not a member) -> NotFound, so existence never leaks;
- relation present but capability missing -> Forbidden.
"""

from __future__ import annotations

import logging

from vaultward import policy
from vaultward.auth import principals
from vaultward.errors import Forbidden, NotFound
from vaultward.models import Capability, Relation, Vault
from vaultward.vault import dal

logger = logging.getLogger(__name__)


def resolve(
    cur,
    principal_id: str | None,
    vault_id: str,
    *,
    lock: bool = False,
) -> tuple[Vault | None, Relation | None]:
    """Load the vault (optionally row-locked) and the caller's relation to it."""
    vault = dal.get_vault(cur, vault_id, for_update=lock)
    if vault is None or not principal_id:
        return vault, None
    if principals.get_active_principal(cur, principal_id) is None:
        return vault, None
    membership = None
    if vault.owner_id != principal_id:
        membership = dal.get_membership(cur, vault_id, principal_id)
    return vault, policy.relation_of(principal_id, vault, membership)


def authorize(
    cur,
    principal_id: str | None,
    vault_id: str,
    capability: Capability,
    *,
    lock: bool = False,
    resource: str = "Vault",
) -> tuple[Vault, Relation]:
    """Return (vault, relation) if allowed, else raise NotFound or Forbidden."""
    vault, relation = resolve(cur, principal_id, vault_id, lock=lock)
    if policy.is_allowed(relation, capability):
        return vault, relation  # type: ignore[return-value]

    if relation is None:
        logger.info("Denied %s on %s for %s: no relation", capability.value, vault_id, principal_id)
        raise NotFound(resource)
    logger.info(
        "Denied %s on %s for %s: relation %s lacks capability",
        capability.value,
        vault_id,
        principal_id,
        relation.key,
    )
    raise Forbidden(f"Your role on this vault does not allow {capability.value}")
