"""Tests for vaultward.vault.access — DENY translation into NotFound / Forbidden."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from vaultward.errors import Forbidden, NotFound
from vaultward.models import Capability, Member, Membership, Owner, Principal, Role, Vault, VaultKind
from vaultward.vault import access

VAULT = Vault(id="v1", name="Team", kind=VaultKind.GROUP, owner_id="owner")


@pytest.fixture
def lookups():
    with (
        patch.object(access.dal, "get_vault") as get_vault,
        patch.object(access.dal, "get_membership") as get_membership,
        patch.object(access.principals, "get_active_principal") as get_active,
    ):
        get_vault.return_value = VAULT
        get_membership.return_value = None
        get_active.side_effect = lambda cur, pid: Principal(id=pid, email=f"{pid}@example.com")
        yield get_vault, get_membership, get_active


class TestAuthorize:
    def test_owner_allowed_without_membership_lookup(self, lookups):
        _, get_membership, _ = lookups
        vault, relation = access.authorize(None, "owner", "v1", Capability.DELETE_VAULT)
        assert vault is VAULT
        assert relation == Owner()
        get_membership.assert_not_called()

    def test_member_allowed(self, lookups):
        _, get_membership, _ = lookups
        get_membership.return_value = Membership(id="m1", vault_id="v1", principal_id="alice", role=Role.MEMBER)
        _, relation = access.authorize(None, "alice", "v1", Capability.WRITE_ITEMS)
        assert relation == Member(Role.MEMBER)

    def test_missing_capability_is_forbidden(self, lookups):
        _, get_membership, _ = lookups
        get_membership.return_value = Membership(id="m1", vault_id="v1", principal_id="alice", role=Role.READ_ONLY)
        with pytest.raises(Forbidden):
            access.authorize(None, "alice", "v1", Capability.WRITE_ITEMS)

    def test_stranger_is_not_found(self, lookups):
        with pytest.raises(NotFound) as exc:
            access.authorize(None, "mallory", "v1", Capability.READ_ITEMS)
        assert exc.value.resource == "Vault"

    def test_missing_vault_is_not_found(self, lookups):
        get_vault, _, _ = lookups
        get_vault.return_value = None
        with pytest.raises(NotFound):
            access.authorize(None, "owner", "v1", Capability.READ_ITEMS)

    def test_disabled_owner_is_not_found(self, lookups):
        _, _, get_active = lookups
        get_active.side_effect = None
        get_active.return_value = None
        with pytest.raises(NotFound):
            access.authorize(None, "owner", "v1", Capability.READ_ITEMS)

    def test_resource_name_is_used(self, lookups):
        with pytest.raises(NotFound) as exc:
            access.authorize(None, "mallory", "v1", Capability.READ_ITEMS, resource="Item")
        assert str(exc.value) == "Item not found"

    def test_lock_requests_row_lock(self, lookups):
        get_vault, _, _ = lookups
        access.authorize(None, "owner", "v1", Capability.RENAME_VAULT, lock=True)
        get_vault.assert_called_once_with(None, "v1", for_update=True)

    def test_policy_answer_is_final(self, lookups):
        with patch.object(access.policy, "is_allowed", return_value=False) as is_allowed:
            with pytest.raises(Forbidden):
                access.authorize(None, "owner", "v1", Capability.READ_ITEMS)
        is_allowed.assert_called_once_with(Owner(), Capability.READ_ITEMS)
