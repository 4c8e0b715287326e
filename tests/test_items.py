"""Tests for vaultward.vault.items on FakeStore."""

from __future__ import annotations

import pytest

from tests.fakes import make_envelope
from vaultward.errors import Forbidden, NotFound, ValidationError
from vaultward.models import AuditAction, Role
from vaultward.vault import items, registry


@pytest.fixture
def item(store, owner, group_vault):
    return items.create_item(owner, group_vault.id, "ciphertext-v1")


class TestCreate:
    def test_create_and_list(self, store, owner, group_vault, item):
        assert item.vault_id == group_vault.id
        assert [i.id for i in items.list_items(owner, group_vault.id)] == [item.id]
        assert store.entries(action=AuditAction.ITEM_CREATED, target_id=item.id)

    def test_empty_payload_rejected(self, store, owner, group_vault):
        with pytest.raises(ValidationError):
            items.create_item(owner, group_vault.id, "")

    def test_stranger_cannot_create(self, store, bob, group_vault):
        with pytest.raises(NotFound):
            items.create_item(bob, group_vault.id, "ciphertext")


class TestRead:
    def test_get_marks_viewed_and_audits(self, store, owner, item):
        fetched = items.get_item(owner, item.id, ip_address="10.1.1.1")
        assert fetched.encrypted_payload == "ciphertext-v1"
        assert fetched.last_viewed_at is not None
        assert store.item_rows[item.id].last_viewed_at is not None
        viewed = store.entries(action=AuditAction.ITEM_VIEWED)
        assert len(viewed) == 1
        assert viewed[0].metadata == {"vault_id": item.vault_id}

    def test_record_copy(self, store, owner, item):
        items.record_copy(owner, item.id)
        assert store.item_rows[item.id].last_copied_at is not None
        assert len(store.entries(action=AuditAction.ITEM_COPIED)) == 1

    def test_read_only_member_can_read(self, store, owner, alice, group_vault, item):
        registry.add_member(owner, group_vault.id, alice, Role.READ_ONLY, make_envelope())
        assert items.get_item(alice, item.id).id == item.id

    def test_stranger_gets_not_found(self, store, bob, item):
        with pytest.raises(NotFound) as exc:
            items.get_item(bob, item.id)
        assert exc.value.resource == "Item"

    def test_missing_item(self, store, owner):
        with pytest.raises(NotFound):
            items.get_item(owner, "no-such-item")


class TestWrite:
    def test_update(self, store, owner, item):
        updated = items.update_item(owner, item.id, "ciphertext-v2")
        assert updated.encrypted_payload == "ciphertext-v2"
        assert len(store.entries(action=AuditAction.ITEM_UPDATED)) == 1

    def test_read_only_cannot_update(self, store, owner, alice, group_vault, item):
        registry.add_member(owner, group_vault.id, alice, Role.READ_ONLY, make_envelope())
        with pytest.raises(Forbidden):
            items.update_item(alice, item.id, "tampered")
        assert store.item_rows[item.id].encrypted_payload == "ciphertext-v1"

    def test_member_can_update(self, store, owner, alice, group_vault, item):
        registry.add_member(owner, group_vault.id, alice, Role.MEMBER, make_envelope())
        assert items.update_item(alice, item.id, "v2").encrypted_payload == "v2"


class TestDelete:
    def test_soft_delete_hides_item(self, store, owner, group_vault, item):
        items.delete_item(owner, item.id)
        assert store.item_rows[item.id].is_deleted
        assert items.list_items(owner, group_vault.id) == []
        with pytest.raises(NotFound):
            items.get_item(owner, item.id)
        assert [i.id for i in items.list_trash(owner, group_vault.id)] == [item.id]

    def test_restore(self, store, owner, group_vault, item):
        items.delete_item(owner, item.id)
        items.restore_item(owner, item.id)
        assert not store.item_rows[item.id].is_deleted
        assert store.item_rows[item.id].deleted_at is None

    def test_restore_live_item_is_not_found(self, store, owner, item):
        with pytest.raises(NotFound):
            items.restore_item(owner, item.id)

    def test_shred_removes_row(self, store, owner, item):
        items.delete_item(owner, item.id)
        items.shred_item(owner, item.id)
        assert item.id not in store.item_rows
        assert len(store.entries(action=AuditAction.ITEM_SHREDDED)) == 1

    def test_read_only_cannot_delete(self, store, owner, alice, group_vault, item):
        registry.add_member(owner, group_vault.id, alice, Role.READ_ONLY, make_envelope())
        with pytest.raises(Forbidden):
            items.delete_item(alice, item.id)
        with pytest.raises(Forbidden):
            items.shred_item(alice, item.id)

    def test_items_gone_after_vault_delete(self, store, owner, group_vault, item):
        registry.delete_vault(owner, group_vault.id)
        with pytest.raises(NotFound):
            items.get_item(owner, item.id)
