"""Tests for vaultward.audit.trail — uses mocked DB connections."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from vaultward.audit import trail
from vaultward.errors import TransientError
from vaultward.models import AuditAction, TargetKind
from vaultward.schemas import AuditQuery

TS = datetime(2026, 2, 22, 12, 0, 0, tzinfo=UTC)


def _row(**kw):
    row = {
        "id": 1,
        "actor_id": "p1",
        "action": "vault.created",
        "target_id": "v1",
        "target_kind": "vault",
        "timestamp": TS,
        "ip_address": None,
        "metadata": {},
    }
    row.update(kw)
    return row


@pytest.fixture
def db(mock_conn):
    with patch("vaultward.audit.trail.get_connection") as gc:
        gc.return_value.__enter__ = MagicMock(return_value=mock_conn)
        gc.return_value.__exit__ = MagicMock(return_value=False)
        yield mock_conn


class TestAppend:
    def test_inserts_and_returns_entry(self, mock_cursor):
        mock_cursor.fetchone.return_value = _row(metadata={"name": "Team"})
        entry = trail.append(
            mock_cursor,
            actor_id="p1",
            action=AuditAction.VAULT_CREATED,
            target_id="v1",
            target_kind=TargetKind.VAULT,
            metadata={"name": "Team"},
        )
        assert entry.id == 1
        assert entry.metadata == {"name": "Team"}

        sql, params = mock_cursor.execute.call_args[0]
        assert "INSERT INTO audit_log" in sql
        assert params[0] == "p1"
        assert params[1] == "vault.created"
        assert params[2] == "v1"
        assert params[3] == "vault"
        assert params[6].adapted == {"name": "Team"}

    def test_uses_callers_cursor_only(self, mock_cursor):
        mock_cursor.fetchone.return_value = _row()
        with patch("vaultward.audit.trail.get_connection") as gc:
            trail.append(
                mock_cursor,
                actor_id="p1",
                action=AuditAction.VAULT_CREATED,
                target_id="v1",
                target_kind=TargetKind.VAULT,
            )
        gc.assert_not_called()

    def test_failure_propagates(self, mock_cursor):
        mock_cursor.execute.side_effect = RuntimeError("disk full")
        with pytest.raises(RuntimeError):
            trail.append(
                mock_cursor,
                actor_id="p1",
                action=AuditAction.VAULT_DELETED,
                target_id="v1",
                target_kind=TargetKind.VAULT,
            )

    def test_missing_row_raises(self, mock_cursor):
        mock_cursor.fetchone.return_value = None
        with pytest.raises(TransientError) as exc:
            trail.append(
                mock_cursor,
                actor_id=None,
                action=AuditAction.LOGIN_FAILED,
                target_id="ana@example.com",
                target_kind=TargetKind.PRINCIPAL,
            )
        assert exc.value.retryable


class TestQuery:
    def test_default_ascending_with_default_limit(self, db, mock_cursor):
        mock_cursor.fetchall.return_value = [_row(id=1), _row(id=2)]
        entries = trail.query()
        assert [e.id for e in entries] == [1, 2]

        sql, params = mock_cursor.execute.call_args[0]
        assert "ORDER BY timestamp ASC, id ASC" in sql
        assert params == [50, 0]

    def test_filters(self, db, mock_cursor):
        mock_cursor.fetchall.return_value = []
        trail.query(
            AuditQuery(
                actor_id="p1",
                action=AuditAction.MEMBER_ADDED,
                target_kind=TargetKind.MEMBERSHIP,
                since=TS,
                limit=10,
                offset=20,
                newest_first=True,
            )
        )
        sql, params = mock_cursor.execute.call_args[0]
        assert "actor_id = %s" in sql
        assert "action = %s" in sql
        assert "target_kind = %s" in sql
        assert "timestamp >= %s" in sql
        assert "ORDER BY timestamp DESC, id DESC" in sql
        assert params == ["p1", "member.added", "membership", TS, 10, 20]

    def test_limit_is_clamped(self, db, mock_cursor):
        mock_cursor.fetchall.return_value = []
        trail.query(AuditQuery(limit=10_000))
        _, params = mock_cursor.execute.call_args[0]
        assert params[-2] == 500


class TestCountAndStats:
    def test_count(self, db, mock_cursor):
        mock_cursor.fetchone.return_value = (7,)
        assert trail.count(AuditQuery(target_id="v1")) == 7
        sql, params = mock_cursor.execute.call_args[0]
        assert "target_id = %s" in sql
        assert params == ["v1"]

    def test_stats(self, db, mock_cursor):
        mock_cursor.fetchone.return_value = (10, 3, TS, TS)
        mock_cursor.fetchall.return_value = [("vault.created", 6), ("member.added", 4)]
        result = trail.stats()
        assert result["total_events"] == 10
        assert result["unique_actions"] == 3
        assert result["earliest"] == TS.isoformat()
        assert result["by_action"] == {"vault.created": 6, "member.added": 4}

    def test_stats_empty(self, db, mock_cursor):
        mock_cursor.fetchone.return_value = (0, 0, None, None)
        mock_cursor.fetchall.return_value = []
        result = trail.stats()
        assert result["earliest"] is None
        assert result["by_action"] == {}
