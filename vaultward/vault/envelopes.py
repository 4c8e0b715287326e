"""
Key Envelope Store — one opaque encrypted vault key per (vault, holder).

An envelope is the vault's symmetric key wrapped client-side for exactly
one holder. This module stores and returns the exact string it was given.
It checks length and encoding, never decodes, and has no authorization
logic; callers must have passed vaultward.vault.access first.

Overwrites happen only through ``put(..., replace=True)``, which the
credential-rotation batch uses. Every stored envelope also leaves a
SHA-256 digest in ``envelope_digests`` so a retired envelope can never be
issued again for the same vault.

All functions take a RealDictCursor so they join the caller's transaction.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import UTC, datetime

from vaultward.config import get_config
from vaultward.errors import Conflict, ValidationError

logger = logging.getLogger(__name__)

# Standard or URL-safe base64, optional padding
_ENVELOPE_RE = re.compile(r"[A-Za-z0-9+/_-]+={0,2}")


def validate_envelope(envelope: object) -> str:
    """Return the envelope unchanged if it passes length/encoding sanity checks."""
    if not isinstance(envelope, str):
        raise ValidationError("Envelope must be an encoded string")
    cfg = get_config().envelope
    if not cfg.min_length <= len(envelope) <= cfg.max_length:
        raise ValidationError(
            f"Envelope length must be between {cfg.min_length} and {cfg.max_length} characters"
        )
    if not _ENVELOPE_RE.fullmatch(envelope):
        raise ValidationError("Envelope must be base64 encoded")
    return envelope


def digest(envelope: str) -> str:
    return hashlib.sha256(envelope.encode("ascii")).hexdigest()


def _record_digest(cur, vault_id: str, envelope: str, now: datetime) -> None:
    cur.execute(
        """
        INSERT INTO envelope_digests (vault_id, digest, issued_at)
        VALUES (%s, %s, %s)
        ON CONFLICT (vault_id, digest) DO NOTHING
        """,
        (vault_id, digest(envelope), now),
    )
    if cur.rowcount == 0:
        raise ValidationError("Envelope was already issued for this vault; re-wrap the vault key")


def put(cur, vault_id: str, holder_id: str, envelope: str, *, replace: bool = False) -> None:
    """Store an envelope for (vault, holder).

    Without ``replace`` an existing envelope is a Conflict; with it, an
    envelope must already exist (rotation replaces, never creates).
    """
    validate_envelope(envelope)
    now = datetime.now(UTC)
    _record_digest(cur, vault_id, envelope, now)

    if replace:
        cur.execute(
            """
            UPDATE key_envelopes SET envelope = %s, updated_at = %s
            WHERE vault_id = %s AND holder_id = %s
            """,
            (envelope, now, vault_id, holder_id),
        )
        if cur.rowcount == 0:
            raise ValidationError(f"No envelope to replace for vault {vault_id}")
    else:
        cur.execute(
            """
            INSERT INTO key_envelopes (vault_id, holder_id, envelope, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (vault_id, holder_id) DO NOTHING
            """,
            (vault_id, holder_id, envelope, now, now),
        )
        if cur.rowcount == 0:
            raise Conflict("Holder already has an envelope for this vault")
    logger.debug("Stored envelope for vault=%s holder=%s (replace=%s)", vault_id, holder_id, replace)


def get(cur, vault_id: str, holder_id: str) -> str | None:
    """Return the stored envelope, or None."""
    cur.execute(
        "SELECT envelope FROM key_envelopes WHERE vault_id = %s AND holder_id = %s",
        (vault_id, holder_id),
    )
    row = cur.fetchone()
    return row["envelope"] if row else None


def delete(cur, vault_id: str, holder_id: str) -> bool:
    """Delete one holder's envelope. Returns True if a row was deleted."""
    cur.execute(
        "DELETE FROM key_envelopes WHERE vault_id = %s AND holder_id = %s",
        (vault_id, holder_id),
    )
    return cur.rowcount > 0


def delete_for_vault(cur, vault_id: str) -> int:
    """Delete every envelope of a vault. Returns the count."""
    cur.execute("DELETE FROM key_envelopes WHERE vault_id = %s", (vault_id,))
    return cur.rowcount
