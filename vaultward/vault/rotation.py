"""
Credential rotation — re-key every owned vault in one all-or-nothing batch.

When a principal changes its unlock credential, every owner envelope
wrapped under the old key material becomes stale. The client re-wraps
each owned vault's key under the new material and submits the whole set.
This module applies it in a single transaction:

    verify current credential -> lock owned vaults -> check the batch covers
    exactly those vaults -> replace each envelope -> store new verifier hash
    -> revoke other sessions -> one CREDENTIAL_ROTATED audit entry

Any failure along the way rolls everything back; a half-rotated principal
is never observable.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from psycopg2.extras import RealDictCursor

from vaultward.audit import trail
from vaultward.auth import credentials, principals, sessions
from vaultward.db.connection import get_connection
from vaultward.errors import Unauthorized, ValidationError
from vaultward.models import AuditAction, TargetKind
from vaultward.schemas import RotationBatch, parse
from vaultward.vault import dal, envelopes

logger = logging.getLogger(__name__)


def rotate_credential(
    principal_id: str,
    current_verifier: str,
    new_verifier: str,
    new_envelopes: dict[str, str],
    *,
    keep_session_id: str | None = None,
    ip_address: str | None = None,
) -> int:
    """Apply a credential rotation batch. Returns the number of vaults re-keyed."""
    batch = parse(
        RotationBatch,
        current_verifier=current_verifier,
        new_verifier=new_verifier,
        envelopes=new_envelopes,
    )
    # Hash outside the transaction; PBKDF2 is slow and needs no row locks.
    new_hash = credentials.hash_verifier(batch.new_verifier)

    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        stored = principals.get_verifier_hash(cur, principal_id, for_update=True)
        if not credentials.verify_verifier(batch.current_verifier, stored):
            raise Unauthorized("Current credential does not match")

        owned = dal.list_owned_vault_ids(cur, principal_id, for_update=True)
        submitted = set(batch.envelopes)
        missing = sorted(set(owned) - submitted)
        unknown = sorted(submitted - set(owned))
        if missing or unknown:
            raise ValidationError(
                "Rotation batch must cover exactly the vaults you own "
                f"(missing: {len(missing)}, not owned: {len(unknown)})"
            )

        now = datetime.now(UTC)
        for vault_id in owned:
            envelopes.put(cur, vault_id, principal_id, batch.envelopes[vault_id], replace=True)
        principals.update_verifier(cur, principal_id, new_hash, now)
        revoked = sessions.revoke_all_sessions(cur, principal_id, now, keep_session_id=keep_session_id)
        trail.append(
            cur,
            actor_id=principal_id,
            action=AuditAction.CREDENTIAL_ROTATED,
            target_id=principal_id,
            target_kind=TargetKind.PRINCIPAL,
            ip_address=ip_address,
            metadata={"vaults_rekeyed": len(owned), "sessions_revoked": revoked},
        )

    logger.info("Credential rotated for %s (%d vaults re-keyed)", principal_id, len(owned))
    return len(owned)
