"""
AuthGateway — turns credentials and bearer tokens into an AuthContext.

Nothing downstream ever sees a raw token or verifier. The gateway:

- registers a principal together with its PERSONAL vault and first session
  in one transaction;
- logs in with a constant-time verifier check, so an unknown email and a
  wrong credential are indistinguishable (both Unauthorized, both audited);
- resolves ``Authorization`` values to an AuthContext, rejecting revoked,
  expired and unknown tokens as well as disabled principals;
- refreshes a live session with a new token and a new expiry;
- manages per-device sessions (list, revoke, logout);
- delegates credential changes to the rotation batch.

Usage:
    from vaultward.auth import gateway
    issued = gateway.login("ana@example.com", verifier, device_fingerprint="laptop")
    ctx = gateway.authenticate(f"Bearer {issued.token}")
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta

from psycopg2.extras import RealDictCursor

from vaultward.audit import trail
from vaultward.auth import credentials, principals, sessions
from vaultward.config import get_config
from vaultward.db.connection import get_connection
from vaultward.errors import Conflict, NotFound, Unauthorized
from vaultward.models import (
    AuditAction,
    AuthContext,
    Capability,
    IssuedSession,
    Principal,
    Session,
    TargetKind,
    VaultKind,
)
from vaultward.schemas import LoginRequest, RegisterRequest, parse
from vaultward.vault import access, dal, envelopes, registry, rotation

logger = logging.getLogger(__name__)

PERSONAL_VAULT_NAME = "Personal"


def _now() -> datetime:
    return datetime.now(UTC)


def _issue(
    cur,
    principal: Principal,
    *,
    device_fingerprint: str,
    device_name: str,
    user_agent: str,
    ip_address: str | None,
) -> IssuedSession:
    """Create or refresh the (principal, device) session with a fresh token."""
    token = credentials.new_token()
    now = _now()
    session = sessions.upsert_session(
        cur,
        session_id=str(uuid.uuid4()),
        principal_id=principal.id,
        device_fingerprint=device_fingerprint,
        device_name=device_name,
        user_agent=user_agent,
        ip_address=ip_address,
        token_hash=credentials.hash_token(token),
        now=now,
        expires_at=now + timedelta(seconds=get_config().auth.session_ttl),
    )
    vault_id = dal.get_personal_vault_id(cur, principal.id)
    envelope = None
    if vault_id:
        access.authorize(cur, principal.id, vault_id, Capability.READ_ITEMS)
        envelope = envelopes.get(cur, vault_id, principal.id)
    trail.append(
        cur,
        actor_id=principal.id,
        action=AuditAction.LOGIN_SUCCEEDED,
        target_id=session.id,
        target_kind=TargetKind.SESSION,
        ip_address=ip_address,
        metadata={"device_fingerprint": device_fingerprint, "device_name": device_name},
    )
    return IssuedSession(
        session=session,
        token=token,
        principal=principal,
        personal_vault_id=vault_id,
        personal_envelope=envelope,
    )


# ─── Registration / login ────────────────────────────────────────────────


def register(
    email: str,
    verifier: str,
    personal_envelope: str,
    *,
    device_fingerprint: str = "web-device",
    device_name: str = "Unknown Device",
    user_agent: str = "",
    ip_address: str | None = None,
) -> IssuedSession:
    """Create a principal, its PERSONAL vault and a first session atomically."""
    req = parse(
        RegisterRequest,
        email=email,
        verifier=verifier,
        envelope=personal_envelope,
        device_fingerprint=device_fingerprint,
        device_name=device_name,
        user_agent=user_agent,
    )
    verifier_hash = credentials.hash_verifier(req.verifier)

    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        if principals.get_principal_by_email(cur, req.email) is not None:
            raise Conflict("An account with this email already exists")
        principal = principals.insert_principal(
            cur,
            principal_id=str(uuid.uuid4()),
            email=req.email,
            verifier_hash=verifier_hash,
            now=_now(),
        )
        trail.append(
            cur,
            actor_id=principal.id,
            action=AuditAction.PRINCIPAL_REGISTERED,
            target_id=principal.id,
            target_kind=TargetKind.PRINCIPAL,
            ip_address=ip_address,
        )
        registry.create_vault_in(
            cur,
            principal.id,
            PERSONAL_VAULT_NAME,
            VaultKind.PERSONAL,
            req.envelope,
            ip_address=ip_address,
        )
        issued = _issue(
            cur,
            principal,
            device_fingerprint=req.device_fingerprint,
            device_name=req.device_name,
            user_agent=req.user_agent,
            ip_address=ip_address,
        )
    logger.info("Registered principal %s", principal.id)
    return issued


def login(
    email: str,
    verifier: str,
    *,
    device_fingerprint: str = "web-device",
    device_name: str = "Unknown Device",
    user_agent: str = "",
    ip_address: str | None = None,
) -> IssuedSession:
    """Verify credentials and issue a session token for this device.

    The failure audit entry commits even though the call raises.
    """
    req = parse(
        LoginRequest,
        email=email,
        verifier=verifier,
        device_fingerprint=device_fingerprint,
        device_name=device_name,
        user_agent=user_agent,
    )

    issued: IssuedSession | None = None
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        principal = principals.get_principal_by_email(cur, req.email)
        stored = principals.get_verifier_hash(cur, principal.id) if principal else None
        if stored is None:
            credentials.dummy_verify(req.verifier)
            ok = False
        else:
            ok = credentials.verify_verifier(req.verifier, stored)

        if ok:
            issued = _issue(
                cur,
                principal,
                device_fingerprint=req.device_fingerprint,
                device_name=req.device_name,
                user_agent=req.user_agent,
                ip_address=ip_address,
            )
        else:
            trail.append(
                cur,
                actor_id=principal.id if principal else None,
                action=AuditAction.LOGIN_FAILED,
                target_id=principal.id if principal else req.email,
                target_kind=TargetKind.PRINCIPAL,
                ip_address=ip_address,
                metadata={"device_fingerprint": req.device_fingerprint},
            )

    if issued is None:
        logger.info("Failed login from %s", ip_address or "unknown address")
        raise Unauthorized("Invalid email or credential")
    return issued


# ─── Token resolution ────────────────────────────────────────────────────


def _extract_token(authorization: str | None) -> str:
    value = (authorization or "").strip()
    scheme, _, rest = value.partition(" ")
    if rest and scheme.lower() == "bearer":
        value = rest.strip()
    if not value or " " in value:
        raise Unauthorized("Missing or malformed bearer token")
    return value


def authenticate(authorization: str | None, *, ip_address: str | None = None) -> AuthContext:
    """Resolve ``Bearer <token>`` (or a bare token) to an AuthContext."""
    token = _extract_token(authorization)
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        now = _now()
        session = sessions.get_live_session_by_token(cur, credentials.hash_token(token), now)
        if session is None:
            raise Unauthorized("Session expired or revoked")
        sessions.touch_session(cur, session.id, now, ip_address)
    return AuthContext(
        principal_id=session.principal_id,
        session_id=session.id,
        device_fingerprint=session.device_fingerprint,
        ip_address=ip_address,
    )


def refresh(context: AuthContext) -> IssuedSession:
    """Replace the session's token and restart its lifetime.

    Only a live session can be refreshed. The previous token stops working
    in the same transaction; an expired or revoked session needs a login.
    """
    token = credentials.new_token()
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        now = _now()
        principal = principals.get_active_principal(cur, context.principal_id)
        session = None
        if principal is not None:
            session = sessions.refresh_session(
                cur,
                context.session_id,
                context.principal_id,
                token_hash=credentials.hash_token(token),
                now=now,
                expires_at=now + timedelta(seconds=get_config().auth.session_ttl),
            )
        if session is None:
            raise Unauthorized("Session expired or revoked")
        trail.append(
            cur,
            actor_id=principal.id,
            action=AuditAction.SESSION_REFRESHED,
            target_id=session.id,
            target_kind=TargetKind.SESSION,
            ip_address=context.ip_address,
        )
    logger.info("Session %s refreshed for %s", session.id, principal.id)
    return IssuedSession(session=session, token=token, principal=principal)


# ─── Sessions ────────────────────────────────────────────────────────────


def logout(context: AuthContext) -> None:
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        if not sessions.revoke_session(cur, context.session_id, context.principal_id, _now()):
            raise Unauthorized("Session already ended")
        trail.append(
            cur,
            actor_id=context.principal_id,
            action=AuditAction.LOGOUT,
            target_id=context.session_id,
            target_kind=TargetKind.SESSION,
            ip_address=context.ip_address,
        )


def list_devices(principal_id: str) -> list[Session]:
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        return sessions.list_sessions(cur, principal_id, _now())


def revoke_device(principal_id: str, session_id: str, *, ip_address: str | None = None) -> None:
    """Revoke one of the principal's own sessions; anyone else's is NotFound."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        if not sessions.revoke_session(cur, session_id, principal_id, _now()):
            raise NotFound("Session")
        trail.append(
            cur,
            actor_id=principal_id,
            action=AuditAction.SESSION_REVOKED,
            target_id=session_id,
            target_kind=TargetKind.SESSION,
            ip_address=ip_address,
        )
    logger.info("Session %s revoked by %s", session_id, principal_id)


# ─── Account ─────────────────────────────────────────────────────────────


def change_credential(
    context: AuthContext,
    current_verifier: str,
    new_verifier: str,
    new_envelopes: dict[str, str],
) -> int:
    """Rotate the unlock credential; every other session is revoked."""
    return rotation.rotate_credential(
        context.principal_id,
        current_verifier,
        new_verifier,
        new_envelopes,
        keep_session_id=context.session_id,
        ip_address=context.ip_address,
    )


def disable_principal(
    principal_id: str,
    *,
    actor_id: str | None = None,
    ip_address: str | None = None,
) -> None:
    """Soft delete. Sessions are revoked; audit entries keep referencing the id."""
    with get_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor)
        now = _now()
        if not principals.disable_principal(cur, principal_id, now):
            raise NotFound("Principal")
        revoked = sessions.revoke_all_sessions(cur, principal_id, now)
        trail.append(
            cur,
            actor_id=actor_id or principal_id,
            action=AuditAction.PRINCIPAL_DISABLED,
            target_id=principal_id,
            target_kind=TargetKind.PRINCIPAL,
            ip_address=ip_address,
            metadata={"sessions_revoked": revoked},
        )
    logger.info("Principal %s disabled", principal_id)
