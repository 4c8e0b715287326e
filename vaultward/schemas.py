"""
Request payload models handed in by the transport boundary.

The transport parses raw bytes; these pydantic models type-check the
payload. ``parse()`` converts pydantic's ValidationError into the
vaultward ValidationError so no framework error crosses the boundary.
Envelope contents are checked by vaultward.vault.envelopes, not here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator

from vaultward.errors import ValidationError
from vaultward.models import AuditAction, Role, TargetKind, VaultKind

M = TypeVar("M", bound=BaseModel)


def parse(model: type[M], **data: Any) -> M:
    """Build ``model`` from keyword data, raising vaultward ValidationError on failure."""
    try:
        return model(**data)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid request data: {problems}") from None


def _parse_role(value: Any) -> Any:
    """Accept role names in either case; OWNER is never a membership role."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "owner":
            raise ValueError("owner is not an assignable role")
        return lowered
    return value


class CreateVaultRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    kind: VaultKind = VaultKind.GROUP
    envelope: str

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("kind", mode="before")
    @classmethod
    def lower_kind(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class RenameVaultRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class AddMemberRequest(BaseModel):
    principal_id: str = Field(min_length=1)
    role: Role = Role.MEMBER
    envelope: str

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v: Any) -> Any:
        return _parse_role(v)


class ChangeRoleRequest(BaseModel):
    role: Role

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v: Any) -> Any:
        return _parse_role(v)


class RotationBatch(BaseModel):
    """New owner envelopes for every vault the principal owns, keyed by vault id."""

    current_verifier: str = Field(min_length=1)
    new_verifier: str = Field(min_length=1)
    envelopes: dict[str, str]

    @model_validator(mode="after")
    def verifiers_differ(self) -> RotationBatch:
        if self.current_verifier == self.new_verifier:
            raise ValueError("new credential must differ from the current one")
        return self


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    verifier: str = Field(min_length=1)
    envelope: str
    device_fingerprint: str = Field(default="web-device", min_length=1, max_length=200)
    device_name: str = Field(default="Unknown Device", max_length=200)
    user_agent: str = Field(default="", max_length=500)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, sep, domain = v.partition("@")
        if not sep or not local or "." not in domain:
            raise ValueError("not a valid email address")
        return v


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=320)
    verifier: str = Field(min_length=1)
    device_fingerprint: str = Field(default="web-device", min_length=1, max_length=200)
    device_name: str = Field(default="Unknown Device", max_length=200)
    user_agent: str = Field(default="", max_length=500)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class AuditQuery(BaseModel):
    """Filters for AuditTrail.query. Limit is clamped by AuditConfig.max_limit."""

    actor_id: str | None = None
    action: AuditAction | None = None
    target_id: str | None = None
    target_kind: TargetKind | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)
    newest_first: bool = False

    @model_validator(mode="after")
    def check_range(self) -> AuditQuery:
        if self.since and self.until and self.since > self.until:
            raise ValueError("since must not be after until")
        return self


class ItemPayload(BaseModel):
    """Opaque client-encrypted item body. Never inspected beyond its size."""

    encrypted_payload: str = Field(min_length=1, max_length=65536)
