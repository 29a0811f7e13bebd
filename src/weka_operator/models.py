"""Pydantic models for declared state and Weka API payloads.

These models provide:
1. Validation of declared state at the boundary (fail before any remote call)
2. Typed decoding of every API response, once, at the transport boundary
"""

from __future__ import annotations

import json
import re
from typing import Annotated, Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import DeclarationError
from .kinds import EntityKind

# =============================================================================
# Allowed values
# =============================================================================

USER_ROLES: frozenset[str] = frozenset({"ClusterAdmin", "OrgAdmin", "ReadOnly", "Regular", "S3"})
ANONYMOUS_POLICIES: frozenset[str] = frozenset({"none", "download", "upload", "public"})

BUCKET_NAME_PATTERN = r"^[a-z0-9][a-z0-9.-]+[a-z0-9]$"
MIN_BUCKET_NAME_LENGTH = 3
MAX_BUCKET_NAME_LENGTH = 63

VAULT_FIELDS: tuple[str, ...] = ("base_url", "master_key_name", "token")
KMIP_FIELDS: tuple[str, ...] = (
    "server_endpoint",
    "key_uid",
    "client_cert_pem",
    "client_key_pem",
    "ca_cert_pem",
)


# =============================================================================
# Declared state
# =============================================================================


class Declaration(BaseModel):
    """Base declaration: unknown fields are rejected, not ignored."""

    model_config = {"extra": "forbid"}

    def to_state(self) -> dict[str, Any]:
        """Return the declared state as a plain field mapping."""
        return self.model_dump()


class UserDeclaration(Declaration):
    """A cluster user."""

    username: Annotated[str, Field(min_length=1)]
    password: Annotated[str, Field(min_length=1)]
    role: str
    posix_uid: int | None = None
    posix_gid: int | None = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in USER_ROLES:
            raise ValueError(f"role must be one of {sorted(USER_ROLES)}, got: {v}")
        return v


class KmsDeclaration(Declaration):
    """KMS integration, either HashiCorp Vault or a KMIP server."""

    use_vault: bool
    base_url: str | None = None
    master_key_name: str | None = None
    token: str | None = None
    server_endpoint: str | None = None
    key_uid: str | None = None
    client_cert_pem: str | None = None
    client_key_pem: str | None = None
    ca_cert_pem: str | None = None

    @model_validator(mode="after")
    def validate_mode_fields(self) -> KmsDeclaration:
        required = VAULT_FIELDS if self.use_vault else KMIP_FIELDS
        target = "Vault" if self.use_vault else "KMIP"
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(
                f"Missing configuration value for {', '.join(missing)} to configure KMS for {target}"
            )
        return self

    def mode_fields(self) -> tuple[str, ...]:
        """Fields sent to the API for the selected KMS mode."""
        return VAULT_FIELDS if self.use_vault else KMIP_FIELDS


class FilesystemDeclaration(Declaration):
    """A filesystem. Capacities are in gigabytes of 1,000,000,000 bytes."""

    name: Annotated[str, Field(min_length=1)]
    group_name: Annotated[str, Field(min_length=1)]
    total_capacity_gb: Annotated[int, Field(ge=1)]
    tiered: bool
    obs_name: str | None = None
    ssd_capacity_gb: int | None = Field(None, ge=0)
    encrypted: bool = False
    auth_required: bool = False
    allow_no_kms: bool = False

    @model_validator(mode="after")
    def validate_tiering(self) -> FilesystemDeclaration:
        if self.tiered and not self.obs_name:
            raise ValueError("obs_name is required for a tiered filesystem")
        if not self.tiered and self.obs_name:
            raise ValueError("obs_name can only be set on a tiered filesystem")
        if self.tiered and self.ssd_capacity_gb is None:
            # Create sends 0 and reads report it back.
            self.ssd_capacity_gb = 0
        return self


class FilesystemGroupDeclaration(Declaration):
    """A filesystem group controlling SSD retention and demotion."""

    name: Annotated[str, Field(min_length=1)]
    target_ssd_retention: Annotated[int, Field(ge=0)]
    start_demote: Annotated[int, Field(ge=0)]


class S3BucketDeclaration(Declaration):
    """An S3 bucket. Its name is also its identifier."""

    bucket_name: str
    fs_uid: Annotated[str, Field(min_length=1)]
    anonymous_policy_name: str = "none"
    hard_quota: str | None = None
    existing_path: str | None = None

    @field_validator("bucket_name")
    @classmethod
    def validate_bucket_name(cls, v: str) -> str:
        if not (MIN_BUCKET_NAME_LENGTH <= len(v) <= MAX_BUCKET_NAME_LENGTH):
            raise ValueError("Bucket names must be between 3 & 63 characters long.")
        if not re.match(BUCKET_NAME_PATTERN, v):
            raise ValueError(
                "Bucket names can only be a-z, 0-9, with dots or hyphens "
                "and can only start and end with a letter or number"
            )
        return v

    @field_validator("anonymous_policy_name")
    @classmethod
    def validate_anonymous_policy(cls, v: str) -> str:
        if v not in ANONYMOUS_POLICIES:
            raise ValueError(f"anonymous_policy_name must be one of {sorted(ANONYMOUS_POLICIES)}, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_quota_path(self) -> S3BucketDeclaration:
        if self.hard_quota and self.existing_path:
            raise ValueError("hard_quota cannot be used when existing_path is set")
        return self


class S3PolicyDeclaration(Declaration):
    """An S3 access policy. Its name is also its identifier."""

    policy_name: Annotated[str, Field(min_length=1)]
    policy_file_content: str

    @field_validator("policy_file_content")
    @classmethod
    def validate_policy_json(cls, v: str) -> str:
        try:
            document = json.loads(v)
        except json.JSONDecodeError as e:
            raise ValueError(f"policy_file_content must be valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise ValueError("policy_file_content must be a JSON object")
        return v


class UserPolicyDeclaration(Declaration):
    """Attachment of an S3 policy to a user."""

    username: Annotated[str, Field(min_length=1)]
    s3_policy_name: Annotated[str, Field(min_length=1)]


DECLARATION_MODELS: dict[EntityKind, type[Declaration]] = {
    EntityKind.USER: UserDeclaration,
    EntityKind.KMS_CONFIG: KmsDeclaration,
    EntityKind.FILESYSTEM: FilesystemDeclaration,
    EntityKind.FILESYSTEM_GROUP: FilesystemGroupDeclaration,
    EntityKind.OBJECT_STORE_BUCKET: S3BucketDeclaration,
    EntityKind.ACCESS_POLICY: S3PolicyDeclaration,
    EntityKind.USER_POLICY_BINDING: UserPolicyDeclaration,
}


def validate_declaration(kind: EntityKind, data: dict[str, Any]) -> Declaration:
    """Validate declared state for an entity kind.

    Args:
        kind: Entity kind the declaration is for.
        data: Declared field mapping.

    Returns:
        Validated declaration model.

    Raises:
        DeclarationError: If any field is missing, unknown or invalid.
    """
    model = DECLARATION_MODELS[kind]
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"]) or "<root>"
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise DeclarationError(f"Invalid {kind.value} declaration:\n{error_list}") from e


# =============================================================================
# Wire models
# =============================================================================


class WireModel(BaseModel):
    """Base for API payloads. Extra fields are ignored for forward compatibility."""

    model_config = {"extra": "ignore", "populate_by_name": True}


class ErrorEnvelopeData(WireModel):
    error: str | None = None
    reason: str | None = None


class ErrorEnvelope(WireModel):
    """Generic error envelope: {message, data: {error, reason}}."""

    message: str | None = None
    data: ErrorEnvelopeData | None = None

    @property
    def is_error(self) -> bool:
        if self.data is None:
            return False
        return bool(self.data.error) or bool(self.data.reason)


class AuthTokenData(WireModel):
    access_token: str
    token_type: str
    expires_in: int = 0
    refresh_token: str | None = None


class AuthResponse(WireModel):
    data: AuthTokenData


# Users


class UserRecord(WireModel):
    uid: str
    username: str
    role: str | None = None
    org_id: int | None = None
    source: str | None = None
    posix_uid: int | None = None
    posix_gid: int | None = None


class UserResponse(WireModel):
    data: UserRecord


class UserListResponse(WireModel):
    data: list[UserRecord] = Field(default_factory=list)


# KMS


class KmsParams(WireModel):
    master_key_name: str | None = None
    base_url: str | None = None


class KmsRecord(WireModel):
    kms_type: str | None = None
    params: KmsParams | None = None


class KmsResponse(WireModel):
    data: KmsRecord | None = None


# Filesystems


class ObsBucketRecord(WireModel):
    uid: str | None = None
    name: str
    state: str | None = None
    mode: str | None = None
    obs_id: str | None = Field(None, alias="obsId")


class FilesystemRecord(WireModel):
    uid: str
    id: str | None = None
    name: str
    group_name: str | None = None
    is_encrypted: bool = False
    auth_required: bool = False
    used_total: int = 0
    available_total: int = 0
    used_ssd: int = 0
    available_ssd: int = 0
    obs_buckets: list[ObsBucketRecord] = Field(default_factory=list)


class FilesystemResponse(WireModel):
    data: FilesystemRecord


class FilesystemGroupRecord(WireModel):
    uid: str
    id: str | None = None
    name: str
    start_demote: int
    target_ssd_retention: int


class FilesystemGroupResponse(WireModel):
    data: FilesystemGroupRecord


# S3


class S3BucketListing(WireModel):
    name: str
    hard_limit_bytes: int | None = None
    path: str | None = None
    used_bytes: int | None = None
    fs: str | None = None


class S3BucketListData(WireModel):
    buckets: list[S3BucketListing] = Field(default_factory=list)


class S3BucketListResponse(WireModel):
    data: S3BucketListData


class S3PolicyRecord(WireModel):
    name: str
    content: dict[str, Any] = Field(default_factory=dict)


class S3PolicyData(WireModel):
    policy: S3PolicyRecord


class S3PolicyResponse(WireModel):
    data: S3PolicyData


class UserPoliciesData(WireModel):
    users: dict[str, str | None] = Field(default_factory=dict)


class UserPoliciesResponse(WireModel):
    data: UserPoliciesData
