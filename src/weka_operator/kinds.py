"""Entity kinds managed by the operator."""

from __future__ import annotations

from enum import Enum


class EntityKind(str, Enum):
    """Closed set of Weka entity kinds."""

    USER = "user"
    KMS_CONFIG = "kms"
    FILESYSTEM = "filesystem"
    FILESYSTEM_GROUP = "filesystem_group"
    OBJECT_STORE_BUCKET = "s3_bucket"
    ACCESS_POLICY = "s3_policy"
    USER_POLICY_BINDING = "user_s3_policy"
