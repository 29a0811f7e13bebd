"""Manifest loading with validation.

A manifest lists the entities to reconcile:

    resources:
      - kind: filesystem_group
        name: default
        spec:
          name: default
          target_ssd_retention: 86400
          start_demote: 10

Each ``name`` is a local handle, unique per kind, under which the state file
remembers the remote identifier. A Kubernetes-style wrapper (apiVersion,
kind, metadata, spec) is accepted as well.

SECURITY: The manifest size is checked before reading. Every declaration is
validated here, so an invalid manifest fails before any remote call.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .config import MAX_MANIFEST_FILE_SIZE_BYTES, kms_defaults_from_env
from .errors import DeclarationError
from .kinds import EntityKind
from .models import validate_declaration

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when manifest loading or validation fails."""

    pass


class ResourceEntry(BaseModel):
    """One declared entity in a manifest."""

    model_config = {"extra": "forbid"}

    kind: EntityKind
    name: Annotated[str, Field(min_length=1, max_length=128)]
    spec: dict[str, Any]

    @property
    def key(self) -> tuple[EntityKind, str]:
        return (self.kind, self.name)


class Manifest(BaseModel):
    """Ordered list of declared entities. Creation follows this order."""

    model_config = {"extra": "forbid"}

    resources: list[ResourceEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self) -> Manifest:
        seen: set[tuple[EntityKind, str]] = set()
        for entry in self.resources:
            if entry.key in seen:
                raise ValueError(f"Duplicate resource name '{entry.name}' for kind {entry.kind.value}")
            seen.add(entry.key)
        return self

    def get(self, kind: EntityKind, name: str) -> ResourceEntry | None:
        for entry in self.resources:
            if entry.key == (kind, name):
                return entry
        return None


def load_manifest(path: Path) -> Manifest:
    """Load and validate a manifest from YAML.

    Args:
        path: Manifest file.

    Returns:
        Validated manifest. Entity specs have their defaults filled in.

    Raises:
        SpecLoadError: If the manifest cannot be read or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Manifest file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Manifest file exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read manifest file {path}: {e}") from e

    return parse_manifest(content, source=str(path))


def parse_manifest(content: str, source: str = "<string>") -> Manifest:
    """Parse and validate manifest YAML text.

    Raises:
        SpecLoadError: If the text is not a valid manifest.
    """
    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {source}: {e}") from e

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Manifest must contain a YAML mapping: {source}")

    # Support both flat format and Kubernetes-style wrapper
    if "apiVersion" in raw_data and "spec" in raw_data:
        spec_data = raw_data.get("spec") or {}
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")
    else:
        spec_data = raw_data

    try:
        manifest = Manifest.model_validate(spec_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {source}:\n{error_list}") from e

    for entry in manifest.resources:
        declared = entry.spec
        if entry.kind == EntityKind.KMS_CONFIG:
            declared = kms_defaults_from_env(declared)
        try:
            entry.spec = validate_declaration(entry.kind, declared).to_state()
        except DeclarationError as e:
            raise SpecLoadError(f"{source}: resource '{entry.name}': {e}") from e

    logger.info(
        "Loaded manifest",
        extra={"source": source, "resources": len(manifest.resources)},
    )
    return manifest
