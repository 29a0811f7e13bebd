"""KMS integration (HashiCorp Vault or KMIP).

The cluster holds at most one KMS configuration and assigns it no
identifier, so a creation timestamp is used. There is no partial update:
any change re-posts the whole configuration. Reads only report the Vault
base URL and master key name; secrets are never returned.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from ..kinds import EntityKind
from ..models import KMIP_FIELDS, VAULT_FIELDS, KmsResponse
from ..mutability import ChangeSet
from ..partial import PartialApply
from .base import EntityReconciler, Observed

logger = logging.getLogger(__name__)

KMS_PATH = "kms"


def kms_body(desired: dict[str, Any]) -> dict[str, Any]:
    """Body for POST /kms: only the fields of the selected mode."""
    fields = VAULT_FIELDS if desired.get("use_vault") else KMIP_FIELDS
    return {name: desired[name] for name in fields}


class KmsReconciler(EntityReconciler):
    kind = EntityKind.KMS_CONFIG

    def create(self, desired: dict[str, Any]) -> Observed:
        self._transport.send("POST", KMS_PATH, kms_body(desired))
        identifier = str(int(time.time()))
        logger.info(
            "Configured KMS",
            extra={"identifier": identifier, "use_vault": bool(desired.get("use_vault"))},
        )
        return Observed(identifier=identifier)

    def read(self, identifier: str) -> Observed:
        response = self._get_or_not_found(KMS_PATH, KmsResponse, identifier)
        record = response.data
        if record is None or not record.kms_type:
            raise self._not_found(identifier)

        state: dict[str, Any] = {}
        if record.params is not None:
            if record.params.base_url is not None:
                state["base_url"] = record.params.base_url
            if record.params.master_key_name is not None:
                state["master_key_name"] = record.params.master_key_name
        return Observed(identifier=identifier, state=state)

    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        marker.add("configure", "POST", KMS_PATH, kms_body(desired), change_set.fields)

    def delete(self, identifier: str) -> None:
        self._transport.send("DELETE", KMS_PATH)
        logger.info("Removed KMS configuration", extra={"identifier": identifier})
