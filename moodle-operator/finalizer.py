"""
Finalizer lifecycle manager: guards MoodleTenant deletion.

    NO_GUARD --register--> GUARDED --deletion requested--> CLEANING_UP
        --namespace deleted--> RELEASED (API server purges the object)

The guard is stripped only after cleanup has returned successfully; any
failure leaves it in place so the next pass retries.
"""

import copy
import logging
from enum import Enum

from config import settings
from models import ObjectMeta
from namespaces import NamespaceProvisioner
from services.cluster import Cluster

logger = logging.getLogger("finalizer")


class GuardState(str, Enum):
    NO_GUARD = "NoGuard"
    GUARDED = "Guarded"
    CLEANING_UP = "CleaningUp"
    RELEASED = "GuardReleased"


class FinalizerManager:
    def __init__(self, cluster: Cluster, namespaces: NamespaceProvisioner,
                 finalizer: str = settings.FINALIZER):
        self.cluster = cluster
        self.namespaces = namespaces
        self.finalizer = finalizer

    def state(self, body: dict) -> GuardState:
        meta = ObjectMeta.model_validate(body["metadata"])
        guarded = self.finalizer in meta.finalizers
        if meta.is_deleting:
            return GuardState.CLEANING_UP if guarded else GuardState.RELEASED
        return GuardState.GUARDED if guarded else GuardState.NO_GUARD

    def _with_finalizers(self, body: dict, finalizers: list[str]) -> dict:
        updated = copy.deepcopy(body)
        updated["metadata"]["finalizers"] = finalizers
        return self.cluster.replace_tenant(updated)

    def register(self, body: dict) -> dict:
        """Attach the guard and persist it. Returns the updated object."""
        name = body["metadata"]["name"]
        finalizers = list(body["metadata"].get("finalizers") or [])
        if self.finalizer in finalizers:
            return body
        logger.info(f"Tenant {name}: registering finalizer {self.finalizer}")
        return self._with_finalizers(body, finalizers + [self.finalizer])

    def finalize(self, body: dict) -> dict:
        """Run pre-delete cleanup, then release the guard."""
        name = body["metadata"]["name"]
        logger.info(f"Tenant {name}: finalizing")

        # Children are owned by the tenant; the namespace is the only explicit cleanup
        self.namespaces.teardown(name)

        finalizers = [f for f in body["metadata"].get("finalizers") or [] if f != self.finalizer]
        released = self._with_finalizers(body, finalizers)
        logger.info(f"Tenant {name}: finalizer released")
        return released
