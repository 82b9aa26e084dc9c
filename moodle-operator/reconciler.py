"""
Reconciler: one reconciliation pass for one MoodleTenant key.

Pass layout:
  1. Read the tenant (absent -> converged, it was deleted meanwhile)
  2. Deletion requested -> finalize (namespace teardown, release guard)
  3. Register the finalizer if missing, continue in the same pass
  4. Ensure namespace tenant-<name>; freshly created -> requeue
  5. Get-or-create each child in a fixed order
  6. Converged

Idempotent: every step checks before creating, so a pass aborted anywhere can
be re-run from the top. No drift correction for children that already exist.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from applier import Applied, Applier
from config import settings
from finalizer import FinalizerManager, GuardState
from models import TenantDeclaration
from namespaces import NamespaceProvisioner
from naming import tenant_namespace
from services.cluster import Cluster
import synthesizers

logger = logging.getLogger("reconciler")


class Outcome(str, Enum):
    CONVERGED = "Converged"
    REQUEUE = "Requeue"
    FATAL = "Fatal"


@dataclass
class ReconcileResult:
    outcome: Outcome
    name: str
    # Last known tenant object; None once it is gone or being removed
    body: Optional[dict] = None
    tenant: Optional[TenantDeclaration] = None
    namespace_created: bool = False
    created: list[str] = field(default_factory=list)
    error: Optional[BaseException] = None
    requeue_after: Optional[float] = None


@dataclass(frozen=True)
class ProvisionStep:
    name: str
    synthesize: Callable[[TenantDeclaration, str], Any]
    autoscaling_only: bool = False

    def applies_to(self, tenant: TenantDeclaration) -> bool:
        return tenant.spec.autoscaling.enabled or not self.autoscaling_only


PROVISION_STEPS = (
    ProvisionStep("secret", synthesizers.secret_for),
    ProvisionStep("deployment", synthesizers.deployment_for),
    ProvisionStep("pvc", synthesizers.pvc_for),
    ProvisionStep("service", synthesizers.service_for),
    ProvisionStep("ingress", synthesizers.ingress_for),
    ProvisionStep("networkpolicy", synthesizers.network_policy_for),
    ProvisionStep("hpa", synthesizers.hpa_for, autoscaling_only=True),
    ProvisionStep("cronjob", synthesizers.cron_job_for),
    ProvisionStep("pdb", synthesizers.pdb_for, autoscaling_only=True),
)


class Reconciler:
    def __init__(self, cluster: Cluster, finalizer: str = settings.FINALIZER,
                 requeue_delay: float = settings.REQUEUE_DELAY):
        self.cluster = cluster
        self.applier = Applier(cluster)
        self.namespaces = NamespaceProvisioner(self.applier)
        self.finalizers = FinalizerManager(cluster, self.namespaces, finalizer)
        self.requeue_delay = requeue_delay

    def reconcile(self, name: str) -> ReconcileResult:
        """Run one pass. Never raises; failures come back as Outcome.FATAL."""
        result = ReconcileResult(outcome=Outcome.CONVERGED, name=name)
        try:
            self._reconcile(name, result)
        except Exception as e:
            logger.error(f"Tenant {name}: reconcile failed: {e}")
            result.outcome = Outcome.FATAL
            result.error = e
        return result

    def _reconcile(self, name: str, result: ReconcileResult):
        body = self.cluster.read_tenant(name)
        if body is None:
            logger.info(f"Tenant {name} not found, ignoring since it must have been deleted")
            return

        state = self.finalizers.state(body)
        if state in (GuardState.CLEANING_UP, GuardState.RELEASED):
            if state is GuardState.CLEANING_UP:
                self.finalizers.finalize(body)
            else:
                logger.info(f"Tenant {name} is being deleted, nothing left to clean up")
            return

        result.body = body
        if state is GuardState.NO_GUARD:
            body = self.finalizers.register(body)
            result.body = body

        tenant = TenantDeclaration.model_validate(body)
        result.tenant = tenant
        namespace = tenant_namespace(tenant.identifier)

        logger.info(f"[{name}] Ensuring namespace {namespace}")
        if self.namespaces.ensure(tenant):
            # A brand-new namespace may not be usable yet; children go in on the next pass
            result.namespace_created = True
            result.outcome = Outcome.REQUEUE
            result.requeue_after = self.requeue_delay
            return

        for step in PROVISION_STEPS:
            if not step.applies_to(tenant):
                logger.info(f"[{name}] Autoscaling disabled, skipping {step.name}")
                continue
            obj = step.synthesize(tenant, namespace)
            if self.applier.get_or_create(obj) is Applied.CREATED:
                result.created.append(f"{obj.kind}/{obj.metadata.name}")

        logger.info(f"Successfully reconciled tenant {name}")
