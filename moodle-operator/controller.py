"""
Moodle Operator: Kubernetes operator for multi-tenant Moodle provisioning.

kopf delivers the events and owns retry timing; every handler funnels into
one reconciliation pass for a tenant key:

  create / update / resume ─┐
  deletion requested ───────┤
  periodic resync (timer) ──┼─> process_tenant(name) ─> Reconciler pass ─> status
  owned child deleted ──────┘

Pass outcomes map onto kopf: CONVERGED returns, REQUEUE raises
TemporaryError with the requeue delay, FATAL raises TemporaryError with an
exponential backoff delay. The MoodleTenant guard is managed by the
reconciler itself, so no kopf finalizer is used.

Run with:
  kopf run --all-namespaces moodle-operator/controller.py
"""

import logging
import threading
from collections import defaultdict

import kopf
from kubernetes import config as kube_config
from kubernetes.client import ApiException

from config import settings as operator_config
from naming import TENANT_LABEL
from reconciler import Outcome, ReconcileResult, Reconciler
from services.cluster import Cluster, KubernetesCluster, ensure_k8s
from status import status_patch

logger = logging.getLogger("moodle-operator")

# Kinds whose deletion re-triggers the owning tenant (label-filtered watches)
OWNED_RESOURCES = [
    ("", "v1", "namespaces"),
    ("", "v1", "secrets"),
    ("apps", "v1", "deployments"),
    ("", "v1", "persistentvolumeclaims"),
    ("", "v1", "services"),
    ("networking.k8s.io", "v1", "ingresses"),
    ("networking.k8s.io", "v1", "networkpolicies"),
    ("autoscaling", "v2", "horizontalpodautoscalers"),
    ("batch", "v1", "cronjobs"),
    ("policy", "v1", "poddisruptionbudgets"),
]

cluster = KubernetesCluster()
reconciler = Reconciler(cluster)

# Timers and owned-child events run outside the tenant's own kopf worker
_tenant_locks = defaultdict(threading.Lock)


# ---------------------------------------------------------------------------
# One pass: reconcile, then report
# ---------------------------------------------------------------------------

def record_status(cluster: Cluster, result: ReconcileResult):
    """Write the pass outcome to the tenant status, ignore a vanished tenant."""
    patch = status_patch(result)
    if patch is None:
        return
    try:
        cluster.patch_tenant_status(result.name, patch)
    except ApiException as e:
        if e.status == 404:
            logger.info(f"Tenant {result.name} gone before status update")
            return
        raise


def process_tenant(name: str) -> ReconcileResult:
    with _tenant_locks[name]:
        result = reconciler.reconcile(name)
        record_status(cluster, result)
    return result


def retry_delay(retry: int) -> float:
    """Backoff for a failed pass: base * 2**retry, capped."""
    return min(operator_config.RETRY_BACKOFF_BASE * (2 ** retry), operator_config.RETRY_BACKOFF_MAX)


def raise_for_outcome(result: ReconcileResult, retry: int = 0):
    """Hand REQUEUE and FATAL back to kopf as delayed retries."""
    if result.outcome is Outcome.REQUEUE:
        raise kopf.TemporaryError(
            f"Namespace for {result.name} just created, provisioning on next pass",
            delay=result.requeue_after or 0,
        )
    if result.outcome is Outcome.FATAL:
        raise kopf.TemporaryError(f"Reconcile failed: {result.error}", delay=retry_delay(retry))


# ---------------------------------------------------------------------------
# Kopf operator settings
# ---------------------------------------------------------------------------

@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **kwargs):
    settings.posting.enabled = operator_config.POSTING_ENABLED
    # Sync handlers run in this thread pool: bounds parallel passes
    settings.execution.max_workers = operator_config.MAX_PARALLEL_RECONCILES
    try:
        ensure_k8s()
    except kube_config.ConfigException as exc:
        raise kopf.PermanentError(f"Cannot load Kubernetes configuration: {exc}") from exc
    logger.info(
        f"Moodle Operator started (max_workers={operator_config.MAX_PARALLEL_RECONCILES}, "
        f"resync={operator_config.RESYNC_INTERVAL:.0f}s)"
    )


# ---------------------------------------------------------------------------
# MoodleTenant handlers
# ---------------------------------------------------------------------------

@kopf.on.create(operator_config.CRD_GROUP, operator_config.CRD_VERSION, operator_config.CRD_PLURAL)
@kopf.on.update(operator_config.CRD_GROUP, operator_config.CRD_VERSION, operator_config.CRD_PLURAL)
@kopf.on.resume(operator_config.CRD_GROUP, operator_config.CRD_VERSION, operator_config.CRD_PLURAL)
def reconcile_tenant(name, retry=0, **kwargs):
    """Provision the tenant; kopf re-invokes until the pass converges."""
    raise_for_outcome(process_tenant(name), retry)


# optional: kopf adds no finalizer of its own, the tenant guard blocks deletion
@kopf.on.delete(operator_config.CRD_GROUP, operator_config.CRD_VERSION, operator_config.CRD_PLURAL,
                optional=True)
def finalize_tenant(name, retry=0, **kwargs):
    """Tear the tenant down and release its guard."""
    raise_for_outcome(process_tenant(name), retry)


@kopf.timer(operator_config.CRD_GROUP, operator_config.CRD_VERSION, operator_config.CRD_PLURAL,
            interval=operator_config.RESYNC_INTERVAL, idle=operator_config.RESYNC_INTERVAL)
def resync_tenant(name, **kwargs):
    """Periodic pass so children deleted without an event come back."""
    result = process_tenant(name)
    if result.outcome is not Outcome.CONVERGED:
        logger.warning(f"Resync of tenant {name} ended {result.outcome.value}, next resync retries")


# ---------------------------------------------------------------------------
# Owned children: a deleted child re-triggers its tenant
# ---------------------------------------------------------------------------

def child_deleted(tenant: str):
    body = cluster.read_tenant(tenant)
    if body is None or body["metadata"].get("deletionTimestamp"):
        # Teardown in progress; the delete handler owns this tenant now
        return
    result = process_tenant(tenant)
    if result.outcome is not Outcome.CONVERGED:
        logger.warning(f"Tenant {tenant}: pass after child deletion ended {result.outcome.value}")


def owned_event(event, labels, **kwargs):
    if event.get("type") != "DELETED":
        return
    tenant = labels.get(TENANT_LABEL)
    if tenant:
        logger.info(f"Owned object of tenant {tenant} deleted, re-running its pass")
        child_deleted(tenant)


for _group, _version, _plural in OWNED_RESOURCES:
    kopf.on.event(
        group=_group, version=_version, plural=_plural,
        labels={TENANT_LABEL: kopf.PRESENT},
        id=f"owned-{_plural}",
    )(owned_event)
