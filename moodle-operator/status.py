"""
Status bookkeeping for MoodleTenant objects.

Turns a ReconcileResult into a status patch: phase, conditions, retry count
and a short activity log. Returns None when nothing observable changed, so a
status write never triggers another pointless pass.
"""

import copy
from datetime import datetime, timezone
from typing import Optional

from naming import tenant_namespace
from reconciler import Outcome, ReconcileResult

# Activity log max entries in CRD status (etcd size constraint)
ACTIVITY_LOG_MAX = 15

PHASES = {
    Outcome.CONVERGED: "Ready",
    Outcome.REQUEUE: "Provisioning",
    Outcome.FATAL: "Failed",
}


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def set_condition(conditions: list, ctype: str, status: str, reason: str, message: str):
    """Upsert a condition; lastTransitionTime moves only when status flips."""
    for c in conditions:
        if c.get("type") == ctype:
            if c.get("status") != status:
                c["lastTransitionTime"] = _now()
            c["status"] = status
            c["reason"] = reason
            c["message"] = message
            return
    conditions.append({
        "type": ctype,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": _now(),
    })


def add_activity(activity_log: list, event_type: str, message: str):
    """Append an event to the activity log ring buffer."""
    activity_log.append({
        "timestamp": _now(),
        "event": event_type,
        "message": message,
    })
    while len(activity_log) > ACTIVITY_LOG_MAX:
        activity_log.pop(0)


def status_patch(result: ReconcileResult) -> Optional[dict]:
    """Build the status for a finished pass, or None if there is nothing to write."""
    if result.body is None:
        return None

    previous = result.body.get("status") or {}
    conditions = copy.deepcopy(previous.get("conditions") or [])
    activity_log = copy.deepcopy(previous.get("activityLog") or [])
    namespace = tenant_namespace(result.name)
    phase = PHASES[result.outcome]

    status = {
        "phase": phase,
        "namespace": namespace,
        "observedGeneration": result.body["metadata"].get("generation"),
        "retryCount": 0,
    }
    if result.tenant is not None:
        status["url"] = result.tenant.url

    if result.outcome is Outcome.FATAL:
        error = str(result.error)[:200]
        status["message"] = f"Reconcile failed: {error}"
        status["retryCount"] = previous.get("retryCount", 0) + 1
        set_condition(conditions, "ResourcesReady", "False", "Error", error)
        add_activity(activity_log, "RECONCILE_FAILED",
                     f"Attempt {status['retryCount']}: {str(result.error)[:150]}")
    else:
        set_condition(conditions, "NamespaceReady", "True", "Ready", f"Namespace {namespace} exists")
        if result.namespace_created:
            add_activity(activity_log, "NAMESPACE_CREATED", f"Namespace {namespace} created")
        if result.outcome is Outcome.REQUEUE:
            status["message"] = "Namespace created, waiting before provisioning resources"
            set_condition(conditions, "ResourcesReady", "False", "WaitingForNamespace",
                          "Resources are created once the namespace is ready")
        else:
            status["message"] = "Tenant is ready"
            set_condition(conditions, "ResourcesReady", "True", "Provisioned", "All resources exist")
            if result.created:
                add_activity(activity_log, "RESOURCES_CREATED", ", ".join(result.created))
            if previous.get("phase") != phase:
                add_activity(activity_log, "TENANT_READY", f"Tenant ready at {status.get('url', '')}")

    status["conditions"] = conditions
    status["activityLog"] = activity_log

    unchanged = all(previous.get(k) == v for k, v in status.items())
    if unchanged:
        return None
    status["lastUpdated"] = _now()
    return status
