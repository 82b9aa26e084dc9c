import kopf
import pytest
from kubernetes.client import ApiException

import controller
from naming import TENANT_LABEL
from reconciler import Outcome, ReconcileResult
from services.cluster import Kind

FINALIZER = "moodle.bsu.by/finalizer"


@pytest.fixture
def wired(monkeypatch, cluster, reconciler):
    """Point the kopf handlers at the in-memory cluster."""
    monkeypatch.setattr(controller, "cluster", cluster)
    monkeypatch.setattr(controller, "reconciler", reconciler)
    return cluster


# --- status reporting ---

def test_record_status_writes_patch(cluster, acme_body):
    cluster.add_tenant(acme_body)
    result = ReconcileResult(outcome=Outcome.REQUEUE, name="acme", body=acme_body, namespace_created=True)

    controller.record_status(cluster, result)

    [(name, patch)] = cluster.status_patches
    assert name == "acme"
    assert cluster.tenants["acme"]["status"]["phase"] == "Provisioning"


def test_record_status_skips_when_nothing_to_write(cluster):
    controller.record_status(cluster, ReconcileResult(outcome=Outcome.CONVERGED, name="acme"))
    assert cluster.status_patches == []


def test_record_status_ignores_vanished_tenant(cluster, acme_body):
    result = ReconcileResult(outcome=Outcome.CONVERGED, name="acme", body=acme_body)
    controller.record_status(cluster, result)
    assert len(cluster.status_patches) == 1


def test_record_status_propagates_other_errors(cluster, acme_body):
    cluster.add_tenant(acme_body)
    cluster.fail("patch_tenant_status", None, status=500)
    with pytest.raises(ApiException):
        controller.record_status(cluster, ReconcileResult(outcome=Outcome.CONVERGED, name="acme", body=acme_body))


# --- outcome mapping ---

def test_converged_pass_returns_quietly():
    controller.raise_for_outcome(ReconcileResult(outcome=Outcome.CONVERGED, name="acme"))


def test_requeue_becomes_temporary_error_with_requeue_delay():
    result = ReconcileResult(outcome=Outcome.REQUEUE, name="acme", requeue_after=5)
    with pytest.raises(kopf.TemporaryError) as excinfo:
        controller.raise_for_outcome(result)
    assert excinfo.value.delay == 5


@pytest.mark.parametrize("retry, delay", [(0, 5), (1, 10), (3, 40), (6, 300), (20, 300)])
def test_fatal_becomes_temporary_error_with_backoff(retry, delay):
    result = ReconcileResult(outcome=Outcome.FATAL, name="acme", error=ApiException(status=503))
    with pytest.raises(kopf.TemporaryError, match="Reconcile failed") as excinfo:
        controller.raise_for_outcome(result, retry)
    assert excinfo.value.delay == delay


# --- handlers ---

def test_reconcile_handler_requeues_then_converges(wired, acme_body):
    wired.add_tenant(acme_body)

    with pytest.raises(kopf.TemporaryError) as excinfo:
        controller.reconcile_tenant(name="acme", retry=0)
    assert excinfo.value.delay == 0

    controller.reconcile_tenant(name="acme", retry=1)

    status = wired.tenants["acme"]["status"]
    assert status["phase"] == "Ready"
    assert status["observedGeneration"] == 1
    assert wired.names(Kind.DEPLOYMENT) == ["acme-deployment"]


def test_reconcile_handler_retries_failed_pass(wired, acme_body):
    wired.add_tenant(acme_body)
    wired.fail("create", Kind.NAMESPACE, status=500)

    with pytest.raises(kopf.TemporaryError, match="Reconcile failed"):
        controller.reconcile_tenant(name="acme", retry=2)

    status = wired.tenants["acme"]["status"]
    assert status["phase"] == "Failed"
    assert status["retryCount"] == 1


def test_delete_handler_tears_down_and_releases_guard(wired, acme_body):
    wired.add_tenant(acme_body)
    with pytest.raises(kopf.TemporaryError):
        controller.reconcile_tenant(name="acme")
    wired.request_deletion("acme")

    controller.finalize_tenant(name="acme")

    assert "acme" not in wired.tenants
    assert wired.names(Kind.NAMESPACE) == []


def test_delete_handler_keeps_retrying_while_cleanup_fails(wired, acme_body):
    acme_body["metadata"]["finalizers"] = [FINALIZER]
    wired.add_tenant(acme_body)
    wired.request_deletion("acme")
    wired.fail("replace_tenant", None, status=409, reason="Conflict")

    with pytest.raises(kopf.TemporaryError):
        controller.finalize_tenant(name="acme", retry=0)
    assert wired.tenants["acme"]["metadata"]["finalizers"] == [FINALIZER]


def test_resync_recreates_missing_child_without_raising(wired, acme_body):
    wired.add_tenant(acme_body)
    with pytest.raises(kopf.TemporaryError):
        controller.reconcile_tenant(name="acme")
    controller.reconcile_tenant(name="acme")
    wired.delete(Kind.CRON_JOB, "acme-cron", "tenant-acme")

    controller.resync_tenant(name="acme")

    assert wired.names(Kind.CRON_JOB) == ["acme-cron"]


def test_resync_failure_is_logged_not_raised(wired, acme_body):
    wired.add_tenant(acme_body)
    wired.fail("read", Kind.NAMESPACE)
    controller.resync_tenant(name="acme")
    assert wired.tenants["acme"]["status"]["phase"] == "Failed"


# --- owned children ---

def _converged(cluster, body):
    cluster.add_tenant(body)
    with pytest.raises(kopf.TemporaryError):
        controller.reconcile_tenant(name="acme")
    controller.reconcile_tenant(name="acme")


def test_deleted_child_triggers_tenant_pass(wired, acme_body):
    _converged(wired, acme_body)
    wired.delete(Kind.INGRESS, "acme-ingress", "tenant-acme")

    controller.owned_event(event={"type": "DELETED"}, labels={TENANT_LABEL: "acme"})

    assert wired.names(Kind.INGRESS) == ["acme-ingress"]


@pytest.mark.parametrize("event_type, labels", [
    ("MODIFIED", {TENANT_LABEL: "acme"}),
    ("DELETED", {}),
])
def test_other_child_events_are_ignored(wired, acme_body, event_type, labels):
    _converged(wired, acme_body)
    wired.delete(Kind.INGRESS, "acme-ingress", "tenant-acme")

    controller.owned_event(event={"type": event_type}, labels=labels)

    assert wired.names(Kind.INGRESS) == []


def test_child_deletion_during_teardown_is_ignored(wired, acme_body):
    _converged(wired, acme_body)
    wired.request_deletion("acme")
    calls_before = len(wired.calls)

    controller.owned_event(event={"type": "DELETED"}, labels={TENANT_LABEL: "acme"})

    assert wired.calls[calls_before:] == [("read_tenant", None, "acme")]
    assert "acme" in wired.tenants


def test_child_of_unknown_tenant_is_ignored(wired):
    controller.owned_event(event={"type": "DELETED"}, labels={TENANT_LABEL: "ghost"})
    assert wired.calls == [("read_tenant", None, "ghost")]
