import pytest
from kubernetes.client import ApiException

from applier import Applier
from namespaces import NamespaceProvisioner, namespace_for
from naming import MANAGED_BY_LABEL, TENANT_LABEL
from services.cluster import Kind


@pytest.fixture
def provisioner(cluster):
    return NamespaceProvisioner(Applier(cluster))


def test_namespace_object(tenant):
    namespace = namespace_for(tenant)
    assert namespace.metadata.name == "tenant-acme"
    assert namespace.metadata.labels == {
        "app": "moodle",
        TENANT_LABEL: "acme",
        MANAGED_BY_LABEL: "moodle-operator",
    }
    assert namespace.metadata.owner_references is None


def test_ensure_reports_creation_once(cluster, provisioner, tenant):
    assert provisioner.ensure(tenant) is True
    assert provisioner.ensure(tenant) is False
    assert cluster.names(Kind.NAMESPACE) == ["tenant-acme"]


def test_teardown_deletes_namespace(cluster, provisioner, tenant):
    provisioner.ensure(tenant)
    assert provisioner.teardown("acme") is True
    assert cluster.names(Kind.NAMESPACE) == []


def test_teardown_of_missing_namespace_is_not_an_error(provisioner):
    assert provisioner.teardown("acme") is False


def test_teardown_failure_propagates(cluster, provisioner, tenant):
    provisioner.ensure(tenant)
    cluster.fail("delete", Kind.NAMESPACE, status=500)
    with pytest.raises(ApiException):
        provisioner.teardown("acme")
