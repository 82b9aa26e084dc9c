import pytest
from kubernetes.client import ApiException

import synthesizers
from applier import Applied, Applier
from services.cluster import Kind

NS = "tenant-acme"


def test_creates_missing_object(cluster, tenant):
    applier = Applier(cluster)
    secret = synthesizers.secret_for(tenant, NS)

    assert applier.get_or_create(secret) is Applied.CREATED
    assert cluster.get(Kind.SECRET, NS, "acme-db") is secret


def test_existing_object_left_untouched(cluster, tenant):
    applier = Applier(cluster)
    applier.get_or_create(synthesizers.service_for(tenant, NS))
    hand_edited = cluster.get(Kind.SERVICE, NS, "acme-service")
    hand_edited.spec.type = "NodePort"

    assert applier.get_or_create(synthesizers.service_for(tenant, NS)) is Applied.EXISTS
    assert cluster.get(Kind.SERVICE, NS, "acme-service").spec.type == "NodePort"
    assert len(cluster.created()) == 1


def test_same_name_in_other_namespace_is_distinct(cluster, tenant):
    applier = Applier(cluster)
    applier.get_or_create(synthesizers.secret_for(tenant, NS))
    assert applier.get_or_create(synthesizers.secret_for(tenant, "tenant-other")) is Applied.CREATED


def test_create_error_propagates(cluster, tenant):
    cluster.fail("create", Kind.DEPLOYMENT, status=403, reason="Forbidden")
    with pytest.raises(ApiException) as excinfo:
        Applier(cluster).get_or_create(synthesizers.deployment_for(tenant, NS))
    assert excinfo.value.status == 403


def test_read_error_propagates_without_create(cluster, tenant):
    cluster.fail("read", Kind.INGRESS)
    with pytest.raises(ApiException):
        Applier(cluster).get_or_create(synthesizers.ingress_for(tenant, NS))
    assert cluster.created() == []
