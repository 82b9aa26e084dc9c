import copy

import pytest

from fake_cluster import InMemoryCluster
from models import TenantDeclaration
from reconciler import Reconciler

ACME = {
    "apiVersion": "moodle.bsu.by/v1alpha1",
    "kind": "MoodleTenant",
    "metadata": {"name": "acme", "uid": "0b7f3c2e-acme", "generation": 1},
    "spec": {
        "hostname": "acme.example.org",
        "image": "moodle-lms-operator/moodle:custom",
        "hpa": {"enabled": False},
        "storage": {"size": "1Gi", "storageClass": "local-path"},
        "databaseRef": {
            "host": "db",
            "adminSecret": "acme-db",
            "name": "acme",
            "user": "u",
            "password": "p",
        },
    },
}


@pytest.fixture
def acme_body():
    return copy.deepcopy(ACME)


@pytest.fixture
def scaled_body(acme_body):
    acme_body["spec"]["hpa"] = {"enabled": True, "maxReplicas": 5}
    acme_body["spec"]["storage"] = {"size": "10Gi"}
    return acme_body


@pytest.fixture
def tenant(acme_body):
    return TenantDeclaration.model_validate(acme_body)


@pytest.fixture
def cluster():
    return InMemoryCluster()


@pytest.fixture
def reconciler(cluster):
    return Reconciler(cluster, requeue_delay=0)
