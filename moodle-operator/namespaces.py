"""Namespace provisioner: one isolation namespace per tenant."""

import logging

from kubernetes.client import V1Namespace, V1ObjectMeta

from applier import Applied, Applier
from models import TenantDeclaration
from naming import MANAGED_BY, MANAGED_BY_LABEL, tenant_labels, tenant_namespace
from services.cluster import Kind

logger = logging.getLogger("namespaces")


def namespace_for(tenant: TenantDeclaration) -> V1Namespace:
    labels = tenant_labels(tenant.identifier)
    labels[MANAGED_BY_LABEL] = MANAGED_BY
    return V1Namespace(
        api_version="v1",
        kind="Namespace",
        metadata=V1ObjectMeta(name=tenant_namespace(tenant.identifier), labels=labels),
    )


class NamespaceProvisioner:
    def __init__(self, applier: Applier):
        self.applier = applier

    def ensure(self, tenant: TenantDeclaration) -> bool:
        """Create the tenant namespace idempotently. Returns True if created, False if existed."""
        return self.applier.get_or_create(namespace_for(tenant)) is Applied.CREATED

    def teardown(self, identifier: str) -> bool:
        """Delete the tenant namespace, ignore 404. Returns False if it was already gone."""
        name = tenant_namespace(identifier)
        if self.applier.cluster.delete(Kind.NAMESPACE, name):
            logger.info(f"Namespace {name} deletion initiated")
            return True
        logger.info(f"Namespace {name} already gone")
        return False
