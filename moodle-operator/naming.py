"""
Naming, labelling and ownership helpers shared by every synthesizer.

All child names are pure functions of the tenant identifier so that
re-running synthesis always targets the same object.
"""
from kubernetes.client import V1OwnerReference

from config import settings
from models import TenantDeclaration

APP_LABEL = "app"
APP_NAME = "moodle"
TENANT_LABEL = f"{settings.CRD_GROUP}/tenant"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "moodle-operator"

NETWORK_POLICY_NAME = "tenant-isolation"

READ_WRITE_ONCE = "ReadWriteOnce"
READ_WRITE_MANY = "ReadWriteMany"


def tenant_namespace(identifier: str) -> str:
    return f"{settings.NAMESPACE_PREFIX}{identifier}"


def deployment_name(identifier: str) -> str:
    return f"{identifier}-deployment"


def pvc_name(identifier: str) -> str:
    return f"{identifier}-data"


def service_name(identifier: str) -> str:
    return f"{identifier}-service"


def ingress_name(identifier: str) -> str:
    return f"{identifier}-ingress"


def tls_secret_name(identifier: str) -> str:
    return f"{identifier}-tls"


def hpa_name(identifier: str) -> str:
    return f"{identifier}-hpa"


def cron_job_name(identifier: str) -> str:
    return f"{identifier}-cron"


def pdb_name(identifier: str) -> str:
    return f"{identifier}-pdb"


def tenant_labels(identifier: str) -> dict[str, str]:
    """Labels carried by every child and used verbatim by every selector."""
    return {
        APP_LABEL: APP_NAME,
        TENANT_LABEL: identifier,
    }


def access_mode_for(storage_class: str) -> str:
    if storage_class in settings.SINGLE_NODE_STORAGE_CLASSES:
        return READ_WRITE_ONCE
    return READ_WRITE_MANY


def owner_reference(tenant: TenantDeclaration) -> V1OwnerReference:
    """Controller reference back to the tenant; the API server cascades deletes."""
    return V1OwnerReference(
        api_version=tenant.api_version,
        kind=tenant.kind,
        name=tenant.metadata.name,
        uid=tenant.metadata.uid,
        controller=True,
        block_owner_deletion=True,
    )
