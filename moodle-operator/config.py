"""
Operator settings, read once from environment variables.
CRD identity is fixed; everything else has a default that can be overridden.
"""
import os
from dataclasses import dataclass


def _csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"

    # CRD
    CRD_GROUP: str = "moodle.bsu.by"
    CRD_VERSION: str = "v1alpha1"
    CRD_PLURAL: str = "moodletenants"
    CRD_KIND: str = "MoodleTenant"
    FINALIZER: str = "moodle.bsu.by/finalizer"

    # Tenant layout
    NAMESPACE_PREFIX: str = os.environ.get("NAMESPACE_PREFIX", "tenant-")
    DEFAULT_STORAGE_CLASS: str = os.environ.get("DEFAULT_STORAGE_CLASS", "csi-cephfs-sc")
    # Storage classes that can only be mounted from one node (ReadWriteOnce)
    SINGLE_NODE_STORAGE_CLASSES: tuple[str, ...] = _csv(
        os.environ.get("SINGLE_NODE_STORAGE_CLASSES", "local-path,hostpath")
    )
    MEMCACHED_IMAGE: str = os.environ.get("MEMCACHED_IMAGE", "memcached:alpine")

    # Networking
    INGRESS_CLASS: str = os.environ.get("INGRESS_CLASS", "nginx")
    INGRESS_NAMESPACE: str = os.environ.get("INGRESS_NAMESPACE", "ingress-nginx")
    DATABASE_NAMESPACE_LABEL: str = os.environ.get("DATABASE_NAMESPACE_LABEL", "moodle.bsu.by/db")
    DATABASE_PORT: int = int(os.environ.get("DATABASE_PORT", "5432"))

    # Reconciliation
    MAX_PARALLEL_RECONCILES: int = int(os.environ.get("MAX_PARALLEL_RECONCILES", "3"))
    REQUEUE_DELAY: float = float(os.environ.get("REQUEUE_DELAY", "5"))
    RETRY_BACKOFF_BASE: float = float(os.environ.get("RETRY_BACKOFF_BASE", "5"))
    RETRY_BACKOFF_MAX: float = float(os.environ.get("RETRY_BACKOFF_MAX", "300"))
    RESYNC_INTERVAL: float = float(os.environ.get("RESYNC_INTERVAL", "300"))

    # kopf
    POSTING_ENABLED: bool = os.environ.get("POSTING_ENABLED", "true").lower() == "true"


settings = Settings()
