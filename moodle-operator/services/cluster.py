"""
Cluster service layer: the narrow read/create/update/delete port the
reconciler talks to, plus its Kubernetes implementation.

Design principles:
  - Not-found is a value, not an error: reads return None, deletes return False
  - Every other ApiException propagates unchanged to the caller
  - Kube config is loaded lazily, exactly once
"""

import logging
from enum import Enum
from typing import Any, Optional, Protocol

from kubernetes import client, config
from kubernetes.client import ApiException

from config import settings

logger = logging.getLogger("cluster")


class Kind(str, Enum):
    NAMESPACE = "Namespace"
    SECRET = "Secret"
    DEPLOYMENT = "Deployment"
    PERSISTENT_VOLUME_CLAIM = "PersistentVolumeClaim"
    SERVICE = "Service"
    INGRESS = "Ingress"
    NETWORK_POLICY = "NetworkPolicy"
    HORIZONTAL_POD_AUTOSCALER = "HorizontalPodAutoscaler"
    CRON_JOB = "CronJob"
    POD_DISRUPTION_BUDGET = "PodDisruptionBudget"


class Cluster(Protocol):
    """Everything the reconciliation engine needs from the API server."""

    def read(self, kind: Kind, name: str, namespace: Optional[str] = None) -> Optional[Any]: ...

    def create(self, kind: Kind, body: Any) -> Any: ...

    def delete(self, kind: Kind, name: str, namespace: Optional[str] = None) -> bool: ...

    def read_tenant(self, name: str) -> Optional[dict]: ...

    def list_tenants(self) -> list[str]: ...

    def replace_tenant(self, body: dict) -> dict: ...

    def patch_tenant_status(self, name: str, status: dict) -> None: ...


_k8s_loaded = False


def ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


# kind -> (API class, method suffix); namespaces are cluster-scoped
_NAMESPACED_APIS = {
    Kind.SECRET: (client.CoreV1Api, "secret"),
    Kind.DEPLOYMENT: (client.AppsV1Api, "deployment"),
    Kind.PERSISTENT_VOLUME_CLAIM: (client.CoreV1Api, "persistent_volume_claim"),
    Kind.SERVICE: (client.CoreV1Api, "service"),
    Kind.INGRESS: (client.NetworkingV1Api, "ingress"),
    Kind.NETWORK_POLICY: (client.NetworkingV1Api, "network_policy"),
    Kind.HORIZONTAL_POD_AUTOSCALER: (client.AutoscalingV2Api, "horizontal_pod_autoscaler"),
    Kind.CRON_JOB: (client.BatchV1Api, "cron_job"),
    Kind.POD_DISRUPTION_BUDGET: (client.PolicyV1Api, "pod_disruption_budget"),
}


class KubernetesCluster:
    """Cluster port backed by the official kubernetes client."""

    def _api(self, api_cls):
        ensure_k8s()
        return api_cls()

    def _custom(self) -> client.CustomObjectsApi:
        return self._api(client.CustomObjectsApi)

    # --- Child resources ---

    def read(self, kind: Kind, name: str, namespace: Optional[str] = None):
        try:
            if kind is Kind.NAMESPACE:
                return self._api(client.CoreV1Api).read_namespace(name=name)
            api_cls, suffix = _NAMESPACED_APIS[kind]
            reader = getattr(self._api(api_cls), f"read_namespaced_{suffix}")
            return reader(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def create(self, kind: Kind, body):
        if kind is Kind.NAMESPACE:
            return self._api(client.CoreV1Api).create_namespace(body=body)
        api_cls, suffix = _NAMESPACED_APIS[kind]
        creator = getattr(self._api(api_cls), f"create_namespaced_{suffix}")
        return creator(namespace=body.metadata.namespace, body=body)

    def delete(self, kind: Kind, name: str, namespace: Optional[str] = None) -> bool:
        try:
            if kind is Kind.NAMESPACE:
                self._api(client.CoreV1Api).delete_namespace(name=name)
            else:
                api_cls, suffix = _NAMESPACED_APIS[kind]
                deleter = getattr(self._api(api_cls), f"delete_namespaced_{suffix}")
                deleter(name=name, namespace=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    # --- MoodleTenant custom objects ---

    def read_tenant(self, name: str) -> Optional[dict]:
        try:
            return self._custom().get_cluster_custom_object(
                settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL, name
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def list_tenants(self) -> list[str]:
        result = self._custom().list_cluster_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL
        )
        return [item["metadata"]["name"] for item in result.get("items", [])]

    def replace_tenant(self, body: dict) -> dict:
        """Full update; metadata.resourceVersion makes it conflict-checked."""
        return self._custom().replace_cluster_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL,
            body["metadata"]["name"], body,
        )

    def patch_tenant_status(self, name: str, status: dict) -> None:
        self._custom().patch_cluster_custom_object_status(
            settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL,
            name, {"status": status},
        )
