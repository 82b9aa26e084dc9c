"""
Resource synthesizers: one pure function per child kind.

Each takes a validated TenantDeclaration and the tenant namespace and returns
a fully-formed Kubernetes object with labels and the owner reference set.
No API calls happen here.
"""
from typing import Optional

from kubernetes.client import (
    V1Container,
    V1ContainerPort,
    V1CronJob,
    V1CronJobSpec,
    V1Deployment,
    V1DeploymentSpec,
    V1EnvVar,
    V1EnvVarSource,
    V1HTTPIngressPath,
    V1HTTPIngressRuleValue,
    V1Ingress,
    V1IngressBackend,
    V1IngressRule,
    V1IngressServiceBackend,
    V1IngressSpec,
    V1IngressTLS,
    V1JobSpec,
    V1JobTemplateSpec,
    V1LabelSelector,
    V1NetworkPolicy,
    V1NetworkPolicyEgressRule,
    V1NetworkPolicyIngressRule,
    V1NetworkPolicyPeer,
    V1NetworkPolicyPort,
    V1NetworkPolicySpec,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimSpec,
    V1PersistentVolumeClaimVolumeSource,
    V1PodDisruptionBudget,
    V1PodDisruptionBudgetSpec,
    V1PodSecurityContext,
    V1PodSpec,
    V1PodTemplateSpec,
    V1Probe,
    V1ResourceRequirements,
    V1Secret,
    V1SecretKeySelector,
    V1Service,
    V1ServiceBackendPort,
    V1ServicePort,
    V1ServiceSpec,
    V1TCPSocketAction,
    V1TopologySpreadConstraint,
    V1Volume,
    V1VolumeMount,
    V1VolumeResourceRequirements,
    V2CrossVersionObjectReference,
    V2HorizontalPodAutoscaler,
    V2HorizontalPodAutoscalerSpec,
    V2MetricSpec,
    V2MetricTarget,
    V2ResourceMetricSource,
)

from config import settings
from models import TenantDeclaration
from naming import (
    NETWORK_POLICY_NAME,
    access_mode_for,
    cron_job_name,
    deployment_name,
    hpa_name,
    ingress_name,
    owner_reference,
    pdb_name,
    pvc_name,
    service_name,
    tenant_labels,
    tls_secret_name,
)

HTTP_PORT = 8080
SERVICE_PORT = 80
PHP_FPM_PORT = 9000
MEMCACHED_PORT = 11211
WWW_DATA_UID = 33

DATA_VOLUME = "moodle-data"
DATA_MOUNT_PATH = "/var/www/moodledata"

CRON_SCHEDULE = "*/5 * * * *"
CRON_COMMAND = ["/usr/local/bin/php", "/var/www/html/admin/cli/cron.php"]

# Keys inside the credential secret
SECRET_KEYS = ("host", "database", "username", "password")


def _metadata(tenant: TenantDeclaration, name: str, namespace: str) -> V1ObjectMeta:
    return V1ObjectMeta(
        name=name,
        namespace=namespace,
        labels=tenant_labels(tenant.identifier),
        owner_references=[owner_reference(tenant)],
    )


def _selector(tenant: TenantDeclaration) -> V1LabelSelector:
    return V1LabelSelector(match_labels=tenant_labels(tenant.identifier))


def _secret_env(name: str, secret: str, key: str) -> V1EnvVar:
    return V1EnvVar(
        name=name,
        value_from=V1EnvVarSource(secret_key_ref=V1SecretKeySelector(name=secret, key=key)),
    )


def runtime_env(tenant: TenantDeclaration) -> list[V1EnvVar]:
    """Environment shared by the web workload and the cron task."""
    spec = tenant.spec
    secret = spec.database.admin_secret
    return [
        V1EnvVar(name="PHP_MAX_EXECUTION_TIME", value=str(spec.php.effective_max_execution_time)),
        V1EnvVar(name="PHP_MEMORY_LIMIT", value=spec.php.effective_memory_limit),
        V1EnvVar(name="MOODLE_URL", value=tenant.url),
        _secret_env("DB_HOST", secret, "host"),
        _secret_env("DB_NAME", secret, "database"),
        _secret_env("DB_USER", secret, "username"),
        _secret_env("DB_PASS", secret, "password"),
    ]


def _pod_security_context() -> V1PodSecurityContext:
    return V1PodSecurityContext(
        run_as_non_root=True,
        run_as_user=WWW_DATA_UID,
        fs_group=WWW_DATA_UID,
    )


def _data_volume(tenant: TenantDeclaration) -> V1Volume:
    return V1Volume(
        name=DATA_VOLUME,
        persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
            claim_name=pvc_name(tenant.identifier),
        ),
    )


def _declared_resources(tenant: TenantDeclaration) -> Optional[V1ResourceRequirements]:
    declared = tenant.spec.resources
    if not declared.requests and not declared.limits:
        return None
    return V1ResourceRequirements(
        requests={k: str(v) for k, v in declared.requests.items()} or None,
        limits={k: str(v) for k, v in declared.limits.items()} or None,
    )


# ---------------------------------------------------------------------------
# Secret
# ---------------------------------------------------------------------------

def secret_for(tenant: TenantDeclaration, namespace: str) -> V1Secret:
    db = tenant.spec.database
    return V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=_metadata(tenant, db.admin_secret, namespace),
        type="Opaque",
        string_data=dict(zip(SECRET_KEYS, (db.host, db.name, db.user, db.password))),
    )


# ---------------------------------------------------------------------------
# Deployment
# ---------------------------------------------------------------------------

def _moodle_container(tenant: TenantDeclaration) -> V1Container:
    return V1Container(
        name="moodle-php",
        image=tenant.spec.image,
        ports=[V1ContainerPort(name="http", container_port=HTTP_PORT, protocol="TCP")],
        env=runtime_env(tenant),
        resources=_declared_resources(tenant),
        volume_mounts=[V1VolumeMount(name=DATA_VOLUME, mount_path=DATA_MOUNT_PATH)],
        liveness_probe=V1Probe(
            tcp_socket=V1TCPSocketAction(port=PHP_FPM_PORT),
            initial_delay_seconds=30,
            period_seconds=10,
            timeout_seconds=5,
            failure_threshold=3,
        ),
        readiness_probe=V1Probe(
            tcp_socket=V1TCPSocketAction(port=PHP_FPM_PORT),
            initial_delay_seconds=10,
            period_seconds=5,
            timeout_seconds=3,
            failure_threshold=3,
        ),
    )


def _memcached_container(tenant: TenantDeclaration) -> V1Container:
    memory_mb = tenant.spec.memcached.effective_memory_mb
    return V1Container(
        name="memcached",
        image=settings.MEMCACHED_IMAGE,
        command=["memcached", "-m", str(memory_mb), "-I", "2m"],
        ports=[V1ContainerPort(name="memcached", container_port=MEMCACHED_PORT, protocol="TCP")],
        resources=V1ResourceRequirements(
            requests={"cpu": "10m", "memory": f"{memory_mb}Mi"},
            limits={"cpu": "100m", "memory": f"{memory_mb}Mi"},
        ),
    )


def _spread(tenant: TenantDeclaration, topology_key: str) -> V1TopologySpreadConstraint:
    # ScheduleAnyway: spreading is a preference, never a scheduling blocker
    return V1TopologySpreadConstraint(
        max_skew=1,
        topology_key=topology_key,
        when_unsatisfiable="ScheduleAnyway",
        label_selector=_selector(tenant),
    )


def deployment_for(tenant: TenantDeclaration, namespace: str) -> V1Deployment:
    labels = tenant_labels(tenant.identifier)
    return V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=_metadata(tenant, deployment_name(tenant.identifier), namespace),
        spec=V1DeploymentSpec(
            replicas=tenant.spec.autoscaling.replica_floor,
            selector=_selector(tenant),
            template=V1PodTemplateSpec(
                metadata=V1ObjectMeta(labels=labels),
                spec=V1PodSpec(
                    containers=[_moodle_container(tenant), _memcached_container(tenant)],
                    security_context=_pod_security_context(),
                    volumes=[_data_volume(tenant)],
                    topology_spread_constraints=[
                        _spread(tenant, "kubernetes.io/hostname"),
                        _spread(tenant, "topology.kubernetes.io/zone"),
                    ],
                ),
            ),
        ),
    )


# ---------------------------------------------------------------------------
# PersistentVolumeClaim
# ---------------------------------------------------------------------------

def pvc_for(tenant: TenantDeclaration, namespace: str) -> V1PersistentVolumeClaim:
    storage = tenant.spec.storage
    storage_class = storage.effective_storage_class
    return V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=_metadata(tenant, pvc_name(tenant.identifier), namespace),
        spec=V1PersistentVolumeClaimSpec(
            access_modes=[access_mode_for(storage_class)],
            storage_class_name=storage_class,
            resources=V1VolumeResourceRequirements(requests={"storage": storage.size}),
        ),
    )


# ---------------------------------------------------------------------------
# Service + Ingress
# ---------------------------------------------------------------------------

def service_for(tenant: TenantDeclaration, namespace: str) -> V1Service:
    return V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(tenant, service_name(tenant.identifier), namespace),
        spec=V1ServiceSpec(
            type="ClusterIP",
            selector=tenant_labels(tenant.identifier),
            ports=[V1ServicePort(name="http", protocol="TCP", port=SERVICE_PORT, target_port=HTTP_PORT)],
        ),
    )


def ingress_for(tenant: TenantDeclaration, namespace: str) -> V1Ingress:
    hostname = tenant.spec.hostname
    return V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=_metadata(tenant, ingress_name(tenant.identifier), namespace),
        spec=V1IngressSpec(
            ingress_class_name=settings.INGRESS_CLASS,
            tls=[V1IngressTLS(hosts=[hostname], secret_name=tls_secret_name(tenant.identifier))],
            rules=[
                V1IngressRule(
                    host=hostname,
                    http=V1HTTPIngressRuleValue(paths=[
                        V1HTTPIngressPath(
                            path="/",
                            path_type="Prefix",
                            backend=V1IngressBackend(
                                service=V1IngressServiceBackend(
                                    name=service_name(tenant.identifier),
                                    port=V1ServiceBackendPort(number=SERVICE_PORT),
                                ),
                            ),
                        ),
                    ]),
                ),
            ],
        ),
    )


# ---------------------------------------------------------------------------
# NetworkPolicy, default deny with explicit allows
# ---------------------------------------------------------------------------

def _namespace_peer(labels: dict[str, str]) -> V1NetworkPolicyPeer:
    return V1NetworkPolicyPeer(namespace_selector=V1LabelSelector(match_labels=labels))


def network_policy_for(tenant: TenantDeclaration, namespace: str) -> V1NetworkPolicy:
    return V1NetworkPolicy(
        api_version="networking.k8s.io/v1",
        kind="NetworkPolicy",
        metadata=_metadata(tenant, NETWORK_POLICY_NAME, namespace),
        spec=V1NetworkPolicySpec(
            pod_selector=V1LabelSelector(),
            policy_types=["Ingress", "Egress"],
            ingress=[
                V1NetworkPolicyIngressRule(_from=[
                    _namespace_peer({"kubernetes.io/metadata.name": settings.INGRESS_NAMESPACE}),
                ]),
            ],
            egress=[
                # Database
                V1NetworkPolicyEgressRule(
                    to=[_namespace_peer({settings.DATABASE_NAMESPACE_LABEL: "true"})],
                    ports=[V1NetworkPolicyPort(protocol="TCP", port=settings.DATABASE_PORT)],
                ),
                # DNS
                V1NetworkPolicyEgressRule(
                    to=[_namespace_peer({"kubernetes.io/metadata.name": "kube-system"})],
                    ports=[
                        V1NetworkPolicyPort(protocol="UDP", port=53),
                        V1NetworkPolicyPort(protocol="TCP", port=53),
                    ],
                ),
                # Plugin updates and external integrations
                V1NetworkPolicyEgressRule(
                    ports=[
                        V1NetworkPolicyPort(protocol="TCP", port=80),
                        V1NetworkPolicyPort(protocol="TCP", port=443),
                    ],
                ),
            ],
        ),
    )


# ---------------------------------------------------------------------------
# HorizontalPodAutoscaler + PodDisruptionBudget (autoscaling only)
# ---------------------------------------------------------------------------

def hpa_for(tenant: TenantDeclaration, namespace: str) -> V2HorizontalPodAutoscaler:
    autoscaling = tenant.spec.autoscaling
    return V2HorizontalPodAutoscaler(
        api_version="autoscaling/v2",
        kind="HorizontalPodAutoscaler",
        metadata=_metadata(tenant, hpa_name(tenant.identifier), namespace),
        spec=V2HorizontalPodAutoscalerSpec(
            scale_target_ref=V2CrossVersionObjectReference(
                api_version="apps/v1",
                kind="Deployment",
                name=deployment_name(tenant.identifier),
            ),
            min_replicas=autoscaling.effective_min_replicas,
            max_replicas=autoscaling.max_replicas,
            metrics=[
                V2MetricSpec(
                    type="Resource",
                    resource=V2ResourceMetricSource(
                        name="cpu",
                        target=V2MetricTarget(
                            type="Utilization",
                            average_utilization=autoscaling.effective_target_cpu,
                        ),
                    ),
                ),
            ],
        ),
    )


def pdb_for(tenant: TenantDeclaration, namespace: str) -> V1PodDisruptionBudget:
    return V1PodDisruptionBudget(
        api_version="policy/v1",
        kind="PodDisruptionBudget",
        metadata=_metadata(tenant, pdb_name(tenant.identifier), namespace),
        spec=V1PodDisruptionBudgetSpec(
            min_available=1,
            selector=_selector(tenant),
        ),
    )


# ---------------------------------------------------------------------------
# CronJob for Moodle maintenance (admin/cli/cron.php)
# ---------------------------------------------------------------------------

def cron_job_for(tenant: TenantDeclaration, namespace: str) -> V1CronJob:
    return V1CronJob(
        api_version="batch/v1",
        kind="CronJob",
        metadata=_metadata(tenant, cron_job_name(tenant.identifier), namespace),
        spec=V1CronJobSpec(
            schedule=CRON_SCHEDULE,
            job_template=V1JobTemplateSpec(
                spec=V1JobSpec(
                    # No tenant labels on cron pods: Service/PDB selectors must not match them
                    template=V1PodTemplateSpec(
                        spec=V1PodSpec(
                            restart_policy="OnFailure",
                            security_context=_pod_security_context(),
                            containers=[
                                V1Container(
                                    name="moodle-cron",
                                    image=tenant.spec.image,
                                    command=list(CRON_COMMAND),
                                    env=runtime_env(tenant),
                                    volume_mounts=[
                                        V1VolumeMount(name=DATA_VOLUME, mount_path=DATA_MOUNT_PATH),
                                    ],
                                    resources=V1ResourceRequirements(
                                        requests={"cpu": "100m", "memory": "256Mi"},
                                        limits={"cpu": "500m", "memory": "512Mi"},
                                    ),
                                ),
                            ],
                            volumes=[_data_volume(tenant)],
                        ),
                    ),
                ),
            ),
        ),
    )
