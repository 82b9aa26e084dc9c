"""
Pydantic models for MoodleTenant declarations.

Wire names are camelCase (as stored in the CRD); attributes are snake_case.
Zero values mean "unset" for the optional tuning knobs, matching the
omitempty semantics of the CRD schema.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Dict, List, Optional, Union

from config import settings

DEFAULT_MIN_REPLICAS = 2
DEFAULT_MAX_REPLICAS = 10
DEFAULT_TARGET_CPU = 75
DEFAULT_MAX_EXECUTION_TIME = 60
DEFAULT_MEMORY_LIMIT = "512M"
DEFAULT_MEMCACHED_MB = 128


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ResourceRequirementsSpec(_CamelModel):
    requests: Dict[str, Union[str, int]] = Field(default_factory=dict)
    limits: Dict[str, Union[str, int]] = Field(default_factory=dict)


class AutoscalingSpec(_CamelModel):
    enabled: bool = False
    min_replicas: Optional[int] = Field(default=None, alias="minReplicas", ge=1)
    max_replicas: int = Field(default=DEFAULT_MAX_REPLICAS, alias="maxReplicas", ge=1)
    target_cpu: Optional[int] = Field(default=None, alias="targetCPU", ge=1, le=100)

    @property
    def effective_min_replicas(self) -> int:
        return self.min_replicas if self.min_replicas is not None else DEFAULT_MIN_REPLICAS

    @property
    def effective_target_cpu(self) -> int:
        return self.target_cpu if self.target_cpu is not None else DEFAULT_TARGET_CPU

    @property
    def replica_floor(self) -> int:
        """Deployment replicas: one pod unless the autoscaler owns the count."""
        return self.effective_min_replicas if self.enabled else 1

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.enabled and self.max_replicas < self.effective_min_replicas:
            raise ValueError(
                f"hpa.maxReplicas ({self.max_replicas}) must be >= "
                f"minReplicas ({self.effective_min_replicas})"
            )
        return self


class StorageSpec(_CamelModel):
    size: str = Field(..., min_length=1, examples=["1Gi", "20Gi"])
    storage_class: str = Field(default="", alias="storageClass")

    @field_validator("size", mode="before")
    @classmethod
    def _quantity_as_str(cls, v):
        return str(v) if isinstance(v, int) else v

    @property
    def effective_storage_class(self) -> str:
        return self.storage_class or settings.DEFAULT_STORAGE_CLASS


class DatabaseRefSpec(_CamelModel):
    host: str = Field(..., min_length=1)
    admin_secret: str = Field(..., min_length=1, alias="adminSecret")
    name: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class PHPSettingsSpec(_CamelModel):
    max_execution_time: int = Field(default=0, alias="maxExecutionTime", ge=0)
    memory_limit: str = Field(default="", alias="memoryLimit")

    @property
    def effective_max_execution_time(self) -> int:
        return self.max_execution_time or DEFAULT_MAX_EXECUTION_TIME

    @property
    def effective_memory_limit(self) -> str:
        return self.memory_limit or DEFAULT_MEMORY_LIMIT


class MemcachedSpec(_CamelModel):
    memory_mb: int = Field(default=0, alias="memoryMB", ge=0)

    @property
    def effective_memory_mb(self) -> int:
        return self.memory_mb or DEFAULT_MEMCACHED_MB


class TenantSpec(_CamelModel):
    """Desired state of one Moodle tenant."""
    hostname: str = Field(..., min_length=1, examples=["acme.example.org"])
    image: str = Field(..., min_length=1)
    resources: ResourceRequirementsSpec = Field(default_factory=ResourceRequirementsSpec)
    autoscaling: AutoscalingSpec = Field(default_factory=AutoscalingSpec, alias="hpa")
    storage: StorageSpec
    database: DatabaseRefSpec = Field(..., alias="databaseRef")
    php: PHPSettingsSpec = Field(default_factory=PHPSettingsSpec, alias="phpSettings")
    memcached: MemcachedSpec = Field(default_factory=MemcachedSpec)


class ObjectMeta(_CamelModel):
    name: str = Field(..., min_length=1)
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    generation: Optional[int] = None
    finalizers: List[str] = Field(default_factory=list)
    deletion_timestamp: Optional[str] = Field(default=None, alias="deletionTimestamp")

    @property
    def is_deleting(self) -> bool:
        return bool(self.deletion_timestamp)


class TenantDeclaration(_CamelModel):
    """A validated MoodleTenant object (metadata + spec)."""
    api_version: str = Field(
        default=f"{settings.CRD_GROUP}/{settings.CRD_VERSION}", alias="apiVersion"
    )
    kind: str = settings.CRD_KIND
    metadata: ObjectMeta
    spec: TenantSpec

    @property
    def identifier(self) -> str:
        return self.metadata.name

    @property
    def url(self) -> str:
        return f"https://{self.spec.hostname}"
