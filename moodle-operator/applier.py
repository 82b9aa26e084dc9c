"""
Idempotent applier: get-or-create for every child resource.

Not an upsert: an object that already exists is left exactly as it is,
hand edits included.
"""

import logging
from enum import Enum

from services.cluster import Cluster, Kind

logger = logging.getLogger("applier")


class Applied(str, Enum):
    CREATED = "created"
    EXISTS = "exists"


class Applier:
    def __init__(self, cluster: Cluster):
        self.cluster = cluster

    def get_or_create(self, obj) -> Applied:
        """Create obj unless an object with the same kind/namespace/name exists."""
        kind = Kind(obj.kind)
        name = obj.metadata.name
        namespace = obj.metadata.namespace
        where = f"{namespace}/{name}" if namespace else name

        if self.cluster.read(kind, name, namespace) is not None:
            logger.info(f"{kind.value} {where} already exists")
            return Applied.EXISTS

        logger.info(f"Creating {kind.value} {where}")
        try:
            self.cluster.create(kind, obj)
        except Exception as e:
            logger.error(f"Failed to create {kind.value} {where}: {e}")
            raise
        return Applied.CREATED
