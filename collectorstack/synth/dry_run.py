"""In-memory provisioner that fabricates deterministic outputs.

Used by ``collectorstack plan``/``deploy --dry-run`` and by tests. Output
values are derived from the resolved spec, so a dry run shows exactly what
each resource would receive from its upstream nodes.
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from collectorstack.graph.models import DEFAULT_OUTPUTS, ResourceKind


class DryRunProvisioningError(RuntimeError):
    """Raised for nodes the dry run was asked to fail."""


def _digest(value: str, length: int = 8) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:length]


class DryRunProvisioner:
    """Records create/delete calls and fabricates plausible outputs."""

    def __init__(
        self,
        fail_on: Iterable[str] = (),
        fail_delete_on: Iterable[str] = (),
        region: str = "us-east-1",
        account: str = "123456789012",
    ) -> None:
        self._fail_on = set(fail_on)
        self._fail_delete_on = set(fail_delete_on)
        self.region = region
        self.account = account
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.specs: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create(self, kind: ResourceKind, spec: Mapping[str, Any]) -> dict[str, Any]:
        logical_id = spec["logical_id"]
        if logical_id in self._fail_on:
            raise DryRunProvisioningError(f"simulated failure for {logical_id}")
        outputs = {name: self._output(kind, name, logical_id, spec) for name in DEFAULT_OUTPUTS[kind]}
        outputs["logical_id"] = logical_id
        with self._lock:
            self.created.append(logical_id)
            self.specs[logical_id] = dict(spec)
        return outputs

    def delete(self, kind: ResourceKind, outputs: Mapping[str, Any]) -> None:
        logical_id = outputs["logical_id"]
        if logical_id in self._fail_delete_on:
            raise DryRunProvisioningError(f"simulated delete failure for {logical_id}")
        with self._lock:
            self.deleted.append(logical_id)

    def _output(self, kind: ResourceKind, name: str, logical_id: str, spec: Mapping[str, Any]) -> Any:
        slug = logical_id.lower()
        suffix = _digest(logical_id)
        match name:
            case "vpc_id":
                return f"vpc-{suffix}"
            case "public_subnet_ids":
                return [f"subnet-{_digest(f'{logical_id}-{az}')}" for az in range(spec.get("max_azs", 2))]
            case "repository_prefix":
                return spec["repository_prefix"]
            case "registry_id":
                return self.account
            case "region":
                return self.region
            case "repository_uri":
                return f"{self.account}.dkr.ecr.{self.region}.amazonaws.com/{spec['repository_name']}"
            case "bucket_name":
                return f"{slug}-{suffix}"
            case "object_url":
                bucket = spec["destination_bucket"]
                return f"s3://{bucket}.s3.{self.region}.amazonaws.com/{spec['object_key']}"
            case "dns_name":
                return f"{slug}-{suffix}.{self.region}.elb.amazonaws.com"
            case "endpoint_url":
                return f"{spec['protocol']}://{spec['load_balancer_dns']}:{spec['port']}"
            case "instance_id":
                return f"i-{_digest(logical_id, 17)}"
            case _:
                return f"arn:aws:{kind.value}:{self.region}:{self.account}:{slug}/{suffix}"
