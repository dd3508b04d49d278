#!/usr/bin/env python3
"""
EKSADOPT CORE MODELS
--------------------
Defines the fundamental data structures passed between the adoption stages.
Records flow left to right: discovery produces LiveResourceRecords, the vault
produces a SecretDocument, synthesis produces DesiredConfigUnits, validation
produces a ConvergenceReport and adoption produces ImportOutcomes.

Author: EksAdopt Team
Date: 2026-10-19
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


class ResourceKind(str, Enum):
    CLUSTER = "cluster"
    NODE_GROUP = "node-group"
    NETWORK = "network"
    SECURITY_GROUP = "security-group"


class SensitivityTag(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def is_secret(self) -> bool:
        return self is not SensitivityTag.LOW


class ImportStatus(str, Enum):
    ADOPTED = "adopted"
    SKIPPED = "skipped"    # Already present in managed state
    FAILED = "failed"


@dataclass(frozen=True)
class LiveResourceRecord:
    """
    One resource as the provider reported it.

    The attribute mapping is deep-copied on creation so later stages can
    never alter what discovery captured.
    """
    kind: ResourceKind
    external_id: str                                   # eks name, "cluster:nodegroup", vpc-..., sg-...
    attributes: Mapping[str, Any]                      # Canonical provider payload, key order preserved
    discovered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    depends_on: Tuple[str, ...] = ()                   # External ids this record hangs off

    def __post_init__(self):
        object.__setattr__(self, "attributes", copy.deepcopy(dict(self.attributes)))
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    def get(self, dotted: str, default: Any = None) -> Any:
        """Reads a nested attribute by dotted path ('resourcesVpcConfig.vpcId')."""
        node: Any = self.attributes
        for part in dotted.split("."):
            if isinstance(node, Mapping) and part in node:
                node = node[part]
            elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
                node = node[int(part)]
            else:
                return default
        return node

    def leaves(self) -> Iterator[Tuple[str, Any]]:
        """Yields (dotted-path, value) for every scalar leaf, in attribute order."""
        yield from _walk_leaves(self.attributes, "")


def _walk_leaves(node: Any, prefix: str) -> Iterator[Tuple[str, Any]]:
    if isinstance(node, Mapping):
        for key, value in node.items():
            yield from _walk_leaves(value, f"{prefix}.{key}" if prefix else str(key))
    elif isinstance(node, list):
        for index, value in enumerate(node):
            yield from _walk_leaves(value, f"{prefix}.{index}" if prefix else str(index))
    else:
        yield prefix, node


@dataclass
class DiscoveryResult:
    """Everything one discovery pass found. Only complete passes are ever built."""
    cluster_name: str
    region: str
    account_id: str
    records: List[LiveResourceRecord]                  # Managed: cluster first, then node groups
    ancillary: List[LiveResourceRecord] = field(default_factory=list)  # Network, security groups
    helm_releases: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def cluster(self) -> LiveResourceRecord:
        return self.records[0]

    @property
    def node_groups(self) -> List[LiveResourceRecord]:
        return [r for r in self.records if r.kind is ResourceKind.NODE_GROUP]

    def all_records(self) -> List[LiveResourceRecord]:
        return list(self.records) + list(self.ancillary)


@dataclass
class SecretDocument:
    version: str
    created_at: str
    entries: Dict[str, Any] = field(default_factory=dict)  # dotted-path -> value

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "created_at": self.created_at, "entries": dict(self.entries)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SecretDocument":
        return cls(
            version=str(data.get("version", "")),
            created_at=str(data.get("created_at", "")),
            entries=dict(data.get("entries") or {}),
        )


@dataclass(frozen=True)
class Ref:
    """A reference to another resource's attribute; rendered bare, compared by value."""
    address: str
    attribute: str
    value: Any

    @property
    def expression(self) -> str:
        return f"{self.address}.{self.attribute}"


@dataclass(frozen=True)
class Block:
    """A nested configuration block (rendered `name { ... }`, planned as a one-item list)."""
    body: Mapping[str, Any]


@dataclass(frozen=True)
class DesiredConfigUnit:
    kind: ResourceKind
    external_id: str                                   # Same key as the LiveResourceRecord
    resource_type: str                                 # aws_eks_cluster, aws_eks_node_group
    name: str                                          # Local name inside the configuration
    import_id: str                                     # Id passed to the engine's import
    attributes: Mapping[str, Any]
    ignore_changes: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()

    @property
    def address(self) -> str:
        return f"{self.resource_type}.{self.name}"


@dataclass(frozen=True)
class Mismatch:
    field_path: str
    desired: Any
    live: Any


@dataclass
class ConvergenceReport:
    mismatches: List[Mismatch] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return not self.mismatches

    def __len__(self) -> int:
        return len(self.mismatches)

    def __iter__(self):
        return iter(self.mismatches)


@dataclass(frozen=True)
class ImportOutcome:
    external_id: str
    address: str
    status: ImportStatus
    error: Optional[str] = None
