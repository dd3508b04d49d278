#!/usr/bin/env python3
"""
EKSADOPT SYNTHESIZER - Live State to Desired State
--------------------------------------------------
Maps each managed LiveResourceRecord onto one DesiredConfigUnit whose
attributes, once planned, must reproduce the live resource exactly.

Field-presence policy: a field is emitted only when its live value is
non-empty; optional sub-blocks (encryption, launch template, security
groups, taints, labels, log types, non-default public CIDRs) only when
live carries them. Omitting an absent field is what keeps the plan empty.

Author: EksAdopt Team
Date: 2026-10-19
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from eksadopt.core.models import Block, DesiredConfigUnit, DiscoveryResult, LiveResourceRecord, Ref, ResourceKind
from eksadopt.synthesis.exporter import HclExporter

logger = logging.getLogger("eksadopt.synthesis")

CLUSTER_ADDRESS_NAME = "main"
EKSCTL_VERSION_TAG_KEY = "alpha.eksctl.io/eksctl-version"
EKSCTL_VERSION_TAG = f'tags["{EKSCTL_VERSION_TAG_KEY}"]'
DEFAULT_PUBLIC_CIDRS = ["0.0.0.0/0"]
PROVIDER_SOURCE = "registry.opentofu.org/hashicorp/aws"
PROVIDER_VERSION = "~> 5.0"
REQUIRED_ENGINE_VERSION = ">= 1.6.0"

_SLUG = re.compile(r"[^A-Za-z0-9_]")


def slugify(name: str) -> str:
    """Local resource name for a node group ('dask-workers' -> 'dask_workers')."""
    slug = _SLUG.sub("_", name)
    if not slug or slug[0].isdigit():
        slug = f"ng_{slug}"
    return slug


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def _put(body: Dict[str, Any], key: str, value: Any):
    if _present(value):
        body[key] = value


@dataclass
class SynthesisBundle:
    """All rendered text for one synthesis pass."""
    units: List[DesiredConfigUnit]
    config_text: str
    import_text: str


class ConfigSynthesizer:
    def __init__(self, exporter: Optional[HclExporter] = None):
        self.exporter = exporter or HclExporter()

    def synthesize(self, discovery: DiscoveryResult) -> List[DesiredConfigUnit]:
        cluster = self._cluster_unit(discovery.cluster)
        units = [cluster]
        seen = {cluster.name}
        for record in sorted(discovery.node_groups, key=lambda r: r.attributes["nodegroupName"]):
            unit = self._node_group_unit(record, cluster)
            if unit.name in seen:
                raise ValueError(f"Node group '{record.external_id}' collides with local name '{unit.name}'")
            seen.add(unit.name)
            units.append(unit)
        logger.info(f"Synthesized {len(units)} configuration unit(s)")
        return units

    # --- RESOURCE MAPPINGS ---

    def _cluster_unit(self, record: LiveResourceRecord) -> DesiredConfigUnit:
        live = record.attributes
        vpc_live = live.get("resourcesVpcConfig") or {}

        vpc_config: Dict[str, Any] = {}
        _put(vpc_config, "subnet_ids", list(vpc_live.get("subnetIds") or []))
        if "endpointPrivateAccess" in vpc_live:
            vpc_config["endpoint_private_access"] = bool(vpc_live["endpointPrivateAccess"])
        if "endpointPublicAccess" in vpc_live:
            vpc_config["endpoint_public_access"] = bool(vpc_live["endpointPublicAccess"])
        _put(vpc_config, "security_group_ids", list(vpc_live.get("securityGroupIds") or []))
        cidrs = list(vpc_live.get("publicAccessCidrs") or [])
        if cidrs and cidrs != DEFAULT_PUBLIC_CIDRS:
            vpc_config["public_access_cidrs"] = cidrs

        body: Dict[str, Any] = {}
        _put(body, "name", live.get("name") or record.external_id)
        _put(body, "role_arn", live.get("roleArn"))
        _put(body, "version", live.get("version"))
        body["bootstrap_self_managed_addons"] = False
        _put(body, "enabled_cluster_log_types", self._enabled_log_types(live))
        body["vpc_config"] = Block(vpc_config)

        encryption = []
        for entry in live.get("encryptionConfig") or []:
            key_arn = (entry.get("provider") or {}).get("keyArn")
            if key_arn:
                encryption.append(Block({
                    "resources": list(entry.get("resources") or []),
                    "provider": Block({"key_arn": key_arn}),
                }))
        _put(body, "encryption_config", encryption)
        _put(body, "tags", dict(live.get("tags") or {}))

        ignore = []
        if EKSCTL_VERSION_TAG_KEY in (live.get("tags") or {}):
            ignore.append(EKSCTL_VERSION_TAG)
        ignore.append("bootstrap_self_managed_addons")

        return DesiredConfigUnit(
            kind=ResourceKind.CLUSTER,
            external_id=record.external_id,
            resource_type="aws_eks_cluster",
            name=CLUSTER_ADDRESS_NAME,
            import_id=record.external_id,
            attributes=body,
            ignore_changes=tuple(ignore),
        )

    def _node_group_unit(self, record: LiveResourceRecord, cluster: DesiredConfigUnit) -> DesiredConfigUnit:
        live = record.attributes
        ng_name = live["nodegroupName"]
        cluster_name = live.get("clusterName") or cluster.external_id

        body: Dict[str, Any] = {}
        body["cluster_name"] = Ref(cluster.address, "name", cluster_name)
        body["node_group_name"] = ng_name
        _put(body, "node_role_arn", live.get("nodeRole"))
        _put(body, "subnet_ids", list(live.get("subnets") or []))
        _put(body, "capacity_type", live.get("capacityType"))
        _put(body, "instance_types", list(live.get("instanceTypes") or []))
        _put(body, "ami_type", live.get("amiType"))
        _put(body, "disk_size", live.get("diskSize"))

        scaling = live.get("scalingConfig") or {}
        if scaling:
            body["scaling_config"] = Block({
                "desired_size": scaling.get("desiredSize", 0),
                "max_size": scaling.get("maxSize", 0),
                "min_size": scaling.get("minSize", 0),
            })

        launch_template = live.get("launchTemplate") or {}
        if launch_template.get("id"):
            lt_body = {"id": launch_template["id"]}
            _put(lt_body, "version", str(launch_template.get("version") or ""))
            body["launch_template"] = Block(lt_body)

        taints = []
        for taint in live.get("taints") or []:
            taint_body = {"key": taint.get("key")}
            _put(taint_body, "value", taint.get("value"))
            taint_body["effect"] = taint.get("effect")
            taints.append(Block(taint_body))
        _put(body, "taint", taints)
        _put(body, "labels", dict(live.get("labels") or {}))
        _put(body, "tags", dict(live.get("tags") or {}))

        ignore = []
        if "launch_template" in body:
            ignore.append("launch_template[0].version")
        if EKSCTL_VERSION_TAG_KEY in (live.get("tags") or {}):
            ignore.append(EKSCTL_VERSION_TAG)

        return DesiredConfigUnit(
            kind=ResourceKind.NODE_GROUP,
            external_id=record.external_id,
            resource_type="aws_eks_node_group",
            name=slugify(ng_name),
            import_id=f"{cluster_name}:{ng_name}",
            attributes=body,
            ignore_changes=tuple(ignore),
            depends_on=(cluster.address,),
        )

    @staticmethod
    def _enabled_log_types(live: Dict[str, Any]) -> List[str]:
        types: List[str] = []
        for setup in (live.get("logging") or {}).get("clusterLogging") or []:
            if setup.get("enabled"):
                types.extend(setup.get("types") or [])
        return sorted(types)

    # --- RENDERING ---

    def render(self, discovery: DiscoveryResult, units: Optional[List[DesiredConfigUnit]] = None) -> SynthesisBundle:
        units = units if units is not None else self.synthesize(discovery)
        vpc_id = discovery.cluster.get("resourcesVpcConfig.vpcId")

        parts = [
            f"# Desired configuration for EKS cluster {discovery.cluster_name} ({discovery.region}).\n"
            "# Generated by eksadopt from live state. Regenerated on every run.\n"
        ]
        parts.extend(self.exporter.render_unit(unit) for unit in units)
        if vpc_id:
            parts.append(self.exporter.render_block('data "aws_vpc" "main"', {"id": vpc_id}))
        parts.append(self.exporter.render_block('provider "aws"', {"region": discovery.region}))
        parts.append(self._terraform_block())

        imports = [f"# Import blocks for EKS cluster {discovery.cluster_name}.\n"]
        imports.extend(self.exporter.render_import(unit) for unit in units)

        return SynthesisBundle(units=units, config_text="\n".join(parts), import_text="\n".join(imports))

    def _terraform_block(self) -> str:
        return "\n".join([
            "terraform {",
            f"  required_version = \"{REQUIRED_ENGINE_VERSION}\"",
            "",
            "  required_providers {",
            "    aws = {",
            f"      source  = \"{PROVIDER_SOURCE}\"",
            f"      version = \"{PROVIDER_VERSION}\"",
            "    }",
            "  }",
            "",
            "  backend \"s3\" {}",
            "}",
        ]) + "\n"

    def render_backend(self, bucket: str, region: str, lock_table: str) -> str:
        return self.exporter.render_assignments({
            "bucket": bucket,
            "key": "terraform.tfstate",
            "region": region,
            "encrypt": True,
            "dynamodb_table": lock_table,
        })
