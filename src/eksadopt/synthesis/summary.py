#!/usr/bin/env python3
"""
EKSADOPT SUMMARY - Discovery Report
-----------------------------------
Markdown digest of one discovery pass, written next to the raw payloads.
Sensitive values are redacted through the same SensitivityPolicy the
vault uses; the literal adoption commands are always included so an
operator can finish by hand.
"""

from typing import Any, List, Sequence

from eksadopt.core.models import DesiredConfigUnit, DiscoveryResult, LiveResourceRecord
from eksadopt.vault.classifier import SensitivityPolicy

REDACTED = "[redacted]"


def _shown(policy: SensitivityPolicy, record: LiveResourceRecord, path: str) -> Any:
    value = record.get(path)
    if value is None or value == "":
        return "-"
    if policy.tag_for(f"{record.kind.value}.{path}").is_secret:
        return REDACTED
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) or "-"
    return value


def render_summary(discovery: DiscoveryResult, units: Sequence[DesiredConfigUnit],
                   policy: SensitivityPolicy, engine: str = "tofu",
                   generated_at: str = "") -> str:
    cluster = discovery.cluster
    lines: List[str] = [
        f"# Cluster Import Summary: {discovery.cluster_name}",
        "",
    ]
    if generated_at:
        lines += [f"Generated: {generated_at}", ""]
    lines += [
        f"- Region: {discovery.region}",
        f"- Version: {_shown(policy, cluster, 'version')}",
        f"- Cluster ARN: {_shown(policy, cluster, 'arn')}",
        f"- IAM Role: {_shown(policy, cluster, 'roleArn')}",
        f"- OIDC Provider: {_shown(policy, cluster, 'oidcProviderArn')}",
        f"- VPC ID: {_shown(policy, cluster, 'resourcesVpcConfig.vpcId')}",
        f"- Node Groups: {', '.join(ng.get('nodegroupName') for ng in discovery.node_groups) or '-'}",
        "",
        "## Node Groups",
        "",
        "| Name | Capacity | Instance Types | Min | Desired | Max | Taints |",
        "|------|----------|----------------|-----|---------|-----|--------|",
    ]
    for ng in discovery.node_groups:
        taints = ", ".join(
            f"{t.get('key')}={t.get('value', '')}:{t.get('effect')}" for t in ng.get("taints") or []
        ) or "-"
        lines.append(
            f"| {ng.get('nodegroupName')} | {_shown(policy, ng, 'capacityType')} "
            f"| {_shown(policy, ng, 'instanceTypes')} | {_shown(policy, ng, 'scalingConfig.minSize')} "
            f"| {_shown(policy, ng, 'scalingConfig.desiredSize')} | {_shown(policy, ng, 'scalingConfig.maxSize')} "
            f"| {taints} |"
        )

    if discovery.helm_releases:
        lines += ["", "## Helm Releases", ""]
        for release in discovery.helm_releases:
            lines.append(
                f"- {release.get('name')} ({release.get('namespace')}): "
                f"{release.get('chart')} [{release.get('status')}]"
            )

    lines += ["", "## Adoption Commands", "", "```sh"]
    lines += [f"{engine} import {unit.address} {unit.import_id}" for unit in units]
    lines += ["```", "", "## Next Steps", ""]
    lines += [
        "1. Review existing-cluster.tf and import-resources.tf",
        f"2. Run: {engine} init -backend-config=backend.tfvars",
        f"3. Run: {engine} plan (it must report no changes)",
        "4. Run: eksadopt adopt, and confirm at the import gate",
        "",
    ]
    return "\n".join(lines)
