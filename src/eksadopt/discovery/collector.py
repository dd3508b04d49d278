#!/usr/bin/env python3
"""
EKSADOPT COLLECTOR - Resource Discovery
---------------------------------------
Builds the complete dependency graph for one live cluster:

    node groups -> cluster -> network (+ subnets, security groups)

The cluster is fetched first because everything else hangs off it. Node
groups are described concurrently (read-only, order-independent) with a
bounded pool. A single failed call fails the whole pass: a partially
described graph must never reach synthesis.

Author: EksAdopt Team
Date: 2026-10-19
"""

import json
import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from eksadopt.core.errors import DiscoveryError
from eksadopt.core.models import DiscoveryResult, LiveResourceRecord, ResourceKind
from eksadopt.core.runner import CommandRunner
from eksadopt.core.storage import atomic_write, ensure_dir
from eksadopt.discovery.provider import KIND_SUBNET, AwsCliProvider

logger = logging.getLogger("eksadopt.discovery")


def oidc_provider_arn(issuer: str, account_id: str, region: str) -> str:
    """arn for the IAM OIDC provider backing a cluster issuer URL."""
    oidc_id = issuer.rstrip("/").rsplit("/", 1)[-1]
    return f"arn:aws:iam::{account_id}:oidc-provider/oidc.eks.{region}.amazonaws.com/id/{oidc_id}"


class DiscoveryCollector:
    def __init__(self, provider: AwsCliProvider, runner: Optional[CommandRunner] = None,
                 max_workers: int = 4, clock: Callable[[], datetime] = None):
        self.provider = provider
        self.runner = runner
        self.max_workers = max_workers
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def discover(self, cluster_name: str, region: str, account_id: Optional[str] = None,
                 progress_callback: Optional[Callable[[str], None]] = None) -> DiscoveryResult:
        """
        Returns a DiscoveryResult or raises DiscoveryError (ResourceNotFound
        when the cluster itself is missing).
        """
        notify = progress_callback or (lambda step: None)
        if account_id is None:
            account_id = str((self.provider.caller_identity() or {}).get("Account", ""))
        if not account_id:
            raise DiscoveryError("Caller identity did not include an account id", reason="missing-account")

        # --- PHASE 1: PARENT CLUSTER ---
        logger.info(f"Fetching EKS cluster details for {cluster_name}")
        cluster = dict(self.provider.describe("cluster", cluster_name))
        notify("cluster")
        issuer = ((cluster.get("identity") or {}).get("oidc") or {}).get("issuer")
        if issuer:
            cluster["oidcProviderArn"] = oidc_provider_arn(issuer, account_id, region)
        vpc_config = cluster.get("resourcesVpcConfig") or {}
        vpc_id = vpc_config.get("vpcId")
        if not vpc_id:
            raise DiscoveryError(f"Cluster {cluster_name} reports no VPC", reason="partial-fetch")
        logger.info(f"Found cluster version {cluster.get('version')} in {vpc_id}")

        # --- PHASE 2: NODE GROUPS (bounded fan-out) ---
        names = sorted(self.provider.list_node_groups(cluster_name))
        node_groups = self._describe_node_groups(cluster_name, names, notify)

        # --- PHASE 3: NETWORK & SECURITY ---
        network = dict(self.provider.describe("network", vpc_id))
        subnet_ids = list(vpc_config.get("subnetIds") or [])
        network["subnets"] = self.provider.describe(KIND_SUBNET, subnet_ids) if subnet_ids else []
        notify("network")
        sg_ids = list(vpc_config.get("securityGroupIds") or [])
        security_groups = self.provider.describe("security-group", sg_ids) if sg_ids else []
        notify("security-groups")

        now = self.clock()
        cluster_record = LiveResourceRecord(
            ResourceKind.CLUSTER, cluster_name, cluster, now, depends_on=(vpc_id,))
        records = [cluster_record] + [
            LiveResourceRecord(ResourceKind.NODE_GROUP, f"{cluster_name}:{ng['nodegroupName']}",
                               ng, now, depends_on=(cluster_name,))
            for ng in node_groups
        ]
        ancillary = [LiveResourceRecord(ResourceKind.NETWORK, vpc_id, network, now)] + [
            LiveResourceRecord(ResourceKind.SECURITY_GROUP, sg["GroupId"], sg, now, depends_on=(vpc_id,))
            for sg in security_groups
        ]

        result = DiscoveryResult(
            cluster_name=cluster_name,
            region=region,
            account_id=account_id,
            records=records,
            ancillary=ancillary,
            helm_releases=self._helm_releases(),
        )
        logger.info(f"Discovery complete: {len(records)} managed, {len(ancillary)} ancillary record(s)")
        return result

    def _describe_node_groups(self, cluster_name: str, names: List[str],
                              notify: Callable[[str], None]) -> List[Dict[str, Any]]:
        if not names:
            return []
        found: Dict[str, Dict[str, Any]] = {}
        pool = ThreadPoolExecutor(max_workers=min(self.max_workers, len(names)))
        try:
            futures = {
                pool.submit(self.provider.describe, "node-group", name, cluster_name): name
                for name in names
            }
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    name = futures[future]
                    error = future.exception()
                    raise DiscoveryError(
                        f"Discovery incomplete: node group '{name}' could not be described ({error})",
                        reason="partial-fetch",
                        details={"node_group": name},
                    ) from error
            for future, name in futures.items():
                found[name] = dict(future.result())
                notify(f"node-group:{name}")
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

        for name in names:
            if not found[name].get("nodeRole"):
                raise DiscoveryError(
                    f"Node group '{name}' has no role ARN; refusing to continue with an empty value",
                    reason="missing-role-arn",
                    details={"node_group": name},
                )
        return [found[name] for name in names]

    def _helm_releases(self) -> List[Dict[str, Any]]:
        if self.runner is None or self.runner.which("helm") is None:
            return []
        result = self.runner.run(["helm", "list", "-A", "-o", "json"])
        if not result.ok:
            logger.warning(f"helm list failed, skipping release snapshot: {result.stderr.strip()[:200]}")
            return []
        try:
            return list(json.loads(result.stdout or "[]"))
        except json.JSONDecodeError:
            logger.warning("helm list returned unparseable output, skipping release snapshot")
            return []


def write_raw_artifacts(result: DiscoveryResult, raw_dir: Path) -> List[Path]:
    """Persists the canonical discovery payloads. Only called for complete passes."""
    ensure_dir(raw_dir)
    files: Dict[str, Any] = {
        "cluster.json": result.cluster.attributes,
        "nodegroups.json": [ng.attributes.get("nodegroupName") for ng in result.node_groups],
    }
    for ng in result.node_groups:
        files[f"nodegroup-{ng.attributes['nodegroupName']}.json"] = ng.attributes
    for record in result.ancillary:
        if record.kind is ResourceKind.NETWORK:
            files["vpc.json"] = record.attributes
    sgs = [r.attributes for r in result.ancillary if r.kind is ResourceKind.SECURITY_GROUP]
    if sgs:
        files["security-groups.json"] = sgs
    if result.helm_releases:
        files["helm-releases.json"] = result.helm_releases

    written = []
    for name, payload in files.items():
        written.append(atomic_write(raw_dir / name, json.dumps(payload, indent=2, default=str) + "\n", mode=0o600))
    return written
