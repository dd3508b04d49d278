#!/usr/bin/env python3
"""
EKSADOPT PROVIDER - AWS CLI Query Interface
-------------------------------------------
describe(kind, id) on top of the aws CLI. Each response is decoded by
the DecoderChain and unwrapped to the resource payload, so callers get
the same dict whichever output format the CLI was configured with.
"""

import logging
from typing import Any, Dict, List, Optional

from eksadopt.core.errors import DiscoveryError, ResourceNotFound
from eksadopt.core.runner import CommandResult, CommandRunner
from eksadopt.discovery.decoders import DecoderChain

logger = logging.getLogger("eksadopt.provider")

_NOT_FOUND_MARKERS = ("ResourceNotFoundException", "NotFound", "does not exist")

KIND_SUBNET = "subnet"


class ProviderError(DiscoveryError):
    pass


class AwsCliProvider:
    def __init__(self, runner: CommandRunner, decoders: DecoderChain, region: str,
                 output: Optional[str] = None, binary: str = "aws"):
        self.runner = runner
        self.decoders = decoders
        self.region = region
        self.output = output
        self.binary = binary

    def _call(self, args: List[str]) -> CommandResult:
        argv = [self.binary, *args, "--region", self.region]
        if self.output:
            argv += ["--output", self.output]
        return self.runner.run(argv)

    def _decode(self, text: str) -> Any:
        payload = self.decoders.decode(text)
        if isinstance(payload, list):
            payload = _merge_pages(payload)
        return payload

    def _query(self, kind: str, external_id: str, args: List[str]) -> Any:
        result = self._call(args)
        if not result.ok:
            if any(marker in result.stderr for marker in _NOT_FOUND_MARKERS):
                raise ResourceNotFound(kind, external_id, self.region)
            raise ProviderError(
                f"describe {kind} '{external_id}' failed (rc={result.rc}): {result.stderr.strip()[:300]}",
                reason="partial-fetch",
                details={"kind": kind, "external_id": external_id},
            )
        payload = self._decode(result.stdout)
        if payload is None:
            raise ProviderError(f"describe {kind} '{external_id}' returned no output", reason="partial-fetch")
        if not isinstance(payload, dict):
            raise ProviderError(
                f"describe {kind} '{external_id}' returned an unexpected {type(payload).__name__} payload",
                reason="partial-fetch",
            )
        return payload

    def _field(self, kind: str, external_id: str, args: List[str], key: str) -> Any:
        payload = self._query(kind, external_id, args)
        if key not in payload:
            raise ProviderError(f"describe {kind} '{external_id}' response has no '{key}'", reason="partial-fetch")
        return payload[key]

    def describe(self, kind: str, external_id: str, parent: Optional[str] = None) -> Any:
        """
        Returns the provider-native record for one resource.

        `external_id` may be a list of ids for the ec2 kinds, which the
        CLI describes in one call.
        """
        if kind == "cluster":
            return self._field(kind, external_id, ["eks", "describe-cluster", "--name", external_id], "cluster")
        if kind == "node-group":
            return self._field(kind, external_id, [
                "eks", "describe-nodegroup",
                "--cluster-name", parent or "",
                "--nodegroup-name", external_id,
            ], "nodegroup")
        if kind == "network":
            vpcs = self._field(kind, external_id, ["ec2", "describe-vpcs", "--vpc-ids", external_id], "Vpcs")
            if not vpcs:
                raise ResourceNotFound(kind, external_id, self.region)
            return vpcs[0]
        if kind == KIND_SUBNET:
            ids = _as_list(external_id)
            return self._field(kind, ",".join(ids), ["ec2", "describe-subnets", "--subnet-ids", *ids], "Subnets")
        if kind == "security-group":
            ids = _as_list(external_id)
            return self._field(kind, ",".join(ids),
                               ["ec2", "describe-security-groups", "--group-ids", *ids], "SecurityGroups")
        raise ValueError(f"Unsupported resource kind: {kind}")

    def list_node_groups(self, cluster_name: str) -> List[str]:
        payload = self._query("node-group", cluster_name, ["eks", "list-nodegroups", "--cluster-name", cluster_name])
        return list(payload.get("nodegroups") or [])

    def caller_identity(self) -> Dict[str, Any]:
        result = self.runner.run([self.binary, "sts", "get-caller-identity", "--output", "json"])
        if not result.ok:
            raise ProviderError(f"Unable to resolve caller identity: {result.stderr.strip()[:300]}")
        payload = self._decode(result.stdout)
        return payload if isinstance(payload, dict) else {}

    def describe_kms_key(self, key_ref: str) -> Optional[Dict[str, Any]]:
        result = self._call(["kms", "describe-key", "--key-id", key_ref])
        if not result.ok:
            return None
        payload = self._decode(result.stdout)
        return payload.get("KeyMetadata") if isinstance(payload, dict) else None


def _merge_pages(pages: List[Any]) -> Any:
    """
    yaml-stream output is a list with one document per response page.
    List fields are concatenated across pages; anything else keeps the
    first page's value.
    """
    if not pages or not all(isinstance(page, dict) for page in pages):
        return pages
    merged: Dict[str, Any] = {}
    for page in pages:
        for key, value in page.items():
            if isinstance(value, list) and isinstance(merged.get(key), list):
                merged[key] = merged[key] + value
            else:
                merged.setdefault(key, value)
    return merged


def _as_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]
