"""
EKSADOPT TEST DOUBLES
---------------------
Offline stand-ins for everything the workflow shells out to. FakeRunner
answers argv prefixes from a routing table built over the pangeo
fixtures; FakeEngine plans by diffing units against provider-shaped live
views, so convergence behaves like a real engine without one installed.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from eksadopt.convergence.diff import compare_unit
from eksadopt.convergence.tofu import DeclarativeEngine
from eksadopt.core.errors import EngineCommandError
from eksadopt.core.models import ConvergenceReport, DiscoveryResult, LiveResourceRecord, ResourceKind
from eksadopt.core.runner import CommandResult
from eksadopt.vault.encryptors import KeyService

FIXTURES = Path(__file__).parent / "fixtures" / "pangeo"
ACCOUNT_ID = "123456789012"
KEY_ARN = "arn:aws:kms:us-west-1:123456789012:key/1f2e3d4c-5b6a-7980-a1b2-c3d4e5f60718"
TOOLS = ("tofu", "aws", "sops", "kubectl")

Answer = Union[Tuple[int, str, str], CommandResult, Callable[[List[str], Optional[str]], Any]]


def fixture_text(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def fixture_json(name: str) -> Any:
    return json.loads(fixture_text(name))


class FakeRunner:
    """CommandRunner double: longest matching argv prefix wins."""

    def __init__(self, routes: Optional[Dict[Tuple[str, ...], Answer]] = None,
                 binaries: Iterable[str] = (), cwd: Optional[str] = None):
        self.routes = dict(routes or {})
        self.binaries = set(binaries)
        self.cwd = cwd
        self.env: Dict[str, str] = {}
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []

    def which(self, binary: str) -> Optional[str]:
        return f"/usr/local/bin/{binary}" if binary in self.binaries else None

    def run(self, argv: List[str], input_text: Optional[str] = None) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        self.inputs.append(input_text)
        best = None
        for prefix in self.routes:
            if tuple(argv[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return CommandResult(argv, 127, "", f"unrouted command: {' '.join(argv)}")
        answer = self.routes[best]
        if callable(answer):
            answer = answer(argv, input_text)
        if isinstance(answer, CommandResult):
            return answer
        rc, stdout, stderr = answer
        return CommandResult(argv, rc, stdout, stderr)

    def invoked(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if tuple(c[:len(prefix)]) == prefix]


def _ok(payload: Any) -> Tuple[int, str, str]:
    return 0, json.dumps(payload), ""


def key_metadata(enabled: bool = True, manager: str = "CUSTOMER") -> Dict[str, Any]:
    return {
        "KeyId": "1f2e3d4c-5b6a-7980-a1b2-c3d4e5f60718",
        "Arn": KEY_ARN,
        "Enabled": enabled,
        "KeyState": "Enabled" if enabled else "Disabled",
        "KeyManager": manager,
    }


def pangeo_routes(fail_nodegroup: Optional[str] = None, missing_cluster: bool = False,
                  nodegroups: Optional[Dict[str, Any]] = None) -> Dict[Tuple[str, ...], Answer]:
    """Routing table answering the aws CLI calls of one discovery pass over pangeo."""
    described = nodegroups if nodegroups is not None else {
        "main2": fixture_json("nodegroup-main2.json"),
        "dask-workers": fixture_json("nodegroup-dask-workers.json"),
    }

    def describe_cluster(argv, _input):
        if missing_cluster:
            return 254, "", ("An error occurred (ResourceNotFoundException) when calling the "
                             "DescribeCluster operation: No cluster found for name: pangeo.")
        return 0, fixture_text("cluster.json"), ""

    def describe_nodegroup(argv, _input):
        name = argv[argv.index("--nodegroup-name") + 1]
        if name == fail_nodegroup:
            return 255, "", "An error occurred (ThrottlingException): Rate exceeded"
        return _ok(described[name])

    return {
        ("aws", "sts", "get-caller-identity"): _ok({
            "UserId": "AIDAEXAMPLEUSERID0001",
            "Account": ACCOUNT_ID,
            "Arn": f"arn:aws:iam::{ACCOUNT_ID}:user/platform-ops",
        }),
        ("aws", "eks", "describe-cluster"): describe_cluster,
        ("aws", "eks", "list-nodegroups"): _ok({"nodegroups": list(described)}),
        ("aws", "eks", "describe-nodegroup"): describe_nodegroup,
        ("aws", "ec2", "describe-vpcs"): (0, fixture_text("vpc.json"), ""),
        ("aws", "ec2", "describe-subnets"): (0, fixture_text("subnets.json"), ""),
        ("aws", "ec2", "describe-security-groups"): (0, fixture_text("security-groups.json"), ""),
        ("aws", "kms", "describe-key"): _ok({"KeyMetadata": key_metadata()}),
    }


class FakeKeyService(KeyService):
    """KMS double: one random data key, 'wrapped' by tagging it with the key ref."""

    def __init__(self):
        self.data_key = os.urandom(32)
        self.generated = 0

    def generate_data_key(self, key_ref: str) -> Tuple[bytes, bytes]:
        self.generated += 1
        return self.data_key, key_ref.encode("utf-8") + b"|" + self.data_key

    def decrypt_data_key(self, wrapped: bytes, key_ref: str) -> bytes:
        bound, _, key = wrapped.partition(b"|")
        assert bound == key_ref.encode("utf-8")
        return key


def provider_view(record: LiveResourceRecord) -> Dict[str, Any]:
    """
    The attributes a provider would read back for an imported resource, in
    planned form. Computed-only fields are left out, and the values the
    generated lifecycle blocks ignore are deliberately different.
    """
    live = record.attributes
    if record.kind is ResourceKind.CLUSTER:
        vpc = live["resourcesVpcConfig"]
        tags = dict(live.get("tags") or {})
        tags["alpha.eksctl.io/eksctl-version"] = "0.216.0"
        return {
            "name": live["name"],
            "role_arn": live["roleArn"],
            "version": live["version"],
            "bootstrap_self_managed_addons": True,
            "enabled_cluster_log_types": [],
            "vpc_config": [{
                "subnet_ids": list(vpc["subnetIds"]),
                "endpoint_private_access": vpc["endpointPrivateAccess"],
                "endpoint_public_access": vpc["endpointPublicAccess"],
                "security_group_ids": list(vpc.get("securityGroupIds") or []),
            }],
            "tags": tags,
        }

    scaling = live["scalingConfig"]
    view = {
        "cluster_name": live["clusterName"],
        "node_group_name": live["nodegroupName"],
        "node_role_arn": live["nodeRole"],
        "subnet_ids": list(live["subnets"]),
        "capacity_type": live["capacityType"],
        "instance_types": list(live["instanceTypes"]),
        "ami_type": live["amiType"],
        "scaling_config": [{
            "desired_size": scaling["desiredSize"],
            "max_size": scaling["maxSize"],
            "min_size": scaling["minSize"],
        }],
        "launch_template": [{"id": live["launchTemplate"]["id"], "version": "7"}],
        "taint": [dict(t) for t in live.get("taints") or []],
        "labels": dict(live.get("labels") or {}),
        "tags": dict(live.get("tags") or {}),
    }
    return view


def pangeo_discovery() -> DiscoveryResult:
    """The pangeo graph as a complete discovery pass would report it."""
    cluster = fixture_json("cluster.json")["cluster"]
    records = [LiveResourceRecord(ResourceKind.CLUSTER, "pangeo", cluster, depends_on=("vpc-0123456789abcdef0",))]
    for name in ("dask-workers", "main2"):
        payload = fixture_json(f"nodegroup-{name}.json")["nodegroup"]
        records.append(LiveResourceRecord(ResourceKind.NODE_GROUP, f"pangeo:{name}", payload, depends_on=("pangeo",)))
    network = fixture_json("vpc.json")["Vpcs"][0]
    network["subnets"] = fixture_json("subnets.json")["Subnets"]
    ancillary = [LiveResourceRecord(ResourceKind.NETWORK, "vpc-0123456789abcdef0", network)]
    for sg in fixture_json("security-groups.json")["SecurityGroups"]:
        ancillary.append(LiveResourceRecord(ResourceKind.SECURITY_GROUP, sg["GroupId"], sg))
    return DiscoveryResult("pangeo", "us-west-1", ACCOUNT_ID, records, ancillary)


def pangeo_views() -> Dict[str, Dict[str, Any]]:
    """Provider views of every managed pangeo resource, keyed by external id."""
    return {r.external_id: provider_view(r) for r in pangeo_discovery().records}


class FakeEngine(DeclarativeEngine):
    """
    Engine double. `diff` plans every unit against the live view stored under
    its external id; `adopt` moves addresses into state, failing for
    addresses in `fail_on` and swapping in the `drift` view registered for
    the imported id, if any.
    """

    name = "fake"

    def __init__(self, live_views: Dict[str, Dict[str, Any]], state: Iterable[str] = (),
                 fail_on: Iterable[str] = (), drift: Optional[Dict[str, Dict[str, Any]]] = None):
        self.live_views = dict(live_views)
        self.state = list(state)
        self.fail_on = set(fail_on)
        self.drift = dict(drift or {})
        self.inits: List[Any] = []
        self.diffs = 0
        self.adopted: List[Tuple[str, str]] = []
        self.forgotten: List[str] = []

    def init(self, backend_config=None):
        self.inits.append(backend_config)

    def diff(self, units):
        self.diffs += 1
        mismatches = []
        for unit in units:
            mismatches.extend(compare_unit(unit, self.live_views.get(unit.external_id, {})))
        return ConvergenceReport(mismatches)

    def adopt(self, address: str, import_id: str):
        if address in self.fail_on:
            raise EngineCommandError(["tofu", "import", address, import_id], 1,
                                     "Error: Cannot import non-existent remote object")
        self.adopted.append((address, import_id))
        self.state.append(address)
        if import_id in self.drift:
            self.live_views[import_id] = self.drift[import_id]

    def state_addresses(self) -> List[str]:
        return list(self.state)

    def forget(self, address: str):
        self.forgotten.append(address)
        self.state.remove(address)
