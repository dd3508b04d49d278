"""
EKSADOPT TEST SUITE - CLI
-------------------------
Exit codes and operator-facing output for each command.
"""

from io import StringIO

import pytest
from rich.console import Console

from fakes import TOOLS, FakeEngine, FakeKeyService, FakeRunner, pangeo_routes, pangeo_views
from eksadopt.cli.main import EksAdoptCLI
from eksadopt.core.decisions import ScriptedDecider
from eksadopt.core.engine import AdoptionWorkflow
from eksadopt.vault.encryptors import EnvelopeEncryptor


class OfflineCLI(EksAdoptCLI):
    """Runs the real command handlers against the offline doubles."""

    def __init__(self, answers=(True, True), routes=None, views=None):
        self.output = StringIO()
        super().__init__(decider=ScriptedDecider(answers),
                         console_=Console(file=self.output, width=200, color_system=None))
        self.routes = pangeo_routes() if routes is None else routes
        self.engine = FakeEngine(pangeo_views() if views is None else views)
        self.key_service = FakeKeyService()

    def workflow(self, config):
        runner = FakeRunner(self.routes, binaries=TOOLS, cwd=str(config.workdir))
        return AdoptionWorkflow(config, self.decider, runner=runner, engine=self.engine,
                                encryptor=EnvelopeEncryptor(self.key_service))

    @property
    def text(self):
        return self.output.getvalue()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CLUSTER_NAME", "REGION", "ENVIRONMENT", "EKSADOPT_ENCRYPTION",
                 "EKSADOPT_MAX_WORKERS", "TOFU_BINARY"):
        monkeypatch.delenv(name, raising=False)


def _args(command, workdir, *extra):
    return [command, "--workdir", str(workdir), "--encryption", "envelope", *extra]


def test_adopt_success(workdir):
    cli = OfflineCLI()
    assert cli.run(_args("adopt", workdir)) == 0
    assert "Adoption complete" in cli.text
    assert "aws_eks_node_group.dask_workers" in cli.text
    assert len(cli.engine.adopted) == 3


def test_adopt_mismatch_exit_code(workdir):
    views = pangeo_views()
    views["pangeo:dask-workers"]["scaling_config"][0]["max_size"] = 25
    cli = OfflineCLI(views=views)

    assert cli.run(_args("adopt", workdir)) == 5
    assert "scaling_config[0].max_size" in cli.text
    assert "CONVERGENCE ERROR" in cli.text
    assert "[redacted]" not in cli.text
    assert cli.engine.adopted == []


def test_mismatch_values_redacted_unless_requested(workdir):
    views = pangeo_views()
    views["pangeo:main2"]["node_role_arn"] = "arn:aws:iam::123456789012:role/replaced"
    cli = OfflineCLI(views=views)
    assert cli.run(_args("adopt", workdir)) == 5
    assert "role/replaced" not in cli.text
    assert "[redacted]" in cli.text

    cli = OfflineCLI(views=views)
    assert cli.run(_args("adopt", workdir, "--show-values")) == 5
    assert "role/replaced" in cli.text


def test_discovery_failure_exit_code(workdir):
    cli = OfflineCLI(routes=pangeo_routes(fail_nodegroup="main2"))
    assert cli.run(_args("adopt", workdir)) == 3
    assert "DISCOVERY ERROR" in cli.text


def test_declined_gate_exits_cleanly(workdir):
    cli = OfflineCLI(answers=[True, False])
    assert cli.run(_args("adopt", workdir)) == 0
    assert "import gate" in cli.text
    assert cli.engine.adopted == []


def test_partial_adoption_exit_code(workdir):
    cli = OfflineCLI()
    cli.engine.fail_on.add("aws_eks_node_group.main2")
    assert cli.run(_args("adopt", workdir)) == 6
    assert "eksadopt forget" in cli.text
    assert cli.engine.state == ["aws_eks_cluster.main", "aws_eks_node_group.dask_workers"]


def test_check_command(workdir):
    cli = OfflineCLI()
    assert cli.run(_args("check", workdir)) == 0
    assert "Environment ready" in cli.text
    assert "helm is not installed" in cli.text


def test_reveal_after_adopt(workdir):
    cli = OfflineCLI()
    cli.run(_args("adopt", workdir))
    assert cli.run(_args("reveal", workdir)) == 0
    assert "aws.account_id" in cli.text


def test_forget_command(workdir):
    cli = OfflineCLI(answers=[True])
    cli.engine.state.append("aws_eks_node_group.main2")
    assert cli.run(_args("forget", workdir, "aws_eks_node_group.main2")) == 0
    assert cli.engine.forgotten == ["aws_eks_node_group.main2"]


def test_invalid_configuration_exit_code(workdir):
    cli = OfflineCLI()
    assert cli.run(_args("check", workdir, "--max-workers", "0")) == 2


def test_no_command_prints_help(capsys):
    assert OfflineCLI().run([]) == 0
    assert "usage: eksadopt" in capsys.readouterr().out


def test_bootstrap_backend_command(workdir):
    routes = pangeo_routes()
    routes.update({
        ("aws", "s3api", "head-bucket"): (0, "", ""),
        ("aws", "dynamodb", "describe-table"): (0, "{}", ""),
    })
    cli = OfflineCLI(answers=[True], routes=routes)
    assert cli.run(_args("bootstrap-backend", workdir)) == 0
    assert "existing" in cli.text
    assert (workdir / "backend.tfvars").exists()


def test_unreadable_policy_is_environment_error(workdir, tmp_path):
    cli = OfflineCLI()
    assert cli.run(_args("check", workdir, "--policy", str(tmp_path / "absent.json"))) == 2
    assert "ENVIRONMENT ERROR" in cli.text
    assert "sensitivity catalog" in cli.text


def test_malformed_cluster_response_is_discovery_error(workdir):
    routes = pangeo_routes()
    routes[("aws", "eks", "describe-cluster")] = (0, "- just\n- strings\n", "")
    cli = OfflineCLI(routes=routes)
    assert cli.run(_args("adopt", workdir, "--aws-output", "yaml-stream")) == 3
    assert "DISCOVERY ERROR" in cli.text
    assert cli.engine.adopted == []
