"""
EKSADOPT TEST SUITE - Backend Bootstrap
---------------------------------------
Each backend resource is probed before it is created; existing ones are
left alone.
"""

import json

import pytest

from fakes import ACCOUNT_ID, KEY_ARN, FakeRunner, key_metadata
from eksadopt.bootstrap.backend import CREATED, EXISTING, BackendBootstrapper
from eksadopt.core.config import AdoptConfig
from eksadopt.core.decisions import ScriptedDecider
from eksadopt.core.errors import EngineCommandError, WorkflowAborted

BUCKET = f"tofu-state-jupyterhub-prod-{ACCOUNT_ID}"


def _routes(bucket_exists=False, table_exists=True, key_exists=True):
    not_found = (254, "", "An error occurred (404) when calling the HeadBucket operation: Not Found")
    return {
        ("aws", "s3api", "head-bucket"): (0, "", "") if bucket_exists else not_found,
        ("aws", "s3api"): (0, "{}", ""),
        ("aws", "dynamodb", "describe-table"): (0, "{}", "") if table_exists else
        (254, "", "ResourceNotFoundException: Requested resource not found"),
        ("aws", "dynamodb"): (0, "{}", ""),
        ("aws", "kms", "describe-key"): (0, json.dumps({"KeyMetadata": key_metadata()}), "") if key_exists else
        (254, "", "NotFoundException: Alias arn:aws:kms:us-west-1:123456789012:alias/sops-pangeo-prod is not found."),
        ("aws", "kms", "create-key"): (0, json.dumps({"KeyMetadata": {"KeyId": "new-key-id", "Arn": KEY_ARN}}), ""),
        ("aws", "kms", "create-alias"): (0, "", ""),
    }


def test_creates_only_missing_resources(workdir):
    """
    IDEMPOTENCY TEST: the bucket is missing, the table and key exist;
    only the bucket is created.
    """
    runner = FakeRunner(_routes())
    report = BackendBootstrapper(AdoptConfig(workdir=workdir), runner, ScriptedDecider([True])).bootstrap(ACCOUNT_ID)

    assert report.bucket == BUCKET
    assert report.actions == [("bucket", CREATED), ("lock-table", EXISTING), ("kms-key", EXISTING)]
    assert report.key_arn == KEY_ARN

    create = runner.invoked("aws", "s3api", "create-bucket")[0]
    assert "LocationConstraint=us-west-1" in create
    for step in ("put-bucket-versioning", "put-bucket-encryption", "put-public-access-block"):
        assert runner.invoked("aws", "s3api", step), step
    assert runner.invoked("aws", "dynamodb", "create-table") == []
    assert runner.invoked("aws", "kms", "create-key") == []

    # 2. Backend and sops files point at what exists
    assert f'bucket         = "{BUCKET}"' in (workdir / "backend.tfvars").read_text()
    assert KEY_ARN in (workdir / ".sops.yaml").read_text()


def test_creates_everything_from_scratch(workdir):
    runner = FakeRunner(_routes(table_exists=False, key_exists=False))
    report = BackendBootstrapper(AdoptConfig(workdir=workdir), runner, ScriptedDecider([True])).bootstrap(ACCOUNT_ID)

    assert [status for _, status in report.actions] == [CREATED, CREATED, CREATED]
    table = runner.invoked("aws", "dynamodb", "create-table")[0]
    assert "AttributeName=LockID,KeyType=HASH" in table
    assert runner.invoked("aws", "dynamodb", "wait", "table-exists")
    alias = runner.invoked("aws", "kms", "create-alias")[0]
    assert alias[alias.index("--alias-name") + 1] == "alias/sops-pangeo-prod"
    assert alias[alias.index("--target-key-id") + 1] == "new-key-id"


def test_us_east_1_needs_no_location_constraint(workdir):
    runner = FakeRunner(_routes())
    config = AdoptConfig(workdir=workdir, region="us-east-1")
    BackendBootstrapper(config, runner, ScriptedDecider([True])).bootstrap(ACCOUNT_ID)
    create = runner.invoked("aws", "s3api", "create-bucket")[0]
    assert not any(arg.startswith("LocationConstraint") for arg in create)


def test_declined_bootstrap_touches_nothing(workdir):
    runner = FakeRunner(_routes())
    with pytest.raises(WorkflowAborted) as exc:
        BackendBootstrapper(AdoptConfig(workdir=workdir), runner, ScriptedDecider([False])).bootstrap(ACCOUNT_ID)
    assert exc.value.gate == "bootstrap"
    assert runner.calls == []
    assert list(workdir.iterdir()) == []


def test_failed_creation_raises(workdir):
    routes = _routes()
    routes[("aws", "s3api", "create-bucket")] = (254, "", "BucketAlreadyExists")
    with pytest.raises(EngineCommandError):
        BackendBootstrapper(AdoptConfig(workdir=workdir), FakeRunner(routes),
                            ScriptedDecider([True])).bootstrap(ACCOUNT_ID)
    assert not (workdir / "backend.tfvars").exists()
