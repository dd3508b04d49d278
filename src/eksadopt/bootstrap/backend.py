#!/usr/bin/env python3
"""
EKSADOPT BOOTSTRAP - Remote State & Encryption Key
--------------------------------------------------
One-shot, idempotent creation of what the adoption workflow expects to
exist already:

  * S3 state bucket   tofu-state-jupyterhub-<env>-<account>
                      (versioned, AES256 by default, public access blocked)
  * DynamoDB table    tofu-state-lock-<env> (LockID hash key)
  * KMS key + alias   alias/sops-<cluster>-<env>

Each resource is probed first and only created when missing. Never runs
as part of `adopt`.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from eksadopt.core.config import AdoptConfig
from eksadopt.core.decisions import Decider
from eksadopt.core.errors import EngineCommandError, WorkflowAborted
from eksadopt.core.runner import CommandResult, CommandRunner
from eksadopt.core.storage import atomic_write
from eksadopt.synthesis.synthesizer import ConfigSynthesizer
from eksadopt.vault.writer import render_sops_config

logger = logging.getLogger("eksadopt.bootstrap")

CREATED = "created"
EXISTING = "existing"

_SSE_CONFIG = {"Rules": [{"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}]}
_PUBLIC_ACCESS_BLOCK = "BlockPublicAcls=true,IgnorePublicAcls=true,BlockPublicPolicy=true,RestrictPublicBuckets=true"


@dataclass
class BootstrapReport:
    bucket: str
    lock_table: str
    key_arn: str = ""
    actions: List[Tuple[str, str]] = field(default_factory=list)   # (resource, created|existing)
    files: List[str] = field(default_factory=list)


class BackendBootstrapper:
    def __init__(self, config: AdoptConfig, runner: CommandRunner, decider: Decider,
                 synthesizer: ConfigSynthesizer = None, binary: str = "aws"):
        self.config = config
        self.runner = runner
        self.decider = decider
        self.synthesizer = synthesizer or ConfigSynthesizer()
        self.binary = binary

    def _aws(self, *args: str, check: bool = True) -> CommandResult:
        argv = [self.binary, *args, "--region", self.config.region]
        result = self.runner.run(argv)
        if check and not result.ok:
            raise EngineCommandError(argv, result.rc, result.stderr)
        return result

    def _json(self, *args: str) -> Dict:
        return json.loads(self._aws(*args, "--output", "json").stdout or "{}")

    def bootstrap(self, account_id: str) -> BootstrapReport:
        report = BootstrapReport(
            bucket=self.config.state_bucket(account_id),
            lock_table=self.config.lock_table,
        )
        detail = (
            f"  S3 bucket:      {report.bucket}\n"
            f"  DynamoDB table: {report.lock_table}\n"
            f"  KMS alias:      {self.config.kms_alias}"
        )
        if not self.decider.confirm("Create any of these backend resources that are missing?", detail):
            raise WorkflowAborted("bootstrap")

        report.actions.append(("bucket", self._ensure_bucket(report.bucket)))
        report.actions.append(("lock-table", self._ensure_table(report.lock_table)))
        key_status, report.key_arn = self._ensure_key()
        report.actions.append(("kms-key", key_status))

        workdir = self.config.workdir
        backend = self.synthesizer.render_backend(report.bucket, self.config.region, report.lock_table)
        atomic_write(workdir / self.config.backend_file, backend)
        atomic_write(workdir / self.config.sops_config_file, render_sops_config(report.key_arn))
        report.files = [self.config.backend_file, self.config.sops_config_file]
        return report

    def _ensure_bucket(self, bucket: str) -> str:
        if self._aws("s3api", "head-bucket", "--bucket", bucket, check=False).ok:
            logger.info(f"State bucket already exists: {bucket}")
            return EXISTING
        create = ["s3api", "create-bucket", "--bucket", bucket]
        if self.config.region != "us-east-1":
            create += ["--create-bucket-configuration", f"LocationConstraint={self.config.region}"]
        self._aws(*create)
        self._aws("s3api", "put-bucket-versioning", "--bucket", bucket,
                  "--versioning-configuration", "Status=Enabled")
        self._aws("s3api", "put-bucket-encryption", "--bucket", bucket,
                  "--server-side-encryption-configuration", json.dumps(_SSE_CONFIG))
        self._aws("s3api", "put-public-access-block", "--bucket", bucket,
                  "--public-access-block-configuration", _PUBLIC_ACCESS_BLOCK)
        logger.info(f"Created state bucket: {bucket}")
        return CREATED

    def _ensure_table(self, table: str) -> str:
        if self._aws("dynamodb", "describe-table", "--table-name", table, check=False).ok:
            logger.info(f"Lock table already exists: {table}")
            return EXISTING
        self._aws(
            "dynamodb", "create-table",
            "--table-name", table,
            "--attribute-definitions", "AttributeName=LockID,AttributeType=S",
            "--key-schema", "AttributeName=LockID,KeyType=HASH",
            "--billing-mode", "PAY_PER_REQUEST",
            "--tags", f"Key=Environment,Value={self.config.environment}",
            "Key=Terraform,Value=true", "Key=Purpose,Value=state-lock",
        )
        self._aws("dynamodb", "wait", "table-exists", "--table-name", table)
        logger.info(f"Created lock table: {table}")
        return CREATED

    def _ensure_key(self) -> Tuple[str, str]:
        alias = self.config.kms_alias
        probe = self._aws("kms", "describe-key", "--key-id", alias, "--output", "json", check=False)
        if probe.ok:
            logger.info(f"KMS key already exists: {alias}")
            return EXISTING, json.loads(probe.stdout)["KeyMetadata"]["Arn"]
        created = self._json(
            "kms", "create-key",
            "--description", f"SOPS key for {self.config.cluster_name}-{self.config.environment}",
            "--tags", f"TagKey=Environment,TagValue={self.config.environment}",
            "TagKey=Application,TagValue=eksadopt",
        )
        metadata = created["KeyMetadata"]
        self._aws("kms", "create-alias", "--alias-name", alias, "--target-key-id", metadata["KeyId"])
        logger.info(f"Created KMS key {alias}")
        return CREATED, metadata["Arn"]
