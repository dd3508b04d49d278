#!/usr/bin/env python3
"""
EKSADOPT PREFLIGHT - Fail-Closed Environment Check
--------------------------------------------------
Read-only probes run before anything else. Order matters: the engine,
the cloud CLI and a structured-output decoder first, then the
encryption capability (binary and KMS key), then the caller identity.
Missing encryption is always fatal; there is no plaintext mode.

Author: EksAdopt Team
Date: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from eksadopt.convergence.tofu import resolve_engine_binary
from eksadopt.core.config import AdoptConfig
from eksadopt.core.errors import DecoderUnavailableError, PreflightError
from eksadopt.core.runner import CommandRunner
from eksadopt.discovery.decoders import DecoderChain
from eksadopt.discovery.provider import AwsCliProvider, ProviderError

logger = logging.getLogger("eksadopt.preflight")

OPTIONAL_TOOLS = ("kubectl", "helm")


@dataclass
class PreflightReport:
    engine_binary: str
    decoders: List[str]
    encryption_backend: str
    key_arn: str
    account_id: str
    caller_arn: str = ""
    warnings: List[str] = field(default_factory=list)


class PreflightGuard:
    def __init__(self, config: AdoptConfig, runner: CommandRunner, provider: AwsCliProvider,
                 decoders: DecoderChain):
        self.config = config
        self.runner = runner
        self.provider = provider
        self.decoders = decoders

    def check(self) -> PreflightReport:
        engine_binary = resolve_engine_binary(self.runner, self.config.engine_binaries)
        logger.info(f"Declarative engine: {engine_binary}")

        if not self.runner.which(self.provider.binary):
            raise PreflightError(f"'{self.provider.binary}' CLI is not installed",
                                 reason=PreflightError.MISSING_TOOL)

        available = self.decoders.available()
        if not available and self.config.aws_output != "json":
            raise DecoderUnavailableError(
                "No structured-output decoder available: install yq, or run with --aws-output json")

        if self.config.encryption_backend == "sops" and not self.runner.which("sops"):
            raise PreflightError(
                "SOPS is not installed; it is required to encrypt extracted secrets",
                reason=PreflightError.MISSING_ENCRYPTION,
            )

        try:
            identity = self.provider.caller_identity() or {}
        except ProviderError as e:
            raise PreflightError(f"AWS credentials not usable: {e}", reason=PreflightError.MISSING_CREDENTIALS)
        account_id = str(identity.get("Account") or "")
        if not account_id:
            raise PreflightError("Caller identity carries no account id", reason=PreflightError.MISSING_CREDENTIALS)

        key_arn = self.config.kms_alias_arn(account_id)
        self._check_key(key_arn)

        warnings = [
            f"{tool} is not installed; related checks and snapshots are skipped"
            for tool in OPTIONAL_TOOLS if not self.runner.which(tool)
        ]
        for warning in warnings:
            logger.warning(warning)

        return PreflightReport(
            engine_binary=engine_binary,
            decoders=available,
            encryption_backend=self.config.encryption_backend,
            key_arn=key_arn,
            account_id=account_id,
            caller_arn=str(identity.get("Arn") or ""),
            warnings=warnings,
        )

    def _check_key(self, key_arn: str):
        metadata: Optional[dict] = self.provider.describe_kms_key(key_arn)
        if not metadata:
            raise PreflightError(
                f"KMS key {self.config.kms_alias} not found; run 'eksadopt bootstrap-backend' first",
                reason=PreflightError.MISSING_ENCRYPTION,
            )
        if not metadata.get("Enabled", False) or metadata.get("KeyState", "Enabled") != "Enabled":
            raise PreflightError(f"KMS key {self.config.kms_alias} is not enabled",
                                 reason=PreflightError.MISSING_ENCRYPTION)
        if metadata.get("KeyManager", "CUSTOMER") != "CUSTOMER":
            raise PreflightError(
                f"KMS key {self.config.kms_alias} is AWS-managed; a customer-managed key is required",
                reason=PreflightError.MISSING_ENCRYPTION,
            )
        logger.info(f"Encryption key {self.config.kms_alias} is enabled")
