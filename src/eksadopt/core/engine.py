#!/usr/bin/env python3
"""
EKSADOPT ENGINE - The High Orchestrator
---------------------------------------
The AdoptionWorkflow drives one cluster through the adoption phases:

    1. Preflight       - tools, credentials, encryption key (fail closed)
    2. Ignore guard    - .gitignore covers every generated artifact
    3. Discovery       - complete live graph or nothing
    4. Vault           - classify, seal, never persist plaintext
    5. Synthesis       - desired configuration, import blocks, summary
    6. Convergence     - zero diff or halt
    7. Adoption        - confirmed, ordered, re-validated import

Only phase 7 mutates managed state. Whatever way a run ends, the plaintext
sweep runs last.

Author: EksAdopt Team
Date: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from eksadopt.adoption.executor import AdoptionResult, ImportExecutor
from eksadopt.convergence.tofu import DeclarativeEngine, TofuEngine, resolve_engine_binary
from eksadopt.convergence.validator import ConvergenceValidator
from eksadopt.core.config import AdoptConfig
from eksadopt.core.decisions import Decider
from eksadopt.core.errors import WorkflowAborted
from eksadopt.core.models import ConvergenceReport, DesiredConfigUnit, DiscoveryResult, SecretDocument
from eksadopt.core.runner import CommandRunner
from eksadopt.core.storage import atomic_write, ensure_dir
from eksadopt.discovery.collector import DiscoveryCollector, write_raw_artifacts
from eksadopt.discovery.decoders import DecoderChain
from eksadopt.discovery.provider import AwsCliProvider
from eksadopt.guards.ignore_list import IgnoreListGuard, IgnoreStatus
from eksadopt.guards.preflight import PreflightGuard, PreflightReport
from eksadopt.synthesis.summary import render_summary
from eksadopt.synthesis.synthesizer import ConfigSynthesizer
from eksadopt.vault.classifier import SensitivityClassifier, SensitivityPolicy
from eksadopt.vault.encryptors import Encryptor, build_encryptor
from eksadopt.vault.writer import SealResult, SecretVaultWriter, render_sops_config

logger = logging.getLogger("eksadopt.engine")


@dataclass
class WorkflowResult:
    preflight: Optional[PreflightReport] = None
    ignore_status: Optional[IgnoreStatus] = None
    discovery: Optional[DiscoveryResult] = None
    seal: Optional[SealResult] = None
    units: List[DesiredConfigUnit] = field(default_factory=list)
    report: Optional[ConvergenceReport] = None
    adoption: Optional[AdoptionResult] = None
    artifacts: List[str] = field(default_factory=list)


class AdoptionWorkflow:
    """
    Principal orchestrator for EKS cluster adoption. Collaborators are
    injectable so every phase can be exercised without AWS or an engine.
    """

    def __init__(self, config: AdoptConfig, decider: Decider,
                 runner: Optional[CommandRunner] = None,
                 engine: Optional[DeclarativeEngine] = None,
                 encryptor: Optional[Encryptor] = None,
                 policy: Optional[SensitivityPolicy] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.decider = decider
        self.runner = runner or CommandRunner(cwd=str(config.workdir))
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._engine = engine

        self.decoders = DecoderChain.default(self.runner)
        self.provider = AwsCliProvider(self.runner, self.decoders, config.region, output=config.aws_output)
        self.policy = policy or SensitivityPolicy.load(config.policy_path)
        self.classifier = SensitivityClassifier(self.policy, clock=self.clock)
        self.encryptor = encryptor or build_encryptor(config.encryption_backend, self.runner, config.region)
        self.vault = SecretVaultWriter(self.encryptor, config.secrets_path, config.plaintext_secret_variants)
        self.synthesizer = ConfigSynthesizer()
        self.preflight = PreflightGuard(config, self.runner, self.provider, self.decoders)
        self.ignore_guard = IgnoreListGuard(config.workdir, decider)

    def engine_for(self, binary: str) -> DeclarativeEngine:
        if self._engine is None:
            self._engine = TofuEngine(self.runner, binary=binary, plan_file=self.config.plan_file)
        return self._engine

    def run(self, progress_callback: Optional[Callable[[str], None]] = None) -> WorkflowResult:
        result = WorkflowResult()
        try:
            self._run(result, progress_callback or (lambda step: None))
        finally:
            self.vault.purge_plaintext()
        return result

    def _run(self, result: WorkflowResult, notify: Callable[[str], None]):
        config = self.config

        # Phase 1: Preflight
        notify("preflight")
        result.preflight = preflight = self.preflight.check()

        # Phase 2: Ignore guard, strictly before anything is written
        notify("ignore-list")
        result.ignore_status = self.ignore_guard.ensure()
        if result.ignore_status is IgnoreStatus.DECLINED:
            raise WorkflowAborted("ignore-list")

        # Phase 3: Discovery
        notify("discovery")
        collector = DiscoveryCollector(self.provider, self.runner, config.max_workers, clock=self.clock)
        result.discovery = discovery = collector.discover(
            config.cluster_name, config.region, preflight.account_id, progress_callback=notify)
        written = write_raw_artifacts(discovery, ensure_dir(config.raw_dir))
        result.artifacts.extend(str(p.relative_to(config.workdir)) for p in written)

        # Phase 4: Vault
        notify("vault")
        doc = self.classify(discovery)
        if config.encryption_backend == "sops":
            self._write(config.sops_config_file, render_sops_config(preflight.key_arn), result)
        result.seal = self.vault.seal(doc, preflight.key_arn)
        result.artifacts.append(config.secrets_file)

        # Phase 5: Synthesis
        notify("synthesis")
        bundle = self.synthesizer.render(discovery)
        result.units = bundle.units
        self._write(config.config_file, bundle.config_text, result)
        self._write(config.import_file, bundle.import_text, result)
        self._write(config.backend_file, self.synthesizer.render_backend(
            config.state_bucket(preflight.account_id), config.region, config.lock_table), result)
        summary = render_summary(discovery, bundle.units, self.policy, engine=preflight.engine_binary,
                                 generated_at=self.clock().strftime("%Y-%m-%d %H:%M:%S UTC"))
        self._write(f"{config.raw_dir_name}/{config.summary_file}", summary, result)

        # Phase 6: Convergence
        notify("convergence")
        engine = self.engine_for(preflight.engine_binary)
        engine.init(config.workdir / config.backend_file)
        validator = ConvergenceValidator(engine)
        result.report = validator.require_converged(bundle.units)

        # Phase 7: Adoption
        notify("adoption")
        executor = ImportExecutor(engine, validator, self.decider)
        result.adoption = executor.execute(bundle.units, result.report)

    def classify(self, discovery: DiscoveryResult) -> SecretDocument:
        return self.classifier.classify(
            discovery.all_records(),
            extras={"aws.account_id": discovery.account_id},
        )

    def _write(self, relative: str, content: str, result: WorkflowResult):
        atomic_write(self.config.workdir / relative, content)
        result.artifacts.append(relative)

    # --- OPERATOR COMMANDS ---

    def check(self) -> PreflightReport:
        return self.preflight.check()

    def key_arn(self) -> str:
        identity = self.provider.caller_identity() or {}
        return self.config.kms_alias_arn(str(identity.get("Account", "")))

    def reveal(self) -> SecretDocument:
        try:
            return self.vault.reveal(self.key_arn())
        finally:
            self.vault.purge_plaintext()

    def forget(self, addresses: Sequence[str]) -> List[str]:
        """Explicit rollback: drops addresses from managed state after confirmation."""
        detail = "\n".join(f"  {a}" for a in addresses)
        if not self.decider.confirm(f"Remove {len(addresses)} address(es) from managed state?", detail):
            raise WorkflowAborted("forget")
        engine = self._engine or self.engine_for(resolve_engine_binary(self.runner, self.config.engine_binaries))
        removed = []
        for address in addresses:
            engine.forget(address)
            logger.warning(f"Removed {address} from managed state")
            removed.append(address)
        return removed
