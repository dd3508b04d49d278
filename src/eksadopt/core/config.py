#!/usr/bin/env python3
"""
EKSADOPT CONFIG
---------------
Run configuration resolved once from CLI flags and the environment
variables the original import tooling honoured (CLUSTER_NAME, REGION,
ENVIRONMENT). Everything derived from it (key alias, state bucket,
artifact paths) is a property so the names stay in one place.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

ENCRYPTION_BACKENDS = ("sops", "envelope")


@dataclass(frozen=True)
class AdoptConfig:
    cluster_name: str = "pangeo"
    region: str = "us-west-1"
    environment: str = "prod"
    workdir: Path = field(default_factory=Path.cwd)
    engine_binaries: Tuple[str, ...] = ("tofu", "terraform")
    encryption_backend: str = "sops"
    max_workers: int = 4
    aws_output: Optional[str] = None         # None keeps the CLI's configured default
    policy_path: Optional[Path] = None       # Alternate sensitivity catalog

    # Artifact names
    raw_dir_name: str = "imports"
    config_file: str = "existing-cluster.tf"
    import_file: str = "import-resources.tf"
    backend_file: str = "backend.tfvars"
    secrets_file: str = "import-secrets.enc.yaml"
    sops_config_file: str = ".sops.yaml"
    summary_file: str = "import-summary.md"
    plan_file: str = ".eksadopt.tfplan"

    def __post_init__(self):
        if self.encryption_backend not in ENCRYPTION_BACKENDS:
            raise ValueError(
                f"Unknown encryption backend '{self.encryption_backend}' "
                f"(expected one of {', '.join(ENCRYPTION_BACKENDS)})"
            )
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        object.__setattr__(self, "workdir", Path(self.workdir).resolve())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "AdoptConfig":
        env = os.environ if environ is None else environ
        values = {
            "cluster_name": env.get("CLUSTER_NAME", "pangeo"),
            "region": env.get("REGION", "us-west-1"),
            "environment": env.get("ENVIRONMENT", "prod"),
            "encryption_backend": env.get("EKSADOPT_ENCRYPTION", "sops"),
            "max_workers": int(env.get("EKSADOPT_MAX_WORKERS", "4")),
        }
        if env.get("TOFU_BINARY"):
            values["engine_binaries"] = (env["TOFU_BINARY"],)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def raw_dir(self) -> Path:
        return self.workdir / self.raw_dir_name

    @property
    def secrets_path(self) -> Path:
        return self.workdir / self.secrets_file

    @property
    def kms_alias(self) -> str:
        return f"alias/sops-{self.cluster_name}-{self.environment}"

    def kms_alias_arn(self, account_id: str) -> str:
        return f"arn:aws:kms:{self.region}:{account_id}:{self.kms_alias}"

    def state_bucket(self, account_id: str) -> str:
        return f"tofu-state-jupyterhub-{self.environment}-{account_id}"

    @property
    def lock_table(self) -> str:
        return f"tofu-state-lock-{self.environment}"

    @property
    def plaintext_secret_variants(self) -> Tuple[Path, ...]:
        """Secret documents that must never exist unencrypted."""
        return tuple(self.workdir / name for name in ("import-secrets.yaml", "secrets.yaml"))
