#!/usr/bin/env python3
"""
EKSADOPT ERRORS - Failure Taxonomy
----------------------------------
Every failure the adoption workflow can hit is raised as one of these
classes. The CLI is the single place that catches them; it uses
`category` for the headline and `exit_code` for the process status.

Author: EksAdopt Team
Date: 2026-10-19
"""

from typing import Any, Dict, List, Optional


class AdoptError(Exception):
    """Base class for all workflow failures."""

    category = "error"
    exit_code = 1

    def __init__(self, message: str, reason: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class PreflightError(AdoptError):
    """Missing tool, credentials or encryption capability."""

    category = "environment"
    exit_code = 2

    MISSING_TOOL = "missing-tool"
    MISSING_CREDENTIALS = "missing-credentials"
    MISSING_ENCRYPTION = "missing-encryption-capability"
    INVALID_CATALOG = "invalid-catalog"


class DecoderUnavailableError(PreflightError):
    """No structured-output decoder can be resolved."""

    def __init__(self, message: str):
        super().__init__(message, reason=PreflightError.MISSING_TOOL)


class DiscoveryError(AdoptError):
    category = "discovery"
    exit_code = 3


class ResourceNotFound(DiscoveryError):
    def __init__(self, kind: str, external_id: str, region: str):
        super().__init__(
            f"{kind} '{external_id}' not found in region {region}",
            reason="not-found",
            details={"kind": kind, "external_id": external_id, "region": region},
        )
        self.kind = kind
        self.external_id = external_id


class EncryptionError(AdoptError):
    """Raised instead of ever falling back to plaintext."""

    category = "encryption"
    exit_code = 4


class ConvergenceError(AdoptError):
    category = "convergence"
    exit_code = 5

    def __init__(self, report: Any):
        super().__init__(
            f"Synthesized configuration does not match live state "
            f"({len(report)} mismatching field(s))",
            reason="non-empty-diff",
        )
        self.report = report


class AdoptionError(AdoptError):
    category = "adoption"
    exit_code = 6

    def __init__(self, message: str, outcomes: List[Any], pending: List[str]):
        super().__init__(message, reason="import-failed")
        self.outcomes = outcomes
        self.pending = pending


class AdoptionDriftError(AdoptError):
    """All imports succeeded but the post-adoption plan is not empty."""

    category = "drift"
    exit_code = 7

    def __init__(self, report: Any, outcomes: List[Any]):
        super().__init__(
            f"Adoption succeeded but drifted ({len(report)} mismatching field(s))",
            reason="post-adoption-drift",
        )
        self.report = report
        self.outcomes = outcomes


class EngineCommandError(AdoptError):
    category = "engine"
    exit_code = 8

    def __init__(self, argv: List[str], rc: int, stderr: str):
        super().__init__(
            f"'{' '.join(argv[:3])}' failed with exit code {rc}: {stderr.strip()[:400]}",
            reason="engine-failure",
            details={"argv": argv, "rc": rc},
        )
        self.argv = argv
        self.rc = rc
        self.stderr = stderr


class WorkflowAborted(Exception):
    """Operator declined at a gate. Not an error; exit code 0."""

    def __init__(self, gate: str):
        super().__init__(f"Declined at {gate} gate")
        self.gate = gate
