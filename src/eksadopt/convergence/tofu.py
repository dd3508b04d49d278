#!/usr/bin/env python3
"""
EKSADOPT TOFU - Declarative Engine Adapter
------------------------------------------
Drives the tofu (or terraform) binary for everything the workflow needs
from the engine: backend init, plan-based diffing, import, state listing
and explicit state removal. The engine's own plan is the authority on
equivalence; this module only translates its JSON plan into Mismatches.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from eksadopt.convergence.diff import diff_values, format_path
from eksadopt.core.errors import EngineCommandError, PreflightError
from eksadopt.core.models import ConvergenceReport, DesiredConfigUnit, Mismatch
from eksadopt.core.runner import CommandResult, CommandRunner

logger = logging.getLogger("eksadopt.engine")

ABSENT = "(absent)"
PRESENT = "(present)"
_NO_CHANGE = (["no-op"], ["read"])


class DeclarativeEngine:
    """What the workflow consumes from a plan/apply engine."""

    name = "abstract"

    def init(self, backend_config: Optional[Path] = None):
        raise NotImplementedError

    def diff(self, units: Sequence[DesiredConfigUnit]) -> ConvergenceReport:
        raise NotImplementedError

    def adopt(self, address: str, import_id: str):
        raise NotImplementedError

    def state_addresses(self) -> List[str]:
        raise NotImplementedError

    def forget(self, address: str):
        raise NotImplementedError


def resolve_engine_binary(runner: CommandRunner, candidates: Sequence[str]) -> str:
    for binary in candidates:
        if runner.which(binary):
            return binary
    raise PreflightError(
        f"No declarative engine found (looked for: {', '.join(candidates)})",
        reason=PreflightError.MISSING_TOOL,
    )


class TofuEngine(DeclarativeEngine):
    def __init__(self, runner: CommandRunner, binary: str = "tofu", plan_file: str = ".eksadopt.tfplan"):
        self.runner = runner
        self.binary = binary
        self.name = binary
        self.plan_path = Path(runner.cwd or ".") / plan_file

    def _run(self, *args: str, allowed: Sequence[int] = (0,)) -> CommandResult:
        argv = [self.binary, *args]
        logger.debug(f"Running: {' '.join(argv)}")
        result = self.runner.run(argv)
        if result.rc not in allowed:
            raise EngineCommandError(argv, result.rc, result.stderr or result.stdout)
        return result

    def init(self, backend_config: Optional[Path] = None):
        args = ["init", "-input=false", "-no-color"]
        if backend_config is not None:
            args.append(f"-backend-config={Path(backend_config).name}")
        self._run(*args)
        logger.info(f"{self.binary} init complete")

    def diff(self, units: Sequence[DesiredConfigUnit]) -> ConvergenceReport:
        try:
            result = self._run(
                "plan", "-input=false", "-no-color", "-detailed-exitcode",
                f"-out={self.plan_path.name}",
                allowed=(0, 2),
            )
            if result.rc == 0:
                return ConvergenceReport()
            shown = self._run("show", "-json", "-no-color", self.plan_path.name)
        finally:
            if self.plan_path.exists():
                self.plan_path.unlink()
        try:
            plan = json.loads(shown.stdout)
        except json.JSONDecodeError as e:
            raise EngineCommandError([self.binary, "show", "-json"], 0, f"unparseable plan: {e}")
        return ConvergenceReport(plan_mismatches(plan))

    def adopt(self, address: str, import_id: str):
        self._run("import", "-input=false", "-no-color", address, import_id)

    def state_addresses(self) -> List[str]:
        result = self._run("state", "list")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def forget(self, address: str):
        self._run("state", "rm", address)


def plan_mismatches(plan: Dict[str, Any]) -> List[Mismatch]:
    """Translates `show -json` resource_changes into field-level mismatches."""
    mismatches: List[Mismatch] = []
    for change in plan.get("resource_changes") or []:
        if change.get("mode") == "data":
            continue
        details = change.get("change") or {}
        actions = details.get("actions") or []
        if actions in _NO_CHANGE:
            continue
        address = change.get("address", "?")
        before = details.get("before")
        after = details.get("after")
        if actions == ["create"]:
            mismatches.append(Mismatch(address, PRESENT, ABSENT))
            continue
        if actions == ["delete"]:
            mismatches.append(Mismatch(address, ABSENT, PRESENT))
            continue
        unknown = details.get("after_unknown") or {}
        found = [
            Mismatch(format_path(address, parts), desired, live)
            for parts, desired, live in diff_values(after or {}, before or {})
            if not _is_unknown(unknown, parts)
        ]
        mismatches.extend(found or [Mismatch(address, "+".join(actions), "(replace)")])
    return mismatches


def _is_unknown(unknown: Any, parts) -> bool:
    node = unknown
    for part in parts:
        if node is True:
            return True
        if isinstance(node, dict) and part in node:
            node = node[part]
        elif isinstance(node, list) and isinstance(part, int) and part < len(node):
            node = node[part]
        else:
            return False
    return node is True
