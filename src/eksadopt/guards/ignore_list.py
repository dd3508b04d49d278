#!/usr/bin/env python3
"""
EKSADOPT IGNORE-LIST GUARD
--------------------------
Makes sure every artifact that may carry account ids, role ARNs or
secret documents is excluded from version control before discovery
writes a single byte. An entry only counts when a .gitignore line
matches it exactly (surrounding whitespace aside).
"""

import logging
from enum import Enum
from pathlib import Path
from typing import List, Sequence

from eksadopt.core.decisions import Decider
from eksadopt.core.storage import atomic_write

logger = logging.getLogger("eksadopt.guards")

REQUIRED_PATTERNS = (
    "imports/",
    "import-resources.tf",
    "existing-cluster.tf",
    "generated-resources.tf",
    "backend.tfvars",
    "/terraform.tfvars",
    "*.auto.tfvars",
    "import-*.tfvars",
    "*.tfplan",
    "secrets.yaml",
    "secrets.enc.yaml",
    "import-secrets.yaml",
    "import-secrets.enc.yaml",
)

SECTION_HEADER = "# eksadopt: generated files (may contain sensitive data)"


class IgnoreStatus(str, Enum):
    PRESENT = "present"
    UPDATED = "updated"
    ACCEPTED_RISK = "accepted-risk"
    DECLINED = "declined"


class IgnoreListGuard:
    def __init__(self, workdir: Path, decider: Decider, patterns: Sequence[str] = REQUIRED_PATTERNS):
        self.gitignore = Path(workdir) / ".gitignore"
        self.decider = decider
        self.patterns = tuple(patterns)

    def missing(self) -> List[str]:
        if not self.gitignore.exists():
            return list(self.patterns)
        content = self.gitignore.read_text(encoding="utf-8", errors="ignore")
        present = {line.strip() for line in content.splitlines()}
        return [p for p in self.patterns if p not in present]

    def ensure(self) -> IgnoreStatus:
        missing = self.missing()
        if not missing:
            logger.info(".gitignore already excludes every generated artifact")
            return IgnoreStatus.PRESENT

        detail = "Missing from .gitignore:\n" + "\n".join(f"    - {p}" for p in missing)
        if self.decider.confirm("Add these entries to .gitignore now?", detail):
            self._append(missing)
            logger.info(f"Added {len(missing)} entr{'y' if len(missing) == 1 else 'ies'} to .gitignore")
            return IgnoreStatus.UPDATED

        logger.error("Without these entries, sensitive artifacts may be committed to git")
        if self.decider.confirm("Continue anyway, without the .gitignore entries?"):
            logger.warning("Continuing with an incomplete .gitignore at operator request")
            return IgnoreStatus.ACCEPTED_RISK
        return IgnoreStatus.DECLINED

    def _append(self, entries: Sequence[str]):
        existing = self.gitignore.read_text(encoding="utf-8") if self.gitignore.exists() else ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        block = ("\n" if existing else "") + SECTION_HEADER + "\n" + "".join(f"{e}\n" for e in entries)
        atomic_write(self.gitignore, existing + block)
