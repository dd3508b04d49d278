#!/usr/bin/env python3
"""
EKSADOPT COMMAND RUNNER
-----------------------
Thin wrapper around subprocess for the external tools (aws, tofu, sops,
yq, helm). It never raises on a non-zero exit; callers decide what a
failure means for their stage. No timeout is applied: a hung provider
call blocks the workflow and is left to the caller's supervision.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger("eksadopt.runner")


@dataclass
class CommandResult:
    argv: List[str]
    rc: int
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None        # "not_found" when the binary is missing

    @property
    def ok(self) -> bool:
        return self.rc == 0


@dataclass
class CommandRunner:
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)

    def which(self, binary: str) -> Optional[str]:
        return shutil.which(binary)

    def run(self, argv: List[str], input_text: Optional[str] = None) -> CommandResult:
        logger.debug(f"exec: {' '.join(argv[:4])}{' ...' if len(argv) > 4 else ''}")
        env = None
        if self.env:
            env = {**os.environ, **self.env}
        try:
            cp = subprocess.run(
                argv,
                input=input_text,
                capture_output=True,
                text=True,
                cwd=self.cwd,
                env=env,
            )
        except FileNotFoundError as e:
            return CommandResult(argv=argv, rc=127, stderr=str(e), error="not_found")
        return CommandResult(argv=argv, rc=cp.returncode, stdout=cp.stdout, stderr=cp.stderr)
