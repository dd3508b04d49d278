#!/usr/bin/env python3
"""
EKSADOPT VALIDATOR - The Judge
------------------------------
The ConvergenceValidator is the final safety gate before anything
irreversible happens. Synthesized units are first checked for the fields
every resource of their type must carry, then handed to the engine for a
full plan. Any mismatch at all halts the workflow; nothing is corrected
automatically.

Author: EksAdopt Team
Date: 2026-10-19
"""

import logging
from typing import Dict, List, Sequence, Tuple

from eksadopt.convergence.tofu import DeclarativeEngine
from eksadopt.core.errors import ConvergenceError
from eksadopt.core.models import ConvergenceReport, DesiredConfigUnit, Mismatch

logger = logging.getLogger("eksadopt.validator")

REQUIRED = "(required)"


class ConvergenceValidator:
    """
    Enforces zero diff between desired and live state.
    Provides the 'Self-Abort' signal the workflow stops on.
    """

    def __init__(self, engine: DeclarativeEngine):
        self.engine = engine
        # Fields the provider rejects a definition without
        self.required_fields: Dict[str, Tuple[str, ...]] = {
            "aws_eks_cluster": ("name", "role_arn", "vpc_config"),
            "aws_eks_node_group": ("cluster_name", "node_group_name", "node_role_arn",
                                   "subnet_ids", "scaling_config"),
        }

    def check_structure(self, units: Sequence[DesiredConfigUnit]) -> List[Mismatch]:
        missing = []
        for unit in units:
            for field_name in self.required_fields.get(unit.resource_type, ()):
                if field_name not in unit.attributes:
                    missing.append(Mismatch(f"{unit.address}.{field_name}", None, REQUIRED))
        return missing

    def validate(self, units: Sequence[DesiredConfigUnit]) -> ConvergenceReport:
        missing = self.check_structure(units)
        if missing:
            logger.error(f"{len(missing)} required field(s) missing from synthesized configuration")
            return ConvergenceReport(missing)
        report = self.engine.diff(units)
        if report.converged:
            logger.info(f"Zero diff across {len(units)} unit(s)")
        else:
            for mismatch in report:
                logger.warning(f"Mismatch: {mismatch.field_path}")
        return report

    def require_converged(self, units: Sequence[DesiredConfigUnit]) -> ConvergenceReport:
        report = self.validate(units)
        if not report.converged:
            raise ConvergenceError(report)
        return report
