#!/usr/bin/env python3
"""
EKSADOPT EXECUTOR - Guarded Import
----------------------------------
The only stage that mutates managed state. Runs as a small state machine:

    CONVERGED --confirm--> IMPORTING --> ADOPTED --> RE_VALIDATED
        |                      |
        +--decline--> DECLINED +--> PARTIALLY_ADOPTED

Resources are imported strictly in dependency order and the run stops at
the first failure. Nothing is ever rolled back automatically; removing a
resource from state is an explicit operator command (`eksadopt forget`).

Author: EksAdopt Team
Date: 2026-10-19
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from eksadopt.convergence.tofu import DeclarativeEngine
from eksadopt.convergence.validator import ConvergenceValidator
from eksadopt.core.decisions import Decider
from eksadopt.core.errors import (AdoptionDriftError, AdoptionError, ConvergenceError,
                                  EngineCommandError, WorkflowAborted)
from eksadopt.core.models import ConvergenceReport, DesiredConfigUnit, ImportOutcome, ImportStatus

logger = logging.getLogger("eksadopt.adoption")


class AdoptionState(str, Enum):
    CONVERGED = "converged"
    DECLINED = "declined"
    IMPORTING = "importing"
    ADOPTED = "adopted"
    PARTIALLY_ADOPTED = "partially-adopted"
    RE_VALIDATED = "re-validated"


_TRANSITIONS: Dict[AdoptionState, Set[AdoptionState]] = {
    AdoptionState.CONVERGED: {AdoptionState.IMPORTING, AdoptionState.DECLINED},
    AdoptionState.IMPORTING: {AdoptionState.ADOPTED, AdoptionState.PARTIALLY_ADOPTED},
    AdoptionState.ADOPTED: {AdoptionState.RE_VALIDATED},
}


@dataclass
class AdoptionStateMachine:
    state: AdoptionState = AdoptionState.CONVERGED
    history: List[AdoptionState] = field(default_factory=list)

    def transition(self, target: AdoptionState) -> None:
        if target not in _TRANSITIONS.get(self.state, set()):
            raise ValueError(f"Invalid transition: {self.state.value} -> {target.value}")
        self.history.append(self.state)
        self.state = target


@dataclass
class AdoptionResult:
    outcomes: List[ImportOutcome]
    state: AdoptionState
    report: Optional[ConvergenceReport] = None


def dependency_order(units: Sequence[DesiredConfigUnit]) -> List[DesiredConfigUnit]:
    """Stable topological order over `depends_on` addresses."""
    by_address = {u.address: u for u in units}
    ordered: List[DesiredConfigUnit] = []
    placed: Set[str] = set()
    visiting: Set[str] = set()

    def visit(unit: DesiredConfigUnit):
        if unit.address in placed:
            return
        if unit.address in visiting:
            raise ValueError(f"Dependency cycle through {unit.address}")
        visiting.add(unit.address)
        for dep in unit.depends_on:
            if dep in by_address:
                visit(by_address[dep])
        visiting.discard(unit.address)
        placed.add(unit.address)
        ordered.append(unit)

    for unit in units:
        visit(unit)
    return ordered


class ImportExecutor:
    def __init__(self, engine: DeclarativeEngine, validator: ConvergenceValidator, decider: Decider):
        self.engine = engine
        self.validator = validator
        self.decider = decider
        self.machine = AdoptionStateMachine()

    def execute(self, units: Sequence[DesiredConfigUnit], report: ConvergenceReport) -> AdoptionResult:
        if not report.converged:
            raise ConvergenceError(report)
        ordered = dependency_order(units)

        detail = "\n".join(f"  {u.address}  <-  {u.import_id}" for u in ordered)
        if not self.decider.confirm(f"Import {len(ordered)} resource(s) into managed state?", detail):
            self.machine.transition(AdoptionState.DECLINED)
            logger.warning("Import declined by operator; managed state untouched")
            raise WorkflowAborted("import")

        self.machine.transition(AdoptionState.IMPORTING)
        in_state = set(self.engine.state_addresses())
        outcomes: List[ImportOutcome] = []

        for index, unit in enumerate(ordered):
            unsettled = [dep for dep in unit.depends_on if dep not in in_state]
            if unsettled:
                error = f"dependency not adopted: {', '.join(unsettled)}"
            elif unit.address in in_state:
                logger.info(f"{unit.address} already in state; skipping")
                outcomes.append(ImportOutcome(unit.external_id, unit.address, ImportStatus.SKIPPED))
                continue
            else:
                try:
                    logger.info(f"Importing {unit.address} ({unit.import_id})")
                    self.engine.adopt(unit.address, unit.import_id)
                    in_state.add(unit.address)
                    outcomes.append(ImportOutcome(unit.external_id, unit.address, ImportStatus.ADOPTED))
                    continue
                except EngineCommandError as e:
                    error = e.message

            outcomes.append(ImportOutcome(unit.external_id, unit.address, ImportStatus.FAILED, error))
            self.machine.transition(AdoptionState.PARTIALLY_ADOPTED)
            pending = [u.address for u in ordered[index + 1:]]
            logger.error(f"Import stopped at {unit.address}: {error}")
            raise AdoptionError(
                f"Import failed at {unit.address} ({index + 1}/{len(ordered)}); "
                f"{len(pending)} resource(s) not attempted",
                outcomes,
                pending,
            )

        self.machine.transition(AdoptionState.ADOPTED)
        post = self.validator.validate(units)
        if not post.converged:
            raise AdoptionDriftError(post, outcomes)
        self.machine.transition(AdoptionState.RE_VALIDATED)
        return AdoptionResult(outcomes, self.machine.state, post)
