#!/usr/bin/env python3
"""
EKSADOPT DECISIONS - The Human Gates
------------------------------------
Both confirmation gates (ignore-list and import) go through a Decider so
the workflow never reads stdin inline. The console decider demands a
typed 'yes'; anything else, including an empty answer, is a no.
"""

import re
from typing import Iterable, List, Optional, Tuple

from rich.console import Console

_YES = re.compile(r"^[Yy]es$")


class Decider:
    def confirm(self, question: str, detail: Optional[str] = None) -> bool:
        raise NotImplementedError


class ConsoleDecider(Decider):
    def __init__(self, console: Console):
        self.console = console

    def confirm(self, question: str, detail: Optional[str] = None) -> bool:
        if detail:
            self.console.print(detail)
        answer = self.console.input(f"\n[bold yellow]{question} (yes/no): [/bold yellow]")
        return bool(_YES.match(answer.strip()))


class ScriptedDecider(Decider):
    """Replays a fixed list of answers; running out of answers means 'no'."""

    def __init__(self, answers: Iterable[bool] = ()):
        self._answers = list(answers)
        self.asked: List[Tuple[str, Optional[str]]] = []

    def confirm(self, question: str, detail: Optional[str] = None) -> bool:
        self.asked.append((question, detail))
        if not self._answers:
            return False
        return self._answers.pop(0)
