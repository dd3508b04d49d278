# src/eksadopt/cli/formatter.py
from typing import Any, List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from eksadopt.core.models import ConvergenceReport, ImportOutcome, ImportStatus

REDACTED = "[redacted]"

# Report fields whose values identify accounts, roles or network layout
_SENSITIVE_SUFFIXES = ("arn", "_arn", "role", "subnet_ids", "security_group_ids", "key_arn", "id")


def _is_sensitive(field_path: str) -> bool:
    leaf = field_path.rstrip("]").split(".")[-1].split("[")[0].lower()
    return leaf.endswith(_SENSITIVE_SUFFIXES)


def _short(value: Any, limit: int = 60) -> str:
    text = "null" if value is None else str(value)
    return text if len(text) <= limit else text[:limit - 3] + "..."


class AdoptFormatter:
    """
    The visual side of the CLI: preflight results, convergence reports,
    import outcomes and the revealed secret document.
    """

    def __init__(self, console: Console):
        self.console = console

    def print_preflight(self, report):
        table = Table(title="Preflight", show_header=True, header_style="bold magenta")
        table.add_column("Check", style="cyan")
        table.add_column("Result")
        table.add_row("Engine", report.engine_binary)
        table.add_row("Decoders", ", ".join(report.decoders) or "json only")
        table.add_row("Encryption", report.encryption_backend)
        table.add_row("Key", report.key_arn)
        table.add_row("Caller", report.caller_arn or "-")
        self.console.print(table)
        for warning in report.warnings:
            self.console.print(f"[yellow]⚠️  {warning}[/yellow]")

    def print_mismatches(self, report: ConvergenceReport, show_values: bool = False):
        table = Table(title="Convergence Report", show_lines=True, header_style="bold magenta")
        table.add_column("Field", style="cyan")
        table.add_column("Desired", style="green")
        table.add_column("Live", style="red")
        for mismatch in report:
            hide = _is_sensitive(mismatch.field_path) and not show_values
            table.add_row(
                escape(mismatch.field_path),
                escape(REDACTED if hide else _short(mismatch.desired)),
                escape(REDACTED if hide else _short(mismatch.live)),
            )
        self.console.print(table)
        self.console.print(
            "[bold yellow]Reconcile the desired configuration by hand, then re-run. "
            "Nothing was imported.[/bold yellow]"
        )

    def print_outcomes(self, outcomes: Sequence[ImportOutcome], pending: Sequence[str] = ()):
        table = Table(title="Import Outcomes", show_lines=True, header_style="bold magenta")
        table.add_column("Address", style="cyan")
        table.add_column("Import Id")
        table.add_column("Status", style="bold")
        table.add_column("Result", justify="center")
        for outcome in outcomes:
            color = {ImportStatus.ADOPTED: "green", ImportStatus.SKIPPED: "blue"}.get(outcome.status, "red")
            icon = "✅" if outcome.status is not ImportStatus.FAILED else "❌"
            table.add_row(outcome.address, outcome.external_id,
                          f"[{color}]{outcome.status.value}[/{color}]", icon)
        for address in pending:
            table.add_row(address, "-", "[dim]not attempted[/dim]", "⏸")
        self.console.print(table)
        for outcome in outcomes:
            if outcome.error:
                self.console.print(f"[bold red]{outcome.address}:[/bold red] {escape(outcome.error)}")

    def print_artifacts(self, artifacts: List[str]):
        self.console.print(Panel(
            "[bold white]Generated files[/bold white]\n"
            "════════════════════════════════════════\n"
            + "\n".join(f"  {a}" for a in artifacts),
            border_style="dim",
        ))

    def print_document(self, text: str, title: str):
        self.console.print(Panel(
            Syntax(text, "yaml", theme="monokai", line_numbers=False),
            title=title,
            border_style="red",
        ))
