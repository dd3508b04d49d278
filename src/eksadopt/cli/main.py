#!/usr/bin/env python3
"""
EKSADOPT CLI - Operator Interface
---------------------------------
Entry point for the adoption workflow and its helper commands:

    adopt              full pipeline, ending at the guarded import
    check              preflight only
    bootstrap-backend  state bucket, lock table and encryption key
    reveal             decrypt the sealed secret document to the terminal
    forget ADDRESS...  remove addresses from managed state (explicit rollback)

Every AdoptError is caught here, once, rendered with its category and
mapped to its exit code.

Author: EksAdopt Team
Date: 2026-10-19
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from eksadopt.bootstrap.backend import BackendBootstrapper
from eksadopt.cli.formatter import AdoptFormatter
from eksadopt.core.config import ENCRYPTION_BACKENDS, AdoptConfig
from eksadopt.core.decisions import ConsoleDecider, Decider
from eksadopt.core.engine import AdoptionWorkflow
from eksadopt.core.errors import (AdoptError, AdoptionDriftError, AdoptionError, ConvergenceError,
                                  PreflightError, WorkflowAborted)

VERSION = "1.0.0"
GATE_STEPS = ("ignore-list", "adoption")

# Global console for consistent styling across the application
console = Console()


class EksAdoptCLI:
    """
    CLI wrapper that translates operator commands into workflow actions.
    Confirmation prompts go through a Decider so tests can script them.
    """

    def __init__(self, decider: Optional[Decider] = None, console_: Optional[Console] = None):
        self.console = console_ or console
        self.decider = decider or ConsoleDecider(self.console)
        self.formatter = AdoptFormatter(self.console)
        self.parser = argparse.ArgumentParser(
            prog="eksadopt",
            description="eksadopt - Guarded adoption of a live EKS cluster into OpenTofu management",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self._setup_args()

    def _setup_args(self):
        """Configures the command-line flags and subcommands."""
        self.parser.add_argument("-v", "--version", action="version", version=f"eksadopt v{VERSION}")

        common = argparse.ArgumentParser(add_help=False)
        common.add_argument("--cluster-name", help="EKS cluster name (env: CLUSTER_NAME, default: pangeo)")
        common.add_argument("--region", help="AWS region (env: REGION, default: us-west-1)")
        common.add_argument("--environment", help="Environment name (env: ENVIRONMENT, default: prod)")
        common.add_argument("--workdir", type=Path, help="Directory for generated files (default: cwd)")
        common.add_argument("--encryption", choices=ENCRYPTION_BACKENDS,
                            help="Secret encryption backend (env: EKSADOPT_ENCRYPTION, default: sops)")
        common.add_argument("--max-workers", type=int, help="Parallel node-group describes (default: 4)")
        common.add_argument("--aws-output", choices=("json", "yaml", "yaml-stream"),
                            help="Force the aws CLI output format")
        common.add_argument("--policy", type=Path, help="Alternate sensitivity catalog (JSON)")
        common.add_argument("--verbose", action="store_true", help="Debug logging")

        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")
        adopt = subparsers.add_parser("adopt", parents=[common], help="Discover, seal, synthesize, validate, import")
        adopt.add_argument("--show-values", action="store_true",
                           help="Show sensitive values in the convergence report")
        subparsers.add_parser("check", parents=[common], help="Run preflight checks only")
        subparsers.add_parser("bootstrap-backend", parents=[common],
                              help="Create state bucket, lock table and encryption key")
        subparsers.add_parser("reveal", parents=[common], help="Decrypt the sealed secret document (terminal only)")
        forget = subparsers.add_parser("forget", parents=[common], help="Remove addresses from managed state")
        forget.add_argument("addresses", nargs="+", metavar="ADDRESS")

    def print_header(self, subtitle: str, config: AdoptConfig):
        self.console.print(Panel.fit(
            f"[bold cyan]eksadopt v{VERSION}[/bold cyan]\n"
            f"Cluster: {config.cluster_name}   Region: {config.region}   Environment: {config.environment}",
            title=f"[bold white]{subtitle}[/bold white]",
            border_style="cyan",
        ))

    def _configure_logging(self, verbose: bool):
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=self.console, show_path=False)],
            force=True,
        )

    def _config(self, args: argparse.Namespace) -> AdoptConfig:
        return AdoptConfig.from_env(
            cluster_name=args.cluster_name,
            region=args.region,
            environment=args.environment,
            workdir=args.workdir,
            encryption_backend=args.encryption,
            max_workers=args.max_workers,
            aws_output=args.aws_output,
            policy_path=args.policy,
        )

    def workflow(self, config: AdoptConfig) -> AdoptionWorkflow:
        return AdoptionWorkflow(config, self.decider)

    # --- COMMANDS ---

    def _cmd_adopt(self, args, config) -> int:
        self.print_header("Cluster Adoption", config)
        workflow = self.workflow(config)
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      TimeElapsedColumn(), console=self.console, transient=True) as progress:
            task_id = progress.add_task("Starting...", total=None)

            def on_step(step: str):
                progress.update(task_id, description=f"Phase: {step}")
                # Gates prompt the operator; keep the spinner off the prompt line
                if step in GATE_STEPS:
                    progress.stop()
                else:
                    progress.start()

            try:
                result = workflow.run(progress_callback=on_step)
            except ConvergenceError as e:
                progress.stop()
                self.formatter.print_mismatches(e.report, show_values=args.show_values)
                raise
        self.formatter.print_artifacts(result.artifacts)
        self.formatter.print_outcomes(result.adoption.outcomes)
        self.console.print("[bold green]✅ Adoption complete: zero diff after import.[/bold green]")
        return 0

    def _cmd_check(self, args, config) -> int:
        self.print_header("Preflight", config)
        self.formatter.print_preflight(self.workflow(config).check())
        self.console.print("[bold green]✅ Environment ready.[/bold green]")
        return 0

    def _cmd_bootstrap(self, args, config) -> int:
        self.print_header("Backend Bootstrap", config)
        workflow = self.workflow(config)
        account_id = str((workflow.provider.caller_identity() or {}).get("Account", ""))
        if not account_id:
            raise PreflightError("Caller identity carries no account id",
                                 reason=PreflightError.MISSING_CREDENTIALS)
        report = BackendBootstrapper(config, workflow.runner, self.decider).bootstrap(account_id)
        for resource, status in report.actions:
            self.console.print(f"  {resource:<12} [cyan]{status}[/cyan]")
        self.formatter.print_artifacts(report.files)
        return 0

    def _cmd_reveal(self, args, config) -> int:
        workflow = self.workflow(config)
        doc = workflow.reveal()
        self.formatter.print_document(workflow.vault.serialize(doc), f"{config.secrets_file} (decrypted)")
        return 0

    def _cmd_forget(self, args, config) -> int:
        self.print_header("Forget", config)
        for address in self.workflow(config).forget(args.addresses):
            self.console.print(f"  [yellow]removed[/yellow] {address}")
        return 0

    def _render_error(self, error: AdoptError):
        if isinstance(error, AdoptionError):
            self.formatter.print_outcomes(error.outcomes, error.pending)
            self.console.print("[bold yellow]Adopted resources stay in state. "
                               "Use 'eksadopt forget' to remove them explicitly.[/bold yellow]")
        elif isinstance(error, AdoptionDriftError):
            self.formatter.print_outcomes(error.outcomes)
            self.formatter.print_mismatches(error.report)
        self.console.print(Panel(
            f"[bold red]{error.category.upper()} ERROR[/bold red]\n{escape(error.message)}",
            border_style="red",
            expand=False,
        ))

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Primary routing entry point. Returns the process exit code."""
        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            return 0
        self._configure_logging(args.verbose)

        handlers = {
            "adopt": self._cmd_adopt,
            "check": self._cmd_check,
            "bootstrap-backend": self._cmd_bootstrap,
            "reveal": self._cmd_reveal,
            "forget": self._cmd_forget,
        }
        try:
            config = self._config(args)
        except ValueError as e:
            self.console.print(f"[bold red]Error:[/bold red] {e}")
            return 2
        try:
            return handlers[args.command](args, config)
        except WorkflowAborted as e:
            self.console.print(f"[bold yellow]Operation cancelled by user ({e.gate} gate). Nothing was changed.[/bold yellow]")
            return 0
        except AdoptError as e:
            self._render_error(e)
            return e.exit_code


def main():
    """Application entry point with interrupt handling."""
    try:
        sys.exit(EksAdoptCLI().run())
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
