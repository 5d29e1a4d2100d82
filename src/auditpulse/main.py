#!/usr/bin/env python3
# PYTHON_ARGCOMPLETE_OK
"""
AuditPulse v1.0.0 - Smart Contract Audit Report Parser & Scorer
═══════════════════════════════════════════════════════════════
Turns raw analysis-engine output into a scored, severity-classified report.
"""
import sys
import logging
import argparse
import platform
from pathlib import Path
from typing import List, Optional

import argcomplete
from argcomplete.completers import FilesCompleter

from rich import box
from rich.align import Align
from rich.columns import Columns
from rich.console import Console, Group
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import ProgressBar
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.traceback import install as rich_traceback

from auditpulse.config import CONFIG, ScoringPolicy, load_policy
from auditpulse.errors import AuditPulseError, PolicyError
from auditpulse.models import AuditReport, Severity
from auditpulse.scoring import score_band
from auditpulse.serializer import dumps, export_filename, serialize
from auditpulse.store import ReportStore

rich_traceback(console=Console(file=sys.stderr), show_locals=False, width=120)
console = Console(highlight=False)
logger = logging.getLogger("auditpulse")

SEVERITY_STYLES = {
    "critical": "bright_red",
    "high": "orange3",
    "medium": "yellow",
    "low": "blue",
    "unknown": "grey62",
}
BAND_STYLES = {
    "good": ("spring_green3", "SECURE"),
    "fair": ("yellow", "NEEDS REVIEW"),
    "poor": ("bright_red", "AT RISK"),
}

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_THRESHOLD = 3


def setup_logging(debug: bool = False):
    logging.basicConfig(
        level="DEBUG" if debug else "INFO",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
        format="%(message)s",
        force=True,
    )


# ═══════════════════════════════════════════════════════════════
# CLI DISPATCHER
# ═══════════════════════════════════════════════════════════════
class AuditPulseCLI:
    """Command dispatcher: one handler per sub-command, each returns an exit code."""

    def __init__(self, policy: ScoringPolicy, output: Console = console):
        self.policy = policy
        self.console = output

    def run(self, args: argparse.Namespace) -> int:
        if args.version:
            self._show_version()
            return EXIT_OK

        handlers = {
            "scan": self._handle_scan,
            "export": self._handle_export,
            "policy": self._handle_policy,
        }
        return handlers[args.command](args)

    def _show_version(self):
        self.console.print(f"[bold magenta]AuditPulse v{CONFIG.VERSION}[/] • [dim]{platform.machine()}[/]")

    # --- Input ---
    def _read_report(self, target: str) -> str:
        if target == "-":
            return sys.stdin.read()
        with open(target, 'r', encoding='utf-8', errors='replace') as f:
            return f.read()

    def _ingest(self, args: argparse.Namespace) -> Optional[ReportStore]:
        try:
            raw = self._read_report(args.report)
        except OSError as e:
            self._error(f"Cannot read report '{args.report}': {e.strerror or e}")
            return None
        logger.debug(f"Read {len(raw)} characters from {args.report}")

        store = ReportStore(policy=self.policy)
        if not store.ingest(raw, contract_hash=args.contract_hash):
            self._error(str(store.last_error))
            return None
        return store

    # --- Commands ---
    def _handle_scan(self, args: argparse.Namespace) -> int:
        self._render_header("scan")
        store = self._ingest(args)
        if store is None:
            return EXIT_FAILURE

        state = store.get_state()
        self._render_severity_dashboard(state)
        if state.issues:
            self._render_issue_table(state)
        else:
            self._render_fallback(state)
        self._health_score_panel(state)

        if args.fail_on:
            threshold = Severity(args.fail_on)
            blocking = [i for i in state.issues if i.severity.rank <= threshold.rank]
            if blocking:
                self.console.print(
                    f"[bold red]✘ {len(blocking)} issue(s) at or above '{threshold.value}' severity[/]"
                )
                return EXIT_THRESHOLD
        return EXIT_OK

    def _handle_export(self, args: argparse.Namespace) -> int:
        store = self._ingest(args)
        if store is None:
            return EXIT_FAILURE

        state = store.get_state()
        out_dir = Path(args.output or ".")
        out_dir.mkdir(parents=True, exist_ok=True)
        target = out_dir / export_filename(state)
        with open(target, 'w', encoding='utf-8') as f:
            f.write(dumps(serialize(state)))

        self.console.print(f"[bold green]💾 Exported:[/] {escape(str(target))}")
        self.console.print(f"[dim]{len(state.issues)} issues • score {state.audit_score}%[/]")
        return EXIT_OK

    def _handle_policy(self, args: argparse.Namespace) -> int:
        """Show the active penalty weights and keyword table."""
        table = Table(
            title="📋 AuditPulse Severity Policy",
            box=box.MINIMAL_DOUBLE_HEAD,
            header_style="bold magenta",
            expand=True,
            border_style="dim",
        )
        table.add_column("Tier", style="bold", no_wrap=True)
        table.add_column("Penalty", justify="right")
        table.add_column("Keywords (checked in tier order)")

        keywords = dict(self.policy.keyword_table())
        for tier in Severity.ordered():
            color = SEVERITY_STYLES[tier.value]
            words = escape(", ".join(keywords.get(tier, ()))) or "[dim]fallback when nothing matches[/dim]"
            table.add_row(f"[{color}]{tier.value.upper()}[/{color}]", f"-{self.policy.weights[tier]}", words)

        self.console.print(table)
        self.console.print("[dim]Score = 100 minus the summed penalties, floored at 0.[/dim]")
        return EXIT_OK

    # --- Rendering ---
    def _render_header(self, command: str):
        header_text = Text()
        header_text.append(f"{CONFIG.EMOJIS.get(command, '')}AuditPulse ", style="bold magenta")
        header_text.append(f"v{CONFIG.VERSION} ", style="italic cyan")
        header_text.append(command.upper(), style="bold white")
        self.console.print(Panel(Align.center(header_text), box=box.ROUNDED, style="magenta", expand=True))

    def _render_severity_dashboard(self, state: AuditReport):
        chips = []
        for tier, count in state.issue_count.items():
            color = SEVERITY_STYLES[tier]
            chips.append(Panel(f"[bold {color}]{CONFIG.EMOJIS[tier]} {tier.upper()}\n{count}[/]",
                               style=color, expand=False))
        self.console.print(Columns(chips))

    def _render_issue_table(self, state: AuditReport):
        table = Table(box=box.HEAVY_HEAD, padding=(0, 1), expand=True, show_footer=True, footer_style="bold dim")
        table.add_column("Severity", width=10, style="bold", footer=f"Σ {len(state.issues)} Issues")
        table.add_column("Line", width=6, justify="right", style="dim")
        table.add_column("Source", style="cyan")
        table.add_column("Issue", style="white")

        for issue in state.issues:
            color = SEVERITY_STYLES[issue.severity.value]
            table.add_row(
                f"[{color}]{issue.severity.value.upper()}[/{color}]",
                str(issue.line or "-"),
                Text(issue.source),
                Text(issue.title),
            )
        self.console.print(table)

    def _render_fallback(self, state: AuditReport):
        self.console.print(Panel(
            Text(state.raw_preview(CONFIG.PREVIEW_LIMIT)),
            title=f"[yellow]{state.status_message}[/]",
            title_align="left",
            border_style="yellow",
            box=box.SIMPLE_HEAD,
        ))

    def _health_score_panel(self, state: AuditReport):
        score = state.audit_score
        accent, status = BAND_STYLES[score_band(score)]
        bar = ProgressBar(total=100, completed=score, width=50, style="dim white",
                          complete_style=accent, finished_style=accent)

        metrics_grid = Table.grid(expand=True)
        metrics_grid.add_column(justify="left", ratio=1)
        metrics_grid.add_column(justify="center", ratio=2)
        metrics_grid.add_column(justify="right", ratio=1)
        metrics_grid.add_row(
            Text.from_markup(f"[bold white]STATUS[/]\n[{accent}]{status}[/]"),
            Group(Text.from_markup(f"[bold white]SECURITY SCORE: {score}%[/]"), bar),
            Text.from_markup(f"[bold white]FINDINGS[/]\n[bold cyan]{len(state.issues)}[/] total"),
        )

        footer = f"Contract: {state.contract_hash}" if state.contract_hash else "Contract: unknown"
        self.console.print(Rule(style="dim magenta"))
        self.console.print(Panel(
            metrics_grid,
            title=f"[{accent}] AUDIT REPORT [/{accent}]",
            subtitle=Text(footer, style="dim"),
            border_style="bright_magenta",
            padding=(1, 2),
            box=box.HORIZONTALS,
        ))

    def _error(self, msg: str):
        self.console.print(f"[bold red]✘ {escape(msg)}[/]")


# ═══════════════════════════════════════════════════════════════
# ARGUMENT PARSER
# ═══════════════════════════════════════════════════════════════
def create_parser() -> argparse.ArgumentParser:
    class AuditPulseParser(argparse.ArgumentParser):
        def error(self, message):
            if 'the following arguments are required' in message:
                error_msg = "\n\033[1;31m✘ Error: Report path is missing.\033[0m"
                error_msg += "\n\033[1;33m💡 Hint: Pass a report file, or '-' to read from stdin.\033[0m\n"
            else:
                error_msg = f"\n\033[1;31m✘ Error: {message}\033[0m\n"
            self.print_usage(sys.stderr)
            sys.stderr.write(error_msg)
            sys.exit(EXIT_USAGE)

    parser = AuditPulseParser(
        prog="auditpulse",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=f"AuditPulse v{CONFIG.VERSION} - Smart Contract Audit Report Parser & Scorer",
        epilog="""
Usage Examples:
  auditpulse scan engine-output.json                 # Scored dashboard
  auditpulse scan report.txt --fail-on high          # CI gate
  auditpulse export report.txt -o reports/           # Write the export file
  auditpulse policy                                  # Show weights and keywords""",
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version and exit")
    parser.add_argument("--config", metavar="PATH", help=f"Policy file (default: ${CONFIG.CONFIG_ENV} or ./{CONFIG.CONFIG_FILE})")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", metavar="Command")

    scan_p = subparsers.add_parser("scan", help="🔍 Parse, classify and score an audit report")
    report_scan = scan_p.add_argument("report", help="Report file (JSON or text), or '-' for stdin")
    report_scan.completer = FilesCompleter()
    scan_p.add_argument("--contract-hash", help="Identifier of the audited contract")
    scan_p.add_argument("--fail-on", choices=[t.value for t in Severity if t is not Severity.UNKNOWN],
                        help="Exit with code 3 if any issue is at or above this tier")

    export_p = subparsers.add_parser("export", help="💾 Write the JSON export document")
    report_export = export_p.add_argument("report", help="Report file (JSON or text), or '-' for stdin")
    report_export.completer = FilesCompleter()
    export_p.add_argument("-o", "--output", metavar="DIR", help="Output directory (default: current)")
    export_p.add_argument("--contract-hash", help="Identifier of the audited contract")

    subparsers.add_parser("policy", help="📋 Show the severity keywords and penalty weights")
    return parser


def main(argv: Optional[List[str]] = None):
    parser = create_parser()
    argcomplete.autocomplete(parser)

    args = parser.parse_args(argv)
    if args.command is None and not args.version:
        parser.print_help()
        sys.exit(EXIT_OK)

    setup_logging(args.debug)
    try:
        policy = load_policy(args.config)
    except PolicyError as e:
        console.print(f"[bold red]✘ {escape(str(e))}[/]")
        sys.exit(EXIT_FAILURE)

    cli = AuditPulseCLI(policy)
    try:
        code = cli.run(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 Execution cancelled by user.[/]")
        sys.exit(130)
    except AuditPulseError as e:
        console.print(f"[bold red]✘ {escape(str(e))}[/]")
        sys.exit(EXIT_FAILURE)
    except Exception:
        console.print_exception()
        sys.exit(EXIT_FAILURE)
    sys.exit(code)


def run():
    """Entrypoint for the console script."""
    main()


if __name__ == "__main__":
    main()
