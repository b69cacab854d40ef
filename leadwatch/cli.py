from __future__ import annotations

import argparse
import logging
import os

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from leadwatch.config import WatchConfig, load_config
from leadwatch.errors import ConfigError
from leadwatch.ledger import Ledger, LedgerStore
from leadwatch.lifecycle import CycleResult
from leadwatch.models import LeadStatus
from leadwatch.notify import build_notifier
from leadwatch.orchestrator import Orchestrator, build_scheduler
from leadwatch.sources import HtmlArticleSource
from leadwatch.utils import local_now, short_snippet, to_local

DEFAULT_CONFIG = "config/watch.yaml"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leadwatch", description="Keyword lead watcher")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Start the watcher loop")
    run_cmd.add_argument("--config", default=DEFAULT_CONFIG, help="Path to YAML config")
    run_cmd.add_argument("--max-ticks", type=int, default=None, help="Stop after N scheduler ticks")

    scan_cmd = sub.add_parser("scan", help="Run one scan cycle now, ignoring the schedule")
    scan_cmd.add_argument("--config", default=DEFAULT_CONFIG, help="Path to YAML config")
    scan_cmd.add_argument("--dry-run", action="store_true", help="Do not save the ledger or send notifications")

    schedule_cmd = sub.add_parser("schedule", help="Show what the scheduler decides right now")
    schedule_cmd.add_argument("--config", default=DEFAULT_CONFIG, help="Path to YAML config")

    stats_cmd = sub.add_parser("stats", help="Show tracked lead statistics")
    stats_cmd.add_argument("--config", default=DEFAULT_CONFIG, help="Path to YAML config")

    export_cmd = sub.add_parser("export", help="Export tracked leads")
    export_cmd.add_argument("--config", default=DEFAULT_CONFIG, help="Path to YAML config")
    export_cmd.add_argument("--format", choices=["markdown"], default="markdown")

    reset_cmd = sub.add_parser("reset-state", help="Clear the ledger file")
    reset_cmd.add_argument("--config", default=DEFAULT_CONFIG, help="Path to YAML config")

    return parser


def build_orchestrator(config: WatchConfig) -> Orchestrator:
    return Orchestrator(
        config=config,
        source=HtmlArticleSource.from_config(config.source),
        notifier=build_notifier(config),
        store=LedgerStore(config.ledger_file),
    )


def cmd_run(config: WatchConfig, max_ticks: int | None) -> int:
    orchestrator = build_orchestrator(config)
    orchestrator.run_forever(max_ticks=max_ticks)
    return 0


def cmd_scan(config: WatchConfig, dry_run: bool) -> int:
    orchestrator = build_orchestrator(config)
    try:
        result = orchestrator.run_cycle(dry_run=dry_run)
    finally:
        orchestrator.source.close()

    if result is None:
        Console().print("Scan failed, see log for details")
        return 1
    _print_cycle_table(Console(), result, dry_run)
    return 0


def cmd_schedule(config: WatchConfig) -> int:
    ledger = LedgerStore(config.ledger_file).read()
    now = local_now(config.window.timezone)
    decision = build_scheduler(config).evaluate(now, ledger)

    table = Table(title="Scheduler Decision")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Now", now.isoformat(timespec="seconds"))
    table.add_row("Window", f"{config.window.start:%H:%M}-{config.window.end:%H:%M}")
    table.add_row("State", decision.state.value)
    table.add_row("Potential Today", f"{decision.potential_today}/{config.quota.daily_limit}")
    table.add_row("Morning Limit", str(config.quota.morning_limit))
    table.add_row("Sleep Until", decision.sleep_until.isoformat(timespec="seconds") if decision.sleep_until else "-")
    Console().print(table)
    return 0


def cmd_stats(config: WatchConfig) -> int:
    ledger = LedgerStore(config.ledger_file).read()
    today = local_now(config.window.timezone).date()
    counts = ledger.count_by_status()

    table = Table(title="Lead Watch Stats")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Ledger Path", config.ledger_file)
    table.add_row("Total Leads", str(len(ledger)))
    for status in LeadStatus:
        table.add_row(status.value, str(counts[status]))
    table.add_row("Potential Today", f"{len(ledger.potential_matched_on(today, config.window.timezone))}/{config.quota.daily_limit}")
    Console().print(table)
    return 0


def cmd_export_markdown(config: WatchConfig) -> int:
    ledger = LedgerStore(config.ledger_file).read()
    Console().print(render_markdown(ledger, config))
    return 0


def render_markdown(ledger: Ledger, config: WatchConfig) -> str:
    lines = [
        "| First Seen | Status | Lead | Link | Content |",
        "|---|---|---|---|---|",
    ]
    for lead in ledger:
        first_seen = to_local(lead.matched_on, config.window.timezone).strftime("%Y-%m-%d %H:%M")
        link = next((item.href for item in lead.links if item.href), "")
        lines.append(
            "| {seen} | {status} | {title} | {link} | {content} |".format(
                seen=first_seen,
                status=lead.current_status.value,
                title=short_snippet(lead.title, 60).replace("|", " "),
                link=link.replace("|", " "),
                content=short_snippet(lead.content, 140).replace("|", " "),
            )
        )
    return "\n".join(lines)


def cmd_reset_state(config: WatchConfig) -> int:
    LedgerStore(config.ledger_file).reset()
    Console().print(f"State reset: {config.ledger_file}")
    return 0


def _print_cycle_table(console: Console, result: CycleResult, dry_run: bool) -> None:
    table = Table(title="Lead Watch Scan" + (" (dry run)" if dry_run else ""))
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Records", str(result.seen))
    table.add_row("New Leads", str(len(result.created)))
    for lead in result.created:
        table.add_row(f"  - {lead.current_status.value}", short_snippet(lead.title, 60))
    table.add_row("Transitions", str(len(result.transitioned)))
    for lead in result.transitioned:
        table.add_row("  - transitioned", short_snippet(lead.title, 60))
    console.print(table)


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )
    load_dotenv()

    try:
        config = load_config(args.config, os.environ)
    except ConfigError as exc:
        Console(stderr=True).print(f"Configuration error: {exc}")
        raise SystemExit(2)

    if args.command == "run":
        raise SystemExit(cmd_run(config, args.max_ticks))

    if args.command == "scan":
        raise SystemExit(cmd_scan(config, args.dry_run))

    if args.command == "schedule":
        raise SystemExit(cmd_schedule(config))

    if args.command == "stats":
        raise SystemExit(cmd_stats(config))

    if args.command == "export":
        raise SystemExit(cmd_export_markdown(config))

    if args.command == "reset-state":
        raise SystemExit(cmd_reset_state(config))

    raise SystemExit(1)
