"""
CLI commands for ratewatch.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from ratewatch.config import AppConfig, load_config
from ratewatch.database.connection import Database
from ratewatch.database.repository import (
    RuleRepository,
    HistoryRepository,
    StateRepository,
)
from ratewatch.database.models import Rule, HistoryEntry
from ratewatch.data.rates import RateProvider
from ratewatch.export import rules_to_csv, history_to_csv, history_to_markdown
from ratewatch.healthcheck import run_healthcheck
from ratewatch.main import build_notifiers
from ratewatch.rules.engine import format_rate, next_run_preview

RULE_FIELDS = (
    "currency_from",
    "currency_to",
    "frequency",
    "time_of_day",
    "day_of_week",
    "threshold_percent",
    "notify_if_better",
    "notify_if_worse",
    "enabled",
)


def add_rule(db: Database, **fields) -> Rule:
    """Create and store a new rule."""
    rule = Rule(**fields)
    if rule.frequency != "weekly":
        rule.day_of_week = None
    return RuleRepository(db).add(rule)


def edit_rule(db: Database, rule_id: str, **changes) -> Optional[Rule]:
    """Apply changes to an existing rule. Unset (None) changes are ignored."""
    repo = RuleRepository(db)
    existing = repo.get(rule_id)
    if existing is None:
        return None

    values = {name: getattr(existing, name) for name in RULE_FIELDS}
    values.update({k: v for k, v in changes.items() if v is not None})
    if changes.get("clear_threshold"):
        values["threshold_percent"] = None
    values.pop("clear_threshold", None)

    rule = Rule(id=existing.id, **values)
    if rule.frequency != "weekly":
        rule.day_of_week = None
    return repo.update(rule)


def toggle_rule(db: Database, rule_id: str) -> Optional[Rule]:
    """Enable a disabled rule or disable an enabled one."""
    return RuleRepository(db).toggle(rule_id)


def delete_rule(db: Database, rule_id: str) -> bool:
    """Delete a rule."""
    return RuleRepository(db).delete(rule_id)


def export_data(db: Database, what: str, fmt: str) -> str:
    """Render rules or history in the requested format."""
    if what == "rules":
        if fmt != "csv":
            raise ValueError("Rules can only be exported as csv")
        return rules_to_csv(RuleRepository(db).load())

    history = HistoryRepository(db).load()
    if fmt == "md":
        return history_to_markdown(history)
    return history_to_csv(history)


def format_rule(rule: Rule) -> str:
    """One-line rule description."""
    status = "on " if rule.enabled else "off"
    line = f"[{status}] {rule.id}  {rule.pair}  Next: {next_run_preview(rule)}"
    if rule.threshold_percent is not None:
        line += f"  ±{rule.threshold_percent:g}%"
    directions = [
        name
        for name, flag in (("better", rule.notify_if_better), ("worse", rule.notify_if_worse))
        if flag
    ]
    line += f"  notify: {'/'.join(directions) or 'none'}"
    if rule.last_exchange_rate is not None:
        line += f"  Last rate: {rule.last_exchange_rate:.4f}"
    return line


def format_history_entry(entry: HistoryEntry) -> str:
    """One-line history description."""
    percent = f"{entry.percent:+.2f}%" if entry.percent is not None else "n/a"
    return f"{entry.date:%Y-%m-%d %H:%M}  {entry.pair}  {format_rate(entry.rate)}  {percent}  {entry.message}"


def _add_rule_options(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument("--from", dest="currency_from", required=required, help="Source currency, e.g. EUR")
    parser.add_argument("--to", dest="currency_to", required=required, help="Target currency, e.g. USD")
    parser.add_argument(
        "--frequency",
        choices=["daily", "weekly"],
        default="daily" if required else None,
    )
    parser.add_argument(
        "--time",
        dest="time_of_day",
        default="09:00" if required else None,
        help="Time of day, HH:MM (24h)",
    )
    parser.add_argument(
        "--day",
        dest="day_of_week",
        type=int,
        choices=range(7),
        help="Day of week for weekly rules, 0 = Sunday",
    )
    parser.add_argument(
        "--threshold",
        dest="threshold_percent",
        type=float,
        help="Minimum change in percent before notifying",
    )
    for flag, dest, label in (
        ("better", "notify_if_better", "rate improvements"),
        ("worse", "notify_if_worse", "rate declines"),
    ):
        group = parser.add_mutually_exclusive_group()
        group.add_argument(f"--notify-{flag}", dest=dest, action="store_true", default=None, help=f"Notify on {label}")
        group.add_argument(f"--no-notify-{flag}", dest=dest, action="store_false", help=f"Don't notify on {label}")


def _rule_fields(args: argparse.Namespace) -> dict:
    return {name: getattr(args, name, None) for name in RULE_FIELDS if getattr(args, name, None) is not None}


def _load_app_config(config_path: str) -> AppConfig:
    if Path(config_path).exists():
        return load_config(config_path)
    return AppConfig()


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="ratewatch CLI")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--db", help="Database path (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Rules commands
    rules_parser = subparsers.add_parser("rules", help="Rules management")
    rules_subparsers = rules_parser.add_subparsers(dest="action")

    add_rule_parser = rules_subparsers.add_parser("add", help="Add rule")
    _add_rule_options(add_rule_parser, required=True)
    add_rule_parser.add_argument("--disabled", action="store_true", help="Create the rule disabled")

    rules_subparsers.add_parser("list", help="List rules")

    edit_rule_parser = rules_subparsers.add_parser("edit", help="Edit rule")
    edit_rule_parser.add_argument("id", help="Rule ID")
    _add_rule_options(edit_rule_parser, required=False)
    edit_rule_parser.add_argument("--clear-threshold", action="store_true", help="Notify on any change")

    toggle_rule_parser = rules_subparsers.add_parser("toggle", help="Enable/disable rule")
    toggle_rule_parser.add_argument("id", help="Rule ID")

    delete_rule_parser = rules_subparsers.add_parser("delete", help="Delete rule")
    delete_rule_parser.add_argument("id", help="Rule ID")

    # History commands
    history_parser = subparsers.add_parser("history", help="Notification history")
    history_subparsers = history_parser.add_subparsers(dest="action")
    show_history_parser = history_subparsers.add_parser("show", help="Show history")
    show_history_parser.add_argument("--limit", type=int, default=20, help="Entries to show")

    # Export commands
    export_parser = subparsers.add_parser("export", help="Export rules or history")
    export_parser.add_argument("action", choices=["rules", "history"])
    export_parser.add_argument("--format", dest="fmt", choices=["csv", "md"], default="csv")
    export_parser.add_argument("--output", help="Output file (default: stdout)")

    # Rates commands
    rates_parser = subparsers.add_parser("rates", help="Exchange rates")
    rates_subparsers = rates_parser.add_subparsers(dest="action")
    rates_subparsers.add_parser("list", help="List available currencies")
    get_rate_parser = rates_subparsers.add_parser("get", help="Show current rate")
    get_rate_parser.add_argument("currency_from", help="Source currency")
    get_rate_parser.add_argument("currency_to", help="Target currency")

    # Notification commands
    notify_parser = subparsers.add_parser("notify", help="Notifications")
    notify_subparsers = notify_parser.add_subparsers(dest="action")
    notify_subparsers.add_parser("test", help="Send a test notification")

    subparsers.add_parser("status", help="Show scheduler status")
    subparsers.add_parser("healthcheck", help="Send status summary to notifiers")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = _load_app_config(args.config)

    # Initialize database
    db = Database(args.db or config.database.path)
    db.initialize()

    exit_code = 0
    try:
        exit_code = _dispatch(args, db, config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        exit_code = 1
    finally:
        db.close()
    return exit_code


def _dispatch(args: argparse.Namespace, db: Database, config: AppConfig) -> int:
    if args.command == "rules":
        if args.action == "add":
            fields = _rule_fields(args)
            fields["enabled"] = not args.disabled
            rule = add_rule(db, **fields)
            print(f"Created rule with ID: {rule.id}")
        elif args.action == "list":
            rules = RuleRepository(db).load()
            if not rules:
                print("No rules")
            for rule in rules:
                print(format_rule(rule))
        elif args.action == "edit":
            rule = edit_rule(db, args.id, clear_threshold=args.clear_threshold, **_rule_fields(args))
            if rule is None:
                print(f"Rule not found: {args.id}", file=sys.stderr)
                return 1
            print(format_rule(rule))
        elif args.action == "toggle":
            rule = toggle_rule(db, args.id)
            if rule is None:
                print(f"Rule not found: {args.id}", file=sys.stderr)
                return 1
            print(f"Rule {rule.id} {'enabled' if rule.enabled else 'disabled'}")
        elif args.action == "delete":
            if not delete_rule(db, args.id):
                print(f"Rule not found: {args.id}", file=sys.stderr)
                return 1
            print(f"Deleted rule {args.id}")

    elif args.command == "history":
        if args.action == "show":
            history = HistoryRepository(db).load()
            for entry in reversed(history[-args.limit:]):
                print(format_history_entry(entry))
            if not history:
                print("No notifications yet")

    elif args.command == "export":
        content = export_data(db, args.action, args.fmt)
        if args.output:
            Path(args.output).write_text(content, encoding="utf-8")
            print(f"Wrote {args.output}")
        else:
            sys.stdout.write(content)

    elif args.command == "rates":
        source = config.data_source
        provider = RateProvider(
            url=source.url,
            base_currency=source.base_currency,
            timeout=source.timeout_seconds,
            max_retries=config.advanced.max_retries,
            retry_delay=config.advanced.retry_delay_seconds,
        )
        if not provider.refresh():
            print("Could not fetch exchange rates", file=sys.stderr)
            return 1
        StateRepository(db).set_last_rate_fetch(provider.last_refreshed)
        if args.action == "list":
            print(", ".join(provider.list_codes()))
        elif args.action == "get":
            rate = provider.get_rate(args.currency_from, args.currency_to)
            if rate is None:
                print(f"Rate unavailable for {args.currency_from} → {args.currency_to}", file=sys.stderr)
                return 1
            print(f"1 {args.currency_from.upper()} = {rate:.6g} {args.currency_to.upper()}")

    elif args.command == "notify":
        if args.action == "test":
            notifiers = build_notifiers(config.notifications)
            if not notifiers:
                print("No notifiers configured", file=sys.stderr)
                return 1
            failed = False
            for notifier in notifiers:
                permission = notifier.request_permission()
                result = notifier.notify(
                    "ratewatch", "This is a test notification. You're all set!"
                )
                status = "sent" if result.success else f"failed ({result.error})"
                print(f"{result.channel}: permission {permission.value}, {status}")
                failed = failed or not result.success
            return 1 if failed else 0

    elif args.command == "status":
        state = StateRepository(db)
        rules = RuleRepository(db).load()
        last_checked = state.get_last_checked()
        last_fetch = state.get_last_rate_fetch()
        print(f"Rules: {sum(r.enabled for r in rules)} enabled / {len(rules)} total")
        print(f"Last check: {last_checked:%Y-%m-%d %H:%M:%S}" if last_checked else "Last check: never")
        print(f"Last rate fetch: {last_fetch:%Y-%m-%d %H:%M:%S}" if last_fetch else "Last rate fetch: never")

    elif args.command == "healthcheck":
        results = run_healthcheck(db, build_notifiers(config.notifications))
        if not results or not all(r.success for r in results):
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
