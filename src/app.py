"""Application entry point for the noticeguard command line."""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.authorization import AllowAllAuthorizer, StaticAuthorizer
from adapters.report_formatting import (
    format_notice_details,
    format_notice_line,
    format_outcome,
    format_rule_line,
    format_statistics,
)
from adapters.sqlite_storage import SQLiteStorage
from core.admin import AllowlistAdmin
from core.errors import DuplicateRule, InvalidNotice, InvalidPattern, SuppressionError
from core.fingerprint import fingerprint, normalize_content
from core.models import CapturedNotice, PatternType
from core.processor import SuppressionOrchestrator
from core.rules_engine import matching_rules, parse_rule_entries

NAME = "NOTICEGUARD"
FONT = "tarty-1"
SEED_ACTOR = "config"
FALLBACK_ACTOR = "operator"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = [os.getenv(name) for name in redact_cfg.get("patterns", [])]
    return sorted({value for value in values if value}, key=len, reverse=True)


def _configure_logging(verbose: bool = False) -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False) and not verbose:
        return

    load_dotenv()
    level_name = "DEBUG" if verbose else str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = _RedactingFormatter(
        _collect_redaction_values(config),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    if config.get("console", True) or verbose:
        # stderr keeps command output on stdout clean for scripts.
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/noticeguard.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    if handlers:
        logging.basicConfig(level=level, handlers=handlers, force=True)


def _seed_allowlist(storage: SQLiteStorage) -> int:
    """Add the rules listed in config.json that are not stored yet."""

    added = 0
    for pattern_type, value in parse_rule_entries(settings.ALLOWLIST_CONFIG):
        try:
            storage.allowlist.add_rule(pattern_type, value, created_by=SEED_ACTOR)
        except DuplicateRule:
            continue
        added += 1
    if added:
        LOGGER.info("Seeded %s allowlist rules from config", added)
    return added


def open_storage(db_path: Optional[str] = None) -> SQLiteStorage:
    storage = SQLiteStorage(
        db_path or settings.DB_PATH,
        log_capacity=settings.LOG_CAPACITY,
        timeout=settings.DB_TIMEOUT_SECONDS,
    )
    storage.init_db()
    _seed_allowlist(storage)
    return storage


def build_admin(storage: SQLiteStorage) -> AllowlistAdmin:
    # No configured administrators means a single-operator install.
    authorizer = StaticAuthorizer(settings.ADMIN_IDS) if settings.ADMIN_IDS else AllowAllAuthorizer()
    return AllowlistAdmin(
        allowlist=storage.allowlist,
        visibility=storage.visibility,
        authorizer=authorizer,
        log_store=storage.notices,
    )


def _default_actor() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return FALLBACK_ACTOR


def _resolve_fingerprint(storage: SQLiteStorage, value: str) -> str:
    """Accept a full fingerprint or the short prefix printed by `log list`."""

    if storage.notices.get(value) is not None:
        return value
    candidates = [
        notice.fingerprint
        for notice in storage.notices.list_notices()
        if notice.fingerprint.startswith(value)
    ]
    if len(candidates) == 1:
        return candidates[0]
    return value


def _read_capture_texts(args: argparse.Namespace) -> list[str]:
    if args.text:
        return [" ".join(args.text)]
    return [line for line in sys.stdin.read().splitlines() if line.strip()]


def _cmd_capture(args: argparse.Namespace, storage: SQLiteStorage) -> int:
    orchestrator = SuppressionOrchestrator(storage.notices, storage.allowlist, storage.visibility)
    captures = [
        CapturedNotice(raw_content=text, source_hint=args.source, requesting_user_id=args.user)
        for text in _read_capture_texts(args)
    ]
    for outcome in orchestrator.evaluate_many(captures, settings.SUPPRESSION):
        print(format_outcome(outcome))
    return 0


def _cmd_rules(args: argparse.Namespace, storage: SQLiteStorage) -> int:
    admin = build_admin(storage)
    if args.rules_command == "list":
        rules = storage.allowlist.list_rules()
        if not rules:
            print("No rules configured.")
        for rule in rules:
            print(format_rule_line(rule))
        return 0
    if args.rules_command == "add":
        rule = admin.add_rule(args.actor, args.type, " ".join(args.value), source_fingerprint=args.source_fingerprint)
        print(format_rule_line(rule))
        return 0
    if args.rules_command == "allow":
        rule = admin.allow_notice(args.actor, _resolve_fingerprint(storage, args.fingerprint), args.type)
        print(format_rule_line(rule))
        return 0
    if args.rules_command == "remove":
        if args.value:
            value = " ".join(args.value)
            removed = admin.remove_rule_by_value(args.actor, args.type, value)
            label = f"{args.type} rule {value!r}"
        elif args.rule_id is not None:
            removed = admin.remove_rule(args.actor, args.rule_id)
            label = f"Rule #{args.rule_id}"
        else:
            raise InvalidPattern("rules remove needs a rule id or --value")
        print(f"{label} removed." if removed else f"{label} not found.")
        return 0
    if args.rules_command in {"enable", "disable"}:
        changed = admin.set_rule_active(args.actor, args.rule_id, args.rules_command == "enable")
        print(f"Rule #{args.rule_id} {args.rules_command}d." if changed else f"Rule #{args.rule_id} not found.")
        return 0
    if args.rules_command == "test":
        text = " ".join(args.text)
        print(f"normalized:  {normalize_content(text)}")
        try:
            print(f"fingerprint: {fingerprint(text)}")
        except InvalidNotice as exc:
            print(f"fingerprint: ({exc})")
        hits = matching_rules(text, storage.allowlist.rules_snapshot())
        if not hits:
            print("Not matched")
        for rule in hits:
            print(f"- {format_rule_line(rule)}")
        return 0
    raise ValueError(f"Unknown rules command: {args.rules_command}")


def _cmd_log(args: argparse.Namespace, storage: SQLiteStorage) -> int:
    if args.log_command == "list":
        notices = storage.notices.list_notices(limit=args.limit, offset=args.offset)
        if not notices:
            print("No notices logged.")
        for notice in notices:
            print(format_notice_line(notice))
        return 0
    if args.log_command == "show":
        notice = storage.notices.get(_resolve_fingerprint(storage, args.fingerprint))
        if notice is None:
            print(f"Notice {args.fingerprint} not found.")
            return 1
        print(format_notice_details(notice))
        return 0
    if args.log_command == "stats":
        print(format_statistics(storage.notices.statistics(top=args.top)))
        return 0
    if args.log_command == "cleanup":
        days = args.days if args.days is not None else settings.LOG_RETENTION_DAYS
        removed = storage.notices.cleanup_older_than(days)
        LOGGER.info("Log cleanup removed %s notices older than %s days", removed, days)
        print(f"Removed {removed} notices not seen for {days} days.")
        return 0
    raise ValueError(f"Unknown log command: {args.log_command}")


def _cmd_visibility(args: argparse.Namespace, storage: SQLiteStorage) -> int:
    if args.visibility_command == "get":
        enabled = storage.visibility.get_state(args.user, default=settings.DEFAULT_USER_STATE)
        print(f"{args.user}: suppression {'on' if enabled else 'off'}")
        return 0
    if args.visibility_command == "set":
        build_admin(storage).set_visibility(args.actor, args.user, args.state == "on")
        print(f"{args.user}: suppression {args.state}")
        return 0
    raise ValueError(f"Unknown visibility command: {args.visibility_command}")


def _panel(storage: SQLiteStorage, actor: str) -> int:
    _print_banner()
    from frontend.app import AdminPanelApp

    AdminPanelApp(storage=storage, admin=build_admin(storage), actor=actor).run()
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="noticeguard")
    parser.add_argument("--db", help="SQLite database path (defaults to config.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    default_actor = _default_actor()
    subparsers = parser.add_subparsers(dest="command")

    capture = subparsers.add_parser("capture", help="Decide whether notices are shown or suppressed")
    capture.add_argument("text", nargs="*", help="Notice text; read one notice per line from stdin if omitted")
    capture.add_argument("--source", default="unknown", help="Originating component, e.g. MyClass::method")
    capture.add_argument("--user", default=None, help="Requesting user id")

    rules = subparsers.add_parser("rules", help="Manage allowlist rules")
    rules.add_argument("--actor", default=default_actor, help="Acting administrator id")
    rules_sub = rules.add_subparsers(dest="rules_command", required=True)
    rules_sub.add_parser("list", help="List rules in insertion order")
    add = rules_sub.add_parser("add", help="Add an exact or wildcard rule")
    add.add_argument("type", choices=[pattern.value for pattern in PatternType])
    add.add_argument("value", nargs="+")
    add.add_argument("--from", dest="source_fingerprint", default=None, help="Fingerprint of the source notice")
    allow = rules_sub.add_parser("allow", help="Create a rule from a logged notice")
    allow.add_argument("fingerprint")
    allow.add_argument("--type", default=PatternType.EXACT.value, choices=[pattern.value for pattern in PatternType])
    remove = rules_sub.add_parser("remove", help="Remove a rule by id, or by type and value")
    remove.add_argument("rule_id", type=int, nargs="?")
    remove.add_argument("--value", nargs="+", default=None, help="Rule value to remove instead of an id")
    remove.add_argument("--type", default=PatternType.EXACT.value, choices=[pattern.value for pattern in PatternType])
    for name in ("enable", "disable"):
        sub = rules_sub.add_parser(name, help=f"{name.capitalize()} a rule by id")
        sub.add_argument("rule_id", type=int)
    test = rules_sub.add_parser("test", help="Show which active rules match a text")
    test.add_argument("text", nargs="+")

    log = subparsers.add_parser("log", help="Inspect the notice log")
    log_sub = log.add_subparsers(dest="log_command", required=True)
    log_list = log_sub.add_parser("list", help="List notices, most recently seen first")
    log_list.add_argument("--limit", type=int, default=50)
    log_list.add_argument("--offset", type=int, default=0)
    show = log_sub.add_parser("show", help="Show one notice")
    show.add_argument("fingerprint")
    stats = log_sub.add_parser("stats", help="Summarize the notice log")
    stats.add_argument("--top", type=int, default=10)
    cleanup = log_sub.add_parser("cleanup", help="Delete notices not seen recently")
    cleanup.add_argument("--days", type=int, default=None)

    visibility = subparsers.add_parser("visibility", help="Per-user suppression switch")
    visibility.add_argument("--actor", default=default_actor, help="Acting administrator id")
    visibility_sub = visibility.add_subparsers(dest="visibility_command", required=True)
    get = visibility_sub.add_parser("get")
    get.add_argument("user")
    set_state = visibility_sub.add_parser("set")
    set_state.add_argument("user")
    set_state.add_argument("state", choices=["on", "off"])

    panel = subparsers.add_parser("panel", help="Launch the admin panel TUI")
    panel.add_argument("--actor", default=default_actor, help="Acting administrator id")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        storage = open_storage(args.db)
        if args.command == "capture":
            return _cmd_capture(args, storage)
        if args.command == "rules":
            return _cmd_rules(args, storage)
        if args.command == "log":
            return _cmd_log(args, storage)
        if args.command == "visibility":
            return _cmd_visibility(args, storage)
        if args.command == "panel":
            return _panel(storage, args.actor)
    except SuppressionError as exc:
        hint = " (may be retried)" if exc.retryable else ""
        print(f"error: {exc.kind.value}: {exc}{hint}", file=sys.stderr)
        return 1
    parser.error(f"unknown command {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
