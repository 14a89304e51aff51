"""Command-line interface for Mail Triage Agent.

This module provides the main entry point for the CLI application. ``run``
is meant to be invoked by a scheduler (cron, systemd timer, ...), one run at
a time.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import httpx
import structlog

from mail_triage_agent import __version__
from mail_triage_agent.agent import RunController, RunStatus
from mail_triage_agent.config import Settings, get_settings
from mail_triage_agent.context import ContextAggregator
from mail_triage_agent.exceptions import MailTriageError
from mail_triage_agent.gmail import GmailMailbox
from mail_triage_agent.llm import LLMGateway
from mail_triage_agent.models import Decision, MailMessage
from mail_triage_agent.notify import WebhookNotifier
from mail_triage_agent.state import SQLiteStateRepository, clear_watermark, get_watermark

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mail-triage", description="Mail Triage Agent")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite state database (default: settings state_db_path)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Triage mail received since the last run")

    subparsers.add_parser(
        "refresh-context",
        help="Rebuild the active context from the mailbox, ignoring the cache",
    )

    show_parser = subparsers.add_parser("show-context", help="Print the active context")
    show_parser.add_argument(
        "--refresh",
        action="store_true",
        help="Rebuild instead of using the cached context",
    )

    webhook_parser = subparsers.add_parser(
        "test-webhook",
        help="Send a sample notification to the configured webhook",
    )
    webhook_parser.add_argument(
        "--text",
        default="Test notification from mail-triage",
        help="Notification text to send",
    )

    watermark_parser = subparsers.add_parser("watermark", help="Inspect or reset the watermark")
    watermark_sub = watermark_parser.add_subparsers(dest="watermark_command", required=True)
    watermark_sub.add_parser("show", help="Print the stored watermark")
    watermark_sub.add_parser(
        "clear",
        help="Forget the watermark; the next run looks back default_watermark_hours",
    )

    return parser


@dataclass
class _Runtime:
    settings: Settings
    mailbox: GmailMailbox
    store: SQLiteStateRepository
    gateway: LLMGateway
    notifier: WebhookNotifier
    aggregator: ContextAggregator


def _open_store(settings: Settings, db_path: Path | None) -> SQLiteStateRepository:
    store = SQLiteStateRepository(
        db_path or settings.state_db_path,
        max_value_bytes=settings.state_max_value_bytes,
    )
    store.initialize()
    return store


@asynccontextmanager
async def _runtime(settings: Settings, db_path: Path | None) -> AsyncIterator[_Runtime]:
    store = _open_store(settings, db_path)

    mailbox = GmailMailbox(settings)
    await mailbox.authenticate()

    async with httpx.AsyncClient() as http_client:
        yield _Runtime(
            settings=settings,
            mailbox=mailbox,
            store=store,
            gateway=LLMGateway(settings, http_client=http_client),
            notifier=WebhookNotifier(settings, http_client=http_client),
            aggregator=ContextAggregator(mailbox, store, settings),
        )


async def _cmd_run(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with _runtime(settings, args.db) as rt:
        controller = RunController(
            settings=settings,
            mailbox=rt.mailbox,
            gateway=rt.gateway,
            store=rt.store,
            notifier=rt.notifier,
            context_aggregator=rt.aggregator,
        )
        summary = await controller.run_once()

    print(
        f"{summary.status.value}: {summary.threads} threads, {summary.decisions} decisions, "
        f"{summary.drafts} drafts (watermark {summary.watermark})"
    )
    return 1 if summary.status is RunStatus.ABORTED else 0


async def _cmd_context(args: argparse.Namespace, *, force_refresh: bool, show: bool) -> int:
    settings = get_settings()
    async with _runtime(settings, args.db) as rt:
        context = await rt.aggregator.build(force_refresh=force_refresh)

    if show:
        print("=== TRIAGE CONTEXT ===")
        print(context.triage_context or "(empty)")
        print("\n=== DRAFTING CONTEXT ===")
        print(context.drafting_context or "(empty)")
    else:
        print(
            f"Context rebuilt: triage {len(context.triage_context)} chars, "
            f"drafting {len(context.drafting_context)} chars"
        )
    return 0


async def _cmd_test_webhook(args: argparse.Namespace) -> int:
    settings = get_settings()
    notifier = WebhookNotifier(settings)
    if not notifier.enabled:
        print("Webhook URL is not configured")
        await notifier.aclose()
        return 1

    message = MailMessage(
        id="test-message",
        thread_id="test-thread",
        sender="Mail Triage <test@example.com>",
        subject="Webhook test",
        sent_at=datetime.now(timezone.utc),
    )
    decision = Decision(notify=True, notification_text=args.text, reason="Manual webhook test")
    try:
        ok = await notifier.notify(decision, message)
    finally:
        await notifier.aclose()

    print(f"Webhook ({settings.webhook_mode.value}) {'delivered' if ok else 'failed'}")
    return 0 if ok else 1


def _cmd_watermark(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = _open_store(settings, args.db)

    if args.watermark_command == "clear":
        clear_watermark(store)
        print("Watermark cleared")
        return 0

    watermark = get_watermark(store)
    if watermark is None:
        print(f"No watermark stored (next run looks back {settings.default_watermark_hours}h)")
    else:
        when = datetime.fromtimestamp(watermark, tz=timezone.utc).isoformat()
        print(f"{watermark}\t{when}")
    return 0


def _configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if settings.debug:
        level = logging.DEBUG
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Mail Triage Agent CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    _configure_logging(settings)

    logger.info("mail_triage_agent_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "run":
            return asyncio.run(_cmd_run(parsed))
        if parsed.command == "refresh-context":
            return asyncio.run(_cmd_context(parsed, force_refresh=True, show=False))
        if parsed.command == "show-context":
            return asyncio.run(_cmd_context(parsed, force_refresh=parsed.refresh, show=True))
        if parsed.command == "test-webhook":
            return asyncio.run(_cmd_test_webhook(parsed))
        if parsed.command == "watermark":
            return _cmd_watermark(parsed)
    except MailTriageError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
