"""Entry point that syncs regulatory portal messages into the local archive."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from datetime import UTC, datetime
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from portal_sync.config import Settings
from portal_sync.crypto import CommandLineCrypto
from portal_sync.errors import (
    ApiRequestError,
    NothingReceivedError,
    OperationCancelled,
    TaskError,
    TerminalStatusError,
    TransportError,
    UnsafeFilterError,
)
from portal_sync.extraction import ExtractionPipeline
from portal_sync.filters import MessagesFilter
from portal_sync.notifications import build_notifier
from portal_sync.pipeline import MessagePipeline
from portal_sync.poller import StatusPoller
from portal_sync.portal_client import PortalClient
from portal_sync.utils import ensure_utc

load_dotenv()

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_TASK_ERROR = 2
EXIT_API_ERROR = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync regulatory portal messages to a local archive.")
    commands = parser.add_subparsers(dest="command", required=True)

    load = commands.add_parser("load", help="Download messages and extract their files")
    load.add_argument("id", nargs="?", help="Load a single message by id")
    add_filter_arguments(load)

    listing = commands.add_parser("list", help="Print the messages a filter selects")
    add_filter_arguments(listing)

    clean = commands.add_parser("clean", help="Delete the messages a filter selects from the portal")
    add_filter_arguments(clean)

    status = commands.add_parser("status", help="Wait until an outbound message is registered")
    status.add_argument("id", help="Message id")
    status.add_argument("--minutes", type=int, help="Give up after N minutes (default POLL_MINUTES)")
    return parser


def add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--task", help="Task number or name, comma-separated for several")
    parser.add_argument("--day", type=int, help="Messages of exactly N days ago")
    parser.add_argument("--days", type=int, help="Messages of the last N days")
    parser.add_argument("--before", type=int, help="Messages older than N days")
    parser.add_argument("--min-date", type=parse_datetime, help="ISO8601 lower bound")
    parser.add_argument("--max-date", type=parse_datetime, help="ISO8601 upper bound")
    parser.add_argument("--min-size", type=int, help="Minimal total size in bytes")
    parser.add_argument("--max-size", type=int, help="Maximal total size in bytes")
    parser.add_argument("--inbox", action="store_true", help="Only inbound messages")
    parser.add_argument("--outbox", action="store_true", help="Only outbound messages")
    parser.add_argument("--status", help="Only messages in this status")
    parser.add_argument("--page", type=int, help="Start from this page")


def parse_datetime(value: str) -> datetime:
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid ISO timestamp: {value}") from exc


def filter_from_args(args: argparse.Namespace) -> MessagesFilter:
    return MessagesFilter.from_criteria(
        args.task,
        before=args.before,
        days=args.days,
        day=args.day,
        min_date_time=args.min_date,
        max_date_time=args.max_date,
        min_size=args.min_size,
        max_size=args.max_size,
        inbox=args.inbox,
        outbox=args.outbox,
        status=args.status,
        page=args.page,
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def run(args: argparse.Namespace, settings: Settings, cancel: threading.Event) -> int:
    client = PortalClient.from_settings(settings, cancel=cancel)

    if args.command == "status":
        poller = StatusPoller(client, settings.poll_interval, settings.poll_minutes * 60)
        minutes = args.minutes if args.minutes is not None else settings.poll_minutes
        message = poller.wait(args.id, timeout=minutes * 60, cancel=cancel)
        print(f"{message.message_id} {message.status} {message.reg_number or ''}".rstrip())
        return EXIT_OK if message.accepted else EXIT_TASK_ERROR

    messages_filter = filter_from_args(args)

    if args.command == "list":
        for message in client.iter_messages(messages_filter):
            created = message.creation_date.astimezone(UTC).strftime("%Y-%m-%d %H:%M")
            print(f"{created} {message.message_id} {message.type} {message.task_name} {message.status}")
        return EXIT_OK

    crypto = CommandLineCrypto.from_settings(settings)
    pipeline = MessagePipeline.from_settings(
        settings, client, ExtractionPipeline(client, crypto), build_notifier(settings)
    )

    if args.command == "clean":
        result = pipeline.delete_filtered(messages_filter)
        if not result.ok:
            logging.error("Clean-up incomplete: %s", result.error.error_message)
            return EXIT_API_ERROR
        logging.info("Deleted %s messages", result.data)
        return EXIT_OK

    if args.id:
        outcome = pipeline.process_one(args.id)
        logging.info("Message %s: %s %s", args.id, outcome.kind, outcome.detail)
        return EXIT_TASK_ERROR if outcome.failed else EXIT_OK

    summary = pipeline.process_filtered(
        messages_filter, notify_per_message=settings.notify_mode == "immediate"
    )
    return EXIT_OK if summary.errors == 0 else EXIT_TASK_ERROR


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)

    cancel = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: cancel.set())

    try:
        return run(args, settings, cancel)
    except (TaskError, UnsafeFilterError, TerminalStatusError, NothingReceivedError) as exc:
        logging.error("%s", exc)
        return EXIT_TASK_ERROR
    except (ApiRequestError, TransportError) as exc:
        logging.error("Portal request failed: %s", exc)
        return EXIT_API_ERROR
    except (OperationCancelled, KeyboardInterrupt):
        logging.warning("Cancelled")
        return EXIT_UNEXPECTED
    except Exception:
        logging.exception("Unexpected failure")
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    sys.exit(main())
