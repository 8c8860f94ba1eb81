"""Command-line entry point for Inbox Triage."""

from __future__ import annotations

import argparse
from pathlib import Path

from .core import AppSettings, MailError, configure_logging, load_app_settings
from .core.models import CleanupReport, FetchReport, MessageStatus, StoredMessage
from .intelligence import PENDING_BATCH_SIZE, AnalysisError, AutoReplyWorkflow
from .mailbox import GMAIL_CATEGORY_MAP
from .mailbox.search import ALL_MESSAGES
from .service import MailboxService
from .storage import SqliteMessageRepository

COMMANDS = [
    "info",
    "verify",
    "fetch",
    "cleanup",
    "messages",
    "show",
    "draft",
    "reply",
    "set-status",
    "delete",
    "pending",
    "stats",
    "test-email",
]
RECORD_COMMANDS = {"show", "draft", "reply", "set-status", "delete"}


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Inbox Triage mailbox assistant")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=COMMANDS,
        help="Operation to execute.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum messages to fetch, list or process (default depends on command).",
    )
    parser.add_argument(
        "--all",
        dest="fetch_all",
        action="store_true",
        help="Fetch every message instead of unseen ones only.",
    )
    parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        choices=sorted(GMAIL_CATEGORY_MAP),
        default=None,
        help="Category to clean up; repeat for several (default: configured list).",
    )
    parser.add_argument(
        "--status",
        choices=[status.value for status in MessageStatus],
        default=None,
        help="Status filter for messages, or the new status for set-status.",
    )
    parser.add_argument(
        "--id",
        dest="record_id",
        type=int,
        default=None,
        help="Stored message id for show, draft, reply, set-status and delete.",
    )
    parser.add_argument(
        "--body",
        default=None,
        help="Reply text for the reply command.",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit status."""
    # pylint: disable=too-many-return-statements,too-many-branches
    command = args.command
    if command == "info":
        print("Inbox Triage is ready. Configure IMAP credentials to get started.")
        print(f"IMAP host: {settings.imap.host}:{settings.imap.port}")
        print(f"Account: {settings.imap.username or '(not configured)'}")
        print(f"Database path: {settings.storage.db_path}")
        print(f"Cleanup categories: {', '.join(settings.cleanup.categories)}")
        return 0

    usage_error = _check_options(args)
    if usage_error:
        print(usage_error)
        return 2

    with SqliteMessageRepository(settings.storage) as repository:
        service = MailboxService(settings, repository)
        try:
            if command == "verify":
                credentials = service.configured_credentials()
                service.verify_connection(credentials)
                print("IMAP connection successful.")
            elif command == "fetch":
                _run_fetch(service, settings, repository, args)
            elif command == "cleanup":
                _print_cleanup(
                    service.cleanup_by_category(
                        service.configured_credentials(), args.categories
                    )
                )
            elif command == "messages":
                _run_messages(service, repository, args)
            elif command == "pending":
                return _run_pending(service, settings, repository, args)
            elif command == "stats":
                _run_stats(service, repository)
            elif command == "test-email":
                address = service.configured_credentials().address
                receipt = _build_workflow(settings, repository).send_test_email(address)
                print(f"Test email sent to {address} ({receipt.message_id}).")
            else:
                return _run_record_command(service, settings, repository, args)
        except (MailError, AnalysisError) as exc:
            print(f"{command.capitalize()} failed: {exc}")
            hint = getattr(exc, "hint", None)
            if hint:
                print(f"Hint: {hint}")
            return 1
    return 0


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


def _build_workflow(
    settings: AppSettings, repository: SqliteMessageRepository
) -> AutoReplyWorkflow:
    return AutoReplyWorkflow.from_settings(settings, repository)


def _check_options(args: argparse.Namespace) -> str | None:
    if args.command in RECORD_COMMANDS and args.record_id is None:
        return f"--id is required for {args.command}"
    if args.command == "reply" and not args.body:
        return "--body is required for reply"
    if args.command == "set-status" and not args.status:
        return "--status is required for set-status"
    return None


def _run_fetch(
    service: MailboxService,
    settings: AppSettings,
    repository: SqliteMessageRepository,
    args: argparse.Namespace,
) -> None:
    """Fetch new mail, then auto-reply when the agent is switched on."""
    credentials = service.configured_credentials()
    report = service.fetch_new_mail(
        credentials,
        limit=args.limit,
        search_criteria=[ALL_MESSAGES] if args.fetch_all else None,
    )
    _print_fetch(report)

    workflow = _build_workflow(settings, repository)
    if workflow.active:
        outcome = workflow.process_pending(
            credentials.owner, limit=max(PENDING_BATCH_SIZE, len(report.stored))
        )
        if outcome.processed:
            print(
                f"Auto-replied to {outcome.replied} message(s), "
                f"{outcome.failed} failed."
            )


def _run_pending(
    service: MailboxService,
    settings: AppSettings,
    repository: SqliteMessageRepository,
    args: argparse.Namespace,
) -> int:
    """Reply to messages left pending by earlier runs."""
    workflow = _build_workflow(settings, repository)
    if not workflow.active:
        print("Auto-reply agent is not enabled.")
        return 1
    owner = service.configured_credentials().owner
    outcome = workflow.process_pending(owner, limit=args.limit or PENDING_BATCH_SIZE)
    print(
        f"Processed {outcome.processed} pending message(s): "
        f"{outcome.replied} replied, {outcome.failed} failed."
    )
    return 0


def _run_messages(
    service: MailboxService,
    repository: SqliteMessageRepository,
    args: argparse.Namespace,
) -> None:
    """List stored messages for the configured account."""
    owner = service.configured_credentials().owner
    status = MessageStatus(args.status) if args.status else None
    records = repository.list_messages(owner, status=status, limit=args.limit or 20)
    if not records:
        print("No stored messages.")
        return
    for record in records:
        received = (
            record.received_at.strftime("%Y-%m-%d %H:%M") if record.received_at else "-"
        )
        print(
            f"#{record.id} [{record.status.value}] {received} "
            f"{record.sender}: {record.subject}"
        )


def _run_stats(service: MailboxService, repository: SqliteMessageRepository) -> None:
    owner = service.configured_credentials().owner
    print(f"Total messages: {repository.count_by_owner(owner)}")
    for status, count in repository.status_counts(owner).items():
        print(f"  {status}: {count}")
    categories = repository.category_counts(owner)
    if categories:
        print("Categories:")
        for category, count in categories.items():
            print(f"  {category}: {count}")


def _run_record_command(
    service: MailboxService,
    settings: AppSettings,
    repository: SqliteMessageRepository,
    args: argparse.Namespace,
) -> int:
    """Handle the commands that act on one stored message."""
    owner = service.configured_credentials().owner
    if args.command == "delete":
        if not repository.delete(args.record_id, owner_id=owner):
            print(f"Message {args.record_id} not found.")
            return 1
        print(f"Deleted message {args.record_id}.")
        return 0

    record = repository.get(args.record_id, owner_id=owner)
    if record is None:
        print(f"Message {args.record_id} not found.")
        return 1

    if args.command == "show":
        _print_message(record)
    elif args.command == "set-status":
        record.status = MessageStatus(args.status)
        repository.update(record)
        print(f"Message {record.id} marked {record.status.value}.")
    elif args.command == "draft":
        print(_build_workflow(settings, repository).draft_for(record))
    elif args.command == "reply":
        _build_workflow(settings, repository).reply_to(record, args.body)
        print(f"Reply sent for message {record.id}.")
    return 0


def _print_message(record: StoredMessage) -> None:
    print(f"Message #{record.id} [{record.status.value}]")
    print(f"From: {record.sender}")
    print(f"To: {record.recipient}")
    print(f"Subject: {record.subject}")
    if record.category or record.sentiment:
        print(f"Category: {record.category or '-'}  Sentiment: {record.sentiment or '-'}")
    print()
    print(record.body)
    if record.ai_response:
        print()
        print("Reply:")
        print(record.ai_response)


def _print_fetch(report: FetchReport) -> None:
    print(
        f"Stored {len(report.stored)} new message(s) from {report.folder} "
        f"({report.matched} matched, {report.duplicates} already known, "
        f"{report.failures} failed)."
    )
    for record in report.stored:
        print(f"  {record.sender}: {record.subject}")


def _print_cleanup(report: CleanupReport) -> None:
    for category, count in report.deleted_counts.items():
        print(f"{category}: {count} deleted")
    print(f"Total deleted: {report.total_deleted}")
    if report.interrupted:
        print(f"Cleanup stopped early: {report.interrupted}")


if __name__ == "__main__":  # pragma: no cover
    main()
