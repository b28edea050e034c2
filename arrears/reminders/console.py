"""Command-line runner for overdue reminders.

Examples:
  # Preview customer reminders as of today
  arrears-reminders --snapshot data/snapshot.yaml

  # Send the management report through Textly
  arrears-reminders --snapshot data/snapshot.yaml --recipients management --send --channel textly

  # Dry run with a fixed reference date and a JSON report
  arrears-reminders --snapshot data/snapshot.json --date 2025-03-01 --send --channel dry_run --json
"""

import argparse
import json
import sys
from datetime import date

import yaml

from arrears.core.config import settings
from arrears.core.observability.logging import get_logger, init_logging
from arrears.integrations import CHANNELS

from .errors import InputError
from .playbooks import RECIPIENT_TYPES, ReminderContext, ReminderPlaybook
from .providers import LocalSnapshotProvider


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="arrears-reminders",
        description="Compute overdue installments and send reminders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1],
    )
    parser.add_argument("--snapshot", required=True, help="JSON or YAML snapshot with contracts and payments")
    parser.add_argument("--date", help="Reference date (ISO format: YYYY-MM-DD, default: today)")
    parser.add_argument(
        "--recipients",
        choices=RECIPIENT_TYPES,
        default="customers",
        help="Who receives messages (default: customers)",
    )
    parser.add_argument(
        "--send", action="store_true", help="Dispatch messages (default: preview only)"
    )
    parser.add_argument(
        "--channel",
        choices=CHANNELS,
        help=f"Messaging channel (default: {settings.REMINDER_CHANNEL})",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        help=f"Pause between sends in milliseconds (default: {settings.REMINDER_SEND_DELAY_MS})",
    )
    parser.add_argument("--run-id", help="Run ID for logs and transitions (default: auto-generated)")
    parser.add_argument(
        "--transition-log-dir",
        help="Write dispatch transitions as NDJSON under this directory (default: TRANSITION_LOG_DIR)",
    )
    parser.add_argument("--json", action="store_true", help="Print the run result as JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def _print_preview(result) -> None:
    for target in result.targets:
        print(f"--- {target.display_name} ({target.id}) ---")
        print(target.message)
        print()
    for key in result.unresolved:
        print(f"! no phone number for {key}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        0 on success, 1 when the run failed or some sends failed, 2 on usage errors
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    init_logging("DEBUG" if args.verbose else None)
    logger = get_logger(__name__)

    try:
        reference = date.fromisoformat(args.date) if args.date else date.today()
    except ValueError:
        parser.error(f"invalid --date: {args.date}")

    provider = LocalSnapshotProvider(args.snapshot)

    try:
        context = ReminderContext(
            reference_date=reference,
            source=provider,
            invoice_source=provider,
            directory=provider.load_directory(),
            management_contacts=provider.load_management_contacts(),
            recipients=args.recipients,
            mode="send" if args.send else "preview",
            channel_name=args.channel,
            delay=args.delay_ms / 1000.0 if args.delay_ms is not None else None,
            run_id=args.run_id,
            transition_log_dir=args.transition_log_dir,
        )
        result = ReminderPlaybook().run_once(context)
    except (InputError, OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Reminder run rejected", extra={"error": str(e)})
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str))
    elif result.mode == "preview":
        _print_preview(result)

    print(result.summary(), file=sys.stderr)
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    for error in result.errors:
        print(f"error: {error}", file=sys.stderr)

    if not result.success or (result.dispatch and result.dispatch.error_count):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
