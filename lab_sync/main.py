from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, Sequence

from dotenv import load_dotenv
from googleapiclient.errors import HttpError

from .config import load_config
from .errors import LabSyncError
from .firebase import FirebaseClient
from .google_sheets import GoogleSheetsClient
from .models import SyncSummary
from .pipeline import (
    SyncContext,
    color_slots,
    relink_ids,
    repopulate_labs,
    repopulate_requests,
    submit_request,
    submit_slots,
    sync_assignments,
    sync_requests,
    sync_slots,
)
from .push_id import PushIdGenerator


def _load_env_files(config_path: Path) -> None:
    """Load environment variables from .env files."""

    # Load default .env in current working directory if present
    load_dotenv(override=False)

    # Load .env placed next to the config file if it exists
    config_env = config_path.parent / ".env"
    if config_env.exists():
        load_dotenv(dotenv_path=config_env, override=False)


LOGGER = logging.getLogger("lab_sync")

COMMANDS: Dict[str, Callable[[SyncContext], SyncSummary]] = {
    "sync-requests": sync_requests,
    "relink": relink_ids,
    "repopulate": repopulate_requests,
    "sync-assignments": sync_assignments,
    "color-slots": color_slots,
    "sync-slots": sync_slots,
    "repopulate-labs": repopulate_labs,
}

# commands that act on a single sheet row
ROW_COMMANDS: Dict[str, Callable[[SyncContext, int], SyncSummary]] = {
    "submit": submit_request,
    "submit-slots": submit_slots,
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Synchronize lab requests and assignments between Google Sheets and Firebase"
    )
    parser.add_argument(
        "command",
        choices=[*COMMANDS, *ROW_COMMANDS],
        help="Operation to run",
    )
    parser.add_argument("--config", required=True, help="Path to the YAML configuration file")
    parser.add_argument(
        "--row",
        type=int,
        default=None,
        help="Sheet row number to send (required by 'submit' and 'submit-slots')",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute every change but write nothing to Firebase or Google Sheets",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)
    if args.command in ROW_COMMANDS and args.row is None:
        parser.error(f"'{args.command}' requires --row")
    return args


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config_path = Path(args.config).expanduser().resolve()
    _load_env_files(config_path)
    config = load_config(config_path)

    sheet = GoogleSheetsClient(config.sheets)
    slots_sheet = None
    if config.sheets.slots_spreadsheet_id:
        slots_sheet = GoogleSheetsClient(
            config.sheets, spreadsheet_id=config.sheets.slots_spreadsheet_id
        )
    labs_sheet = None
    if config.sheets.labs_spreadsheet_id:
        labs_sheet = GoogleSheetsClient(
            config.sheets, spreadsheet_id=config.sheets.labs_spreadsheet_id
        )
    ctx = SyncContext(
        config=config,
        store=FirebaseClient(config.firebase),
        sheet=sheet,
        generator=PushIdGenerator(),
        slots_sheet=slots_sheet,
        labs_sheet=labs_sheet,
        dry_run=args.dry_run,
    )

    LOGGER.info("Running %s%s", args.command, " (dry run)" if args.dry_run else "")
    try:
        if args.command in ROW_COMMANDS:
            summary = ROW_COMMANDS[args.command](ctx, args.row)
        else:
            summary = COMMANDS[args.command](ctx)
    except (LabSyncError, HttpError, ValueError) as exc:
        LOGGER.error("%s aborted: %s", args.command, exc)
        return 1

    LOGGER.info("Completed. %s", summary.describe())
    return 1 if summary.errors else 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
