#!/usr/bin/env python3
"""Bulk-delete entities and relations from a Geo space.

Usage:
    spacedrain --dry-run
    spacedrain --space-id <id> --dao-address 0x... --all --yes

Examples:
    # Preview what a pass would delete from your personal space
    spacedrain --dry-run

    # Cheap preview from totalCount only
    spacedrain --dry-run --count-only

    # Delete the first 500 items of one type
    spacedrain --type 7ed45f2bc48b419e8e4664d5ff680b0d --total-limit 500

    # Drain a DAO space through proposals, 50k items per pass
    spacedrain --space-id <id> --dao-address 0x... --all --yes

    # Clear everything and rename the space afterwards
    spacedrain --all --yes --rename "Scratch space"

The writer backend is loaded from --writer or SPACEDRAIN_WRITER as
'module.path:ClassName' (or a registered name).
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from spacedrain.config import (
    DEFAULT_BATCH_SIZE,
    DRAIN_CHUNK_SIZE,
    DrainConfig,
    Settings,
)
from spacedrain.connectors.base import (
    ConnectorError,
    EnumerationError,
    SpaceWriter,
    WriterConfigurationError,
)
from spacedrain.connectors.graphql import GeoGraphQLClient
from spacedrain.models.batch import BatchPlan
from spacedrain.models.progress import DrainResult, StopReason
from spacedrain.services import ProgressRecorder, ResumableRunLoop
from spacedrain.session import load_writer, open_session

logger = logging.getLogger(__name__)


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"


def colorize(text: str, color: str) -> str:
    """Apply ANSI color to text."""
    return f"{color}{text}{Colors.RESET}"


def out(text: str = "") -> None:
    """Print with immediate flush for non-TTY environments."""
    print(text, flush=True)


def format_ms(ms: float) -> str:
    """Format a duration as '1h 2m 3s', '2m 3s' or '3s'."""
    s = int(ms // 1000)
    m = s // 60
    h = m // 60
    if h > 0:
        return f"{h}h {m % 60}m {s % 60}s"
    if m > 0:
        return f"{m}m {s % 60}s"
    return f"{s}s"


def format_counts(counts: dict[str, int] | None) -> str:
    if counts is None:
        return "unknown"
    return f"{counts['entities']} entities, {counts['relations']} relations"


def print_event(event_type: str, data: dict[str, Any]) -> None:
    """Print a run loop event to the console with formatting."""
    timestamp = colorize(f"[{datetime.now().strftime('%H:%M:%S')}] ", Colors.DIM)

    if event_type == "pass_start":
        out()
        out(timestamp + colorize(f"=== Pass {data['pass']} ===", Colors.BOLD))
        out(colorize(f"         Before: {format_counts(data['counts_before'])}", Colors.DIM))

    elif event_type == "plan":
        out(timestamp + colorize(
            f"Planned {data['relations']} relations + {data['entities']} entities "
            f"across {data['batches']} batches (batch size {data['batch_size']})",
            Colors.CYAN,
        ))
        if data["skipped_protected"]:
            out(colorize(f"         Skipped {data['skipped_protected']} account entities", Colors.DIM))
        if data["filtered_out"]:
            out(colorize(f"         Filtered out {data['filtered_out']} entities by type", Colors.DIM))
        out(colorize(f"         Estimated ops: {data['estimated_ops']}", Colors.DIM))

    elif event_type == "nothing_to_delete":
        out(timestamp + colorize("Nothing to delete.", Colors.GREEN))

    elif event_type == "aborted":
        out(timestamp + colorize("Aborted.", Colors.YELLOW))

    elif event_type == "author":
        action = "Creating new" if data["created"] else "Reusing existing"
        out(timestamp + colorize(f"{action} account entity: {data['author_id']}", Colors.DIM))

    elif event_type == "batch_start":
        note = " (+ account creation)" if data["creates_author"] else ""
        out()
        out(timestamp + colorize(f"Batch {data['batch']}/{data['total']}", Colors.BOLD) +
            colorize(
                f": {data['relations']} relations, {data['entities']} entities{note}",
                Colors.DIM,
            ))

    elif event_type == "batch_complete":
        status = data["status"]
        if status == "failed":
            out(colorize(f"         BATCH FAILED: {data['error']}", Colors.RED))
        elif status == "pending_threshold":
            out(colorize(
                f"         proposal {data['proposal_id']} pending additional votes",
                Colors.YELLOW,
            ))
        else:
            label = f"proposal {data['proposal_id']} executed" if data["proposal_id"] else "published"
            out(colorize(f"         {label}", Colors.GREEN))
        for tx in data["tx_hashes"]:
            out(colorize(f"         tx: {tx}", Colors.DIM))
        out(colorize(
            f"         batch time: {format_ms(data['elapsed_ms'])} | avg: {format_ms(data['avg_ms'])} "
            f"| ETA: {format_ms(data['eta_ms'])} ({data['remaining']} remaining)",
            Colors.DIM,
        ))

    elif event_type == "items_remain":
        out(timestamp + colorize(
            f"Items remain ({format_counts(data['counts'])}). "
            "The read replica may lag; re-run to continue.",
            Colors.YELLOW,
        ))

    elif event_type == "verify_failed":
        out(timestamp + colorize(f"Post-verification failed: {data['error']}", Colors.YELLOW))

    elif event_type == "pass_complete":
        out()
        out(timestamp + colorize(f"=== Pass {data['pass']} complete ===", Colors.GREEN + Colors.BOLD))
        out(colorize(f"         Before: {format_counts(data['counts_before'])}", Colors.GREEN))
        out(colorize(f"         After:  {format_counts(data['counts_after'])}", Colors.GREEN))
        if data["removed"] is not None:
            out(colorize(
                f"         Removed: {data['removed']} (ops attempted: {data['ops_attempted']})",
                Colors.GREEN,
            ))
        out(colorize(
            f"         Batches: {data['batches_completed']} completed "
            f"({data['batches_pending']} pending votes), {data['batches_failed']} failed",
            Colors.GREEN,
        ))
        out(colorize(f"         Elapsed: {format_ms(data['elapsed_ms'])}", Colors.GREEN))
        if data["throughput_per_min"]:
            out(colorize(f"         Throughput: {data['throughput_per_min']:.1f} items/min", Colors.GREEN))

    elif event_type == "drain_continue":
        out(timestamp + colorize(f"{data['remaining']} objects remain, starting next pass", Colors.MAGENTA))

    elif event_type == "preview":
        kind = "COUNT-ONLY DRY RUN" if data["count_only"] else "DRY RUN"
        out()
        out(colorize(f"=== {kind} Summary ===", Colors.BOLD))
        out(f"  Space:               {format_counts(data['counts'])}")
        out(f"  Relations to delete: {data['relations']}")
        out(f"  Entities to delete:  {data['entities']}")
        out(f"  Estimated ops:       {data['estimated_ops']}")
        out(f"  Batches:             ~{data['batch_count']} (batch size {data['batch_size']})")
        if data["rename_to"]:
            out(f"  Space entity rename: \"{data['rename_to']}\" (1 additional batch)")
        out(colorize("No on-chain actions performed.", Colors.DIM))

    elif event_type == "rename_complete":
        if data["error"]:
            out(timestamp + colorize(f"Rename failed: {data['error']}", Colors.RED))
        else:
            out(timestamp + colorize(f"Renamed space to \"{data['name']}\" ({data['status']})", Colors.GREEN))


def print_summary(result: DrainResult) -> None:
    if result.stop_reason in (StopReason.DRY_RUN, StopReason.SINGLE_PASS) and len(result.passes) <= 1:
        return
    out()
    out(colorize("=== Drain complete ===", Colors.BOLD))
    out(f"  Stop reason:      {result.stop_reason.value}")
    out(f"  Passes:           {len(result.passes)}")
    out(f"  Ops attempted:    {result.ops_attempted}")
    out(f"  Batches:          {result.batches_completed} completed "
        f"({result.batches_pending} pending), {result.batches_failed} failed")
    out(f"  Total time:       {format_ms(result.elapsed_ms)}")
    if result.elapsed_ms > 0 and result.ops_attempted > 0:
        out(f"  Throughput:       {result.ops_attempted / (result.elapsed_ms / 60_000):.1f} items/min")
    if result.stop_reason == StopReason.STALLED:
        out(colorize("  Remaining count stopped decreasing; pending proposals may need more votes.",
                     Colors.YELLOW))


async def prompt_confirm(plan: BatchPlan) -> bool:
    """Ask the operator before a large pass."""
    out()
    out(f"   About to delete {plan.item_count:,} items "
        f"({plan.relations} relations + {plan.entities} entities)")
    out(f"   This will create ~{len(plan.batches)} edits.")
    answer = await asyncio.to_thread(input, "   Proceed? (y/N) ")
    return answer.strip().lower() in ("y", "yes")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spacedrain",
        description="Bulk-delete entities and relations from a Geo space",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    target = parser.add_argument_group("target")
    target.add_argument(
        "--space-id",
        help="Space ID (default: the operator's personal space)",
    )
    target.add_argument(
        "--dao-address",
        help="DAO space contract address; selects the propose/vote/execute path",
    )
    target.add_argument(
        "--caller-space-id",
        help="Operator's personal space used to vote (default: resolved from the wallet)",
    )
    target.add_argument(
        "--personal",
        action="store_true",
        help="Target the personal space (the default when --dao-address is absent)",
    )

    mode = parser.add_argument_group("mode")
    mode.add_argument("--dry-run", action="store_true", help="Preview without writing")
    mode.add_argument(
        "--count-only",
        action="store_true",
        help="With --dry-run: use totalCount only, ignoring filters and limits",
    )
    mode.add_argument("--all", action="store_true", help="Loop passes until the space is empty")
    mode.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")

    sizing = parser.add_argument_group("sizing")
    sizing.add_argument("--limit", type=int, help="At most N entities and N relations")
    sizing.add_argument("--total-limit", type=int, help="At most N items combined, relations first")
    sizing.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Deletions per edit (default: {DEFAULT_BATCH_SIZE})",
    )
    sizing.add_argument(
        "--chunk-size",
        type=int,
        default=DRAIN_CHUNK_SIZE,
        help=f"With --all: items per pass (default: {DRAIN_CHUNK_SIZE})",
    )
    sizing.add_argument(
        "--batch-delay",
        type=float,
        help="Seconds between batches (default: 2 personal, 4 DAO)",
    )

    filters = parser.add_argument_group("filters")
    filters.add_argument("--type", dest="type_filter", help="Only delete entities of this type ID")
    filters.add_argument("--exclude-type", help="Skip entities of this type ID")
    filters.add_argument(
        "--include-accounts",
        action="store_true",
        help="Also delete account entities (personal space only)",
    )

    parser.add_argument("--rename", dest="rename_to", help="Rename the space entity afterwards")
    parser.add_argument("--writer", help="Writer backend: 'module.path:ClassName' or registered name")
    parser.add_argument("--graphql-url", help="Read API endpoint (default: GEO_GRAPHQL_URL)")
    parser.add_argument("--progress-log", help="JSONL progress log path")
    parser.add_argument("--env-file", help="Load environment variables from this file")
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress streaming output, only show the final summary",
    )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


async def main(
    argv: list[str] | None = None,
    *,
    writer: SpaceWriter | None = None,
    reader: GeoGraphQLClient | None = None,
) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    settings = Settings.from_env(args.env_file)
    if args.graphql_url:
        settings.graphql_url = args.graphql_url
    configure_logging(settings.log_level)

    if args.personal and args.dao_address:
        out(colorize("Error: --personal and --dao-address are mutually exclusive", Colors.RED))
        return 1
    if args.count_only and not args.dry_run:
        out(colorize("Error: --count-only requires --dry-run", Colors.RED))
        return 1

    try:
        config = DrainConfig(
            batch_size=args.batch_size,
            limit=args.limit,
            total_limit=args.total_limit,
            drain=args.all,
            chunk_size=args.chunk_size,
            dry_run=args.dry_run,
            count_only=args.count_only,
            skip_confirm=args.yes,
            type_filter=args.type_filter,
            exclude_type=args.exclude_type,
            include_accounts=args.include_accounts,
            rename_to=args.rename_to,
            batch_delay=args.batch_delay,
            progress_log=args.progress_log,
        )
    except ValidationError as e:
        out(colorize(f"Error: invalid options: {e}", Colors.RED))
        return 1

    if config.count_only and config.has_filters:
        out(colorize("Warning: --count-only ignores --type, --exclude-type and limits", Colors.YELLOW))

    try:
        writer = writer or load_writer(settings, args.writer)
        session = await open_session(
            settings,
            writer,
            space_id=args.space_id,
            dao_address=args.dao_address,
            caller_space_id=args.caller_space_id,
            reader=reader,
        )
    except (ConnectorError, NotImplementedError, ValidationError) as e:
        out(colorize(f"Error: {e}", Colors.RED))
        if writer is not None:
            await writer.aclose()
        return 1

    target = session.target
    if config.include_accounts and target.is_governed:
        out(colorize("Warning: --include-accounts is ignored for DAO spaces", Colors.YELLOW))

    recorder = None
    if not config.dry_run:
        recorder = ProgressRecorder(
            config.progress_log_for(target.is_governed, settings.progress_dir)
        )

    out(colorize(f"=== Clear {target.label} ===", Colors.BOLD))
    out(colorize(f"Space: {target.space_id}", Colors.DIM))
    if target.is_governed:
        out(colorize(f"DAO address: {target.dao_address}", Colors.DIM))
        out(colorize(f"Voting from: {target.caller_space_id}", Colors.DIM))
    out(colorize(f"Operator: {session.wallet_address}", Colors.DIM))
    mode_label = "drain" if config.drain else "single pass"
    if config.dry_run:
        mode_label = "dry run"
    out(colorize(f"Mode: {mode_label}, batch size {config.batch_size}", Colors.DIM))
    if recorder:
        out(colorize(f"Progress log: {recorder.path}", Colors.DIM))

    loop = ResumableRunLoop(
        session,
        config,
        recorder=recorder,
        confirm=None if config.skip_confirm else prompt_confirm,
        on_event=None if args.quiet else print_event,
    )

    async with session:
        try:
            result = await loop.run()
        except EnumerationError as e:
            out(colorize(f"Enumeration failed: {e}", Colors.RED))
            finished = loop.finished_passes
            out(colorize(
                f"Pass {len(finished) + 1} was aborted before writing; re-run to continue.",
                Colors.DIM,
            ))
            if finished:
                print_summary(DrainResult(
                    passes=finished,
                    stop_reason=StopReason.ABORTED,
                    elapsed_ms=sum(p.elapsed_ms for p in finished),
                ))
            return 1
        except KeyboardInterrupt:
            out(colorize("\nCancelled by user", Colors.YELLOW))
            return 130

    print_summary(result)
    if args.quiet and result.last is not None:
        last = result.last
        out(f"Stop reason: {result.stop_reason.value}, ops attempted: {result.ops_attempted}, "
            f"failed batches: {result.batches_failed}, "
            f"remaining: {last.counts_after.total if last.counts_after else 'unknown'}")
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        out(colorize("\nCancelled by user", Colors.YELLOW))
        sys.exit(130)


if __name__ == "__main__":
    run()
