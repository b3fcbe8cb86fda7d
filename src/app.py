"""Application entry point for the flagscope scanner."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.file_sinks import JsonlResultSink, LineLogWriter
from adapters.roblox_sources import RobloxSources
from adapters.run_reports import (
    SourceSummary,
    build_index_payload,
    build_summary_payload,
    ensure_target_dir,
    make_run_id,
    write_json,
)
from adapters.status_line import StatusLine
from adapters.verifier_client import HttpVerifier
from client import build_roblox_client, build_verifier_client
from core.errors import FlagscopeError, StreamError
from core.models import SourceDescriptor, SourceEntry
from core.processor import SourceProcessor
from core.rate_gate import RateGate
from core.streams import AsyncIteratorStream

NAME = "FLAGSCOPE"
FONT = "tarty-1"

RESULTS_FILE = "rotector"
USERS_FILE = "users"

LOGGER = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Environment values that must never reach a log line.
SECRET_ENV_VARS = ("COOKIE",)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Masks secret values (the Roblox cookie) in formatted records."""

    def __init__(self, secrets: list[str]) -> None:
        super().__init__(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "[redacted]")
        return message


def _secret_values() -> list[str]:
    load_dotenv()
    return [os.environ[name] for name in SECRET_ENV_VARS if os.environ.get(name)]


def _file_handler(file_cfg: dict) -> RotatingFileHandler:
    path = file_cfg.get("path", "logs/flagscope.log")
    if not os.path.isabs(path):
        path = os.path.join(settings.PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging(verbose: bool) -> None:
    config = settings.LOGGING or {}
    level = logging.DEBUG if verbose else getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        handlers.append(_file_handler(file_cfg))

    formatter = _RedactingFormatter(_secret_values())
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers)
    # httpx logs every request at INFO; keep that for verbose runs only.
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass(frozen=True)
class GroupTarget:
    id: str
    cap: Optional[int] = None


def parse_friend_ids(raw: str) -> list[str]:
    """Parse ``id[,id...]``; blank items are ignored."""

    ids: list[str] = []
    for part in raw.split(","):
        trimmed = part.strip()
        if not trimmed:
            continue
        if not trimmed.isdigit():
            raise argparse.ArgumentTypeError(f"Invalid Roblox user id: {trimmed}")
        ids.append(trimmed)
    return ids


def parse_group_spec(raw: str) -> GroupTarget:
    """Parse ``id[:cap]`` where cap is a positive member limit."""

    group_id, sep, cap_raw = raw.partition(":")
    group_id = group_id.strip()
    if not group_id.isdigit():
        raise argparse.ArgumentTypeError(f"Invalid Roblox group id: {group_id}")
    if not sep:
        return GroupTarget(id=group_id)
    try:
        cap = int(cap_raw)
    except ValueError:
        cap = 0
    if cap <= 0:
        raise argparse.ArgumentTypeError(f"Invalid member cap for group {group_id}: {cap_raw}")
    return GroupTarget(id=group_id, cap=cap)


async def _process_friend_source(
    friend_id: str,
    run_dir: str,
    run_id: str,
    sources: RobloxSources,
    processor: SourceProcessor,
    status: StatusLine,
) -> SourceSummary:
    source = SourceDescriptor(
        kind="friends",
        target_id=friend_id,
        label=f"friends:{friend_id}",
        metadata={"subjectUserId": friend_id},
    )
    dir_path, relative_dir = ensure_target_dir(run_dir, source.kind, friend_id)
    users_log = LineLogWriter(os.path.join(dir_path, USERS_FILE))
    sink = JsonlResultSink(os.path.join(dir_path, RESULTS_FILE), run_id, source)

    async def on_entry(entry: SourceEntry) -> None:
        await users_log.write(entry.identifier)

    status.update(f"{source.label} initializing...", force=True)
    try:
        stats = await processor.process(
            source,
            AsyncIteratorStream(sources.friends(friend_id)),
            sink,
            on_entry=on_entry,
            on_status=status.snapshot_hook(source.label),
        )
    finally:
        await users_log.close()
        await sink.close()

    status.done(f"{source.label} complete :: unique {stats.unique} / unsafe {stats.unsafe_matches}")

    files = {"index": "index.json", "users": USERS_FILE, "rotector": RESULTS_FILE}
    write_json(os.path.join(dir_path, "index.json"), build_index_payload(run_id, source, stats, files))
    return SourceSummary(source=source, stats=stats, index_file=os.path.join(relative_dir, "index.json"))


async def _process_group_source(
    group: GroupTarget,
    run_dir: str,
    run_id: str,
    sources: RobloxSources,
    processor: SourceProcessor,
    status: StatusLine,
) -> SourceSummary:
    source = SourceDescriptor(
        kind="group",
        target_id=group.id,
        label=f"group:{group.id}",
        metadata={"groupId": group.id, "cap": group.cap},
    )
    dir_path, relative_dir = ensure_target_dir(run_dir, source.kind, group.id)

    LOGGER.debug("[%s] streaming members%s", source.label, f" (cap {group.cap})" if group.cap else "")
    roles = await sources.group_roles(group.id)
    write_json(
        os.path.join(dir_path, "roles.json"),
        {
            "runId": run_id,
            "groupId": group.id,
            "roles": [role.to_payload() for role in roles],
        },
    )

    role_writers = {role.id: LineLogWriter(os.path.join(dir_path, str(role.id))) for role in roles}
    role_counts: dict[str, int] = {}
    sink = JsonlResultSink(os.path.join(dir_path, RESULTS_FILE), run_id, source)

    async def on_entry(entry: SourceEntry) -> None:
        writer = role_writers.get(entry.partition) if entry.partition is not None else None
        if writer is None:
            raise StreamError(f"Missing writer for roleset {entry.partition}")
        key = str(entry.partition)
        role_counts[key] = role_counts.get(key, 0) + 1
        await writer.write(entry.identifier)

    status.update(f"{source.label} initializing...", force=True)
    try:
        stats = await processor.process(
            source,
            AsyncIteratorStream(sources.group_members(group.id, roles), cap=group.cap),
            sink,
            on_entry=on_entry,
            on_status=status.snapshot_hook(source.label),
        )
    finally:
        for writer in role_writers.values():
            await writer.close()
        await sink.close()

    status.done(f"{source.label} complete :: unique {stats.unique} / unsafe {stats.unsafe_matches}")

    files = {
        "index": "index.json",
        "rotector": RESULTS_FILE,
        "roles": "roles.json",
        "roleFiles": role_counts or {str(role.id): 0 for role in roles},
    }
    write_json(os.path.join(dir_path, "index.json"), build_index_payload(run_id, source, stats, files))
    return SourceSummary(source=source, stats=stats, index_file=os.path.join(relative_dir, "index.json"))


async def _run_async(
    output_dir: str,
    friend_ids: list[str],
    groups: list[GroupTarget],
    status: StatusLine,
) -> str:
    run_id = make_run_id()
    run_dir = os.path.join(os.path.abspath(output_dir), run_id)
    os.makedirs(run_dir, exist_ok=True)

    gate = RateGate()
    backoff = settings.backoff_config()
    summaries: list[SourceSummary] = []

    roblox_http = build_roblox_client(settings.USER_AGENT, timeout_s=settings.HTTP_TIMEOUT_S)
    verifier_http = build_verifier_client(settings.USER_AGENT, timeout_s=settings.HTTP_TIMEOUT_S)
    async with roblox_http, verifier_http:
        sources = RobloxSources(roblox_http, backoff=backoff)
        verifier = HttpVerifier(
            verifier_http,
            gate,
            url=settings.VERIFIER_URL,
            backoff=backoff,
            rate_limit=settings.rate_limit_config(),
        )
        # One processor per run: its RunCache is shared by every source below.
        processor = SourceProcessor(verifier, settings.batch_config(), gate=gate)

        for friend_id in friend_ids:
            summaries.append(
                await _process_friend_source(friend_id, run_dir, run_id, sources, processor, status)
            )
        for group in groups:
            summaries.append(
                await _process_group_source(group, run_dir, run_id, sources, processor, status)
            )

    write_json(
        os.path.join(run_dir, "summary.json"),
        build_summary_payload(run_id, run_dir, summaries, unique_matched=len(processor.cache)),
    )
    status.log(f"Run complete. Wrote {len(summaries)} target folder(s) under {run_dir}")
    return run_dir


def _run(args: argparse.Namespace) -> None:
    _print_banner()
    _configure_logging(args.verbose)

    friend_ids = [friend_id for chunk in args.friends for friend_id in chunk]
    status = StatusLine(verbose=args.verbose)
    LOGGER.info("Starting flagscope: %s friend source(s), %s group(s)", len(friend_ids), len(args.groups))

    try:
        asyncio.run(_run_async(args.output, friend_ids, args.groups, status))
    except (FlagscopeError, RuntimeError, OSError) as exc:
        status.done()
        LOGGER.error("Run failed: %s", exc)
        raise SystemExit(1) from exc


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="flagscope")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Scan sources and verify every collected user")
    run_parser.add_argument("-o", "--output", "--out", required=True, help="Directory to write reports")
    run_parser.add_argument(
        "-f",
        "--friend",
        "--friends",
        dest="friends",
        action="append",
        type=parse_friend_ids,
        default=[],
        help="Roblox user id(s) whose friends are scraped (id[,id])",
    )
    run_parser.add_argument(
        "-g",
        "--group",
        dest="groups",
        action="append",
        type=parse_group_spec,
        default=[],
        help="Roblox group id to scrape, optional member cap (id[:cap])",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print detailed progress (disables the single-line status)",
    )

    args = parser.parse_args(argv)
    if not args.friends and not args.groups:
        parser.error("Provide at least one --friend or --group target")
    _run(args)


if __name__ == "__main__":
    main()
