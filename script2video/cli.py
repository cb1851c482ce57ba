"""
script2video command line interface.

Usage:
    script2video compose timeline.json --title "My video" [--output out.mp4]
    script2video replay <history-id> [--output out.mp4]
    script2video history list | show <id> | delete <id>
    script2video cache stats | evict [--max-bytes N] [--older-than-hours H] | clear
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from script2video.core.config import Settings, get_settings
from script2video.core.database import Database
from script2video.core.errors import Script2VideoError
from script2video.core.logging import configure_logging
from script2video.schemas.timeline import ScriptTimeline
from script2video.services.history_store import VideoHistoryStore
from script2video.services.media_cache import MediaCache
from script2video.services.pipeline import build_pipeline

logger = logging.getLogger(__name__)


def _output_provider(output: Optional[str]):
    """Save-location provider for --output; None leaves only the anonymous strategy."""
    if not output:
        return None

    async def provide(suggested_filename: str) -> Path:
        return Path(output).expanduser().resolve()

    return provide


async def _open_database(settings: Settings) -> Database:
    database = Database(settings.database_url, echo=settings.debug)
    await database.init_schema()
    return database


# ============================================================================
# Commands
# ============================================================================


async def cmd_compose(settings: Settings, timeline_path: str, title: Optional[str], output: Optional[str],
                      store_history: bool) -> int:
    payload = Path(timeline_path).read_bytes()
    timeline = ScriptTimeline.from_payload(payload)
    title = title or Path(timeline_path).stem

    pipeline = await build_pipeline(settings, save_location=_output_provider(output))
    try:
        result = await pipeline.run(timeline, title, store_history=store_history)
    finally:
        await pipeline.aclose()

    for diagnostic in result.compose.diagnostics:
        print(f"  WARNING [{diagnostic.kind}]: {diagnostic.message}", file=sys.stderr)
    print(f"OK: {result.artifact.path} ({result.artifact.strategy}, {result.artifact.size_bytes} bytes)")
    if result.history_id:
        print(f"history id: {result.history_id}")
    return 0


async def cmd_replay(settings: Settings, record_id: str, output: Optional[str]) -> int:
    pipeline = await build_pipeline(settings, save_location=_output_provider(output))
    try:
        result = await pipeline.replay(record_id)
    finally:
        await pipeline.aclose()

    print(f"OK: {result.artifact.path} ({result.artifact.strategy}, {result.artifact.size_bytes} bytes)")
    return 0


async def cmd_history(settings: Settings, action: str, record_id: Optional[str]) -> int:
    database = await _open_database(settings)
    store = VideoHistoryStore(database)
    try:
        if action == "list":
            for record in await store.list():
                print(f"{record.id}  {record.created_at:%Y-%m-%d %H:%M:%S}  {record.title}")
        elif action == "show":
            record = await store.get(record_id)
            if record is None:
                print(f"ERROR: history record not found: {record_id}", file=sys.stderr)
                return 1
            print(json.dumps(record.model_dump(mode="json", by_alias=True), indent=2))
        elif action == "delete":
            if not await store.delete(record_id):
                print(f"ERROR: history record not found: {record_id}", file=sys.stderr)
                return 1
            print(f"OK: deleted {record_id}")
        await store.drain()
    finally:
        await database.dispose()
    return 0


async def cmd_cache(settings: Settings, action: str, max_bytes: Optional[int],
                    older_than_hours: Optional[float]) -> int:
    database = await _open_database(settings)
    cache = MediaCache(database, settings.cache_root, settings.cache_max_bytes)
    try:
        if action == "stats":
            print(json.dumps(await cache.stats(), indent=2))
        elif action == "evict":
            removed = 0
            if older_than_hours is not None:
                removed += await cache.evict_older_than(older_than_hours)
            limit = max_bytes if max_bytes is not None else settings.cache_max_bytes
            if limit > 0:
                removed += await cache.evict_lru(limit)
            print(f"OK: evicted {removed} entries")
        elif action == "clear":
            print(f"OK: cleared {await cache.clear()} entries")
    finally:
        await database.dispose()
    return 0


# ============================================================================
# Entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="script2video", description="Script timeline video compositor")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL setting)")
    sub = parser.add_subparsers(dest="command", required=True)

    compose_parser = sub.add_parser("compose", help="Compose and export a script timeline JSON file")
    compose_parser.add_argument("timeline", help="Path to the ScriptTimeline JSON payload")
    compose_parser.add_argument("--title", default=None, help="History title (default: file name)")
    compose_parser.add_argument("--output", default=None, help="Destination file for the export")
    compose_parser.add_argument("--no-history", action="store_true", help="Do not record the timeline")

    replay_parser = sub.add_parser("replay", help="Re-render a stored history record")
    replay_parser.add_argument("id", help="History record id (UUID or legacy integer)")
    replay_parser.add_argument("--output", default=None, help="Destination file for the export")

    history_parser = sub.add_parser("history", help="Inspect stored compositions")
    history_parser.add_argument("action", choices=["list", "show", "delete"])
    history_parser.add_argument("id", nargs="?", default=None, help="Record id for show/delete")

    cache_parser = sub.add_parser("cache", help="Inspect or trim the media cache")
    cache_parser.add_argument("action", choices=["stats", "evict", "clear"])
    cache_parser.add_argument("--max-bytes", type=int, default=None, help="Evict LRU entries down to this size")
    cache_parser.add_argument("--older-than-hours", type=float, default=None,
                              help="Evict entries not accessed within this many hours")

    return parser


def run(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "history" and args.action in ("show", "delete") and not args.id:
        parser.error(f"history {args.action} requires an id")

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    try:
        if args.command == "compose":
            coro = cmd_compose(settings, args.timeline, args.title, args.output, not args.no_history)
        elif args.command == "replay":
            coro = cmd_replay(settings, args.id, args.output)
        elif args.command == "history":
            coro = cmd_history(settings, args.action, args.id)
        else:
            coro = cmd_cache(settings, args.action, args.max_bytes, args.older_than_hours)
        return asyncio.run(coro)
    except (Script2VideoError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
