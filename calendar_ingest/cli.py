"""Command-line interface for the calendar ingestion jobs.

Commands:
  - calendar-ingest ingest [--only ID ...]  : Run one ingestion invocation
  - calendar-ingest backfill-images         : Attach images to upcoming events
  - calendar-ingest expire-images           : Expire images for past events
  - calendar-ingest cleanup-placeholders    : Clear CSS strings from image_url
  - calendar-ingest schedule                : Print crontab lines
  - calendar-ingest sources                 : List configured sources

Every job prints its JSON result. Exit code 2 means the datastore or object
storage could not be reached.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from pydantic import ValidationError

from calendar_ingest.configs.config import Config
from calendar_ingest.configs.settings import get_settings
from calendar_ingest.exceptions import BackendUnavailableError
from calendar_ingest.jobs import JOB_REGISTRY, crontab_lines
from calendar_ingest.logging_config import setup_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="calendar-ingest", description="Community calendar jobs")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = p.add_subparsers(dest="cmd")

    pi = sub.add_parser("ingest", help=JOB_REGISTRY["ingest"].description)
    pi.add_argument("--only", nargs="*", default=None, help="Run only these source ids or names")

    for name in ("backfill-images", "expire-images", "cleanup-placeholders"):
        sub.add_parser(name, help=JOB_REGISTRY[name].description)

    ps = sub.add_parser("schedule", help="Print crontab lines for scheduled jobs")
    ps.add_argument("--command", default="calendar-ingest", help="Command used in crontab lines")

    sub.add_parser("sources", help="List configured sources")

    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except BackendUnavailableError as e:
        print(f"Error: backend unavailable: {e}", file=sys.stderr)
        return 2
    except ValidationError as e:
        print(f"Error: invalid settings: {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        from calendar_ingest import __version__

        print(f"calendar-ingest version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    if args.cmd == "schedule":
        for name, job in JOB_REGISTRY.items():
            print(f"# {name:<22} {job.summary()}")
        for line in crontab_lines(args.command):
            print(line)
        return 0

    settings = get_settings()
    setup_logging(args.log_level or settings.LOG_LEVEL, args.json_logs or settings.LOG_JSON)

    if args.cmd == "sources":
        config = Config.load_sources_config(settings=settings)
        for entry in Config.get_source_configs(config):
            state = "enabled" if entry.get("enabled", True) else "disabled"
            print(f"{entry['source_id']:<22} {entry.get('type', '?'):<8} {state:<9} {entry.get('url', '')}")
        return 0

    job = JOB_REGISTRY[args.cmd]
    kwargs = {"sources": args.only} if args.cmd == "ingest" else {}
    result = asyncio.run(job.runner(settings, **kwargs))

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
