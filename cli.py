#!/usr/bin/env python3
import argparse
import sys

from penguin_stats.errors import PenguinStatsError
from penguin_stats.orchestrator import COMMANDS, run_once


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Penguin Statistics CLI")
    parser.add_argument("--config", help="Path to YAML config")
    parser.add_argument("command", choices=COMMANDS, help="What to do")
    # client
    parser.add_argument("--base-url", dest="base_url", help="Stats API base URL")
    parser.add_argument("--timeout", dest="timeout", type=float, help="Request timeout in seconds")
    # query
    parser.add_argument("--server", dest="server", type=str.upper, choices=["US", "CN", "JP", "KR"], help="Game server")
    parser.add_argument("--closed-zones", dest="show_closed_zones", action="store_true", help="Include closed zones")
    parser.add_argument("--open-zones", dest="show_closed_zones", action="store_false", help="Only open zones")
    parser.add_argument("--personal", dest="is_personal", action="store_true", help="Personal stats (needs --user-id)")
    parser.add_argument("--global", dest="is_personal", action="store_false", help="Global stats")
    parser.add_argument("--user-id", dest="user_id", help="Penguin Stats user ID")
    parser.add_argument("--stage", dest="stage_id", help="Stage ID to filter on / report for")
    parser.add_argument("--index", dest="index", action="store_true", help="Build the stage index before lookups")
    # report / recall / plan
    parser.add_argument("--drop", dest="drops", action="append", default=[], help="TYPE:ITEM:QTY, repeatable")
    parser.add_argument("--source", dest="source", help="Reporting application name")
    parser.add_argument("--source-version", dest="version", help="Reporting application version")
    parser.add_argument("--hash", dest="report_hash", help="Report hash to recall")
    parser.add_argument("--request", dest="request_path", help="ArkPlanner request JSON file")
    parser.add_argument("--out-dir", dest="output_dir", help="Write results here instead of stdout")
    parser.set_defaults(show_closed_zones=None, is_personal=None, index=None)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {
        "base_url": args.base_url,
        "timeout": args.timeout,
        "server": args.server,
        "show_closed_zones": args.show_closed_zones,
        "is_personal": args.is_personal,
        "user_id": args.user_id,
        "stage_id": args.stage_id,
        "index": args.index,
        "source": args.source,
        "version": args.version,
        "output_dir": args.output_dir,
    }
    params = {
        "stage_id": args.stage_id,
        "drops": args.drops,
        "report_hash": args.report_hash,
        "request_path": args.request_path,
    }

    try:
        run_once(args.config, args.command, params=params, overrides=overrides)
    except (PenguinStatsError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
