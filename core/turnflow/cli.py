"""
Command-line interface for turnflow.

Usage:
    turnflow paths flows/story.json
    turnflow validate flows/story.json
    turnflow migrate flows/legacy.json -o flows/story.json
"""

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from turnflow.config import RuntimeConfig
from turnflow.graph.edge import FlowSpec
from turnflow.graph.node import Channel
from turnflow.graph.reachability import identify_flow_paths, should_use_multi_path, traverse_flow
from turnflow.observability import configure_logging
from turnflow.services.flow_service import is_old_flow_format, migrate_flow_to_new_format
from turnflow.utils.io import atomic_write


def _load_flow(path: str) -> FlowSpec | None:
    try:
        return FlowSpec.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
    except ValidationError as e:
        print(f"Invalid flow file {path}:\n{e}", file=sys.stderr)
    return None


def cmd_paths(args: argparse.Namespace) -> int:
    """Print which channels are connected."""
    flow = _load_flow(args.flow)
    if flow is None:
        return 1

    paths = identify_flow_paths(flow)
    if args.json:
        print(
            json.dumps(
                {
                    "characterActive": paths.character_active,
                    "userActive": paths.user_active,
                    "plotActive": paths.plot_active,
                    "multiPath": should_use_multi_path(paths),
                },
                indent=2,
            )
        )
        return 0

    for channel in Channel:
        mark = "✓" if paths.is_active(channel) else "✗"
        print(f"  {mark} {channel.value}")
    print(f"Multi-path: {'yes' if should_use_multi_path(paths) else 'no'}")

    traversal = traverse_flow(flow)
    if traversal.process_order:
        print(f"Agent order: {', '.join(traversal.process_order)}")
    if traversal.agents_not_connected:
        print(f"Not connected: {', '.join(traversal.agents_not_connected)}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate the flow graph."""
    flow = _load_flow(args.flow)
    if flow is None:
        return 1

    errors = flow.validate()
    if is_old_flow_format(flow):
        print("Note: flow uses the legacy agent id format (run 'turnflow migrate')")
    if errors:
        print(f"✗ {len(errors)} error(s) in {args.flow}:")
        for error in errors:
            print(f"  • {error}")
        return 1
    print(f"✓ {args.flow} is valid")
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Rewrite a legacy flow file to the current format."""
    flow = _load_flow(args.flow)
    if flow is None:
        return 1

    if not is_old_flow_format(flow):
        print(f"{args.flow} already uses the current format")
        if not args.output:
            return 0

    result = migrate_flow_to_new_format(flow)
    if result.is_failure:
        print(f"Migration failed: {result.error}", file=sys.stderr)
        return 1

    output = Path(args.output or args.flow)
    with atomic_write(output) as f:
        f.write(result.value.model_dump_json(by_alias=True, indent=2))
    print(f"Wrote {output}")
    return 0


def main(argv: list[str] | None = None):
    config = RuntimeConfig()
    configure_logging(level=config.log_level, format=config.log_format)

    parser = argparse.ArgumentParser(
        prog="turnflow",
        description="Inspect, validate and migrate turnflow flow files",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    paths_parser = subparsers.add_parser("paths", help="Show connected channels")
    paths_parser.add_argument("flow", help="Path to a flow JSON file")
    paths_parser.add_argument("--json", action="store_true", help="Print JSON")
    paths_parser.set_defaults(func=cmd_paths)

    validate_parser = subparsers.add_parser("validate", help="Validate a flow graph")
    validate_parser.add_argument("flow", help="Path to a flow JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    migrate_parser = subparsers.add_parser("migrate", help="Migrate a legacy flow file")
    migrate_parser.add_argument("flow", help="Path to a flow JSON file")
    migrate_parser.add_argument("-o", "--output", help="Write here instead of in place")
    migrate_parser.set_defaults(func=cmd_migrate)

    args = parser.parse_args(argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
