#!/usr/bin/env python3
"""
Command line entry point for the Observer Rules service.

    observer-rules rules [--schemas]
    observer-rules validate FILE [--json]
    observer-rules filter TOKEN
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from shared.errors import InvalidRuleConfiguration, ObserverRulesException
from shared.logging import configure_logging

from .main import SERVICE_NAME, ObserverRulesService
from .rules.factory import build_rule_factory


def list_rules(args) -> int:
    """Print the registered rules in evaluation order."""
    factory = build_rule_factory()

    for rule in factory.get_all_rules():
        kind = "stateful" if rule.is_stateful else "stateless"
        print(f"{rule.priority:>4}  {rule.name:<15} {kind}")

    if args.schemas:
        print(json.dumps(factory.build_schema(), indent=2))

    return 0


def validate_file(args) -> int:
    """Validate a rules configuration file and show what it resolves to."""
    path = Path(args.file)
    try:
        with open(path, 'r') as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ Cannot read {path}: {e}")
        return 1

    factory = build_rule_factory()
    try:
        units = factory.create_from_config(config)
    except InvalidRuleConfiguration as e:
        if args.json:
            print(e.to_response().model_dump_json(indent=2))
        else:
            print(f"❌ {path}")
            for error in e.validation_errors:
                print(f"  - {error}")
        return 1

    if args.json:
        print(json.dumps([
            {"name": unit.name, "priority": unit.priority, "stateful": unit.rule.is_stateful}
            for unit in units
        ], indent=2))
    else:
        print(f"✅ {path}")
        for unit in units:
            print(f"  {unit.priority:>4}  {unit.name}")

    return 0


async def _filter(token: str) -> List[int]:
    service = ObserverRulesService(configure_logs=False)
    await service.start()
    try:
        geo_objects = await service.get_filtered_geo_objects_for_token(token)
    finally:
        await service.stop()
    return [obj.id for obj in geo_objects]


def filter_objects(args) -> int:
    """Print the ids of the objects an observer can currently see."""
    try:
        ids = asyncio.run(_filter(args.token))
    except ObserverRulesException as e:
        print(f"❌ {e.code}: {e.message}")
        return 1

    print(json.dumps(ids))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="observer-rules", description="Observer rules tooling")
    parser.add_argument("--log-level", default="warning", help="Log level for messages written to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rules_parser = subparsers.add_parser("rules", help="List registered rules")
    rules_parser.add_argument("--schemas", action="store_true", help="Also print the aggregate JSON schema")
    rules_parser.set_defaults(handler=list_rules)

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a rules configuration file (strict: unregistered rule names are errors, "
             "although the engine skips them at request time)"
    )
    validate_parser.add_argument("file", help="Path to a JSON rules configuration")
    validate_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    validate_parser.set_defaults(handler=validate_file)

    filter_parser = subparsers.add_parser("filter", help="Filter an observer's map by access token")
    filter_parser.add_argument("token", help="Observer access token")
    filter_parser.set_defaults(handler=filter_objects)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)
    configure_logging(SERVICE_NAME, args.log_level, stream=sys.stderr)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
