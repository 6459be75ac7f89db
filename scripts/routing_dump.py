#!/usr/bin/env python3
"""Print the routing data held in the SQLite routing store.

Usage examples:
    # Everything in the configured database
    uv run python scripts/routing_dump.py

    # Only active connections
    uv run python scripts/routing_dump.py --connections

    # A specific database file, as JSON
    uv run python scripts/routing_dump.py --db data/routing.db --json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from relay.config import settings
from relay.routing import RoutingRegistry, create_data_store

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)


async def collect(registry: RoutingRegistry) -> dict[str, list[dict]]:
    """Read every routing collection into plain dicts."""
    return {
        "users": [i.model_dump() for i in await registry.get_users()],
        "bot_instances": [i.model_dump() for i in await registry.get_bot_instances()],
        "aggregation_endpoints": [
            i.model_dump() for i in await registry.get_aggregation_endpoints()
        ],
        "requests": [r.to_dict() for r in await registry.get_requests()],
        "connections": [c.to_dict() for c in await registry.get_connections()],
    }


async def run(args: argparse.Namespace) -> None:
    store = create_data_store("sqlite", db_path=Path(args.db) if args.db else None)
    registry = RoutingRegistry(store)

    if args.connections and not args.json:
        print(await registry.describe_connections())
        return

    data = await collect(registry)
    if args.connections:
        data = {"connections": data["connections"]}

    if args.json:
        print(json.dumps(data, indent=2))
        return

    for section, items in data.items():
        print(f"== {section} ({len(items)})")
        for item in items:
            print(f"  {item}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Dump the relay routing store")
    parser.add_argument("--db", help="SQLite database path (default from settings)")
    parser.add_argument("--connections", action="store_true", help="Only show connections")
    parser.add_argument("--json", action="store_true", help="Output raw JSON")
    args = parser.parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
