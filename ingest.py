"""
Warm the regional pokedex cache from the command line.

Usage:
    python ingest.py kanto johto
    python ingest.py hoenn --reset
"""

import argparse
import asyncio
import logging
from typing import Dict, List

from server import check_settings, configure_logging
from utils.api_clients import PokeAPIClient
from utils.database import close_database, get_database
from utils.orchestrator import RegionIngestor
from utils.validators import sanitize_input

logger = logging.getLogger("regiondex.ingest")


async def warm_regions(regions: List[str], reset: bool = False) -> Dict[str, int]:
    """
    Ingest each region in turn and report the cached row counts.

    Args:
        regions: Region names.
        reset: Clear each region before ingesting it.

    Returns:
        Mapping of region to its cached row count after ingestion.
    """
    db = await get_database()
    client = PokeAPIClient()
    ingestor = RegionIngestor(client, db)
    counts: Dict[str, int] = {}

    try:
        for region in regions:
            if reset:
                await db.clear_region(region)
            try:
                await ingestor.ensure_region(region, join_in_flight=not reset)
            except Exception as e:
                logger.error(f"Ingestion failed for {region}: {e}", exc_info=True)
            counts[region] = await db.count_by_region(region)
    finally:
        await client.close()
        await close_database()

    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description="Populate the regional pokedex cache.")
    parser.add_argument("regions", nargs="+", help="Region names, e.g. kanto johto")
    parser.add_argument("--reset", action="store_true", help="Clear each region before ingesting.")
    args = parser.parse_args()

    configure_logging()
    check_settings()

    regions = [sanitize_input(r).lower() for r in args.regions]
    regions = [r for r in regions if r]
    if not regions:
        parser.error("at least one valid region name is required")

    counts = asyncio.run(warm_regions(regions, reset=args.reset))
    for region, count in counts.items():
        print(f"{region}: {count} entries cached")


if __name__ == "__main__":
    main()
