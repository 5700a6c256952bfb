"""
HTTP boundary for the regional pokedex cache.

Parses and validates the query, delegates cache-check, ingestion and page
read to the RegionIngestor, and shapes the JSON response. Validation failures
become 400 responses; anything unhandled becomes a generic 500.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from utils.constants import ERROR_INTERNAL
from utils.orchestrator import RegionIngestor
from utils.validators import validate_region_query

logger = logging.getLogger("regiondex.routes")

router = APIRouter()


def get_ingestor(request: Request) -> RegionIngestor:
    return request.app.state.ingestor


@router.get("/regional-pokedex")
async def regional_pokedex(
    region: Optional[str] = Query(None, description="Region name, e.g. kanto"),
    limit: Optional[str] = Query(None, description="Page size, clamped to [1, 200]"),
    offset: Optional[str] = Query(None, description="Rows to skip, clamped to >= 0"),
    reset: Optional[str] = Query(None, description="'1' or 'true' clears and rebuilds"),
    ingestor: RegionIngestor = Depends(get_ingestor),
):
    # Pagination values are taken as raw strings so out-of-range numbers are
    # clamped instead of rejected
    is_valid, error, query = validate_region_query(region, limit, offset, reset)
    if not is_valid:
        return JSONResponse(status_code=400, content={"error": error})

    try:
        page = await ingestor.serve_page(
            query.region, query.limit, query.offset, reset=query.reset
        )
    except Exception as e:
        logger.error(
            f"regional-pokedex endpoint error: {e}",
            extra={"region": query.region},
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"error": ERROR_INTERNAL})

    return JSONResponse(status_code=200, content=page)
