"""
Main entry point for the Regional Pokedex API.

This module configures logging, validates settings, and builds the FastAPI
application. The application lifespan owns the shared resources:
- The SQLite cache (connected on startup, closed on shutdown).
- The pooled aiohttp session used for every upstream call.
- The RegionIngestor, whose pending background refreshes are cancelled
  on shutdown.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import HOST, LOG_FILE, LOG_LEVEL, PORT, validate_settings
from routes import health, regional_pokedex
from utils.api_clients import PokeAPIClient
from utils.database import close_database, get_database
from utils.orchestrator import RegionIngestor

logger = logging.getLogger("regiondex")


def configure_logging() -> None:
    """Set up root logging once: stdout plus a UTF-8 log file."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(LOG_FILE, encoding="utf-8"),
        ],
    )

    level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    logging.getLogger().setLevel(level)
    logger.setLevel(level)


def check_settings() -> None:
    try:
        validate_settings()
        logger.info("✅ Configuration validation passed")
    except ValueError as e:
        logger.critical(f"❌ Configuration validation failed: {e}")
        sys.exit(1)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    check_settings()

    db = await get_database()
    client = PokeAPIClient()
    ingestor = RegionIngestor(client, db)

    app.state.db = db
    app.state.ingestor = ingestor
    logger.info("Regional Pokedex API started")

    try:
        yield
    finally:
        await ingestor.close()
        await client.close()
        await close_database()
        logger.info("Regional Pokedex API stopped")


def create_app() -> FastAPI:
    """Build the FastAPI application; the lifespan wires its resources."""
    app = FastAPI(title="Regional Pokedex API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(regional_pokedex.router, prefix="/api", tags=["regional-pokedex"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT)
