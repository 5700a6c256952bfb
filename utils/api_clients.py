"""
API Client module for fetching Pokemon data from PokeAPI.

This module owns every outbound HTTP call the service makes. It wraps each
call with a hard per-attempt timeout and retry-with-exponential-backoff on
transient failures (HTTP 429/5xx, transport errors, timeouts), and surfaces
terminal failures immediately with the failing resource's label embedded in
the error.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from config.settings import (
    API_REQUEST_TIMEOUT,
    AUTHORITATIVE_TOTAL_TIMEOUT,
    MAX_RETRY_ATTEMPTS,
    POKEAPI_URL,
    RETRY_BASE_DELAY,
)
from utils.api_models import ListingEntry
from utils.constants import (
    CONNECTION_KEEPALIVE_TIMEOUT,
    CONNECTION_POOL_LIMIT,
    CONNECTION_POOL_LIMIT_PER_HOST,
    LABEL_POKEDEX,
    LABEL_POKEDEX_TOTAL,
    LABEL_POKEMON,
    LABEL_SPECIES,
    RETRYABLE_STATUSES,
    USER_AGENT,
)
from utils.decorators import retry_on_error
from utils.errors import (
    MalformedResponseError,
    TransientFetchError,
    UpstreamHTTPError,
)

logger = logging.getLogger("regiondex.api")

RETRYABLE_EXCEPTIONS = (
    TransientFetchError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
)


def is_retryable_status(status: int) -> bool:
    """HTTP 429 and every 5xx are worth another attempt."""
    return status in RETRYABLE_STATUSES or 500 <= status <= 599


class PokeAPIClient:
    """
    Client for the PokeAPI resources the regional pipeline needs.

    Key Features:
    - **Connection Pooling**: Uses `aiohttp.TCPConnector` to reuse connections.
    - **Per-attempt Timeout**: Every attempt is bounded by `asyncio.timeout`.
    - **Retry with Backoff**: 429/5xx/transport/timeout failures are retried
      with exponential backoff; other statuses fail fast.
    - **No Shared Budget**: Each call has its own attempt count; nothing is
      shared between calls.
    """

    def __init__(
        self,
        base_url: str = POKEAPI_URL,
        timeout: float = API_REQUEST_TIMEOUT,
        attempts: int = MAX_RETRY_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.attempts = attempts
        self.base_delay = base_delay
        self.session: Optional[aiohttp.ClientSession] = None

        # Session creation lock to prevent race conditions during lazy loading
        self._session_lock = asyncio.Lock()

    async def get_session(self) -> aiohttp.ClientSession:
        """
        Get or create aiohttp session with connection pooling configuration.

        Returns:
            Active aiohttp ClientSession.
        """
        async with self._session_lock:
            if self.session is None or self.session.closed:
                connector = aiohttp.TCPConnector(
                    limit=CONNECTION_POOL_LIMIT,
                    limit_per_host=CONNECTION_POOL_LIMIT_PER_HOST,
                    ttl_dns_cache=300,  # DNS cache TTL (5 minutes)
                    keepalive_timeout=CONNECTION_KEEPALIVE_TIMEOUT,
                    enable_cleanup_closed=True,
                )

                self.session = aiohttp.ClientSession(
                    connector=connector,
                    headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                )

                logger.info(
                    "Created aiohttp session with connection pooling",
                    extra={
                        "total_limit": CONNECTION_POOL_LIMIT,
                        "per_host_limit": CONNECTION_POOL_LIMIT_PER_HOST,
                        "keepalive": CONNECTION_KEEPALIVE_TIMEOUT,
                    },
                )

        return self.session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.info("API client session closed")

    async def fetch_json(
        self,
        url: str,
        label: str,
        attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        GET ``url`` and decode its JSON body, retrying transient failures.

        Args:
            url: Absolute URL to fetch.
            label: Resource label embedded in errors and logs.
            attempts: Total attempts (defaults to the client setting).
            base_delay: Backoff base in seconds (defaults to the client setting).
            timeout: Per-attempt timeout in seconds (defaults to the client setting).

        Returns:
            The decoded JSON value.

        Raises:
            UpstreamHTTPError: Non-retryable HTTP status, raised on first sight.
            MalformedResponseError: 2xx response whose body is not JSON.
            TransientFetchError: 429/5xx persisted through every attempt.
            aiohttp.ClientError / asyncio.TimeoutError: Transport failure or
                timeout persisted through every attempt.
        """
        attempts = self.attempts if attempts is None else attempts
        base_delay = self.base_delay if base_delay is None else base_delay
        timeout = self.timeout if timeout is None else timeout

        @retry_on_error(
            max_retries=attempts,
            exceptions=RETRYABLE_EXCEPTIONS,
            base_delay=base_delay,
            label=label,
        )
        async def _attempt() -> Any:
            session = await self.get_session()
            logger.debug(f"Fetching [{label}] {url}")

            async with asyncio.timeout(timeout):
                async with session.get(url) as resp:
                    if resp.status >= 400:
                        if is_retryable_status(resp.status):
                            raise TransientFetchError(label, resp.status, resp.reason)
                        raise UpstreamHTTPError(label, resp.status, resp.reason)

                    try:
                        return await resp.json(content_type=None)
                    except (json.JSONDecodeError, UnicodeDecodeError) as e:
                        raise MalformedResponseError(label, f"invalid JSON body: {e}") from e

        return await _attempt()

    # ==================== RESOURCES ====================

    def pokedex_url(self, region: str) -> str:
        return f"{self.base_url}/pokedex/{region}"

    def species_url(self, name: str) -> str:
        return f"{self.base_url}/pokemon-species/{name}"

    def pokemon_url(self, name: str) -> str:
        return f"{self.base_url}/pokemon/{name}"

    async def get_pokedex_entries(self, region: str) -> List[ListingEntry]:
        """
        Fetch a region's pokedex listing.

        Returns:
            The ``pokemon_entries`` list, or an empty list when upstream
            omitted it.
        """
        data = await self.fetch_json(self.pokedex_url(region), LABEL_POKEDEX)
        entries = data.get("pokemon_entries") if isinstance(data, dict) else None
        return entries if isinstance(entries, list) else []

    async def get_pokedex_total(self, region: str) -> int:
        """
        Authoritative listing length for a region.

        Single attempt bounded by its own timeout; callers treat any failure
        as "unknown".
        """
        data = await self.fetch_json(
            self.pokedex_url(region),
            LABEL_POKEDEX_TOTAL,
            attempts=1,
            timeout=AUTHORITATIVE_TOTAL_TIMEOUT,
        )
        entries = data.get("pokemon_entries") if isinstance(data, dict) else None
        return len(entries) if isinstance(entries, list) else 0

    async def get_species(self, name: str, label: str = LABEL_SPECIES) -> Dict[str, Any]:
        """Fetch a ``pokemon-species`` resource by name or id."""
        return await self.fetch_json(self.species_url(name), label)

    async def get_pokemon(self, name: str) -> Dict[str, Any]:
        """Fetch a ``pokemon`` resource (one variety) by name or id."""
        return await self.fetch_json(self.pokemon_url(name), LABEL_POKEMON)
