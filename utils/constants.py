"""
This module contains static constant definitions used throughout the application,
including:
- Upstream API client configuration (connection pool, user agent)
- Upstream resource labels used to tag fetch errors
- User-facing error messages returned by the HTTP boundary
"""

# Connection pool settings
CONNECTION_POOL_LIMIT = 100  # Total connections across all hosts
CONNECTION_POOL_LIMIT_PER_HOST = 30  # Max connections per host
CONNECTION_KEEPALIVE_TIMEOUT = 30  # Seconds to keep idle connections

USER_AGENT = "Regional-Pokedex-Cache/1.0"

# HTTP statuses worth retrying besides 5xx
RETRYABLE_STATUSES = frozenset({429})

# Resource labels embedded in fetch error messages
LABEL_POKEDEX = "pokedex"
LABEL_POKEDEX_TOTAL = "pokedex-total"
LABEL_SPECIES = "species"
LABEL_SPECIES_FALLBACK = "species-fallback"
LABEL_POKEMON = "pokemon"

# Truthy spellings accepted for boolean query flags
TRUTHY_QUERY_VALUES = frozenset({"1", "true"})

# Error Messages
ERROR_REGION_REQUIRED = "region is required"
ERROR_INTERNAL = "Internal error"
ERROR_LIMIT_NOT_INTEGER = "limit must be an integer"
ERROR_OFFSET_NOT_INTEGER = "offset must be an integer"
