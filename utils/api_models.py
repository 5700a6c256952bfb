"""
Type definitions for upstream payloads and cached records to ensure strict
typing and reduce runtime errors.

Cached records use the camelCase keys that the HTTP boundary serves verbatim.
"""

from typing import List, Optional, TypedDict


class SpeciesRef(TypedDict, total=False):
    """Named reference to a species resource, as embedded in a pokedex listing."""

    name: str
    url: str


class ListingEntry(TypedDict, total=False):
    """
    One row of a region's pokedex listing (``pokemon_entries`` in PokeAPI).

    All fields are optional (total=False) because upstream rows are not
    guaranteed to be complete; the expander skips rows it cannot resolve.
    """

    entry_number: int
    pokemon_species: SpeciesRef


class VarietyInfo(TypedDict):
    """
    One variety (alternate form/appearance) of a species.

    Attributes:
        formName: Pokemon resource name of the variety, unique within a species.
        formId: Upstream numeric pokemon id, used for de-duplication. None when
            upstream did not report a usable id.
        types: Ordered type names.
        sprite: Preferred artwork URL or None.
    """

    formName: str
    formId: Optional[int]
    types: List[str]
    sprite: Optional[str]


class RegionEntry(TypedDict):
    """
    One cached row, keyed by the natural key (region, dexId).

    Attributes:
        region: Lowercase region identifier.
        dexId: National dex number.
        name: Lowercase species name.
        types: Types of the canonical (base) variety.
        sprite: Artwork of the canonical variety, or None.
        forms: Every successfully fetched variety, the base one included.
    """

    region: str
    dexId: int
    name: str
    types: List[str]
    sprite: Optional[str]
    forms: List[VarietyInfo]


class RegionPage(TypedDict):
    """
    A paginated slice of a region's cache.

    Attributes:
        results: Rows ordered by ascending dexId.
        totalCount: Number of rows for the region (possibly overridden by the
            authoritative upstream listing length at the HTTP boundary).
        hasMore: Whether rows exist past ``offset + limit``.
    """

    results: List[RegionEntry]
    totalCount: int
    hasMore: bool
