"""
Species/variety expansion for regional pokedex ingestion.

Turns the raw listing entries of a region into cached RegionEntry rows:
each entry is resolved to its species, expanded into every variety, and each
variety's detail (types, artwork) is fetched in small concurrent batches.
Failures are isolated per variety and per listing entry so a single bad
upstream record never aborts a region job.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config.settings import (
    INGEST_BATCH_DELAY,
    INGEST_BATCH_SIZE,
    VARIETY_BATCH_SIZE,
)
from utils.api_clients import PokeAPIClient
from utils.api_models import ListingEntry, RegionEntry, VarietyInfo
from utils.constants import LABEL_SPECIES_FALLBACK
from utils.database import Database

logger = logging.getLogger("regiondex.expander")


def parse_id_from_url(url: Optional[str]) -> Optional[int]:
    """
    Parse the trailing numeric path segment of a resource URL.

    ``https://pokeapi.co/api/v2/pokemon-species/25/`` -> 25.

    Returns:
        The integer, or None when the last segment is not numeric.
    """
    parts = [p for p in str(url or "").split("/") if p]
    if not parts:
        return None
    try:
        return int(parts[-1])
    except ValueError:
        return None


def positive_int(value: Any) -> Optional[int]:
    """Return ``value`` if it is a positive integer, else None."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def pick_sprite(pokemon: Dict[str, Any]) -> Optional[str]:
    """Official artwork first, then the default front sprite, else None."""
    sprites = pokemon.get("sprites") or {}
    artwork = ((sprites.get("other") or {}).get("official-artwork") or {}).get(
        "front_default"
    )
    return artwork or sprites.get("front_default") or None


def parse_types(pokemon: Dict[str, Any]) -> List[str]:
    types = pokemon.get("types")
    if not isinstance(types, list):
        return []
    names = [str(((t or {}).get("type") or {}).get("name") or "") for t in types]
    return [n for n in names if n]


def variety_names(species: Dict[str, Any]) -> List[str]:
    """Pokemon resource names of a species' varieties, in upstream order, unique."""
    varieties = species.get("varieties")
    if not isinstance(varieties, list):
        return []

    names: List[str] = []
    for variety in varieties:
        name = str(((variety or {}).get("pokemon") or {}).get("name") or "")
        if name and name not in names:
            names.append(name)
    return names


def dedupe_forms(forms: Sequence[VarietyInfo]) -> List[VarietyInfo]:
    """
    Keep the first form per distinct formId.

    Forms without a formId are always kept and never compared to each other.
    """
    seen = set()
    result: List[VarietyInfo] = []
    for form in forms:
        form_id = form.get("formId")
        if form_id is not None:
            if form_id in seen:
                continue
            seen.add(form_id)
        result.append(form)
    return result


def choose_base(species_name: str, forms: Sequence[VarietyInfo]) -> Optional[VarietyInfo]:
    """The variety named like the species, else the first fetched one."""
    for form in forms:
        if form["formName"] == species_name:
            return form
    return forms[0] if forms else None


class SpeciesExpander:
    """
    Expands pokedex listing entries into cached regional rows.

    Fan-out is bounded twice: listing entries are processed ``batch_size`` at a
    time with a short pacing delay between batches, and within one species the
    varieties are fetched ``variety_batch_size`` at a time. Batches use
    ``asyncio.gather(..., return_exceptions=True)`` so a failure never cancels
    its siblings.
    """

    def __init__(
        self,
        client: PokeAPIClient,
        db: Database,
        batch_size: int = INGEST_BATCH_SIZE,
        variety_batch_size: int = VARIETY_BATCH_SIZE,
        batch_delay: float = INGEST_BATCH_DELAY,
    ):
        self.client = client
        self.db = db
        self.batch_size = batch_size
        self.variety_batch_size = variety_batch_size
        self.batch_delay = batch_delay

    async def fetch_variety(self, name: str) -> VarietyInfo:
        """Fetch one variety's pokemon resource and normalize it."""
        pokemon = await self.client.get_pokemon(name)
        return {
            "formName": name,
            "formId": positive_int(pokemon.get("id")),
            "types": parse_types(pokemon),
            "sprite": pick_sprite(pokemon),
        }

    async def fetch_varieties(self, names: Sequence[str]) -> List[VarietyInfo]:
        """
        Fetch varieties in fixed-size concurrent batches.

        Args:
            names: Variety pokemon names.

        Returns:
            The successfully fetched varieties, in input order. Failed
            varieties are logged and omitted.
        """
        fetched: List[VarietyInfo] = []

        for i in range(0, len(names), self.variety_batch_size):
            batch = names[i : i + self.variety_batch_size]
            results = await asyncio.gather(
                *(self.fetch_variety(name) for name in batch), return_exceptions=True
            )

            for name, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning(
                        f"Skipping variety {name}: {result}",
                        extra={"variety": name},
                    )
                    continue
                fetched.append(result)

        return fetched

    async def _resolve_species(
        self, entry: ListingEntry
    ) -> Optional[Tuple[int, str, Optional[Dict[str, Any]]]]:
        """
        Resolve a listing entry to ``(dex_id, name, species_payload_or_None)``.

        The id comes from the species URL when possible; otherwise the species
        resource is fetched and its payload is handed back so the caller does
        not fetch it twice.
        """
        species_ref = entry.get("pokemon_species") or {}
        name = str(species_ref.get("name") or "").lower()
        dex_id = positive_int(parse_id_from_url(species_ref.get("url")))
        if dex_id is not None:
            return dex_id, name, None

        if not name:
            return None

        try:
            species = await self.client.get_species(name, label=LABEL_SPECIES_FALLBACK)
        except Exception as e:
            logger.warning(f"Could not resolve dex id for {name}: {e}")
            return None

        dex_id = positive_int(species.get("id"))
        if dex_id is None:
            return None
        return dex_id, name, species

    async def expand_entry(
        self, region: str, entry: ListingEntry
    ) -> Optional[RegionEntry]:
        """
        Expand one listing entry and upsert the resulting row.

        Args:
            region: Lowercase region identifier.
            entry: Raw pokedex listing entry.

        Returns:
            The upserted RegionEntry, or None when the entry was skipped or
            failed. Never raises for upstream or store errors.
        """
        try:
            resolved = await self._resolve_species(entry)
            if resolved is None:
                logger.info(
                    "Skipping listing entry without a resolvable dex id",
                    extra={"region": region, "entry": entry},
                )
                return None

            dex_id, name, species = resolved
            if species is None:
                species = await self.client.get_species(name or str(dex_id))
            if not name:
                name = str(species.get("name") or "").lower()

            forms = dedupe_forms(await self.fetch_varieties(variety_names(species)))
            base = choose_base(name, forms)

            row: RegionEntry = {
                "region": region,
                "dexId": dex_id,
                "name": name,
                "types": list(base["types"]) if base else [],
                "sprite": base["sprite"] if base else None,
                "forms": forms,
            }

            await self.db.upsert_entry(
                region, dex_id, name, row["types"], row["sprite"], forms
            )
            return row

        except Exception as e:
            logger.error(
                f"Error expanding listing entry for {region}: {e}",
                extra={"region": region, "entry": entry},
                exc_info=True,
            )
            return None

    async def expand_region(
        self, region: str, entries: Sequence[ListingEntry]
    ) -> int:
        """
        Expand every listing entry of a region in paced concurrent batches.

        Args:
            region: Lowercase region identifier.
            entries: The region's listing entries.

        Returns:
            Number of rows upserted.
        """
        upserted = 0

        logger.info(
            f"Expanding {len(entries)} listing entries for {region}",
            extra={"region": region, "batch_size": self.batch_size},
        )

        for i in range(0, len(entries), self.batch_size):
            batch = entries[i : i + self.batch_size]
            results = await asyncio.gather(
                *(self.expand_entry(region, entry) for entry in batch),
                return_exceptions=True,
            )

            for result in results:
                if isinstance(result, BaseException):
                    logger.error(f"Unexpected batch failure for {region}: {result}")
                elif result is not None:
                    upserted += 1

            # Small delay between batches to be respectful
            if i + self.batch_size < len(entries):
                await asyncio.sleep(self.batch_delay)

        logger.info(
            f"Finished {region}: {upserted}/{len(entries)} entries cached",
            extra={"region": region},
        )
        return upserted
