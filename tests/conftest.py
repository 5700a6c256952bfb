import asyncio
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

# Add project root to python path so we can import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from utils.api_clients import PokeAPIClient  # noqa: E402
from utils.database import Database  # noqa: E402
from utils.errors import UpstreamHTTPError  # noqa: E402

BASE_URL = "https://pokeapi.test/api/v2"


def species_ref(name: str, dex_id: Optional[int]) -> Dict[str, Any]:
    url = f"{BASE_URL}/pokemon-species/{dex_id}/" if dex_id else f"{BASE_URL}/pokemon-species/{name}/"
    return {"name": name, "url": url}


def pokedex_payload(species: List[Tuple[str, Optional[int]]]) -> Dict[str, Any]:
    return {
        "pokemon_entries": [
            {"entry_number": i + 1, "pokemon_species": species_ref(name, dex_id)}
            for i, (name, dex_id) in enumerate(species)
        ]
    }


def species_payload(name: str, dex_id: int, varieties: List[str]) -> Dict[str, Any]:
    return {
        "id": dex_id,
        "name": name,
        "varieties": [
            {"is_default": i == 0, "pokemon": {"name": v, "url": f"{BASE_URL}/pokemon/{v}/"}}
            for i, v in enumerate(varieties)
        ],
    }


def pokemon_payload(
    name: str,
    pokemon_id: Optional[int],
    types: List[str],
    artwork: Optional[str] = None,
    front: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": pokemon_id,
        "name": name,
        "types": [{"slot": i + 1, "type": {"name": t}} for i, t in enumerate(types)],
        "sprites": {
            "front_default": front,
            "other": {"official-artwork": {"front_default": artwork}},
        },
    }


class FakeUpstream:
    """
    URL-routed stand-in for `PokeAPIClient.fetch_json`.

    Routes map a URL to a JSON payload or to an exception instance to raise.
    Unknown URLs raise a terminal 404. ``gates`` hold fetches of a given label
    until the event is set.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Tuple[str, str]] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.in_flight = 0
        self.max_in_flight: Dict[str, int] = {}

    def add_species(
        self,
        name: str,
        dex_id: int,
        varieties: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Register a species and its varieties (name -> pokemon payload or exception)."""
        varieties = varieties if varieties is not None else {
            name: pokemon_payload(name, dex_id, ["normal"])
        }
        self.routes[f"{BASE_URL}/pokemon-species/{name}"] = species_payload(
            name, dex_id, list(varieties)
        )
        for variety, payload in varieties.items():
            self.routes[f"{BASE_URL}/pokemon/{variety}"] = payload

    def calls_for(self, label: str) -> List[str]:
        return [url for url, call_label in self.calls if call_label == label]

    async def fetch_json(self, url, label, attempts=None, base_delay=None, timeout=None):
        self.calls.append((url, label))

        gate = self.gates.get(label)
        if gate is not None:
            await gate.wait()

        self.in_flight += 1
        self.max_in_flight[label] = max(self.max_in_flight.get(label, 0), self.in_flight)
        try:
            # Yield so concurrently scheduled fetches overlap
            await asyncio.sleep(0)
            if url not in self.routes:
                raise UpstreamHTTPError(label, 404, "Not Found")
            value = self.routes[url]
            if isinstance(value, BaseException):
                raise value
            return value
        finally:
            self.in_flight -= 1


@pytest_asyncio.fixture
async def db():
    """In-memory cache database, fresh per test."""
    database = Database("sqlite:///:memory:")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(upstream):
    """PokeAPIClient whose network layer is replaced by the fake upstream."""
    api_client = PokeAPIClient(base_url=BASE_URL)
    api_client.fetch_json = upstream.fetch_json  # type: ignore[method-assign]
    return api_client


@pytest.fixture
def kanto(upstream):
    """Three-entry kanto dex: one variety each, named like the species, no sprites."""
    upstream.routes[f"{BASE_URL}/pokedex/kanto"] = pokedex_payload(
        [("bulbasaur", 1), ("ivysaur", 2), ("venusaur", 3)]
    )
    upstream.add_species("bulbasaur", 1, {"bulbasaur": pokemon_payload("bulbasaur", 1, ["grass", "poison"])})
    upstream.add_species("ivysaur", 2, {"ivysaur": pokemon_payload("ivysaur", 2, ["grass", "poison"])})
    upstream.add_species("venusaur", 3, {"venusaur": pokemon_payload("venusaur", 3, ["grass", "poison"])})
    return upstream
