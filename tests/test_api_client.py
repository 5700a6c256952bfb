import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import pytest
import pytest_asyncio

from utils.api_clients import PokeAPIClient, is_retryable_status
from utils.errors import (
    FetchError,
    MalformedResponseError,
    TransientFetchError,
    UpstreamHTTPError,
)

URL = "https://pokeapi.test/api/v2/pokemon/bulbasaur"


class FakeResponse:
    def __init__(self, status, body=None, reason="OK"):
        self.status = status
        self.body = body
        self.reason = reason

    async def json(self, content_type=None):
        if isinstance(self.body, str):
            return json.loads(self.body)
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class StalledResponse(FakeResponse):
    """Accepts the request but never delivers a body."""

    async def json(self, content_type=None):
        await asyncio.Event().wait()


class FakeSession:
    """Replays a scripted sequence of responses (or exceptions) for GETs."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []
        self.closed = False

    def get(self, url):
        self.calls.append(url)
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


@pytest.fixture
def sleep(mocker):
    return mocker.patch("utils.decorators.asyncio.sleep", new_callable=AsyncMock)


def install(client, mocker, script):
    session = FakeSession(script)
    mocker.patch.object(client, "get_session", AsyncMock(return_value=session))
    return session


@pytest.mark.asyncio
class TestPokeAPIClient:
    @pytest_asyncio.fixture
    async def client(self):
        client = PokeAPIClient(base_url="https://pokeapi.test/api/v2", base_delay=0.2)
        yield client
        await client.close()

    async def test_retries_503_then_succeeds(self, client, mocker, sleep):
        """Two 503s followed by a 200 returns the body after exactly two backoffs"""
        session = install(
            client,
            mocker,
            [
                FakeResponse(503, reason="Service Unavailable"),
                FakeResponse(503, reason="Service Unavailable"),
                FakeResponse(200, {"id": 1, "name": "bulbasaur"}),
            ],
        )

        result = await client.fetch_json(URL, "pokemon")

        assert result == {"id": 1, "name": "bulbasaur"}
        assert len(session.calls) == 3
        assert sleep.await_count == 2
        delays = [c.args[0] for c in sleep.await_args_list]
        # delay before attempt i is base * 2**i
        assert delays == [pytest.approx(0.4), pytest.approx(0.8)]

    async def test_terminal_status_fails_immediately(self, client, mocker, sleep):
        session = install(client, mocker, [FakeResponse(404, reason="Not Found")])

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await client.fetch_json(URL, "species")

        assert exc_info.value.status == 404
        assert "[species]" in str(exc_info.value)
        assert "404" in str(exc_info.value)
        assert len(session.calls) == 1
        sleep.assert_not_awaited()

    async def test_rate_limit_exhausts_attempts(self, client, mocker, sleep):
        session = install(client, mocker, [FakeResponse(429, reason="Too Many Requests")] * 3)

        with pytest.raises(TransientFetchError) as exc_info:
            await client.fetch_json(URL, "pokemon")

        assert exc_info.value.status == 429
        assert "[pokemon]" in str(exc_info.value)
        assert len(session.calls) == 3
        assert sleep.await_count == 2

    async def test_transport_error_is_retried(self, client, mocker, sleep):
        session = install(
            client,
            mocker,
            [
                aiohttp.ClientConnectionError("connection reset"),
                asyncio.TimeoutError(),
                FakeResponse(200, {"ok": True}),
            ],
        )

        assert await client.fetch_json(URL, "pokemon") == {"ok": True}
        assert len(session.calls) == 3

    async def test_timeout_exhaustion_raises_last_error(self, client, mocker, sleep):
        install(client, mocker, [asyncio.TimeoutError()] * 2)

        with pytest.raises(asyncio.TimeoutError):
            await client.fetch_json(URL, "pokemon", attempts=2)

        assert sleep.await_count == 1

    async def test_stalled_attempt_is_aborted_and_retried(self, client, mocker, sleep):
        session = install(
            client,
            mocker,
            [StalledResponse(200), FakeResponse(200, {"id": 25, "name": "pikachu"})],
        )

        result = await client.fetch_json(URL, "pokemon", timeout=0.01)

        assert result == {"id": 25, "name": "pikachu"}
        assert len(session.calls) == 2
        assert sleep.await_count == 1

    async def test_stalled_attempts_exhaust_with_timeout(self, client, mocker, sleep):
        session = install(client, mocker, [StalledResponse(200)] * 2)

        with pytest.raises(asyncio.TimeoutError):
            await client.fetch_json(URL, "pokemon", attempts=2, timeout=0.01)

        assert len(session.calls) == 2

    async def test_zero_attempts_raises_unknown_error(self, client, mocker, sleep):
        session = install(client, mocker, [])

        with pytest.raises(FetchError) as exc_info:
            await client.fetch_json(URL, "pokedex", attempts=0)

        assert str(exc_info.value) == "[pokedex] Unknown error"
        assert session.calls == []

    async def test_malformed_json_is_terminal(self, client, mocker, sleep):
        session = install(client, mocker, [FakeResponse(200, "{not json")])

        with pytest.raises(MalformedResponseError):
            await client.fetch_json(URL, "pokemon")

        assert len(session.calls) == 1

    async def test_pokedex_total_is_single_attempt(self, client, mocker, sleep):
        session = install(client, mocker, [FakeResponse(503, reason="Service Unavailable")])

        with pytest.raises(TransientFetchError):
            await client.get_pokedex_total("kanto")

        assert session.calls == ["https://pokeapi.test/api/v2/pokedex/kanto"]
        sleep.assert_not_awaited()

    async def test_pokedex_entries_and_total(self, client, mocker, sleep):
        listing = {"pokemon_entries": [{"entry_number": 1}, {"entry_number": 2}]}
        install(client, mocker, [FakeResponse(200, listing), FakeResponse(200, listing)])

        assert await client.get_pokedex_entries("kanto") == listing["pokemon_entries"]
        assert await client.get_pokedex_total("kanto") == 2

    async def test_pokedex_without_entries(self, client, mocker, sleep):
        install(client, mocker, [FakeResponse(200, {"name": "kanto"})])

        assert await client.get_pokedex_entries("kanto") == []


def test_retryable_statuses():
    assert is_retryable_status(429)
    assert is_retryable_status(500)
    assert is_retryable_status(503)
    assert not is_retryable_status(400)
    assert not is_retryable_status(404)
