"""Tests for HTTPClient retry and error typing."""

import httpx
import pytest
import respx

from grantsync.errors import ErrorKind, RetryableError, SourceHTTPError
from grantsync.ingestion.http_client import HTTPClient
from grantsync.ingestion.retry import RetryConfig

URL = "https://registry.example.test/api"


def _fast_config(max_retries: int = 2) -> RetryConfig:
    return RetryConfig(max_retries=max_retries, base_delay=0, jitter=0)


class TestHTTPClient:
    """Tests for HTTPClient.get()."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_successful_get(self):
        route = respx.get(URL).mock(return_value=httpx.Response(200, json={"ok": True}))

        async with HTTPClient(_fast_config()) as client:
            response = await client.get(URL, params={"page": 1})

        assert response.json() == {"ok": True}
        assert route.call_count == 1
        assert route.calls[0].request.url.params["page"] == "1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_on_503_then_succeeds(self):
        route = respx.get(URL).mock(side_effect=[
            httpx.Response(503),
            httpx.Response(200, json={"ok": True}),
        ])

        async with HTTPClient(_fast_config()) as client:
            response = await client.get(URL)

        assert response.status_code == 200
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_404_is_typed_and_not_retried(self):
        route = respx.get(URL).mock(return_value=httpx.Response(404, text="missing"))

        async with HTTPClient(_fast_config()) as client:
            with pytest.raises(SourceHTTPError) as exc_info:
                await client.get(URL)

        assert exc_info.value.status_code == 404
        assert exc_info.value.kind == ErrorKind.UPSTREAM
        assert exc_info.value.response_body == "missing"
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_429_exhausts_retries(self):
        route = respx.get(URL).mock(return_value=httpx.Response(429))

        async with HTTPClient(_fast_config(max_retries=2)) as client:
            with pytest.raises(SourceHTTPError) as exc_info:
                await client.get(URL)

        assert exc_info.value.kind == ErrorKind.RATE_LIMITED
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_error_becomes_retryable_network_error(self):
        route = respx.get(URL).mock(side_effect=httpx.ConnectError("refused"))

        async with HTTPClient(_fast_config(max_retries=1)) as client:
            with pytest.raises(RetryableError) as exc_info:
                await client.get(URL)

        assert exc_info.value.kind == ErrorKind.NETWORK
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_becomes_retryable_timeout_error(self):
        respx.get(URL).mock(side_effect=httpx.ReadTimeout("slow"))

        async with HTTPClient(_fast_config(max_retries=0)) as client:
            with pytest.raises(RetryableError) as exc_info:
                await client.get(URL)

        assert exc_info.value.kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    @respx.mock
    async def test_on_retry_observer(self):
        respx.get(URL).mock(side_effect=[httpx.Response(502), httpx.Response(200)])
        seen: list[int] = []

        async with HTTPClient(_fast_config(), on_retry=lambda a, d, e: seen.append(a)) as client:
            await client.get(URL)

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        client = HTTPClient(_fast_config())
        async with client:
            assert not client.is_closed

        assert client.is_closed
        await client.close()
        assert client.is_closed


class TestHTTPClientPost:
    @pytest.mark.asyncio
    @respx.mock
    async def test_form_post(self):
        route = respx.post(URL).mock(return_value=httpx.Response(200, text="<table/>"))

        async with HTTPClient(_fast_config()) as client:
            response = await client.post(URL, data={"page": "2", "pagingAt": "Y"})

        assert response.text == "<table/>"
        request = route.calls[0].request
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert request.content == b"page=2&pagingAt=Y"

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_retries_like_get(self):
        route = respx.post(URL).mock(side_effect=[httpx.Response(503), httpx.Response(200)])

        async with HTTPClient(_fast_config()) as client:
            response = await client.post(URL, data={"page": "1"})

        assert response.status_code == 200
        assert route.call_count == 2
