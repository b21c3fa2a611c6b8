"""
Unit tests for the retry policy, response classification and the upstream
HTTP client's retry loop.

Run: pytest backend/tests/test_http_retry.py -v
"""
from __future__ import annotations

import httpx
import pytest

from shared.errors import (
    ClientError,
    NetworkError,
    NotFound,
    ParseError,
    RateLimited,
    ServerError,
)
from shared.utils.http_client import UpstreamHTTPClient, classify_response
from shared.utils.retry import RetryPolicy

from conftest import BASE_URL, RecordingSleep


# ── RetryPolicy ─────────────────────────────────────────────────────────

def test_exponential_delay_is_capped() -> None:
    policy = RetryPolicy(base_delay_s=1.0, max_delay_s=5.0)
    err = ServerError(503)
    assert [policy.delay_for(n, err) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_rate_limit_uses_extended_delay_and_retry_after() -> None:
    policy = RetryPolicy(rate_limit_delay_s=5.0, max_delay_s=30.0)
    assert policy.delay_for(1, RateLimited()) == 5.0
    assert policy.delay_for(2, RateLimited()) == 10.0
    assert policy.delay_for(1, RateLimited(retry_after=12)) == 12.0
    assert policy.delay_for(1, RateLimited(retry_after=600)) == 30.0


def test_server_retry_after_extends_delay() -> None:
    policy = RetryPolicy(base_delay_s=1.0)
    assert policy.delay_for(1, ServerError(503, retry_after=4)) == 4.0


@pytest.mark.parametrize(
    "exc,retryable",
    [
        (NetworkError("boom"), True),
        (RateLimited(), True),
        (ServerError(502), True),
        (ClientError(400), False),
        (NotFound(), False),
        (ParseError("bad"), False),
        (ValueError("not ours"), False),
    ],
)
def test_retryable_classification(exc: Exception, retryable: bool) -> None:
    assert RetryPolicy().should_retry(exc, attempt=1) is retryable


def test_should_retry_stops_at_max_attempts() -> None:
    policy = RetryPolicy(max_attempts=3)
    assert policy.should_retry(ServerError(500), 2)
    assert not policy.should_retry(ServerError(500), 3)
    assert not RetryPolicy.no_retry().should_retry(ServerError(500), 1)


def test_policy_rejects_invalid_values() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


# ── classify_response ───────────────────────────────────────────────────

def _response(status: int, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(status, headers=headers, request=httpx.Request("GET", BASE_URL))


def test_classify_response_maps_statuses() -> None:
    assert classify_response(_response(200), "u") is None
    assert isinstance(classify_response(_response(404), "u"), NotFound)
    assert isinstance(classify_response(_response(403), "u"), ClientError)
    server = classify_response(_response(503, {"Retry-After": "3"}), "u")
    assert isinstance(server, ServerError) and server.retry_after == 3.0
    limited = classify_response(_response(429, {"Retry-After": "7"}), "u")
    assert isinstance(limited, RateLimited) and limited.retry_after == 7.0


def test_retry_after_http_date_is_ignored() -> None:
    limited = classify_response(_response(429, {"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}), "u")
    assert isinstance(limited, RateLimited)
    assert limited.retry_after is None


# ── UpstreamHTTPClient ──────────────────────────────────────────────────

def _client(handler, sleeper: RecordingSleep, policy: RetryPolicy | None = None) -> UpstreamHTTPClient:
    return UpstreamHTTPClient(
        BASE_URL,
        retry_policy=policy or RetryPolicy(),
        transport=httpx.MockTransport(handler),
        sleep=sleeper,
    )


@pytest.mark.asyncio
async def test_server_error_then_success_retries_once(sleeper: RecordingSleep) -> None:
    statuses = iter([500, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        return httpx.Response(status, json={"ok": True} if status == 200 else None)

    async with _client(handler, sleeper) as http:
        payload = await http.get_json("games", endpoint="index")
    assert payload == {"ok": True}
    assert http.request_count == 2
    assert sleeper.delays == [1.0]


@pytest.mark.asyncio
async def test_retries_exhausted_raises_last_error(sleeper: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    async with _client(handler, sleeper) as http:
        with pytest.raises(ServerError) as info:
            await http.get_json("games")
    assert info.value.status == 502
    assert http.request_count == 3
    assert sleeper.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_not_found_is_not_retried(sleeper: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with _client(handler, sleeper) as http:
        with pytest.raises(NotFound):
            await http.get_json("games/2025/1")
    assert http.request_count == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_rate_limited_honours_retry_after(sleeper: RecordingSleep) -> None:
    responses = iter([httpx.Response(429, headers={"Retry-After": "9"}), httpx.Response(200, json=[])])

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    async with _client(handler, sleeper) as http:
        assert await http.get_json("games") == []
    assert sleeper.delays == [9.0]


@pytest.mark.asyncio
async def test_malformed_json_raises_parse_error(sleeper: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    async with _client(handler, sleeper) as http:
        with pytest.raises(ParseError):
            await http.get_json("games")
    assert http.request_count == 1


@pytest.mark.asyncio
async def test_empty_body_raises_parse_error(sleeper: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="   ")

    async with _client(handler, sleeper) as http:
        with pytest.raises(ParseError):
            await http.get_json("games")


@pytest.mark.asyncio
async def test_timeout_maps_to_network_error(sleeper: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler, sleeper, RetryPolicy(max_attempts=2)) as http:
        with pytest.raises(NetworkError) as info:
            await http.get_json("games")
    assert info.value.timeout is True
    assert http.request_count == 2


@pytest.mark.asyncio
async def test_connection_error_maps_to_network_error(sleeper: RecordingSleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler, sleeper, RetryPolicy.no_retry()) as http:
        with pytest.raises(NetworkError) as info:
            await http.get_json("games")
    assert info.value.timeout is False


@pytest.mark.asyncio
async def test_get_json_requires_start(sleeper: RecordingSleep) -> None:
    http = _client(lambda r: httpx.Response(200, json={}), sleeper)
    with pytest.raises(RuntimeError):
        await http.get_json("games")


@pytest.mark.asyncio
async def test_query_params_and_base_path_are_sent(sleeper: RecordingSleep) -> None:
    seen: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json={"games": []})

    async with _client(handler, sleeper) as http:
        await http.get_json("games", params={"tournament": "runkosarja", "date": "2025-10-18"})
    assert seen[0].path == "/v2/games"
    assert seen[0].params["tournament"] == "runkosarja"
    assert seen[0].params["date"] == "2025-10-18"
