from __future__ import annotations

import asyncio
import time

import httpx

from imagewatch.adapters.http_resilience import ResilientClient, build_retry
from imagewatch.config.http_resilience import NO_RETRY, RateLimit, ResilienceConfig, RetryPolicy


def test_build_retry_maps_policy() -> None:
    retry = build_retry(RetryPolicy(total=5, backoff_factor=0.1))

    assert retry.total == 5
    assert retry.backoff_factor == 0.1


def test_no_retry_policy_has_zero_attempts() -> None:
    assert build_retry(NO_RETRY).total == 0


def test_user_agent_and_default_headers_are_sent() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    config = ResilienceConfig(
        name="registry",
        user_agent="imagewatch/test",
        default_headers={"X-Trace": "1"},
    )

    async def run() -> None:
        client = ResilientClient(config)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            transport=httpx.MockTransport(handler),
            headers=client._client.headers,  # noqa: SLF001  # type: ignore[reportPrivateUsage]
        )
        async with client:
            await client.get("https://registry.example.com/v2/")

    asyncio.run(run())

    assert seen[0].headers["User-Agent"] == "imagewatch/test"
    assert seen[0].headers["X-Trace"] == "1"


def test_rate_limit_spaces_out_requests_of_one_session() -> None:
    seen: list[float] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        _ = request
        seen.append(time.monotonic())
        return httpx.Response(200)

    config = ResilienceConfig(name="registry", ratelimit=RateLimit(max_calls=2, per_seconds=0.5))

    async def run() -> None:
        client = ResilientClient(config)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            transport=httpx.MockTransport(handler)
        )
        async with client:
            for _ in range(4):
                await client.get("https://registry.example.com/v2/")

    asyncio.run(run())

    assert len(seen) == 4
    assert seen[-1] - seen[0] >= 0.2


def test_no_rate_limit_means_no_limiter() -> None:
    client = ResilientClient(ResilienceConfig(name="registry"))

    assert client._limiter is None  # noqa: SLF001  # type: ignore[reportPrivateUsage]
    asyncio.run(client.aclose())
