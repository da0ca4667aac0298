import asyncio

import pytest

from textly.infra import rate_limit
from textly.infra.rate_limit import SlidingWindowLimiter
from textly.settings import settings


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget(fake_redis):
    limiter = SlidingWindowLimiter(fake_redis, "improve", limit=2, window_seconds=60, prefix="t")
    assert (await limiter.hit("u5", "iphash", now=1000.0)).allowed
    assert (await limiter.hit("u5", "iphash", now=1001.0)).allowed


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted(fake_redis):
    limiter = SlidingWindowLimiter(fake_redis, "improve", limit=1, window_seconds=60, prefix="t")
    await limiter.hit("u6", "iphash", now=1000.0)
    result = await limiter.hit("u6", "iphash", now=1010.0)
    assert not result.allowed
    assert result.retry_after == 50


@pytest.mark.asyncio
async def test_window_slides_and_keys_are_per_user_and_ip(fake_redis):
    limiter = SlidingWindowLimiter(fake_redis, "users_meta", limit=1, window_seconds=60, prefix="t")
    await limiter.hit("u7", "ip-a", now=1000.0)
    assert (await limiter.hit("u7", "ip-b", now=1001.0)).allowed
    assert (await limiter.hit("u8", "ip-a", now=1001.0)).allowed
    assert (await limiter.hit("u7", "ip-a", now=1061.0)).allowed
    assert limiter.key("u7", "ip-a") == "t:rl:users_meta:u7:ip-a"


@pytest.mark.asyncio
async def test_check_request_limit_raises_with_retry_after(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_improve_max", 1)
    await rate_limit.check_request_limit(rate_limit.IMPROVE, "u9", "iphash")
    with pytest.raises(rate_limit.RateLimitExceeded) as excinfo:
        await rate_limit.check_request_limit(rate_limit.IMPROVE, "u9", "iphash")
    assert excinfo.value.retry_after > 0


@pytest.mark.asyncio
async def test_missing_limiter_allows_outside_production(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    for _ in range(3):
        await rate_limit.check_request_limit(rate_limit.IMPROVE, "u10", "iphash")


@pytest.mark.asyncio
async def test_missing_limiter_is_a_misconfiguration_in_production(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    monkeypatch.setattr(settings, "environment", "production")
    with pytest.raises(rate_limit.RateLimiterMisconfigured):
        await rate_limit.check_request_limit(rate_limit.USERS_META, "u11", "iphash")


@pytest.mark.asyncio
async def test_concurrent_hits_never_exceed_limit(fake_redis):
    limiter = SlidingWindowLimiter(fake_redis, "improve", limit=3, window_seconds=60, prefix="t")
    results = await asyncio.gather(*(limiter.hit("u10", "iphash", now=2000.0 + i / 100) for i in range(10)))
    assert sum(result.allowed for result in results) == 3
    assert all(result.retry_after > 0 for result in results if not result.allowed)
    assert await fake_redis.zcard(limiter.key("u10", "iphash")) == 3
