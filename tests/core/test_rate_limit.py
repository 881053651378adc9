"""
Tests for contact form rate limiting.
"""
from unittest.mock import MagicMock, patch

import pytest

from formrelay.core.rate_limit import (
    MemoryWindowCounter,
    RateLimitRule,
    client_address,
    rate_limit_key,
)

RULE = RateLimitRule(scope="contact", limit=3, window=60)


class TestMemoryWindowCounter:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        counter = MemoryWindowCounter()

        decisions = [await counter.hit("k", RULE) for _ in range(3)]

        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_blocks_over_limit(self):
        counter = MemoryWindowCounter()
        for _ in range(3):
            await counter.hit("k", RULE)

        decision = await counter.hit("k", RULE)

        assert decision.allowed is False
        assert decision.remaining == 0
        assert 0 < decision.retry_after <= 60
        assert decision.headers()["Retry-After"] == str(decision.retry_after)

    @pytest.mark.asyncio
    async def test_window_slides(self):
        counter = MemoryWindowCounter()
        with patch("formrelay.core.rate_limit.time.time", return_value=1000.0):
            for _ in range(3):
                await counter.hit("k", RULE)
        with patch("formrelay.core.rate_limit.time.time", return_value=1061.0):
            decision = await counter.hit("k", RULE)

        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_forget_idle_drops_expired_clients(self):
        counter = MemoryWindowCounter()
        with patch("formrelay.core.rate_limit.time.time", return_value=1000.0):
            await counter.hit("one-off", RULE)
            await counter.hit("regular", RULE)
        with patch("formrelay.core.rate_limit.time.time", return_value=1030.0):
            await counter.hit("regular", RULE)
        with patch("formrelay.core.rate_limit.time.time", return_value=1061.0):
            counter.forget_idle(RULE.window)

        assert list(counter._hits) == ["regular"]
        assert list(counter._hits["regular"]) == [1030.0]

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        counter = MemoryWindowCounter()
        single = RateLimitRule(scope="contact", limit=1, window=60)
        await counter.hit("a", single)

        decision = await counter.hit("b", single)

        assert decision.allowed is True


class TestHelpers:
    def test_client_address_prefers_forwarded_for(self):
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

        assert client_address(request) == "203.0.113.7"

    def test_client_address_from_connection(self):
        request = MagicMock()
        request.headers = {}
        request.client.host = "198.51.100.2"

        assert client_address(request) == "198.51.100.2"

    def test_key_format(self):
        assert rate_limit_key("contact", "1.2.3.4") == "rate_limit:contact:ip_1.2.3.4"


class TestContactRateLimit:
    @pytest.mark.asyncio
    async def test_sixth_submission_is_rejected(self, client, contact_payload, mail_transport):
        for _ in range(5):
            response = await client.post("/api/forms/contact", json=contact_payload)
            assert response.status_code == 200

        response = await client.post("/api/forms/contact", json=contact_payload)

        assert response.status_code == 429
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "Too many submissions from this IP, please try again later."
        assert int(response.headers["Retry-After"]) > 0
        assert mail_transport.senders_created == 5

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_when_redis_fails(self, client, contact_payload):
        async def unreachable_counter():
            raise ConnectionError("redis down")

        with patch("formrelay.core.rate_limit.get_window_counter", unreachable_counter):
            response = await client.post("/api/forms/contact", json=contact_payload)

        assert response.status_code == 200
