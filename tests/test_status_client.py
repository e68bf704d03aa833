from __future__ import annotations

import unittest

import httpx

from punchclock.client import EntriesClient


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


class EntriesClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status = {"uid": 3, "state": "O", "since": 100, "day_delta": 0, "month_delta": 0, "computed_at": 100}

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if request.url.path == "/u/status":
                return httpx.Response(200, json=self.status)
            if request.url.path == "/u/entries":
                return httpx.Response(200, json={"1760572800": [{"eid": 1, "uid": 3, "from": 1, "to": 2, "valid": True}]})
            if request.url.path in {"/u/clock/in", "/u/clock/out"}:
                return httpx.Response(200, json=self.status)
            return httpx.Response(404, json={"error": {"code": "NOT_FOUND"}})

        self.clock = _FakeClock()
        self.client = EntriesClient(
            "http://punchclock.test/",
            "token-abc",
            status_ttl_seconds=60,
            transport=httpx.MockTransport(handler),
            clock=self.clock,
        )
        self.addCleanup(self.client.close)

    def test_status_is_empty_until_refreshed(self) -> None:
        self.assertIsNone(self.client.get_status())
        self.assertEqual(self.requests, [])

    def test_refreshed_status_is_served_until_expiry(self) -> None:
        self.client.refresh_status()

        self.clock.now += 59
        self.assertEqual(self.client.get_status(), self.status)
        self.clock.now += 2
        self.assertIsNone(self.client.get_status())
        self.assertEqual(len(self.requests), 1)

    def test_clocking_invalidates_status(self) -> None:
        self.client.refresh_status()

        self.client.clock_in()

        self.assertIsNone(self.client.get_status())
        self.assertEqual(self.requests[-1].method, "PUT")
        self.assertEqual(self.requests[-1].url.path, "/u/clock/in")

    def test_failed_refresh_keeps_status_expired(self) -> None:
        def failing(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": {"code": "TRANSACTION_FAILED"}})

        client = EntriesClient("http://punchclock.test", "t", transport=httpx.MockTransport(failing), clock=self.clock)
        with client:
            with self.assertRaises(httpx.HTTPStatusError):
                client.refresh_status()
            self.assertIsNone(client.get_status())

    def test_list_sends_bearer_token_and_timezone(self) -> None:
        days = self.client.list(tz="UTC")

        self.assertIn("1760572800", days)
        request = self.requests[0]
        self.assertEqual(request.headers["Authorization"], "Bearer token-abc")
        self.assertEqual(request.url.params["tz"], "UTC")


if __name__ == "__main__":
    unittest.main()
