import unittest
from unittest import mock

import httpx

from degen_frame.config import Settings
from degen_frame.data_sources import http as http_mod
from degen_frame.data_sources.http import RetryPolicy, build_async_client, request_with_retries
from degen_frame.domain import Source
from degen_frame.errors import UpstreamTransportError


class TestRetryPolicy(unittest.TestCase):
    def test_exponential_delay(self):
        policy = RetryPolicy(max_retries=3, backoff_seconds=0.5)
        self.assertEqual([policy.delay(i) for i in range(3)], [0.5, 1.0, 2.0])

    def test_from_settings(self):
        policy = RetryPolicy.from_settings(Settings(upstream_max_retries=4, upstream_backoff_seconds=0.1))
        self.assertEqual(policy, RetryPolicy(max_retries=4, backoff_seconds=0.1))


class TestRequestWithRetries(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.sleeps = []

        async def fake_sleep(seconds):
            self.sleeps.append(seconds)

        patcher = mock.patch.object(http_mod, "_sleep", fake_sleep)
        patcher.start()
        self.addCleanup(patcher.stop)

    async def _run(self, handler, retry):
        calls = []

        def recording(request):
            calls.append(request)
            return handler(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(recording)) as client:
            try:
                return await request_with_retries(
                    client, "GET", "https://up.test/x", source=Source.ALLOWANCE, fid="3", retry=retry
                ), calls
            except UpstreamTransportError as exc:
                return exc, calls

    async def test_network_errors_retried_with_backoff(self):
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        exc, calls = await self._run(fail, RetryPolicy(max_retries=2, backoff_seconds=0.2))
        self.assertIsInstance(exc, UpstreamTransportError)
        self.assertIsNone(exc.status)
        self.assertEqual(len(calls), 3)
        self.assertEqual(self.sleeps, [0.2, 0.4])

    async def test_timeout_is_transport_error(self):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        exc, calls = await self._run(slow, RetryPolicy(max_retries=0))
        self.assertIsInstance(exc, UpstreamTransportError)
        self.assertEqual(len(calls), 1)
        self.assertEqual(self.sleeps, [])

    async def test_404_returned_without_retry(self):
        resp, calls = await self._run(lambda r: httpx.Response(404), RetryPolicy(max_retries=3))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(len(calls), 1)

    async def test_5xx_exhausts_retries(self):
        exc, calls = await self._run(lambda r: httpx.Response(502, text="bad gateway"), RetryPolicy(max_retries=1))
        self.assertEqual(exc.status, 502)
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.sleeps, [0.2])

    async def test_recovers_after_mixed_failures(self):
        outcomes = iter(["refuse", 503, 200])

        def flaky(request):
            outcome = next(outcomes)
            if outcome == "refuse":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(outcome)

        resp, calls = await self._run(flaky, RetryPolicy(max_retries=2, backoff_seconds=0.1))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(calls), 3)
        self.assertEqual(self.sleeps, [0.1, 0.2])


class TestBuildAsyncClient(unittest.IsolatedAsyncioTestCase):
    async def test_timeout_applied(self):
        client = build_async_client(Settings(upstream_timeout_seconds=1.5))
        try:
            self.assertEqual(client.timeout.read, 1.5)
            self.assertEqual(client.timeout.connect, 1.5)
        finally:
            await client.aclose()


if __name__ == "__main__":
    unittest.main()
