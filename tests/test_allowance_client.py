import datetime as dt
import unittest

import httpx

from degen_frame.data_sources.allowance_client import AllowanceClient, parse_allowance_body, sort_snapshots
from degen_frame.data_sources.http import RetryPolicy
from degen_frame.domain import AllowanceSnapshot, FailureKind, Source
from degen_frame.errors import UpstreamTransportError

ALLOWANCE_URL = "https://ledger.test/api/airdrop2/tip-allowance"


def _row(day, daily="9000", remaining="1200", rank="151"):
    return {
        "snapshot_day": f"{day}T00:00:00.000Z",
        "tip_allowance": daily,
        "remaining_tip_allowance": remaining,
        "user_rank": rank,
    }


class TestSnapshotOrdering(unittest.TestCase):
    def test_sorted_descending(self):
        snaps = parse_allowance_body("3", [_row("2024-03-12"), _row("2024-03-14"), _row("2024-03-13")])
        days = [s.as_of.date() for s in snaps]
        self.assertEqual(days, [dt.date(2024, 3, 14), dt.date(2024, 3, 13), dt.date(2024, 3, 12)])

    def test_equal_dates_keep_fetch_order(self):
        snaps = [
            AllowanceSnapshot(as_of="2024-03-13", daily_allowance=1, remaining_allowance=1, rank="old"),
            AllowanceSnapshot(as_of="2024-03-14", daily_allowance=2, remaining_allowance=2, rank="a"),
            AllowanceSnapshot(as_of="2024-03-14", daily_allowance=3, remaining_allowance=3, rank="b"),
            AllowanceSnapshot(as_of="2024-03-14", daily_allowance=4, remaining_allowance=4, rank="c"),
        ]
        ordered = sort_snapshots(snaps)
        self.assertEqual([s.rank for s in ordered], ["a", "b", "c", "old"])

    def test_non_array_is_malformed(self):
        with self.assertRaises(UpstreamTransportError) as ctx:
            parse_allowance_body("3", {"error": "nope"})
        self.assertEqual(ctx.exception.kind, FailureKind.MALFORMED)
        self.assertEqual(ctx.exception.source, Source.ALLOWANCE)

    def test_bad_record_is_malformed(self):
        with self.assertRaises(UpstreamTransportError):
            parse_allowance_body("3", [_row("2024-03-14"), {"snapshot_day": "2024-03-13", "tip_allowance": "x"}])


class TestAllowanceClient(unittest.IsolatedAsyncioTestCase):
    def _client(self, handler, *, retries=2, **kwargs):
        self.requests = []

        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        self.http = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        return AllowanceClient(
            self.http,
            url=ALLOWANCE_URL,
            retry=RetryPolicy(max_retries=retries, backoff_seconds=0),
            **kwargs,
        )

    async def asyncTearDown(self):
        await self.http.aclose()

    async def test_current_is_latest_snapshot(self):
        body = [_row("2024-03-12", daily="100"), _row("2024-03-14", daily="300"), _row("2024-03-13", daily="200")]
        client = self._client(lambda r: httpx.Response(200, json=body))
        current = await client.fetch_current("3")
        self.assertEqual(str(current.daily_allowance), "300")
        self.assertEqual(self.requests[0].url.params["fid"], "3")

    async def test_json_number_amounts_keep_wire_text(self):
        raw = b'[{"snapshot_day": "2024-03-14", "tip_allowance": 12.10, "remaining_tip_allowance": 1e-7, "user_rank": 9}]'
        client = self._client(lambda r: httpx.Response(200, content=raw, headers={"Content-Type": "application/json"}))
        current = await client.fetch_current("3")
        self.assertEqual(current.daily_display, "12.10")
        self.assertEqual(current.remaining_display, "1e-7")
        self.assertEqual(current.rank, "9")
        self.assertFalse(current.is_exhausted)

    async def test_default_window_params(self):
        client = self._client(lambda r: httpx.Response(200, json=[]), season="season1", limit=10)
        await client.fetch_snapshots("3")
        params = self.requests[0].url.params
        self.assertEqual(params["season"], "season1")
        self.assertEqual(params["limit"], "10")
        self.assertNotIn("offset", params)

    async def test_explicit_window_overrides_defaults(self):
        client = self._client(lambda r: httpx.Response(200, json=[]), season="season1")
        await client.fetch_snapshots("3", season="season2", offset=5)
        params = self.requests[0].url.params
        self.assertEqual(params["season"], "season2")
        self.assertEqual(params["offset"], "5")

    async def test_empty_array_is_not_found(self):
        client = self._client(lambda r: httpx.Response(200, json=[]))
        self.assertIsNone(await client.fetch_current("3"))

    async def test_404_is_not_found_and_never_retried(self):
        client = self._client(lambda r: httpx.Response(404, json={"error": "not found"}), retries=3)
        self.assertIsNone(await client.fetch_current("3"))
        self.assertEqual(len(self.requests), 1)

    async def test_transient_5xx_recovers(self):
        responses = iter([httpx.Response(503), httpx.Response(200, json=[_row("2024-03-14")])])
        client = self._client(lambda r: next(responses), retries=2)
        current = await client.fetch_current("3")
        self.assertIsNotNone(current)
        self.assertEqual(len(self.requests), 2)

    async def test_other_4xx_is_transport_error(self):
        client = self._client(lambda r: httpx.Response(400, text="bad fid"))
        with self.assertRaises(UpstreamTransportError) as ctx:
            await client.fetch_current("3")
        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(len(self.requests), 1)

    async def test_non_array_body_is_transport_error(self):
        client = self._client(lambda r: httpx.Response(200, json={"allowance": 5}))
        with self.assertRaises(UpstreamTransportError) as ctx:
            await client.fetch_current("3")
        self.assertEqual(ctx.exception.kind, FailureKind.MALFORMED)


if __name__ == "__main__":
    unittest.main()
