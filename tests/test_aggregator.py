import asyncio
import unittest

from degen_frame.aggregator import aggregate
from degen_frame.data_sources import CallableAllowanceSource, CallableIdentitySource
from degen_frame.domain import AllowanceSnapshot, FailureKind, Source, UserIdentity
from degen_frame.errors import UpstreamTransportError

IDENTITY = UserIdentity(id="3", display_name="dwr", avatar_ref="https://img.test/dwr.png")
SNAPSHOT = AllowanceSnapshot(as_of="2024-03-14", daily_allowance="9000", remaining_allowance="1200")


def _returning(value):
    async def fetch(fid):
        return value

    return fetch


def _raising(exc):
    async def fetch(fid):
        raise exc

    return fetch


class TestAggregate(unittest.IsolatedAsyncioTestCase):
    async def test_both_present(self):
        result = await aggregate(
            "3", CallableIdentitySource(_returning(IDENTITY)), CallableAllowanceSource(_returning(SNAPSHOT))
        )
        self.assertEqual(result.identity, IDENTITY)
        self.assertEqual(result.allowance, SNAPSHOT)
        self.assertEqual(result.failures, frozenset())

    async def test_not_found_is_absent_without_failure(self):
        result = await aggregate(
            "3", CallableIdentitySource(_returning(None)), CallableAllowanceSource(_returning(None))
        )
        self.assertIsNone(result.identity)
        self.assertIsNone(result.allowance)
        self.assertEqual(result.failures, frozenset())

    async def test_transport_failure_captured_as_value(self):
        error = UpstreamTransportError(Source.IDENTITY, fid="3", status=500, detail="boom")
        result = await aggregate(
            "3", CallableIdentitySource(_raising(error)), CallableAllowanceSource(_returning(SNAPSHOT))
        )
        self.assertIsNone(result.identity)
        self.assertEqual(result.allowance, SNAPSHOT)
        self.assertTrue(result.failed(Source.IDENTITY))
        self.assertFalse(result.failed(Source.ALLOWANCE))
        (failure,) = result.failures
        self.assertEqual(failure.status, 500)

    async def test_unexpected_exception_captured_as_malformed(self):
        result = await aggregate(
            "3", CallableIdentitySource(_returning(IDENTITY)), CallableAllowanceSource(_raising(KeyError("day")))
        )
        self.assertEqual(result.identity, IDENTITY)
        (failure,) = result.failures
        self.assertEqual(failure.source, Source.ALLOWANCE)
        self.assertEqual(failure.kind, FailureKind.MALFORMED)

    async def test_both_fail(self):
        result = await aggregate(
            "3",
            CallableIdentitySource(_raising(UpstreamTransportError(Source.IDENTITY, status=502))),
            CallableAllowanceSource(_raising(UpstreamTransportError(Source.ALLOWANCE, status=503))),
        )
        self.assertEqual({f.source for f in result.failures}, {Source.IDENTITY, Source.ALLOWANCE})

    async def test_calls_run_concurrently(self):
        # each branch waits for the other to start; a sequential join would deadlock
        identity_started = asyncio.Event()
        allowance_started = asyncio.Event()

        async def identity(fid):
            identity_started.set()
            await allowance_started.wait()
            return IDENTITY

        async def allowance(fid):
            allowance_started.set()
            await identity_started.wait()
            return SNAPSHOT

        result = await asyncio.wait_for(
            aggregate("3", CallableIdentitySource(identity), CallableAllowanceSource(allowance)), timeout=1
        )
        self.assertEqual(result.identity, IDENTITY)
        self.assertEqual(result.allowance, SNAPSHOT)

    async def test_slow_branch_is_awaited(self):
        async def slow_allowance(fid):
            await asyncio.sleep(0.01)
            return SNAPSHOT

        result = await aggregate(
            "3", CallableIdentitySource(_returning(IDENTITY)), CallableAllowanceSource(slow_allowance)
        )
        self.assertEqual(result.allowance, SNAPSHOT)

    async def test_cancellation_reaches_both_calls(self):
        started = []
        cancelled = []

        def blocking(name):
            async def fetch(fid):
                started.append(name)
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.append(name)
                    raise

            return fetch

        task = asyncio.ensure_future(
            aggregate("3", CallableIdentitySource(blocking("identity")), CallableAllowanceSource(blocking("allowance")))
        )
        while len(started) < 2:
            await asyncio.sleep(0)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(sorted(cancelled), ["allowance", "identity"])


if __name__ == "__main__":
    unittest.main()
