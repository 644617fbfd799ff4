"""Tests for the inter-batch gate."""

from fakes import SleepRecorder

from spacedrain.services.rate_limiter import BackoffGate


class TestBackoffGate:
    async def test_first_wait_is_free(self, sleep: SleepRecorder):
        gate = BackoffGate(2.0, sleep=sleep)
        await gate.wait()
        assert sleep.calls == []

    async def test_sleeps_between_batches(self, sleep: SleepRecorder):
        gate = BackoffGate(4.0, sleep=sleep)
        for _ in range(3):
            await gate.wait()
        assert sleep.calls == [4.0, 4.0]
        assert gate.waits == 2

    async def test_reset_rearms(self, sleep: SleepRecorder):
        gate = BackoffGate(1.0, sleep=sleep)
        await gate.wait()
        await gate.wait()
        gate.reset()
        await gate.wait()
        assert sleep.calls == [1.0]

    async def test_defer_stretches_next_wait_only(self, sleep: SleepRecorder):
        gate = BackoffGate(1.0, sleep=sleep)
        await gate.wait()
        gate.defer(5.0)
        await gate.wait()
        await gate.wait()
        assert sleep.calls == [6.0, 1.0]

    async def test_zero_delay_never_sleeps(self, sleep: SleepRecorder):
        gate = BackoffGate(0, sleep=sleep)
        for _ in range(3):
            await gate.wait()
        assert sleep.calls == []
