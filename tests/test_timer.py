"""Countdown derivation and the cancellable ticker."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from cbt.services.timer import Ticker, deadline, format_clock, remaining_seconds

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestRemainingSeconds:
    def test_full_duration_at_start(self):
        assert remaining_seconds(START, 60, START) == 3600

    def test_partial_seconds_are_dropped(self):
        now = START + timedelta(seconds=10, milliseconds=400)
        assert remaining_seconds(START, 1, now) == 49

    def test_clamped_at_zero_after_deadline(self):
        now = START + timedelta(minutes=90)
        assert remaining_seconds(START, 60, now) == 0

    def test_naive_started_at_is_treated_as_utc(self):
        naive = START.replace(tzinfo=None)
        now = START + timedelta(minutes=5)
        assert remaining_seconds(naive, 10, now) == 300

    def test_never_increases_as_time_passes(self):
        values = [
            remaining_seconds(START, 2, START + timedelta(seconds=s))
            for s in range(0, 200, 7)
        ]
        assert values == sorted(values, reverse=True)
        assert values[-1] == 0

    def test_deadline(self):
        assert deadline(START, 45) == START + timedelta(minutes=45)


class TestFormatClock:
    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (0, "00:00:00"),
            (59, "00:00:59"),
            (600, "00:10:00"),
            (3661, "01:01:01"),
            (-5, "00:00:00"),
        ],
    )
    def test_format(self, seconds, expected):
        assert format_clock(seconds) == expected


class TestTicker:
    @pytest.mark.asyncio
    async def test_fires_until_cancelled(self):
        calls = []

        async def cb():
            calls.append(1)

        ticker = Ticker(0.01, cb)
        ticker.start()
        assert ticker.running
        await asyncio.sleep(0.08)
        ticker.cancel()
        fired = len(calls)
        assert fired >= 2

        await asyncio.sleep(0.05)
        assert len(calls) == fired
        assert not ticker.running

    @pytest.mark.asyncio
    async def test_cancelled_ticker_cannot_restart(self):
        async def cb():
            pass

        ticker = Ticker(0.01, cb)
        ticker.start()
        ticker.cancel()
        with pytest.raises(RuntimeError):
            ticker.start()

    @pytest.mark.asyncio
    async def test_callback_error_stops_ticker(self):
        calls = []

        async def cb():
            calls.append(1)
            raise RuntimeError("boom")

        ticker = Ticker(0.01, cb)
        ticker.start()
        await asyncio.sleep(0.08)
        assert calls == [1]
        assert not ticker.running

    @pytest.mark.asyncio
    async def test_callback_may_cancel_its_own_ticker(self):
        calls = []
        ticker = None

        async def cb():
            calls.append(1)
            ticker.cancel()

        ticker = Ticker(0.01, cb)
        ticker.start()
        await asyncio.sleep(0.08)
        assert calls == [1]
        assert not ticker.running
