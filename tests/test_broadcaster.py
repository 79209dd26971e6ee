"""Tests for queued event delivery."""

import asyncio

from broadcaster import LogBroadcaster, QueuedBroadcaster


def test_drain_delivers_in_emit_order(run):
    async def scenario():
        broadcaster = QueuedBroadcaster()
        seen = []

        async def sink(event, payload):
            seen.append((event, payload))

        broadcaster.add_sink(sink)
        broadcaster.emit("current_bid_updated", {"amount": 10})
        broadcaster.emit("player_sold", {"final_bid": 10})
        broadcaster.emit("stats_updated")
        await broadcaster.drain()
        return seen

    assert run(scenario()) == [
        ("current_bid_updated", {"amount": 10}),
        ("player_sold", {"final_bid": 10}),
        ("stats_updated", None),
    ]


def test_failing_sink_does_not_block_others(run):
    async def scenario():
        broadcaster = QueuedBroadcaster()
        seen = []

        async def broken(event, payload):
            raise RuntimeError("channel gone")

        async def sink(event, payload):
            seen.append(event)

        broadcaster.add_sink(broken)
        broadcaster.add_sink(sink)
        broadcaster.emit("player_unsold")
        broadcaster.emit("auction_reset")
        await broadcaster.drain()
        return seen

    assert run(scenario()) == ["player_unsold", "auction_reset"]


def test_background_worker(run):
    async def scenario():
        broadcaster = QueuedBroadcaster()
        seen = []

        async def sink(event, payload):
            seen.append(event)

        broadcaster.add_sink(sink)
        worker = broadcaster.start()
        assert broadcaster.start() is worker

        broadcaster.emit("auction_status_changed", "running")
        broadcaster.emit("auction_finished")
        await asyncio.wait_for(broadcaster._queue.join(), timeout=1)

        await broadcaster.stop()
        assert worker.done()
        return seen

    assert run(scenario()) == ["auction_status_changed", "auction_finished"]


def test_log_broadcaster_never_raises():
    LogBroadcaster().emit("players_updated", [])
