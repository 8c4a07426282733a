import asyncio
import os
import sys
from datetime import timedelta

_test_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, _test_dir)

from _helper import NOW, RecordingAlertSink, make_record

from order_board.notify import NotificationDispatcher
from order_board.pipeline import BoardPipeline, SnapshotReceived, SubscriptionFailed


class SteppingClock:
    def __init__(self, start=NOW, step=timedelta(seconds=30)):
        self.now = start
        self.step = step

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


def test_snapshots_are_processed_in_arrival_order():
    async def scenario():
        sink = RecordingAlertSink()
        pipeline = BoardPipeline(NotificationDispatcher([sink]), clock=SteppingClock())
        seen_versions = []

        async def listener(state, new_orders):
            seen_versions.append((state.version, [o.id for o in new_orders]))
            await asyncio.sleep(0)  # give the loop a chance to interleave

        pipeline.add_listener(listener)
        pipeline.submit_snapshot([])
        pipeline.submit_snapshot([("X", make_record("pending", age_min=0))])
        pipeline.submit_snapshot([("X", make_record("pending", age_min=0))])

        shutdown = asyncio.Event()
        runner = asyncio.create_task(pipeline.run(shutdown))
        await asyncio.wait_for(pipeline.wait_idle(), timeout=5)
        shutdown.set()
        await runner
        await pipeline.dispatcher.drain()
        return pipeline, sink, seen_versions

    pipeline, sink, seen = asyncio.run(scenario())
    assert seen == [(1, []), (2, ["X"]), (3, [])]
    assert [a.order_id for a in sink.alerts] == ["X"]
    assert pipeline.backlog == 0
    assert list(pipeline.state.orders) == ["X"]


def test_subscription_error_marks_board_stale_until_next_snapshot():
    async def scenario():
        pipeline = BoardPipeline(clock=lambda: NOW)
        pipeline.submit_snapshot([("a", make_record())])
        pipeline.submit_error(ConnectionError("lost connection"))
        await pipeline.drain_inbox()
        stale = (pipeline.stale, pipeline.last_error, list(pipeline.state.orders))

        pipeline.submit_snapshot([("a", make_record()), ("b", make_record())])
        await pipeline.drain_inbox()
        return stale, pipeline

    (stale, error, orders_during_outage), pipeline = asyncio.run(scenario())
    assert stale is True
    assert error == "lost connection"
    assert orders_during_outage == ["a"]  # last good data is kept
    assert pipeline.stale is False
    assert pipeline.last_error is None
    assert list(pipeline.state.orders) == ["a", "b"]


def test_failing_listener_does_not_stop_the_pipeline():
    async def scenario():
        pipeline = BoardPipeline(clock=lambda: NOW)

        async def broken(state, new_orders):
            raise RuntimeError("renderer crashed")

        pipeline.add_listener(broken)
        new = await pipeline.handle(SnapshotReceived([("a", make_record(age_min=0))]))
        await pipeline.handle(SubscriptionFailed("boom"))
        return pipeline, new

    pipeline, new = asyncio.run(scenario())
    assert [o.id for o in new] == ["a"]
    assert pipeline.state.version == 1
    assert pipeline.stale is True


def test_malformed_record_does_not_blank_the_board():
    async def scenario():
        pipeline = BoardPipeline(clock=lambda: NOW)
        await pipeline.handle(SnapshotReceived([("a", make_record()), ("bad", "{oops")]))
        return pipeline

    pipeline = asyncio.run(scenario())
    assert list(pipeline.state.orders) == ["a"]
