"""Tests for the detached task runner."""

import asyncio
from unittest.mock import patch

from linerelay.relay.tasks import TaskRunner

from .helpers import LogRecorder


class TestSpawn:
    def test_spawn_does_not_run_before_caller_yields(self):
        order = []

        async def work():
            order.append("task")

        async def run():
            runner = TaskRunner()
            runner.spawn("t1", work())
            order.append("caller")
            await runner.join()
            return runner

        runner = asyncio.run(run())
        assert order == ["caller", "task"]
        assert runner.pending == 0
        assert runner.spawned == 1

    def test_crash_is_logged_not_propagated(self):
        recorder = LogRecorder()

        async def boom():
            raise RuntimeError("kaput")

        async def run():
            runner = TaskRunner()
            runner.spawn("crashy", boom())
            await asyncio.sleep(0.01)
            return runner.pending

        with patch("linerelay.relay.tasks.logger", recorder):
            pending = asyncio.run(run())

        assert pending == 0
        assert recorder.messages("error") == ["detached task crashed"]

    def test_join_waits_for_tasks_spawned_by_tasks(self):
        done = []

        async def child():
            await asyncio.sleep(0.01)
            done.append("child")

        async def run():
            runner = TaskRunner()

            async def parent():
                runner.spawn("child", child())
                done.append("parent")

            runner.spawn("parent", parent())
            await runner.join()

        asyncio.run(run())
        assert done == ["parent", "child"]


class TestShutdown:
    def test_finished_within_grace_not_cancelled(self):
        async def quick():
            await asyncio.sleep(0.01)

        async def run():
            runner = TaskRunner()
            runner.spawn("quick", quick())
            return await runner.shutdown(grace_seconds=1)

        assert asyncio.run(run()) == 0

    def test_stragglers_cancelled_after_grace(self):
        async def slow():
            await asyncio.sleep(30)

        async def run():
            runner = TaskRunner()
            runner.spawn("slow", slow())
            cancelled = await runner.shutdown(grace_seconds=0.01)
            return cancelled, runner.pending

        assert asyncio.run(run()) == (1, 0)

    def test_shutdown_with_nothing_running(self):
        assert asyncio.run(TaskRunner().shutdown(grace_seconds=0)) == 0
