#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Тесты сканера расписания: объявление, обсуждение, запуск и окно опоздания
"""

import asyncio
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock, PropertyMock

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fakes import FakeJobQueue, FakeSink, make_config
from handlers.quiz.quiz_scheduler import SCANNER_JOB_NAME, QuizScheduler
from handlers.quiz.quiz_types import ScheduleDescriptor
from state import BotState
from storage import ScheduleRegistry

NOW = datetime(2026, 10, 20, 4, 0, tzinfo=timezone.utc)


class QuizSchedulerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.config = make_config()
        self.state = BotState(self.config)
        self.data_manager = Mock()
        self.data_manager.save_schedule.return_value = True
        self.registry = ScheduleRegistry(self.state, self.data_manager)
        self.engine = Mock()
        self.engine.start = AsyncMock(return_value=True)
        self.idle = PropertyMock(return_value=True)
        type(self.engine).is_idle = self.idle
        self.sink = FakeSink()
        self.job_queue = FakeJobQueue()
        self.scheduler = QuizScheduler(
            app_config=self.config, registry=self.registry, engine=self.engine,
            state=self.state, sink=self.sink, job_queue=self.job_queue,
        )

    def schedule(self, key, seconds_from_now):
        self.registry.add(ScheduleDescriptor(session_key=key, trigger_at=NOW + timedelta(seconds=seconds_from_now)))
        return self.registry.get(key)


class TestScannerWindows(QuizSchedulerTestCase):
    async def test_notice_sent_once_inside_window(self):
        descriptor = self.schedule("s1", 200)

        await self.scheduler.scan_once(NOW)
        await self.scheduler.scan_once(NOW + timedelta(seconds=15))

        self.assertTrue(descriptor.flags.notice_sent)
        self.assertEqual(self.sink.notices, [("s1", 200)])
        self.engine.start.assert_not_called()

    async def test_nothing_happens_outside_windows(self):
        descriptor = self.schedule("s1", 3600)
        await self.scheduler.scan_once(NOW)
        self.assertFalse(descriptor.flags.notice_sent)
        self.assertFalse(descriptor.flags.discussion_opened)
        self.assertEqual(self.sink.mute_calls, [])

    async def test_discussion_opens_group_once(self):
        descriptor = self.schedule("s1", 1000)

        await self.scheduler.scan_once(NOW)
        await self.scheduler.scan_once(NOW + timedelta(seconds=15))

        self.assertTrue(descriptor.flags.discussion_opened)
        self.assertFalse(descriptor.flags.notice_sent)
        self.assertEqual(self.sink.mute_calls, [False])
        self.assertEqual(len(self.sink.announcements), 1)
        self.assertIn("Discussion opened", self.sink.announcements[0])

    async def test_discussion_deferred_while_quiz_running(self):
        descriptor = self.schedule("s2", 1000)
        self.idle.return_value = False

        await self.scheduler.scan_once(NOW)
        self.assertFalse(descriptor.flags.discussion_opened)
        self.assertEqual(self.sink.mute_calls, [])

        self.idle.return_value = True
        await self.scheduler.scan_once(NOW + timedelta(seconds=15))
        self.assertTrue(descriptor.flags.discussion_opened)

    async def test_registry_persisted_after_each_pass(self):
        self.schedule("s1", 3600)
        await self.scheduler.scan_once(NOW)
        await self.scheduler.scan_once(NOW)
        self.assertEqual(self.data_manager.save_schedule.call_count, 2)

    async def test_persist_failure_does_not_stop_scanning(self):
        self.data_manager.save_schedule.return_value = False
        descriptor = self.schedule("s1", 0)
        await self.scheduler.scan_once(NOW)
        self.assertTrue(descriptor.flags.started)


class TestScannerStart(QuizSchedulerTestCase):
    async def test_due_session_starts_and_is_marked(self):
        descriptor = self.schedule("s1", -10)

        await self.scheduler.scan_once(NOW)

        self.engine.start.assert_awaited_once_with("s1")
        self.assertTrue(descriptor.flags.started)
        self.assertEqual(self.registry.list_pending(), [])

    async def test_start_exactly_at_trigger_time(self):
        descriptor = self.schedule("s1", 0)
        await self.scheduler.scan_once(NOW)
        self.assertTrue(descriptor.flags.started)

    async def test_rejected_start_stays_pending_and_retries(self):
        descriptor = self.schedule("s1", -5)
        self.engine.start.return_value = False

        await self.scheduler.scan_once(NOW)
        self.assertFalse(descriptor.flags.started)

        self.engine.start.return_value = True
        await self.scheduler.scan_once(NOW + timedelta(seconds=15))
        self.assertTrue(descriptor.flags.started)
        self.assertEqual(self.engine.start.await_count, 2)

    async def test_overdue_beyond_grace_is_expired_not_started(self):
        descriptor = self.schedule("s1", -(self.config.start_grace_seconds + 1))

        with self.assertLogs("handlers.quiz.quiz_scheduler", level="WARNING"):
            await self.scheduler.scan_once(NOW)

        self.engine.start.assert_not_called()
        self.assertTrue(descriptor.flags.expired)
        self.assertFalse(descriptor.flags.started)
        self.assertIsNotNone(self.registry.get("s1"))

        await self.scheduler.scan_once(NOW + timedelta(seconds=15))
        self.engine.start.assert_not_called()

    async def test_started_descriptor_is_never_restarted(self):
        self.schedule("s1", -5)
        await self.scheduler.scan_once(NOW)
        await self.scheduler.scan_once(NOW + timedelta(seconds=15))
        self.engine.start.assert_awaited_once()

    async def test_earliest_due_session_tried_first(self):
        self.schedule("later", -5)
        self.schedule("earlier", -30)
        started = []

        async def start_first_only(key):
            started.append(key)
            return len(started) == 1

        self.engine.start.side_effect = start_first_only
        await self.scheduler.scan_once(NOW)

        self.assertEqual(started, ["earlier", "later"])
        self.assertTrue(self.registry.get("earlier").flags.started)
        self.assertFalse(self.registry.get("later").flags.started)

    async def test_overlapping_scans_start_once(self):
        descriptor = self.schedule("s1", -5)

        async def slow_start(key):
            await asyncio.sleep(0.01)
            return True

        self.engine.start.side_effect = slow_start
        await asyncio.gather(self.scheduler.scan_once(NOW), self.scheduler.scan_once(NOW))

        self.engine.start.assert_awaited_once_with("s1")
        self.assertTrue(descriptor.flags.started)


class TestScannerJob(QuizSchedulerTestCase):
    def test_start_registers_single_repeating_job(self):
        self.scheduler.start()
        self.scheduler.start()
        jobs = self.job_queue.pending(SCANNER_JOB_NAME)
        self.assertEqual(len(jobs), 1)
        self.assertTrue(jobs[0].repeating)
        self.assertEqual(jobs[0].when, self.config.scan_interval_seconds)

    async def test_job_runs_scan(self):
        self.schedule("s1", 3600)
        self.scheduler.start()
        await self.job_queue.fire(SCANNER_JOB_NAME)
        self.data_manager.save_schedule.assert_called_once()


if __name__ == '__main__':
    unittest.main(verbosity=2)
