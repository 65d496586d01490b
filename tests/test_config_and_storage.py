#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Тесты конфигурации, DataManager и хранилищ каталога и расписания
"""

import json
import os
import shutil
import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock, patch

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fakes import make_config, make_questions
from app_config import AppConfig, DEFAULT_QUIZ_SETTINGS
from data_manager import DataManager
from handlers.quiz.quiz_types import ScheduleDescriptor
from state import BotState
from storage import ScheduleRegistry, SessionCatalog

TEST_ENV = {
    "BOT_TOKEN": "123:abc",
    "ADMIN_IDS": "1, 2, oops",
    "QUIZ_GROUP_ID": "-1001",
    "QUIZ_CHANNEL_ID": "not-a-number",
    "GROUP_INVITE_LINK": "https://t.me/+abc",
}


class TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.test_dir)


class TestAppConfig(TempDirTestCase):
    def load(self, quiz_settings=None):
        if quiz_settings is not None:
            (self.test_dir / "config").mkdir(exist_ok=True)
            with open(self.test_dir / "config" / "quiz_config.json", "w", encoding="utf-8") as f:
                json.dump({"quiz_settings": quiz_settings}, f)
        with patch.dict(os.environ, TEST_ENV, clear=False):
            return AppConfig(project_root=self.test_dir)

    def test_env_values(self):
        config = self.load()
        self.assertEqual(config.bot_token, "123:abc")
        self.assertEqual(config.admin_ids, [1, 2])
        self.assertEqual(config.quiz_group_id, -1001)
        self.assertIsNone(config.quiz_channel_id)
        self.assertTrue(config.is_admin(2))
        self.assertFalse(config.is_admin(3))
        self.assertFalse(config.is_admin(None))

    def test_missing_file_created_with_defaults(self):
        config = self.load()
        self.assertTrue((self.test_dir / "config" / "quiz_config.json").exists())
        self.assertEqual(config.scan_interval_seconds, DEFAULT_QUIZ_SETTINGS["scan_interval_seconds"])
        self.assertEqual(config.poll_open_seconds, 20)
        self.assertEqual(config.timezone_name, "Asia/Kolkata")
        self.assertEqual(config.commands.delete_schedule, "deleteschedule")

    def test_overrides_and_invalid_values(self):
        config = self.load({
            "poll_open_seconds": 30,
            "scan_interval_seconds": 0,
            "leaderboard_limit": "many",
            "post_quiz_discussion_seconds": 0,
        })
        self.assertEqual(config.poll_open_seconds, 30)
        self.assertEqual(config.scan_interval_seconds, 15)
        self.assertEqual(config.leaderboard_limit, 10)
        self.assertEqual(config.post_quiz_discussion_seconds, 0)

    def test_inverted_option_range_reset(self):
        config = self.load({"min_options": 4, "max_options": 3})
        self.assertEqual((config.min_options, config.max_options), (2, 4))

    def test_broken_json_uses_defaults(self):
        (self.test_dir / "config").mkdir(exist_ok=True)
        (self.test_dir / "config" / "quiz_config.json").write_text("{broken", encoding="utf-8")
        with patch.dict(os.environ, TEST_ENV, clear=False):
            config = AppConfig(project_root=self.test_dir)
        self.assertEqual(config.start_grace_seconds, 60)


class TestDataManager(TempDirTestCase):
    def setUp(self):
        super().setUp()
        self.config = make_config(project_root=self.test_dir)
        self.state = BotState(self.config)
        self.data_manager = DataManager(self.config, self.state)

    def reload(self) -> BotState:
        state = BotState(self.config)
        DataManager(self.config, state).load_all_data()
        return state

    def test_round_trip(self):
        trigger_at = datetime(2026, 10, 20, 4, 0, tzinfo=timezone.utc)
        self.state.quiz_catalog["s1"] = make_questions(2)
        self.state.schedules.append(ScheduleDescriptor(session_key="s1", trigger_at=trigger_at))
        self.state.schedules[0].flags.notice_sent = True
        self.state.user_scores["7"] = {"name": "Alice", "score": 3, "sessions": 1}

        self.assertTrue(self.data_manager.save_all_data())
        loaded = self.reload()

        self.assertEqual(loaded.quiz_catalog["s1"], make_questions(2))
        self.assertEqual(loaded.schedules[0].trigger_at, trigger_at)
        self.assertTrue(loaded.schedules[0].flags.notice_sent)
        self.assertFalse(loaded.schedules[0].flags.started)
        self.assertEqual(loaded.user_scores["7"]["score"], 3)

    def test_missing_files_load_empty(self):
        loaded = self.reload()
        self.assertEqual(loaded.quiz_catalog, {})
        self.assertEqual(loaded.schedules, [])
        self.assertEqual(loaded.user_scores, {})

    def test_corrupt_entries_skipped(self):
        self.config.paths.data_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config.paths.sessions_file, "w", encoding="utf-8") as f:
            json.dump({"s1": [
                {"question": "ok?", "options": ["a", "b"], "correct": 1},
                {"question": "bad", "options": ["a"], "correct": 0},
                "garbage",
            ]}, f)
        with open(self.config.paths.schedule_file, "w", encoding="utf-8") as f:
            json.dump([
                {"session": "s1", "trigger_at": "2026-10-20T09:30:00+05:30"},
                {"session": "naive", "trigger_at": "2026-10-20T09:30:00"},
                {"session": "s1", "trigger_at": "2026-10-21T09:30:00+05:30"},
                {"no": "session"},
            ], f)

        loaded = self.reload()
        self.assertEqual(len(loaded.quiz_catalog["s1"]), 1)
        self.assertEqual([s.session_key for s in loaded.schedules], ["s1"])
        self.assertEqual(loaded.schedules[0].trigger_at.utcoffset(), timedelta(hours=5, minutes=30))

    def test_invalid_json_loads_empty(self):
        self.config.paths.data_dir.mkdir(parents=True, exist_ok=True)
        self.config.paths.schedule_file.write_text("[not json", encoding="utf-8")
        self.assertEqual(self.reload().schedules, [])

    def test_write_failure_returns_false_and_keeps_file(self):
        self.state.user_scores["1"] = {"name": "A", "score": 1, "sessions": 1}
        self.assertTrue(self.data_manager.save_user_data())

        self.state.user_scores["2"] = {"name": "B", "score": object(), "sessions": 1}
        with self.assertLogs("data_manager", level="ERROR"):
            self.assertFalse(self.data_manager.save_user_data())

        with open(self.config.paths.users_file, encoding="utf-8") as f:
            self.assertEqual(list(json.load(f).keys()), ["1"])
        leftovers = [p for p in self.config.paths.data_dir.iterdir() if p.name.startswith(".users.json.")]
        self.assertEqual(leftovers, [])


class TestStorage(unittest.TestCase):
    def setUp(self):
        self.state = BotState(make_config())
        self.data_manager = Mock()
        self.catalog = SessionCatalog(self.state, self.data_manager)
        self.registry = ScheduleRegistry(self.state, self.data_manager)
        self.trigger_at = datetime(2026, 10, 20, tzinfo=timezone.utc)

    def test_catalog_returns_copy(self):
        self.catalog.put("s1", make_questions(2))
        questions = self.catalog.get_questions("s1")
        questions.clear()
        self.assertEqual(len(self.catalog.get_questions("s1")), 2)
        self.assertIsNone(self.catalog.get_questions("missing"))

    def test_catalog_delete(self):
        self.catalog.put("s1", make_questions(1))
        self.assertTrue(self.catalog.delete("s1"))
        self.assertFalse(self.catalog.delete("s1"))
        self.assertEqual(self.catalog.keys(), [])

    def test_catalog_persist_failure_logged(self):
        self.data_manager.save_sessions.return_value = False
        with self.assertLogs("storage.session_catalog", level="ERROR"):
            self.assertFalse(self.catalog.persist())

    def test_registry_flags_and_pending(self):
        self.registry.add(ScheduleDescriptor(session_key="a", trigger_at=self.trigger_at))
        self.registry.add(ScheduleDescriptor(session_key="b", trigger_at=self.trigger_at))
        self.registry.mark_notice_sent("a")
        self.registry.mark_discussion_opened("a")
        self.registry.mark_started("a")
        self.registry.mark_expired("b")

        flags = self.registry.get("a").flags
        self.assertTrue(flags.notice_sent and flags.discussion_opened and flags.started)
        self.assertEqual(self.registry.list_pending(), [])

    def test_started_entry_is_not_expired_or_replaced(self):
        self.registry.add(ScheduleDescriptor(session_key="a", trigger_at=self.trigger_at))
        self.registry.mark_started("a")
        self.registry.mark_expired("a")
        self.assertFalse(self.registry.get("a").flags.expired)

        self.registry.add(ScheduleDescriptor(session_key="a", trigger_at=self.trigger_at + timedelta(days=1)))
        self.assertEqual(self.registry.get("a").trigger_at, self.trigger_at)

    def test_pending_entry_is_replaced(self):
        self.registry.add(ScheduleDescriptor(session_key="a", trigger_at=self.trigger_at))
        later = self.trigger_at + timedelta(hours=1)
        self.registry.add(ScheduleDescriptor(session_key="a", trigger_at=later))
        self.assertEqual(len(self.registry.all()), 1)
        self.assertEqual(self.registry.get("a").trigger_at, later)

    def test_remove(self):
        self.registry.add(ScheduleDescriptor(session_key="a", trigger_at=self.trigger_at))
        self.assertTrue(self.registry.remove("a"))
        self.assertFalse(self.registry.remove("a"))


if __name__ == '__main__':
    unittest.main(verbosity=2)
