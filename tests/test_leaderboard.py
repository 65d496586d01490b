#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Тесты итогового рейтинга викторины и накопительной статистики
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import Mock

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fakes import make_config
from modules.score_manager import ScoreManager, compile_leaderboard, format_leaderboard
from state import BotState


class TestCompileLeaderboard(unittest.TestCase):
    def setUp(self):
        self.names = {1: "A", 2: "B", 3: "C", 4: "D"}

    def test_sorted_by_score_ties_keep_first_seen_order(self):
        leaderboard = compile_leaderboard("s", {1: 3, 2: 5, 3: 5, 4: 1}, self.names, 5)
        self.assertEqual([e.display_name for e in leaderboard.entries], ["B", "C", "A", "D"])
        self.assertEqual([e.rank for e in leaderboard.entries], [1, 2, 3, 4])
        self.assertTrue(all(e.total == 5 for e in leaderboard.entries))

    def test_ranking_is_deterministic(self):
        scores = {1: 3, 2: 5, 3: 5, 4: 1}
        first = compile_leaderboard("s", scores, self.names, 5)
        second = compile_leaderboard("s", dict(scores), self.names, 5)
        self.assertEqual(first.entries, second.entries)

    def test_limit_truncates_entries_but_keeps_full_ranking(self):
        scores = {uid: uid for uid in range(1, 16)}
        names = {uid: f"U{uid}" for uid in scores}
        leaderboard = compile_leaderboard("s", scores, names, 20, limit=10)
        self.assertEqual(len(leaderboard.entries), 10)
        self.assertEqual(len(leaderboard.full_ranking), 15)
        self.assertEqual(leaderboard.entries[0].display_name, "U15")

    def test_zero_score_participants_are_listed(self):
        leaderboard = compile_leaderboard("s", {1: 0}, self.names, 3)
        self.assertFalse(leaderboard.is_empty)
        self.assertEqual(leaderboard.entries[0].score, 0)

    def test_no_participants_gives_empty_marker(self):
        leaderboard = compile_leaderboard("s", {}, {}, 3)
        self.assertTrue(leaderboard.is_empty)
        self.assertEqual(leaderboard.entries, [])

    def test_missing_display_name_falls_back_to_user_id(self):
        leaderboard = compile_leaderboard("s", {42: 1}, {}, 1)
        self.assertEqual(leaderboard.entries[0].display_name, "User 42")


class TestFormatLeaderboard(unittest.TestCase):
    def test_empty_result_message(self):
        text = format_leaderboard(compile_leaderboard("s", {}, {}, 3))
        self.assertIn("Nobody answered", text)

    def test_medals_for_top_three_with_points(self):
        names = {1: "A", 2: "B", 3: "C", 4: "D"}
        text = format_leaderboard(compile_leaderboard("s", {1: 3, 2: 2, 3: 1, 4: 0}, names, 3))
        lines = text.splitlines()
        self.assertIn("🥇 A — 3/3", lines)
        self.assertIn("🥉 C — 1/3", lines)
        self.assertIn("4. D — 0/3", lines)

    def test_hidden_participants_counted(self):
        scores = {uid: 1 for uid in range(12)}
        text = format_leaderboard(compile_leaderboard("s", scores, {}, 1, limit=10))
        self.assertIn("2 more participants", text)


class TestScoreManager(unittest.TestCase):
    def setUp(self):
        self.state = BotState(make_config())
        self.data_manager = Mock()
        self.data_manager.save_user_data.return_value = True
        self.score_manager = ScoreManager(make_config(), self.state, self.data_manager)

    def test_session_results_accumulate(self):
        first = compile_leaderboard("s1", {1: 2, 2: 0}, {1: "Alice", 2: "Bob"}, 3)
        second = compile_leaderboard("s2", {1: 1}, {1: "Alice B."}, 3)

        self.assertTrue(self.score_manager.record_session_results(first))
        self.assertTrue(self.score_manager.record_session_results(second))

        self.assertEqual(self.state.user_scores["1"], {"name": "Alice B.", "score": 3, "sessions": 2})
        self.assertEqual(self.state.user_scores["2"], {"name": "Bob", "score": 0, "sessions": 1})
        self.assertEqual(self.data_manager.save_user_data.call_count, 2)

    def test_empty_session_does_not_touch_storage(self):
        self.assertTrue(self.score_manager.record_session_results(compile_leaderboard("s", {}, {}, 3)))
        self.data_manager.save_user_data.assert_not_called()

    def test_lifetime_rating_order_and_text(self):
        self.state.user_scores = {
            "1": {"name": "Low", "score": 5, "sessions": 1},
            "2": {"name": "High", "score": 120, "sessions": 4},
        }
        rating = self.score_manager.get_lifetime_rating(10)
        self.assertEqual([r["name"] for r in rating], ["High", "Low"])
        text = self.score_manager.format_lifetime_rating(10)
        self.assertIn("1. 👑 High — 120 (4 quizzes)", text)

    def test_lifetime_rating_without_data(self):
        self.assertIn("No results yet", self.score_manager.format_lifetime_rating())


if __name__ == '__main__':
    unittest.main(verbosity=2)
