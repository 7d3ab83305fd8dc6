"""
Unit tests for leaderboard and statistics aggregation.
"""
import unittest

from quizmaster.models import QuizStats
from quizmaster.scoreboard import best_per_user, count_users, leaderboard, list_scores, stats
from tests.test_fixtures import TestFixtures


class TestBestPerUser(unittest.TestCase):

    def test_keeps_highest_percentage(self):
        best = best_per_user(TestFixtures.create_score_records())

        self.assertEqual(list(best), ["alice", "bob", "carol", "dave"])
        self.assertEqual(best["alice"].id, "r3")

    def test_raw_score_breaks_percentage_tie(self):
        records = [
            TestFixtures.create_score_record("erin", 5, 10, record_id="small"),
            TestFixtures.create_score_record("erin", 10, 20, record_id="large"),
        ]
        self.assertEqual(best_per_user(records)["erin"].id, "large")

    def test_full_tie_keeps_first_record(self):
        records = [
            TestFixtures.create_score_record("erin", 7, 10, days_ago=2, record_id="first"),
            TestFixtures.create_score_record("erin", 7, 10, days_ago=1, record_id="second"),
        ]
        self.assertEqual(best_per_user(records)["erin"].id, "first")


class TestLeaderboard(unittest.TestCase):
    """Test cases for ranking."""

    def test_one_entry_per_user_with_dense_ranks(self):
        entries = leaderboard(TestFixtures.create_score_records())

        self.assertEqual([e.username for e in entries], ["alice", "bob", "dave", "carol"])
        self.assertEqual([e.rank for e in entries], [1, 2, 3, 4])
        self.assertEqual(len({e.username for e in entries}), len(entries))

    def test_sorted_descending(self):
        entries = leaderboard(TestFixtures.create_score_records())
        keys = [(e.record.percentage, e.record.score) for e in entries]
        self.assertEqual(keys, sorted(keys, reverse=True))

    def test_percentage_tie_broken_by_raw_score(self):
        """A 50% over 20 questions outranks a 50% over 10 questions."""
        records = [
            TestFixtures.create_score_record("u1", 5, 10, percentage=50),
            TestFixtures.create_score_record("u2", 10, 20, percentage=50),
        ]
        entries = leaderboard(records)
        self.assertEqual([e.username for e in entries], ["u2", "u1"])
        self.assertEqual([e.rank for e in entries], [1, 2])

    def test_limit(self):
        records = [
            TestFixtures.create_score_record(f"player{i}", i, 20)
            for i in range(15)
        ]
        self.assertEqual(len(leaderboard(records)), 10)
        self.assertEqual(len(leaderboard(records, limit=3)), 3)
        self.assertEqual(len(leaderboard(records, limit=None)), 15)
        self.assertEqual(leaderboard(records, limit=0), [])
        self.assertEqual(leaderboard(records)[0].username, "player14")

    def test_entry_to_dict_includes_rank(self):
        entry = leaderboard(TestFixtures.create_score_records())[0]
        data = entry.to_dict()

        self.assertEqual(data["rank"], 1)
        self.assertEqual(data["username"], "alice")
        self.assertEqual(data["totalQuestions"], 10)

    def test_empty(self):
        self.assertEqual(leaderboard([]), [])

    def test_input_not_modified(self):
        records = TestFixtures.create_score_records()
        snapshot = list(records)
        leaderboard(records)
        list_scores(records)
        self.assertEqual(records, snapshot)


class TestListScores(unittest.TestCase):

    def test_orders_by_score_then_most_recent(self):
        ordered = list_scores(TestFixtures.create_score_records())
        self.assertEqual([r.id for r in ordered], ["r5", "r3", "r2", "r1", "r4"])

    def test_limit(self):
        ordered = list_scores(TestFixtures.create_score_records(), limit=2)
        self.assertEqual([r.id for r in ordered], ["r5", "r3"])


class TestStats(unittest.TestCase):
    """Test cases for aggregate statistics."""

    def test_empty_store(self):
        result = stats([])
        self.assertEqual(result, QuizStats())
        self.assertEqual(result.to_dict(), {
            "totalQuizzes": 0,
            "uniqueUsers": 0,
            "averageScore": 0,
            "highestScore": 0,
            "lowestScore": 0,
        })

    def test_perfect_and_zero(self):
        records = [
            TestFixtures.create_score_record("a", 10, 10),
            TestFixtures.create_score_record("b", 0, 10),
        ]
        result = stats(records)

        self.assertEqual(result.total_quizzes, 2)
        self.assertEqual(result.unique_users, 2)
        self.assertEqual(result.average_score, 50.0)
        self.assertEqual(result.highest_score, 100)
        self.assertEqual(result.lowest_score, 0)

    def test_counts_repeat_players_once(self):
        result = stats(TestFixtures.create_score_records())

        self.assertEqual(result.total_quizzes, 5)
        self.assertEqual(result.unique_users, 4)
        self.assertEqual(result.average_score, 78.0)
        self.assertEqual(result.highest_score, 90)
        self.assertEqual(result.lowest_score, 40)

    def test_average_rounded_to_one_decimal(self):
        records = [
            TestFixtures.create_score_record("a", 1, 3),   # 33
            TestFixtures.create_score_record("b", 2, 3),   # 67
            TestFixtures.create_score_record("c", 1, 1),   # 100
        ]
        self.assertEqual(stats(records).average_score, 66.7)

    def test_average_halves_round_up(self):
        records = [
            TestFixtures.create_score_record(name, score, 100)
            for name, score in (("a", 12), ("b", 13), ("c", 12), ("d", 12))
        ]
        # Mean is 12.25
        self.assertEqual(stats(records).average_score, 12.3)

    def test_count_users(self):
        self.assertEqual(count_users(TestFixtures.create_score_records()), 4)
        self.assertEqual(count_users([]), 0)


if __name__ == '__main__':
    unittest.main()
