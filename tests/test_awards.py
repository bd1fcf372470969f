import sqlite3
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import awards
import discovery
import storage


def stats(liked, disliked):
    return {"total": liked + disliked, "liked": liked, "disliked": disliked}


class AwardRuleTests(unittest.TestCase):
    def qualifies(self, award_id, liked, disliked):
        return awards.qualifying_award_ids(stats(liked, disliked), [award_id]) == [award_id]

    def test_first_decision_boundary(self):
        self.assertFalse(self.qualifies(1, 0, 0))
        self.assertTrue(self.qualifies(1, 0, 1))
        self.assertTrue(self.qualifies(1, 1, 0))

    def test_hundred_decisions_boundary(self):
        self.assertFalse(self.qualifies(2, 50, 49))
        self.assertTrue(self.qualifies(2, 50, 50))

    def test_hundred_likes_boundary(self):
        self.assertFalse(self.qualifies(3, 99, 10))
        self.assertTrue(self.qualifies(3, 100, 0))

    def test_balanced_includes_zero_zero(self):
        self.assertTrue(self.qualifies(5, 0, 0))
        self.assertTrue(self.qualifies(5, 3, 3))
        self.assertFalse(self.qualifies(5, 3, 2))

    def test_awards_without_rules_never_qualify(self):
        self.assertFalse(self.qualifies(4, 500, 500))
        self.assertFalse(self.qualifies(99, 1, 1))

    def test_compute_stats(self):
        interactions = [{"liked": True}, {"liked": False}, {"liked": True}]
        self.assertEqual(awards.compute_stats(interactions), {"total": 3, "liked": 2, "disliked": 1})


class EvaluateAwardsTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self.tmpdir.name) / "test.db"
        storage.init_db(self.db_path)
        self.user = storage.create_user("reader@example.com", "secret", self.db_path)
        self.user_id = self.user["id"]

    def tearDown(self):
        self.tmpdir.cleanup()

    def add_decisions(self, liked, disliked):
        for index in range(liked):
            storage.insert_interaction(
                {"user_id": self.user_id, "external_id": f"OL{index}L", "liked": True}, self.db_path
            )
        for index in range(disliked):
            storage.insert_interaction(
                {"user_id": self.user_id, "external_id": f"OL{index}D", "liked": False}, self.db_path
            )

    def award_ids(self, outcome):
        return sorted(award["award_id"] for award in outcome["awards"])

    def test_new_user_only_gets_balanced_award(self):
        outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(outcome["new_award_ids"], [5])
        self.assertEqual(self.award_ids(outcome), [5])

    def test_single_like(self):
        self.add_decisions(liked=1, disliked=0)
        outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(outcome["new_award_ids"], [1])

    def test_hundred_likes(self):
        self.add_decisions(liked=100, disliked=0)
        outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(sorted(outcome["new_award_ids"]), [1, 2, 3])

    def test_ninety_nine_decisions(self):
        self.add_decisions(liked=99, disliked=0)
        outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(outcome["new_award_ids"], [1])

    def test_evaluation_is_idempotent(self):
        self.add_decisions(liked=2, disliked=2)
        first = awards.evaluate_awards(self.user_id, self.db_path)
        second = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(sorted(first["new_award_ids"]), [1, 5])
        self.assertEqual(second["new_award_ids"], [])
        self.assertEqual(self.award_ids(first), self.award_ids(second))
        self.assertEqual(len(storage.list_grants(self.user_id, self.db_path)), 2)

    def test_unlike_does_not_revoke(self):
        self.add_decisions(liked=1, disliked=0)
        awards.evaluate_awards(self.user_id, self.db_path)
        discovery.remove_liked(self.user_id, "OL0L", self.db_path)
        outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertIn(1, self.award_ids(outcome))

    def test_failed_grant_does_not_stop_other_awards(self):
        self.add_decisions(liked=1, disliked=1)
        real_insert = storage.insert_grant

        def flaky_insert(user_id, award_id, db_path=None):
            if award_id == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_insert(user_id, award_id, db_path)

        with mock.patch.object(storage, "insert_grant", side_effect=flaky_insert):
            outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(outcome["new_award_ids"], [5])
        self.assertEqual(self.award_ids(outcome), [5])

    def test_concurrent_grant_counts_as_already_granted(self):
        self.add_decisions(liked=1, disliked=0)
        with mock.patch.object(storage, "list_grants", return_value=[]):
            storage.insert_grant(self.user_id, 1, self.db_path)
            outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(outcome["new_award_ids"], [])
        self.assertEqual(self.award_ids(outcome), [1])

    def test_load_failure_still_returns_awards(self):
        storage.insert_grant(self.user_id, 4, self.db_path)
        with mock.patch.object(storage, "list_award_definitions", side_effect=sqlite3.OperationalError("boom")):
            outcome = awards.evaluate_awards(self.user_id, self.db_path)
        self.assertEqual(outcome["new_award_ids"], [])
        self.assertEqual(self.award_ids(outcome), [4])

    def test_no_user(self):
        self.assertEqual(awards.evaluate_awards(None, self.db_path), {"new_award_ids": [], "awards": []})


if __name__ == "__main__":
    unittest.main()
