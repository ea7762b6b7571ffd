"""
Unit tests for Phase 1 exact matching.
"""
import unittest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from categorizer.exact_match import calculate_exact_match_confidence, exact_match
from categorizer.models import CategorizationMethod, Transaction


def txn(entity, category=None, subcategory=None, manual=False):
    return Transaction(
        entity=entity, amount=-10.0, category=category,
        subcategory=subcategory, is_manually_edited=manual,
    )


class TestExactMatchConfidence(unittest.TestCase):
    """Tests for exact-match confidence scoring."""

    def test_no_matches(self):
        self.assertEqual(calculate_exact_match_confidence(0, False), 0)

    def test_single_match(self):
        self.assertEqual(calculate_exact_match_confidence(1, False), 95)

    def test_many_matches_do_not_raise_confidence(self):
        self.assertEqual(calculate_exact_match_confidence(10, False), 95)

    def test_manual_match(self):
        self.assertEqual(calculate_exact_match_confidence(1, True), 100)
        self.assertEqual(calculate_exact_match_confidence(7, True), 100)


class TestExactMatch(unittest.TestCase):
    """Tests for exact matching against history."""

    def test_store_numbers_are_ignored(self):
        history = [txn("STARBUCKS #123", "Food & Dining", "Coffee Shops")]
        result = exact_match("Starbucks #456", history)
        self.assertIsNotNone(result)
        self.assertEqual(result.category, "Food & Dining")
        self.assertEqual(result.subcategory, "Coffee Shops")
        self.assertEqual(result.confidence, 95)
        self.assertEqual(result.method, CategorizationMethod.EXACT_MATCH)

    def test_manual_match_preferred(self):
        history = [
            txn("STARBUCKS #001", "Food & Dining"),
            txn("STARBUCKS #002", "Coffee", manual=True),
        ]
        result = exact_match("STARBUCKS #999", history)
        self.assertEqual(result.category, "Coffee")
        self.assertEqual(result.confidence, 100)
        self.assertIn("user-confirmed", result.reason)
        self.assertIn("2 identical transactions", result.reason)

    def test_first_match_in_history_order(self):
        history = [
            txn("NETFLIX", "Entertainment"),
            txn("NETFLIX", "Subscriptions"),
        ]
        result = exact_match("netflix", history)
        self.assertEqual(result.category, "Entertainment")

    def test_single_match_reason(self):
        result = exact_match("NETFLIX", [txn("netflix", "Entertainment")])
        self.assertIn("1 identical transaction in history", result.reason)

    def test_uncategorized_history_ignored(self):
        history = [txn("NETFLIX", None), txn("NETFLIX", "  ")]
        self.assertIsNone(exact_match("NETFLIX", history))

    def test_no_identical_description(self):
        history = [txn("NETFLIX", "Entertainment")]
        self.assertIsNone(exact_match("NETFLIX PREMIUM", history))

    def test_empty_inputs(self):
        history = [txn("NETFLIX", "Entertainment")]
        self.assertIsNone(exact_match("", history))
        self.assertIsNone(exact_match("NETFLIX", []))
        self.assertIsNone(exact_match("###", history))


if __name__ == '__main__':
    unittest.main()
