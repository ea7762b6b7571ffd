"""
Unit tests for the categorization orchestrator.
"""
import unittest
from datetime import date

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from categorizer.categorizer import TransactionCategorizer
from categorizer.models import CategorizationMethod, CategorySuggestion, Transaction


class FakeClassifier:
    """Stands in for a trained classifier."""

    def __init__(self, trained=True):
        self.trained = trained
        self.calls = []

    def is_model_trained(self):
        return self.trained

    def predict_category(self, description):
        self.calls.append(description)
        return CategorySuggestion(
            category="Predicted",
            confidence=55,
            reason="ML prediction with 55% confidence based on 10 training samples",
            method=CategorizationMethod.ML_CLASSIFIER,
        )


def tfidf_history():
    return [
        Transaction(entity="NETFLIX MONTHLY PLAN", category="Entertainment",
                    subcategory="Streaming Services"),
        Transaction(entity="SHELL GAS STATION", category="Transportation"),
        Transaction(entity="WHOLE FOODS MARKET", category="Food & Dining",
                    subcategory="Groceries"),
    ]


def recurring_history():
    return [
        Transaction(entity=f"QQRT SERVICES LLC PAYMENT 0{month}", amount=-75.0,
                    date=date(2025, month, 5), category="Professional Services")
        for month in (1, 2, 3)
    ]


class TestTransactionRecord(unittest.TestCase):

    def test_from_plain_record(self):
        txn = Transaction.from_dict({
            'description': "NETFLIX.COM",
            'amount': "($15.99)",
            'date': "2025-03-01",
            'category': "",
            'isManuallyEdited': True,
        })
        self.assertEqual(txn.entity, "NETFLIX.COM")
        self.assertEqual(txn.amount, -15.99)
        self.assertEqual(txn.date, date(2025, 3, 1))
        self.assertIsNone(txn.category)
        self.assertFalse(txn.is_categorized)
        self.assertTrue(txn.is_manually_edited)

    def test_suggestion_confidence_rounds_half_up(self):
        suggestion = CategorySuggestion(
            category="Shopping", confidence=62.5, reason="test",
            method=CategorizationMethod.FUZZY_MATCH,
        )
        self.assertEqual(suggestion.confidence, 63)

    def test_round_trip_keys(self):
        txn = Transaction(entity="SHELL", amount=-40.0, category="Transportation")
        self.assertEqual(Transaction.from_dict(txn.to_dict()), txn)


class TestConstruction(unittest.TestCase):

    def test_unknown_method(self):
        with self.assertRaises(ValueError):
            TransactionCategorizer(phase2_methods=["keyword", "magic"], custom_rules=[])

    def test_unknown_strategy(self):
        with self.assertRaises(ValueError):
            TransactionCategorizer(strategy="random", custom_rules=[])

    def test_methods_run_in_declared_order(self):
        categorizer = TransactionCategorizer(phase2_methods=["pattern", "keyword"], custom_rules=[])
        self.assertEqual(categorizer.phase2_methods, ["keyword", "pattern"])


class TestSuggest(unittest.TestCase):
    """Tests for single-transaction suggestions."""

    def test_exact_match_first(self):
        history = [Transaction(entity="STARBUCKS #002", category="Coffee", is_manually_edited=True)]
        categorizer = TransactionCategorizer(history=history, custom_rules=[])
        result = categorizer.suggest("STARBUCKS #999")
        self.assertEqual(result.method, CategorizationMethod.EXACT_MATCH)
        self.assertEqual(result.category, "Coffee")
        self.assertEqual(result.confidence, 100)

    def test_keyword_when_no_history(self):
        categorizer = TransactionCategorizer(custom_rules=[])
        result = categorizer.suggest("WALMART SUPERCENTER")
        self.assertEqual(result.method, CategorizationMethod.KEYWORD_RULE)
        self.assertEqual(result.subcategory, "Groceries")

    def test_fuzzy_after_keyword(self):
        history = [Transaction(entity="ZQX LOCAL SHOP #12", category="Shopping")]
        categorizer = TransactionCategorizer(history=history, custom_rules=[])
        result = categorizer.suggest("ZQX LOCAL SHOPS")
        self.assertEqual(result.method, CategorizationMethod.FUZZY_MATCH)
        self.assertEqual(result.category, "Shopping")

    def test_tfidf_only(self):
        categorizer = TransactionCategorizer(
            history=tfidf_history(), phase2_methods=["tfidf"], custom_rules=[]
        )
        result = categorizer.suggest("netflix")
        self.assertEqual(result.method, CategorizationMethod.TFIDF_SIMILARITY)
        self.assertEqual(result.category, "Entertainment")

    def test_pattern_only(self):
        categorizer = TransactionCategorizer(
            history=recurring_history(), phase2_methods=["pattern"], custom_rules=[]
        )
        result = categorizer.suggest("QQRT SERVICES LLC PAYMENT 04")
        self.assertEqual(result.method, CategorizationMethod.HISTORICAL_PATTERN)
        self.assertEqual(result.confidence, 85)

    def test_transaction_input(self):
        categorizer = TransactionCategorizer(custom_rules=[])
        result = categorizer.suggest(Transaction(entity="WALMART", amount=-20.0))
        self.assertEqual(result.category, "Food & Dining")

    def test_first_match_vs_highest_confidence(self):
        first = TransactionCategorizer(
            history=tfidf_history(), phase2_methods=["keyword", "tfidf"], custom_rules=[]
        )
        result = first.suggest("NETFLIX MONTHLY")
        self.assertEqual(result.method, CategorizationMethod.KEYWORD_RULE)
        self.assertEqual(result.confidence, 85)

        best = TransactionCategorizer(
            history=tfidf_history(), phase2_methods=["keyword", "tfidf"],
            strategy="highest-confidence", custom_rules=[]
        )
        result = best.suggest("NETFLIX MONTHLY")
        self.assertEqual(result.method, CategorizationMethod.TFIDF_SIMILARITY)
        self.assertEqual(result.confidence, 100)

    def test_ml_only_when_earlier_phases_silent(self):
        classifier = FakeClassifier()
        categorizer = TransactionCategorizer(classifier=classifier, custom_rules=[], use_ml=True)

        self.assertEqual(categorizer.suggest("WALMART").method, CategorizationMethod.KEYWORD_RULE)
        self.assertEqual(classifier.calls, [])

        result = categorizer.suggest("XYZZY QWRT")
        self.assertEqual(result.method, CategorizationMethod.ML_CLASSIFIER)
        self.assertEqual(classifier.calls, ["XYZZY QWRT"])

    def test_ml_disabled(self):
        categorizer = TransactionCategorizer(classifier=FakeClassifier(), custom_rules=[], use_ml=False)
        self.assertIsNone(categorizer.suggest("XYZZY QWRT"))

    def test_untrained_classifier_ignored(self):
        classifier = FakeClassifier(trained=False)
        categorizer = TransactionCategorizer(classifier=classifier, custom_rules=[], use_ml=True)
        self.assertIsNone(categorizer.suggest("XYZZY QWRT"))
        self.assertEqual(classifier.calls, [])

    def test_empty_description(self):
        categorizer = TransactionCategorizer(classifier=FakeClassifier(), custom_rules=[], use_ml=True)
        self.assertIsNone(categorizer.suggest(""))
        self.assertIsNone(categorizer.suggest("   "))


class TestExplain(unittest.TestCase):

    def test_every_phase_reported(self):
        categorizer = TransactionCategorizer(
            history=tfidf_history(), classifier=FakeClassifier(), custom_rules=[], use_ml=False
        )
        opinions = categorizer.explain("NETFLIX MONTHLY")
        self.assertEqual(list(opinions), ["exact", "keyword", "fuzzy", "tfidf", "pattern", "ml"])
        self.assertIsNone(opinions["exact"])
        self.assertEqual(opinions["keyword"].category, "Entertainment")
        self.assertEqual(opinions["tfidf"].category, "Entertainment")
        # Explicit request: ML answers even though suggest() would not use it
        self.assertEqual(opinions["ml"].category, "Predicted")


class TestCategorizeAll(unittest.TestCase):
    """Tests for batch categorization."""

    def test_fills_only_uncategorized(self):
        transactions = [
            Transaction(entity="WALMART", amount=-30.0, category="Household"),
            Transaction(entity="WALMART", amount=-30.0),
            Transaction(entity="XYZZY QWRT", amount=-5.0),
        ]
        categorizer = TransactionCategorizer(custom_rules=[], use_ml=False)
        result = categorizer.categorize_all(transactions)

        self.assertIs(result, transactions)
        self.assertEqual(transactions[0].category, "Household")
        self.assertEqual(transactions[1].category, "Food & Dining")
        self.assertEqual(transactions[1].confidence, 0.85)
        self.assertFalse(transactions[1].is_manually_edited)
        self.assertIsNone(transactions[2].category)

        stats = categorizer.get_statistics()
        self.assertEqual(stats['total'], 3)
        self.assertEqual(stats['already_categorized'], 1)
        self.assertEqual(stats['uncategorized'], 1)
        self.assertEqual(stats['keyword-rule'], 1)
        self.assertEqual(stats['exact-match'], 0)

    def test_empty(self):
        categorizer = TransactionCategorizer(custom_rules=[])
        self.assertEqual(categorizer.categorize_all([]), [])
        self.assertEqual(categorizer.get_statistics()['total'], 0)


class TestLearning(unittest.TestCase):

    def test_learn_rebuilds_instead_of_accumulating(self):
        categorizer = TransactionCategorizer(phase2_methods=["pattern"], custom_rules=[])
        categorizer.learn(recurring_history())
        categorizer.learn(recurring_history())
        result = categorizer.suggest("QQRT SERVICES LLC PAYMENT 04")
        self.assertEqual(result.confidence, 85)

    def test_learn_replaces_history(self):
        categorizer = TransactionCategorizer(history=tfidf_history(), custom_rules=[])
        categorizer.learn([])
        self.assertEqual(categorizer.history, [])
        self.assertIsNone(categorizer.tfidf_index.model)

    def test_record_correction(self):
        categorizer = TransactionCategorizer(custom_rules=[], use_ml=False)
        txn = Transaction(entity="ZQX LOCAL SHOPS", amount=-12.0)
        rule = categorizer.record_correction(txn, "Shopping", "Hobbies")

        self.assertTrue(txn.is_manually_edited)
        self.assertEqual(txn.confidence, 1.0)
        self.assertIn(txn, categorizer.history)
        self.assertEqual(rule.keywords, ["zqx", "local", "shops"])

        result = categorizer.suggest("ZQX LOCAL SHOPS")
        self.assertEqual(result.method, CategorizationMethod.EXACT_MATCH)
        self.assertEqual(result.confidence, 100)

        # The learned keyword rule covers new descriptions sharing a token
        result = categorizer.suggest("ZQX ONLINE")
        self.assertEqual(result.method, CategorizationMethod.KEYWORD_RULE)
        self.assertEqual(result.subcategory, "Hobbies")


if __name__ == '__main__':
    unittest.main()
