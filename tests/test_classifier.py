"""
Unit tests for the Phase 3 trainable classifier and its persistence.
"""
import os
import sys
import tempfile
import unittest
from datetime import datetime

import torch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import (
    MAX_DESCRIPTION_LENGTH,
    MODEL_DECODER_KEY,
    MODEL_ENCODER_KEY,
    MODEL_METRICS_KEY,
    MODEL_VOCABULARY_KEY,
    MODEL_WEIGHTS_KEY,
    VOCABULARY_SIZE,
)
from categorizer.classifier import (
    InsufficientTrainingDataError,
    ModelMetrics,
    ModelPersistenceError,
    SequenceNet,
    TransactionClassifier,
    binary_crossentropy,
    build_vocabulary,
    encode_description,
    split_words,
)
from categorizer.models import CategorizationMethod, Transaction
from categorizer.storage import InMemoryStore, JsonFileStore


def training_data():
    food = ["WHOLE FOODS MARKET", "SAFEWAY #12", "TRADER JOES", "KROGER FUEL", "ALDI STORE"]
    fun = ["NETFLIX.COM", "SPOTIFY USA", "AMC THEATRES", "STEAM GAMES", "HULU PLUS"]
    data = []
    for food_desc, fun_desc in zip(food, fun):
        data.append(Transaction(entity=food_desc, amount=-40.0, category="Food"))
        data.append(Transaction(entity=fun_desc, amount=-12.0, category="Fun"))
    return data


class FailingStore(InMemoryStore):
    def set(self, key, value):
        raise OSError("disk full")


class TestTextEncoding(unittest.TestCase):
    """Tests for vocabulary and sequence encoding."""

    def test_split_words(self):
        self.assertEqual(split_words("STARBUCKS #123, Seattle"), ["starbucks", "123", "seattle"])

    def test_vocabulary_sorted_and_distinct(self):
        vocab = build_vocabulary(["b a", "c a", "A"])
        self.assertEqual(vocab, ["a", "b", "c"])

    def test_vocabulary_capped(self):
        descriptions = [f"word{i}" for i in range(VOCABULARY_SIZE + 10)]
        self.assertEqual(len(build_vocabulary(descriptions)), VOCABULARY_SIZE)

    def test_encode_pads_and_marks_unknown(self):
        index = {"coffee": 1, "shop": 2}
        encoded = encode_description("Coffee Bar Shop", index)
        self.assertEqual(len(encoded), MAX_DESCRIPTION_LENGTH)
        self.assertEqual(encoded[:4], [1, 0, 2, 0])

    def test_encode_truncates(self):
        index = {"x": 7}
        encoded = encode_description(" ".join(["x"] * (MAX_DESCRIPTION_LENGTH + 5)), index)
        self.assertEqual(encoded, [7] * MAX_DESCRIPTION_LENGTH)


class TestNetwork(unittest.TestCase):

    def test_single_probability_output(self):
        torch.manual_seed(0)
        net = SequenceNet()
        net.eval()
        output = net(torch.zeros((2, MAX_DESCRIPTION_LENGTH), dtype=torch.long))
        self.assertEqual(tuple(output.shape), (2, 1))
        self.assertTrue(bool(((output > 0) & (output < 1)).all()))

    def test_loss_accepts_labels_above_one(self):
        loss = binary_crossentropy(torch.tensor([[0.5], [0.9]]), torch.tensor([[2.0], [0.0]]))
        self.assertTrue(torch.isfinite(loss).item())


class TestTraining(unittest.TestCase):
    """Tests for training and prediction."""

    def setUp(self):
        torch.manual_seed(0)
        self.classifier = TransactionClassifier(store=InMemoryStore(), device="cpu")

    def test_single_category_rejected(self):
        with self.assertRaises(InsufficientTrainingDataError) as ctx:
            self.classifier.train_model([Transaction(entity="A", category="Food")], epochs=1)
        self.assertTrue(str(ctx.exception).startswith("Insufficient training data"))

    def test_single_category_rejected_regardless_of_count(self):
        data = [Transaction(entity=f"SHOP {i}", category="Food") for i in range(50)]
        data.append(Transaction(entity="UNSORTED"))
        with self.assertRaises(ValueError):
            self.classifier.train_model(data, epochs=1)
        self.assertFalse(self.classifier.is_initialized)

    def test_no_categorized_data(self):
        with self.assertRaises(InsufficientTrainingDataError):
            self.classifier.train_model([Transaction(entity="A")], epochs=1)

    def test_initialize_is_idempotent(self):
        self.classifier.initialize_model()
        model = self.classifier._model
        self.classifier.initialize_model()
        self.assertIs(self.classifier._model, model)

    def test_train_records_metrics(self):
        epochs_seen = []
        metrics = self.classifier.train_model(
            training_data(), epochs=2, batch_size=4, validation_split=0.2,
            on_epoch_end=lambda epoch, history: epochs_seen.append((epoch, history)),
        )
        self.assertEqual(metrics.training_samples, 8)
        self.assertEqual(metrics.validation_samples, 2)
        self.assertIsInstance(metrics.last_trained_at, datetime)
        self.assertGreaterEqual(metrics.accuracy, 0.0)
        self.assertLessEqual(metrics.accuracy, 1.0)

        self.assertEqual([e for e, _ in epochs_seen], [0, 1])
        self.assertIsNotNone(epochs_seen[-1][1].val_loss)
        self.assertEqual(len(self.classifier.history), 2)
        self.assertEqual(self.classifier.categories, ["Food", "Fun"])
        self.assertEqual(self.classifier.is_model_trained(), metrics.accuracy > 0)

    def test_validation_split_keeps_a_training_sample(self):
        data = training_data()[:2]
        metrics = self.classifier.train_model(data, epochs=1, validation_split=0.9)
        self.assertEqual(metrics.training_samples, 1)
        self.assertEqual(metrics.validation_samples, 1)

    def test_no_validation(self):
        metrics = self.classifier.train_model(training_data(), epochs=1, validation_split=0.0)
        self.assertEqual(metrics.validation_samples, 0)
        self.assertIsNone(self.classifier.history[0].val_loss)

    def test_predict_untrained(self):
        self.assertIsNone(self.classifier.predict_category("NETFLIX"))

    def test_predict_empty_description(self):
        self.classifier.train_model(training_data(), epochs=1)
        self.assertIsNone(self.classifier.predict_category(""))
        self.assertIsNone(self.classifier.predict_category("   "))

    def test_predict_decodes_single_output(self):
        self.classifier.train_model(training_data(), epochs=1)
        result = self.classifier.predict_category("NETFLIX.COM")
        if result is not None:
            # One output unit: the arg-max is always index 0
            self.assertEqual(result.category, "Food")
            self.assertEqual(result.method, CategorizationMethod.ML_CLASSIFIER)
            self.assertGreaterEqual(result.confidence, 30)
            self.assertIn("training samples", result.reason)

    def test_predict_unknown_index_returns_none(self):
        self.classifier.train_model(training_data(), epochs=1)
        self.classifier._decoder = {5: "Nowhere"}
        self.assertIsNone(self.classifier.predict_category("NETFLIX.COM"))

    def test_reset(self):
        self.classifier.train_model(training_data(), epochs=1)
        self.classifier.reset_model()
        self.assertFalse(self.classifier.is_initialized)
        self.assertFalse(self.classifier.is_model_trained())
        self.assertIsNone(self.classifier.predict_category("NETFLIX.COM"))
        self.assertEqual(self.classifier.get_model_metrics(), ModelMetrics())
        self.assertEqual(self.classifier.vocabulary, [])

    def test_metrics_are_copies(self):
        self.classifier.train_model(training_data(), epochs=1)
        metrics = self.classifier.get_model_metrics()
        metrics.training_samples = 999
        self.assertNotEqual(self.classifier.get_model_metrics().training_samples, 999)


class TestPersistence(unittest.TestCase):
    """Tests for saving and loading through a key-value store."""

    def setUp(self):
        torch.manual_seed(0)
        self.store = InMemoryStore()
        self.classifier = TransactionClassifier(store=self.store, device="cpu")

    def test_save_uninitialized(self):
        with self.assertRaises(ModelPersistenceError):
            self.classifier.save_model()

    def test_save_and_load(self):
        self.classifier.train_model(training_data(), epochs=1)
        self.classifier.save_model()
        self.assertIsNotNone(self.store.get(MODEL_WEIGHTS_KEY))
        self.assertIsNotNone(self.store.get(MODEL_ENCODER_KEY))

        restored = TransactionClassifier(store=self.store, device="cpu")
        self.assertTrue(restored.load_model())
        self.assertEqual(restored.vocabulary, self.classifier.vocabulary)
        self.assertEqual(restored.categories, ["Food", "Fun"])
        self.assertEqual(restored.get_model_metrics(), self.classifier.get_model_metrics())

        original = self.classifier.predict_category("SPOTIFY USA")
        loaded = restored.predict_category("SPOTIFY USA")
        self.assertEqual(
            original.to_dict() if original else None,
            loaded.to_dict() if loaded else None,
        )

    def test_load_missing_returns_false(self):
        self.assertFalse(self.classifier.load_model())
        self.assertFalse(self.classifier.is_initialized)

    def test_failed_load_keeps_state(self):
        self.classifier.train_model(training_data(), epochs=1)
        vocabulary = self.classifier.vocabulary
        metrics = self.classifier.get_model_metrics()
        self.classifier.save_model()

        self.store.set(MODEL_WEIGHTS_KEY, "not base64 weights!")
        self.assertFalse(self.classifier.load_model())
        self.assertTrue(self.classifier.is_initialized)
        self.assertEqual(self.classifier.vocabulary, vocabulary)
        self.assertEqual(self.classifier.get_model_metrics(), metrics)

    def test_untrained_save_clears_earlier_labels(self):
        self.classifier.train_model(training_data(), epochs=1)
        self.classifier.save_model()

        untrained = TransactionClassifier(store=self.store, device="cpu")
        untrained.initialize_model()
        untrained.save_model()
        self.assertIsNotNone(self.store.get(MODEL_WEIGHTS_KEY))
        self.assertIsNone(self.store.get(MODEL_ENCODER_KEY))
        self.assertIsNone(self.store.get(MODEL_DECODER_KEY))
        self.assertIsNone(self.store.get(MODEL_VOCABULARY_KEY))
        self.assertIsNone(self.store.get(MODEL_METRICS_KEY))

        restored = TransactionClassifier(store=self.store, device="cpu")
        self.assertFalse(restored.load_model())
        self.assertEqual(restored.categories, [])

    def test_save_failure_carries_cause(self):
        classifier = TransactionClassifier(store=FailingStore(), device="cpu")
        classifier.train_model(training_data(), epochs=1)
        with self.assertRaises(ModelPersistenceError) as ctx:
            classifier.save_model()
        self.assertIsInstance(ctx.exception.__cause__, OSError)

    def test_save_and_load_through_json_file(self):
        self.classifier.train_model(training_data(), epochs=1)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "models", "store.json")
            self.classifier.store = JsonFileStore(path)
            self.classifier.save_model()

            restored = TransactionClassifier(store=JsonFileStore(path), device="cpu")
            self.assertTrue(restored.load_model())
            self.assertEqual(restored.categories, ["Food", "Fun"])


class TestStores(unittest.TestCase):
    """Tests for key-value store implementations."""

    def test_in_memory(self):
        store = InMemoryStore()
        self.assertIsNone(store.get("k"))
        store.set("k", "v")
        self.assertEqual(store.get("k"), "v")
        store.delete("k")
        store.delete("k")
        self.assertIsNone(store.get("k"))

    def test_json_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "store.json")
            store = JsonFileStore(path)
            self.assertIsNone(store.get("k"))
            store.set("k", "v")
            self.assertEqual(JsonFileStore(path).get("k"), "v")
            store.delete("k")
            self.assertIsNone(JsonFileStore(path).get("k"))

    def test_metrics_round_trip(self):
        metrics = ModelMetrics(accuracy=0.5, loss=0.7, training_samples=8,
                               validation_samples=2, last_trained_at=datetime(2025, 1, 2, 3, 4))
        self.assertEqual(ModelMetrics.from_dict(metrics.to_dict()), metrics)


if __name__ == '__main__':
    unittest.main()
