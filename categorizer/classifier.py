"""
Phase 3: trainable sequence classifier.

A small PyTorch network reads a description as a fixed-length sequence of
vocabulary indices:

    Embedding -> BiLSTM -> Dropout -> Dense(32, relu) -> Dropout
              -> Dense(16, relu) -> Dense(1, sigmoid)

and is trained with binary cross-entropy against the integer index of each
transaction's category. The network has a single output unit, so it yields
one probability per description; prediction takes the arg-max over that one
output and decodes it through the category decoder.

Model state lives on a ``TransactionClassifier`` instance. Weights, the
vocabulary, the category encoder/decoder and the training metrics are
persisted as strings through a ``KeyValueStore``.
"""
import base64
import io
import json
import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import torch
import torch.nn as nn

from config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_EPOCHS,
    DEFAULT_VALIDATION_SPLIT,
    EMBEDDING_DIM,
    LEARNING_RATE,
    LSTM_UNITS,
    MAX_DESCRIPTION_LENGTH,
    ML_MIN_CONFIDENCE,
    MODEL_DECODER_KEY,
    MODEL_ENCODER_KEY,
    MODEL_METRICS_KEY,
    MODEL_VOCABULARY_KEY,
    MODEL_WEIGHTS_KEY,
    VOCABULARY_SIZE,
    get_config,
)
from normalizer import strip_punctuation

from .models import CategorizationMethod, CategorySuggestion, Transaction, clamp_confidence
from .storage import InMemoryStore, JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_MESSAGE = (
    "Insufficient training data. Need at least 2 different categories "
    "with multiple transactions each."
)

# Clamp applied to probabilities before taking logs in the loss
_EPSILON = 1e-7


class InsufficientTrainingDataError(ValueError):
    """Raised when the categorized history cannot support training."""
    pass


class ModelPersistenceError(RuntimeError):
    """Raised when the classifier cannot be saved."""
    pass


@dataclass
class ModelMetrics:
    accuracy: float = 0.0
    loss: float = 0.0
    training_samples: int = 0
    validation_samples: int = 0
    last_trained_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'accuracy': self.accuracy,
            'loss': self.loss,
            'training_samples': self.training_samples,
            'validation_samples': self.validation_samples,
            'last_trained_at': self.last_trained_at.isoformat() if self.last_trained_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelMetrics':
        trained_at = data.get('last_trained_at')
        return cls(
            accuracy=float(data.get('accuracy', 0.0)),
            loss=float(data.get('loss', 0.0)),
            training_samples=int(data.get('training_samples', 0)),
            validation_samples=int(data.get('validation_samples', 0)),
            last_trained_at=datetime.fromisoformat(trained_at) if trained_at else None,
        )


@dataclass
class TrainingHistory:
    """Per-epoch training progress handed to ``on_epoch_end``."""
    epoch: int
    loss: float
    accuracy: float
    val_loss: Optional[float] = None
    val_accuracy: Optional[float] = None


EpochCallback = Callable[[int, TrainingHistory], None]


# =============================================================================
# Text encoding
# =============================================================================

def split_words(description: str) -> List[str]:
    """Lowercased alphanumeric words of a description."""
    return strip_punctuation(description).split()


def build_vocabulary(descriptions: Sequence[str]) -> List[str]:
    """Distinct words of all descriptions, sorted, capped at the vocabulary size."""
    words = {word for desc in descriptions for word in split_words(desc)}
    return sorted(words)[:VOCABULARY_SIZE]


def encode_description(description: str, word_index: Dict[str, int]) -> List[int]:
    """
    Fixed-length index sequence for a description.

    Known words map to their 1-based vocabulary position, unknown words to 0.
    Short sequences are zero-padded at the end; long ones are truncated.
    """
    indices = [word_index.get(word, 0) for word in split_words(description)]
    if len(indices) < MAX_DESCRIPTION_LENGTH:
        return indices + [0] * (MAX_DESCRIPTION_LENGTH - len(indices))
    return indices[:MAX_DESCRIPTION_LENGTH]


# =============================================================================
# Network
# =============================================================================

class SequenceNet(nn.Module):
    """Embedding + bidirectional LSTM encoder with a single sigmoid output."""

    def __init__(self):
        super().__init__()
        self.embedding = nn.Embedding(VOCABULARY_SIZE + 1, EMBEDDING_DIM)
        self.lstm = nn.LSTM(EMBEDDING_DIM, LSTM_UNITS, batch_first=True, bidirectional=True)
        self.head = nn.Sequential(
            nn.Dropout(0.3),
            nn.Linear(2 * LSTM_UNITS, 32),
            nn.ReLU(),
            nn.Dropout(0.2),
            nn.Linear(32, 16),
            nn.ReLU(),
            nn.Linear(16, 1),
            nn.Sigmoid(),
        )

    def forward(self, sequences: torch.Tensor) -> torch.Tensor:
        embedded = self.embedding(sequences)
        _, (h_n, _) = self.lstm(embedded)
        # Final hidden state of the forward and backward directions
        features = torch.cat([h_n[-2], h_n[-1]], dim=1)
        return self.head(features)


def binary_crossentropy(probabilities: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
    """Mean binary cross-entropy; targets are used as given, even outside [0, 1]."""
    p = probabilities.clamp(_EPSILON, 1 - _EPSILON)
    losses = -(targets * torch.log(p) + (1 - targets) * torch.log(1 - p))
    return losses.mean()


def binary_accuracy(probabilities: torch.Tensor, targets: torch.Tensor) -> float:
    predicted = (probabilities > 0.5).float()
    return (predicted == targets).float().mean().item()


# =============================================================================
# Classifier
# =============================================================================

class TransactionClassifier:
    """
    Owns one trainable model and its vocabulary, encoder and metrics.

    States: uninitialized -> initialized (``initialize_model``) -> trained
    (``train_model`` or ``load_model``); ``reset_model`` returns to
    uninitialized. Instances are independent of each other.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, device: Optional[str] = None):
        if store is None:
            path = get_config().get("model_store_path")
            store = JsonFileStore(path) if path else InMemoryStore()
        self.store = store

        if device is None:
            device = "cuda" if torch.cuda.is_available() else "cpu"
        self.device = device

        self._model: Optional[SequenceNet] = None
        self._optimizer: Optional[torch.optim.Optimizer] = None
        self._vocabulary: List[str] = []
        self._word_index: Dict[str, int] = {}
        self._encoder: Optional[Dict[str, int]] = None
        self._decoder: Optional[Dict[int, str]] = None
        self._metrics = ModelMetrics()
        self._history: List[TrainingHistory] = []

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    @property
    def vocabulary(self) -> List[str]:
        return list(self._vocabulary)

    @property
    def categories(self) -> List[str]:
        if not self._decoder:
            return []
        return [self._decoder[i] for i in sorted(self._decoder)]

    @property
    def history(self) -> List[TrainingHistory]:
        return list(self._history)

    def initialize_model(self) -> None:
        """Build and compile the network. Does nothing if already built."""
        if self._model is not None:
            return

        self._model = SequenceNet().to(self.device)
        self._optimizer = torch.optim.Adam(self._model.parameters(), lr=LEARNING_RATE)
        logger.debug("Initialized sequence classifier on %s", self.device)

    def _set_vocabulary(self, vocabulary: List[str]) -> None:
        self._vocabulary = vocabulary
        self._word_index = {word: i + 1 for i, word in enumerate(vocabulary)}

    def _to_tensor(self, descriptions: Sequence[str]) -> torch.Tensor:
        encoded = [encode_description(desc, self._word_index) for desc in descriptions]
        return torch.tensor(encoded, dtype=torch.long, device=self.device)

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def train_model(
        self,
        transactions: Sequence[Transaction],
        epochs: Optional[int] = None,
        batch_size: Optional[int] = None,
        validation_split: Optional[float] = None,
        on_epoch_end: Optional[EpochCallback] = None
    ) -> ModelMetrics:
        """
        Train on the categorized subset of ``transactions``.

        The last ``floor(n * validation_split)`` samples are held out for
        validation; the rest are shuffled every epoch.

        Raises:
            InsufficientTrainingDataError: fewer than 2 distinct categories
        """
        config = get_config()
        epochs = epochs if epochs is not None else config.get("epochs", DEFAULT_EPOCHS)
        batch_size = batch_size or config.get("batch_size", DEFAULT_BATCH_SIZE)
        if validation_split is None:
            validation_split = config.get("validation_split", DEFAULT_VALIDATION_SPLIT)

        categorized = [txn for txn in transactions if txn.is_categorized]
        categories = list(dict.fromkeys(txn.category for txn in categorized))
        if not categorized or len(categories) <= 1:
            raise InsufficientTrainingDataError(INSUFFICIENT_DATA_MESSAGE)

        self.initialize_model()

        encoder = {category: i for i, category in enumerate(categories)}
        decoder = {i: category for category, i in encoder.items()}
        descriptions = [txn.entity for txn in categorized]
        self._set_vocabulary(build_vocabulary(descriptions))
        self._encoder = encoder
        self._decoder = decoder

        features = self._to_tensor(descriptions)
        labels = torch.tensor(
            [float(encoder[txn.category]) for txn in categorized],
            dtype=torch.float32, device=self.device
        ).unsqueeze(1)

        total = len(categorized)
        validation_samples = min(int(math.floor(total * validation_split)), total - 1)
        training_samples = total - validation_samples

        train_x, train_y = features[:training_samples], labels[:training_samples]
        val_x, val_y = features[training_samples:], labels[training_samples:]

        logger.info(
            "Training classifier: %d samples (%d validation), %d categories, %d epochs",
            total, validation_samples, len(categories), epochs
        )

        self._history = []
        loss_value = 0.0
        accuracy_value = 0.0
        for epoch in range(epochs):
            loss_value, accuracy_value = self._fit_epoch(train_x, train_y, batch_size)

            val_loss = val_accuracy = None
            if validation_samples > 0:
                val_loss, val_accuracy = self._evaluate(val_x, val_y)

            record = TrainingHistory(
                epoch=epoch,
                loss=loss_value,
                accuracy=accuracy_value,
                val_loss=val_loss,
                val_accuracy=val_accuracy,
            )
            self._history.append(record)
            logger.debug("Epoch %d/%d - loss=%.4f acc=%.4f", epoch + 1, epochs, loss_value, accuracy_value)
            if on_epoch_end is not None:
                on_epoch_end(epoch, record)

        self._metrics = ModelMetrics(
            accuracy=accuracy_value,
            loss=loss_value,
            training_samples=training_samples,
            validation_samples=validation_samples,
            last_trained_at=datetime.now(),
        )
        logger.info("Training finished: loss=%.4f accuracy=%.4f", loss_value, accuracy_value)
        return self.get_model_metrics()

    def _fit_epoch(self, features: torch.Tensor, labels: torch.Tensor, batch_size: int):
        self._model.train()
        order = torch.randperm(features.shape[0], device=self.device)
        total_loss = 0.0
        total_correct = 0.0

        for start in range(0, features.shape[0], batch_size):
            idx = order[start:start + batch_size]
            batch_x, batch_y = features[idx], labels[idx]

            self._optimizer.zero_grad()
            probabilities = self._model(batch_x)
            loss = binary_crossentropy(probabilities, batch_y)
            loss.backward()
            self._optimizer.step()

            total_loss += loss.item() * len(idx)
            total_correct += binary_accuracy(probabilities.detach(), batch_y) * len(idx)

        count = features.shape[0]
        return total_loss / count, total_correct / count

    def _evaluate(self, features: torch.Tensor, labels: torch.Tensor):
        self._model.eval()
        with torch.no_grad():
            probabilities = self._model(features)
            loss = binary_crossentropy(probabilities, labels).item()
            accuracy = binary_accuracy(probabilities, labels)
        return loss, accuracy

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def predict_category(self, description: str) -> Optional[CategorySuggestion]:
        """
        Predict a category, or None when untrained, on empty input, below the
        confidence floor, or on any inference failure.
        """
        if self._model is None or not self._encoder or not self._decoder or not self._vocabulary:
            return None
        if not description or not description.strip():
            return None

        try:
            self._model.eval()
            with torch.no_grad():
                probabilities = self._model(self._to_tensor([description]))[0].tolist()

            best_index = max(range(len(probabilities)), key=lambda i: probabilities[i])
            probability = probabilities[best_index]
            category = self._decoder.get(best_index)
            if category is None:
                return None

            confidence = clamp_confidence(probability * 100)
            if confidence < ML_MIN_CONFIDENCE:
                return None

            return CategorySuggestion(
                category=category,
                confidence=confidence,
                reason=(
                    f"ML prediction with {confidence}% confidence based on "
                    f"{self._metrics.training_samples} training samples"
                ),
                method=CategorizationMethod.ML_CLASSIFIER,
            )
        except Exception as e:
            logger.warning("Prediction error for %r: %s", description, e)
            return None

    def is_model_trained(self) -> bool:
        return (
            self._model is not None
            and self._metrics.training_samples > 0
            and self._metrics.accuracy > 0
        )

    def get_model_metrics(self) -> ModelMetrics:
        return replace(self._metrics)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save_model(self) -> None:
        """
        Persist weights, encoder, decoder, vocabulary and metrics.

        An untrained model saves its weights only and clears any labels,
        vocabulary and metrics left by an earlier save.

        Raises:
            ModelPersistenceError: not initialized, or the store failed
        """
        if self._model is None:
            raise ModelPersistenceError("Model not initialized")

        try:
            buffer = io.BytesIO()
            torch.save(self._model.state_dict(), buffer)
            self.store.set(MODEL_WEIGHTS_KEY, base64.b64encode(buffer.getvalue()).decode('ascii'))

            if self._encoder and self._decoder:
                self.store.set(MODEL_ENCODER_KEY, json.dumps(list(self._encoder.items())))
                self.store.set(MODEL_DECODER_KEY, json.dumps(list(self._decoder.items())))
                self.store.set(MODEL_VOCABULARY_KEY, json.dumps(self._vocabulary))
                self.store.set(MODEL_METRICS_KEY, json.dumps(self._metrics.to_dict()))
            else:
                # Untrained weights must not pair with an earlier save's labels
                for key in (MODEL_ENCODER_KEY, MODEL_DECODER_KEY,
                            MODEL_VOCABULARY_KEY, MODEL_METRICS_KEY):
                    self.store.delete(key)
        except Exception as e:
            raise ModelPersistenceError("Failed to save model to storage") from e

        logger.info("Saved classifier (%d categories)", len(self._encoder or {}))

    def load_model(self) -> bool:
        """
        Restore a previously saved classifier.

        Returns False, leaving the current state untouched, when anything is
        missing or unreadable.
        """
        try:
            weights = self.store.get(MODEL_WEIGHTS_KEY)
            encoder_json = self.store.get(MODEL_ENCODER_KEY)
            decoder_json = self.store.get(MODEL_DECODER_KEY)
            vocabulary_json = self.store.get(MODEL_VOCABULARY_KEY)
            metrics_json = self.store.get(MODEL_METRICS_KEY)

            if not weights or not encoder_json or not decoder_json or not vocabulary_json:
                logger.info("No saved classifier found")
                return False

            state = torch.load(
                io.BytesIO(base64.b64decode(weights)),
                map_location=self.device,
                weights_only=True,
            )
            model = SequenceNet().to(self.device)
            model.load_state_dict(state)

            encoder = {str(category): int(index) for category, index in json.loads(encoder_json)}
            decoder = {int(index): str(category) for index, category in json.loads(decoder_json)}
            vocabulary = [str(word) for word in json.loads(vocabulary_json)]
            metrics = ModelMetrics.from_dict(json.loads(metrics_json)) if metrics_json else ModelMetrics()
        except Exception as e:
            logger.warning("Error loading classifier: %s", e)
            return False

        self._model = model
        self._optimizer = torch.optim.Adam(model.parameters(), lr=LEARNING_RATE)
        self._encoder = encoder
        self._decoder = decoder
        self._set_vocabulary(vocabulary)
        self._metrics = metrics
        logger.info("Loaded classifier (%d categories)", len(encoder))
        return True

    def reset_model(self) -> None:
        """Drop the model and everything learned with it."""
        self._model = None
        self._optimizer = None
        self._set_vocabulary([])
        self._encoder = None
        self._decoder = None
        self._metrics = ModelMetrics()
        self._history = []
        if self.device.startswith("cuda"):
            torch.cuda.empty_cache()
