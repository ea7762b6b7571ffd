"""
Phase 2c: TF-IDF cosine similarity over categorized history.

Weights follow the textbook definitions without smoothing:

    tf  = count(term, doc) / len(tokens(doc))
    idf = ln(|corpus| / df(term))        (0 for unseen terms)

so a term present in every document carries no weight.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from config import (
    STOP_WORDS,
    TFIDF_CONFIDENCE_BOOST,
    TFIDF_MIN_SIMILARITY,
    TFIDF_SIMILARITY_THRESHOLD,
)
from normalizer import normalize_description, tokenize

from .models import (
    CategorizationMethod,
    CategorySuggestion,
    SimilarTransaction,
    Transaction,
    round_half_up,
)

logger = logging.getLogger(__name__)


def tokenize_document(text: str) -> List[str]:
    """Significant tokens: longer than 2 characters, stop words removed."""
    return tokenize(normalize_description(text), min_length=2, stop_words=STOP_WORDS)


@dataclass
class TFIDFModel:
    """
    Term-vector space built from categorized history.

    ``transactions`` holds the categorized entries in corpus order so that a
    cached model can answer queries without the original history.
    """
    corpus: List[str] = field(default_factory=list)
    vocabulary: List[str] = field(default_factory=list)
    document_frequency: Dict[str, int] = field(default_factory=dict)
    transactions: List[Transaction] = field(default_factory=list)
    _term_index: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _idf: Optional[np.ndarray] = field(default=None, init=False, repr=False)
    _matrix: Optional[np.ndarray] = field(default=None, init=False, repr=False)

    @classmethod
    def build(cls, history: Sequence[Transaction]) -> 'TFIDFModel':
        """Build corpus, vocabulary and document frequencies from history."""
        categorized = [txn for txn in history if txn.is_categorized]
        corpus = [normalize_description(txn.entity) for txn in categorized]

        vocabulary: Dict[str, None] = {}
        document_frequency: Dict[str, int] = {}
        for document in corpus:
            tokens = tokenize_document(document)
            for term in tokens:
                vocabulary.setdefault(term, None)
            for term in set(tokens):
                document_frequency[term] = document_frequency.get(term, 0) + 1

        return cls(
            corpus=corpus,
            vocabulary=list(vocabulary),
            document_frequency=document_frequency,
            transactions=categorized,
        )

    @property
    def is_empty(self) -> bool:
        return not self.corpus

    def _prepare(self) -> None:
        if self._idf is not None:
            return
        self._term_index = {term: i for i, term in enumerate(self.vocabulary)}
        size = len(self.corpus)
        self._idf = np.array([
            math.log(size / self.document_frequency[term])
            if self.document_frequency.get(term, 0) > 0 else 0.0
            for term in self.vocabulary
        ], dtype=np.float64)
        if self.corpus:
            self._matrix = np.vstack([self.vectorize(doc) for doc in self.corpus])
        else:
            self._matrix = np.zeros((0, len(self.vocabulary)))

    def vectorize(self, document: str) -> np.ndarray:
        """TF-IDF vector of a document over this model's vocabulary."""
        self._prepare()
        vector = np.zeros(len(self.vocabulary), dtype=np.float64)
        tokens = tokenize_document(document)
        if not tokens:
            return vector

        for term in tokens:
            index = self._term_index.get(term)
            if index is not None:
                vector[index] += 1.0
        return (vector / len(tokens)) * self._idf

    def similarities(self, description: str) -> np.ndarray:
        """Cosine similarity of ``description`` to every corpus document."""
        self._prepare()
        if self._matrix.shape[0] == 0:
            return np.zeros(0)

        query = self.vectorize(normalize_description(description))
        query_norm = np.linalg.norm(query)
        doc_norms = np.linalg.norm(self._matrix, axis=1)
        if query_norm == 0:
            return np.zeros(self._matrix.shape[0])

        dots = self._matrix @ query
        with np.errstate(divide='ignore', invalid='ignore'):
            scores = np.where(doc_norms > 0, dots / (doc_norms * query_norm), 0.0)
        return scores

    def rank(self, description: str) -> List[SimilarTransaction]:
        """All corpus entries ordered by similarity, best first (stable)."""
        scores = self.similarities(description)
        ranked = [
            SimilarTransaction(txn, float(score))
            for txn, score in zip(self.transactions, scores)
        ]
        ranked.sort(key=lambda r: r.similarity, reverse=True)
        return ranked


def calculate_tfidf_confidence(similarity: float) -> int:
    """Similarity as a percentage plus a flat boost, capped at 100."""
    boosted = min(100.0, similarity * 100 + TFIDF_CONFIDENCE_BOOST)
    return max(0, round_half_up(boosted))


def _suggest(
    description: str,
    model: TFIDFModel,
    threshold: float
) -> Optional[CategorySuggestion]:
    ranked = model.rank(description)
    if not ranked:
        return None

    best = ranked[0]
    if best.similarity < max(TFIDF_MIN_SIMILARITY, threshold):
        return None

    txn = best.transaction
    return CategorySuggestion(
        category=txn.category,
        subcategory=txn.subcategory or None,
        confidence=calculate_tfidf_confidence(best.similarity),
        reason=(
            f'TF-IDF similarity match found: "{description}" is similar to '
            f'"{txn.entity}" with {best.similarity:.3f} similarity'
        ),
        method=CategorizationMethod.TFIDF_SIMILARITY,
    )


def _similar(description: str, model: TFIDFModel, limit: int) -> List[SimilarTransaction]:
    ranked = model.rank(description)
    return [r for r in ranked if r.similarity >= TFIDF_MIN_SIMILARITY][:limit]


def categorize_by_tfidf(
    description: str,
    history: Sequence[Transaction],
    threshold: float = TFIDF_SIMILARITY_THRESHOLD
) -> Optional[CategorySuggestion]:
    """
    Suggest the category of the history entry closest in TF-IDF space.

    Builds a throwaway model from ``history``; use ``TFIDFIndex`` to reuse a
    trained model across calls.
    """
    if not description or not description.strip() or not history:
        return None

    model = TFIDFModel.build(history)
    if model.is_empty:
        return None
    return _suggest(description, model, threshold)


def find_similar_by_tfidf(
    description: str,
    history: Sequence[Transaction],
    limit: int = 5
) -> List[SimilarTransaction]:
    """Up to ``limit`` categorized entries above the similarity floor."""
    if not description or not description.strip() or not history:
        return []

    model = TFIDFModel.build(history)
    if model.is_empty:
        return []
    return _similar(description, model, limit)


class TFIDFIndex:
    """
    Owned handle around a trained TF-IDF model.

    The model is replaced wholesale by ``train``/``set_model``; concurrent
    mutation needs external locking.
    """

    def __init__(self, model: Optional[TFIDFModel] = None):
        self._model = model

    def train(self, history: Sequence[Transaction]) -> TFIDFModel:
        """Build a model from history; an empty corpus leaves the cache as is."""
        model = TFIDFModel.build(history)
        if not model.is_empty:
            self._model = model
            logger.info(
                "Trained TF-IDF model: %d documents, %d terms",
                len(model.corpus), len(model.vocabulary)
            )
        return model

    @property
    def model(self) -> Optional[TFIDFModel]:
        return self._model

    def set_model(self, model: Optional[TFIDFModel]) -> None:
        self._model = model

    def reset(self) -> None:
        self._model = None

    def categorize(
        self,
        description: str,
        threshold: float = TFIDF_SIMILARITY_THRESHOLD
    ) -> Optional[CategorySuggestion]:
        """Categorize against the cached model (None if untrained)."""
        if not description or not description.strip():
            return None
        if self._model is None or self._model.is_empty:
            return None
        return _suggest(description, self._model, threshold)

    def find_similar(self, description: str, limit: int = 5) -> List[SimilarTransaction]:
        if not description or not description.strip():
            return []
        if self._model is None or self._model.is_empty:
            return []
        return _similar(description, self._model, limit)
