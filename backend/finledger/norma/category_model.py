from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sklearn.feature_extraction.text import CountVectorizer
from sklearn.naive_bayes import MultinomialNB

# category name (lowercase) -> keywords matched against normalized descriptions
DEFAULT_KEYWORDS: Dict[str, List[str]] = {
    "food": ["restaurant", "meal", "grocery", "supermarket", "market", "delivery", "uber eats", "doordash"],
    "restaurant": ["restaurant", "meal", "dinner", "lunch"],
    "groceries": ["grocery", "supermarket", "market"],
    "transport": ["uber", "lyft", "taxi", "cabify", "fuel", "gasoline", "gas station", "parking"],
    "housing": ["rent", "condo", "water", "electricity", "energy", "gas bill", "mortgage"],
    "health": ["pharmacy", "drugstore", "clinic", "hospital", "dentist", "doctor"],
    "education": ["school", "tuition", "course", "university", "books"],
    "leisure": ["cinema", "netflix", "spotify", "concert", "theater", "games"],
}

Document = Tuple[str, str]  # (feature string, label)


@dataclass(frozen=True)
class Classification:
    label: str
    probability: float


class BayesSnapshot:
    """
    Fitted multinomial Naive Bayes over whitespace tokens of feature strings.
    Never mutated after construction.
    """

    def __init__(self, documents: Sequence[Document]):
        if not documents:
            raise ValueError("cannot fit a model without documents")
        self.doc_count = len(documents)
        self._vectorizer = CountVectorizer(analyzer=str.split)
        matrix = self._vectorizer.fit_transform([features for features, _ in documents])
        self._nb = MultinomialNB(alpha=1.0)
        self._nb.fit(matrix, [label for _, label in documents])

    def classify(self, features: str) -> List[Classification]:
        matrix = self._vectorizer.transform([features])
        probabilities = self._nb.predict_proba(matrix)[0]
        ranked = [
            Classification(label=str(label), probability=float(p))
            for label, p in zip(self._nb.classes_, probabilities)
        ]
        ranked.sort(key=lambda c: c.probability, reverse=True)
        return ranked


class CategoryModel:
    """
    Process-wide category model: training documents, fitted snapshot and
    keyword map.

    Writers (train, add_document, add_keywords) serialize on one lock and
    publish a fresh snapshot / keyword dict by reference swap. Readers never
    take the lock, so they see either the previous or the next state.
    """

    def __init__(self, keywords: Optional[Dict[str, List[str]]] = None):
        self._write_lock = threading.Lock()
        self._documents: Tuple[Document, ...] = ()
        self._snapshot: Optional[BayesSnapshot] = None
        self._keywords: Dict[str, Tuple[str, ...]] = {
            name: tuple(words) for name, words in (keywords or DEFAULT_KEYWORDS).items()
        }

    @property
    def is_trained(self) -> bool:
        return self._snapshot is not None

    @property
    def document_count(self) -> int:
        return len(self._documents)

    def train(self, documents: Iterable[Document]) -> int:
        """Replace all documents and fit once. Returns the number of documents."""
        docs = tuple(documents)
        with self._write_lock:
            snapshot = BayesSnapshot(docs) if docs else None
            self._documents = docs
            self._snapshot = snapshot
        return len(docs)

    def add_document(self, features: str, label: str) -> None:
        with self._write_lock:
            docs = self._documents + ((features, label),)
            snapshot = BayesSnapshot(docs)
            self._documents = docs
            self._snapshot = snapshot

    def classify(self, features: str) -> List[Classification]:
        snapshot = self._snapshot
        if snapshot is None:
            return []
        return snapshot.classify(features)

    def keywords_for(self, category_name: str) -> Tuple[str, ...]:
        return self._keywords.get((category_name or "").strip().lower(), ())

    def add_keywords(self, category_name: str, words: Iterable[str]) -> List[str]:
        """Append unseen words to a category's keyword list. Returns the words added."""
        key = (category_name or "").strip().lower()
        with self._write_lock:
            current = self._keywords.get(key, ())
            added: List[str] = []
            for word in words:
                if word and word not in current and word not in added:
                    added.append(word)
            if added:
                updated = dict(self._keywords)
                updated[key] = current + tuple(added)
                self._keywords = updated
        return added

    def reset(self, keywords: Optional[Dict[str, List[str]]] = None) -> None:
        with self._write_lock:
            self._documents = ()
            self._snapshot = None
            self._keywords = {
                name: tuple(words) for name, words in (keywords or DEFAULT_KEYWORDS).items()
            }


category_model = CategoryModel()
