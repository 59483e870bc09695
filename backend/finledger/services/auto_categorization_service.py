"""
Auto-categorization.

suggest_category walks an ordered list of strategies; the first one that
returns a suggestion wins:

  1. model    - Naive Bayes over description tokens + amount features
  2. history  - a recent transaction with a similar description
  3. keyword  - keyword map of the user's categories
  4. fallback - first category of the amount's polarity

Suggestions are advisory. Callers decide whether to apply them
(see api.config.auto_apply_threshold).
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from backend.finledger.api.config import classifier_min_probability, classifier_training_limit
from backend.finledger.norma.category_model import CategoryModel, category_model
from backend.finledger.norma.normalize import descriptions_similar, extract_features, normalize_text
from backend.finledger.services.category_service import (
    find_categories,
    find_category,
    polarity_for_amount,
)
from backend.finledger.services.transaction_service import (
    find_categorized,
    find_recent,
    find_transaction,
)

logger = logging.getLogger(__name__)

HISTORY_CONFIDENCE = 0.85
KEYWORD_CONFIDENCE = 0.7
FALLBACK_CONFIDENCE = 0.3
HISTORY_LOOKBACK = 100
KEYWORD_MIN_LENGTH = 4


@dataclass(frozen=True)
class CategorySuggestion:
    category_id: str
    confidence: float
    source: str  # model|history|keyword|fallback


@dataclass(frozen=True)
class SuggestionRequest:
    user_id: str
    description: str
    normalized: str
    amount: float


Strategy = Callable[[Session, SuggestionRequest, CategoryModel], Optional[CategorySuggestion]]


# -------------------------
# Strategies
# -------------------------

def suggest_from_model(db: Session, req: SuggestionRequest, model: CategoryModel) -> Optional[CategorySuggestion]:
    if not model.is_trained:
        return None

    ranked = model.classify(extract_features(req.description, req.amount))
    if not ranked or ranked[0].probability <= classifier_min_probability():
        return None

    top = ranked[0]
    # the model is trained across users; only hand back the caller's own categories
    own_ids = {c.id for c in find_categories(db, req.user_id)}
    if top.label not in own_ids:
        return None
    return CategorySuggestion(category_id=top.label, confidence=top.probability, source="model")


def suggest_from_history(db: Session, req: SuggestionRequest, model: CategoryModel) -> Optional[CategorySuggestion]:
    for txn in find_recent(db, req.user_id, HISTORY_LOOKBACK):
        if not txn.category_id:
            continue
        candidate = normalize_text(txn.description)
        if candidate and descriptions_similar(candidate, req.normalized):
            return CategorySuggestion(
                category_id=txn.category_id,
                confidence=HISTORY_CONFIDENCE,
                source="history",
            )
    return None


def suggest_from_keywords(db: Session, req: SuggestionRequest, model: CategoryModel) -> Optional[CategorySuggestion]:
    for category in find_categories(db, req.user_id, polarity_for_amount(req.amount)):
        for keyword in model.keywords_for(category.name):
            if keyword in req.normalized:
                return CategorySuggestion(
                    category_id=category.id,
                    confidence=KEYWORD_CONFIDENCE,
                    source="keyword",
                )
    return None


def suggest_by_polarity(db: Session, user_id: str, amount: float) -> Optional[CategorySuggestion]:
    categories = find_categories(db, user_id, polarity_for_amount(amount))
    if not categories:
        return None
    return CategorySuggestion(
        category_id=categories[0].id,
        confidence=FALLBACK_CONFIDENCE,
        source="fallback",
    )


STRATEGIES: List[Strategy] = [
    suggest_from_model,
    suggest_from_history,
    suggest_from_keywords,
]


# -------------------------
# Public API
# -------------------------

def suggest_category(
    db: Session,
    description: Optional[str],
    amount: float,
    user_id: str,
    *,
    model: Optional[CategoryModel] = None,
) -> Optional[CategorySuggestion]:
    model = model or category_model
    amount = float(amount or 0.0)

    if not description or not description.strip():
        return _fallback(db, user_id, amount)

    req = SuggestionRequest(
        user_id=user_id,
        description=description,
        normalized=normalize_text(description),
        amount=amount,
    )
    try:
        for strategy in STRATEGIES:
            suggestion = strategy(db, req, model)
            if suggestion:
                return suggestion
    except Exception:
        logger.exception("category suggestion failed user=%s; using polarity fallback", user_id)

    return _fallback(db, user_id, amount)


def _fallback(db: Session, user_id: str, amount: float) -> Optional[CategorySuggestion]:
    try:
        return suggest_by_polarity(db, user_id, amount)
    except Exception:
        logger.exception("polarity fallback failed user=%s", user_id)
        return None


def train_from_history(db: Session, *, model: Optional[CategoryModel] = None) -> int:
    """
    Fit the model on the most recent categorized transactions of all users.
    Returns the number of training documents (0 when there is nothing to learn from).
    """
    model = model or category_model
    try:
        txns = find_categorized(db, classifier_training_limit())
        documents = [(extract_features(t.description, t.amount), t.category_id) for t in txns]
        count = model.train(documents)
    except Exception:
        logger.exception("category model training failed")
        return 0

    if count:
        logger.info("category model trained with %s transactions", count)
    else:
        logger.warning("no categorized transactions; category model left untrained")
    return count


def learn_from_feedback(
    db: Session,
    transaction_id: str,
    category_id: str,
    user_id: str,
    *,
    model: Optional[CategoryModel] = None,
) -> bool:
    """
    Teach the model that `transaction_id` belongs to `category_id`.

    Unknown transaction/category raise 404. Model refit failures are logged
    and reported as False; they never propagate.
    """
    model = model or category_model
    txn = find_transaction(db, transaction_id, user_id)
    category = find_category(db, category_id, user_id)

    try:
        model.add_document(extract_features(txn.description, txn.amount), category.id)
        words = [w for w in normalize_text(txn.description).split(" ") if len(w) >= KEYWORD_MIN_LENGTH]
        model.add_keywords(category.name, words)
    except Exception:
        logger.exception("learning from feedback failed transaction=%s", transaction_id)
        return False

    logger.info("category model updated from feedback transaction=%s category=%s", transaction_id, category.id)
    return True
