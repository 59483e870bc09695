from __future__ import annotations

import os


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def auto_apply_threshold() -> float:
    """Minimum suggestion confidence for a category to be applied without asking."""
    return _float_env("CATEGORY_AUTO_APPLY_THRESHOLD", 0.5)


def classifier_min_probability() -> float:
    return _float_env("CLASSIFIER_MIN_PROBABILITY", 0.3)


def classifier_training_limit() -> int:
    return _int_env("CLASSIFIER_TRAINING_LIMIT", 5000)


def log_level() -> str:
    return (os.getenv("LOG_LEVEL") or "INFO").upper()
