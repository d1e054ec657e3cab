# priority_suggester.py
# Optional text model suggesting a priority for new reports. Works without a
# model file: every report then starts at the default priority.

import os
import logging

import joblib

from civic_backend import PRIORITIES

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = "medium"


def load_priority_model(path: str):
    """Load a joblib-serialized classifier exposing predict([text]), or None."""
    if not path or not os.path.exists(path):
        return None
    try:
        return joblib.load(path)
    except Exception as e:
        logger.warning("Failed to load priority model %s: %s", path, e)
        return None


def suggest_priority(model, text: str) -> str:
    if model is None or not (text or "").strip():
        return DEFAULT_PRIORITY
    try:
        prediction = model.predict([text])[0]
    except Exception as e:
        logger.warning("Priority prediction failed: %s", e)
        return DEFAULT_PRIORITY
    label = str(prediction).strip().lower()
    return label if label in PRIORITIES else DEFAULT_PRIORITY
