from __future__ import annotations

import json
import logging
from typing import Any

import numpy as np

from cinemind_core.types import Embedding

log = logging.getLogger(__name__)


def parse_embedding(value: Any) -> Embedding | None:
    """
    Coerce a stored embedding into a 1-D float32 vector.

    Accepts the JSON string storage form, a list/tuple of numbers or an ndarray.
    Returns None for anything unusable (bad JSON, empty, nested, non-finite).
    """
    if value is None:
        return None
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except (ValueError, TypeError) as e:
            log.warning("Failed to parse embedding: %s", e)
            return None
    try:
        vec = np.asarray(value, dtype=np.float32)
    except (ValueError, TypeError) as e:
        log.warning("Embedding is not numeric: %s", e)
        return None
    if vec.ndim != 1 or vec.size == 0:
        return None
    if not np.all(np.isfinite(vec)):
        log.warning("Embedding contains non-finite values")
        return None
    return vec


def stringify_embedding(vec: Embedding | list[float]) -> str:
    return json.dumps([float(x) for x in vec], separators=(",", ":"))
