from __future__ import annotations

from typing import Iterable


def raw_anomaly_score(active: Iterable[int], previously_predicted: Iterable[int]) -> float:
    """Fraction of the active set that was not predicted one step earlier.

    Works on columns or cells alike. An empty active set scores 0.
    """
    active = set(active)
    if not active:
        return 0.0
    predicted = set(previously_predicted)
    return 1.0 - len(active & predicted) / len(active)
