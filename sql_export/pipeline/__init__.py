"""Export pipeline components."""

from .probe import HeaderProber, build_probe_query, strip_limit_clause
from .estimator import RowCountEstimator

__all__ = [
    "HeaderProber",
    "build_probe_query",
    "strip_limit_clause",
    "RowCountEstimator",
]
