"""Prometheus counters for the classification API"""
from prometheus_client import Counter

resolutions_total = Counter(
    "hs_resolutions_total",
    "Classified items by source",
    ["source"],
)

classification_failures_total = Counter(
    "hs_classification_failures_total",
    "Failed classification requests (or items, in partial mode) by cause",
    ["error"],
)

feedback_total = Counter(
    "hs_feedback_total",
    "Feedback submissions by kind",
    ["kind"],
)
