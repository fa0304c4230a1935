from guide_match.reviews.scorer import (
    ReliabilityBadge,
    ReliabilityScorer,
    ReviewInput,
    StudentMetrics,
    compute_metrics,
)

__all__ = [
    "ReliabilityBadge",
    "ReliabilityScorer",
    "ReviewInput",
    "StudentMetrics",
    "compute_metrics",
]
