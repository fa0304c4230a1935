"""Closed vocabulary of attributes a tourist may tag a review with."""

REVIEW_ATTRIBUTES: frozenset[str] = frozenset(
    {
        # Positive
        "friendly",
        "knowledgeable",
        "punctual",
        "professional",
        "flexible",
        "good_communication",
        "local_insights",
        "great_recommendations",
        "patient",
        "enthusiastic",
        "well_prepared",
        "good_english",
        # Areas for improvement
        "late",
        "unprepared",
        "poor_communication",
        "rushed",
        "limited_knowledge",
    }
)

MAX_ATTRIBUTES = 20


def is_valid_attribute(attribute: str) -> bool:
    return attribute in REVIEW_ATTRIBUTES
