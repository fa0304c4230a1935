from guide_match.tokens.codec import (
    MatchTokenPayload,
    TokenCodec,
    ViewTokenPayload,
)
from guide_match.tokens.links import MatchLinks, build_match_urls

__all__ = [
    "MatchLinks",
    "MatchTokenPayload",
    "TokenCodec",
    "ViewTokenPayload",
    "build_match_urls",
]
