"""Accept/decline link construction.

Tokens travel in the URL fragment so they never appear in request lines
recorded by proxies or access logs.  The landing page posts the token to
``POST /api/matches/respond``.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, urlsplit, urlunsplit

from guide_match.errors import ConfigError
from guide_match.tokens.codec import MATCH_TOKEN_TTL_HOURS, TokenCodec

RESPOND_PATH = "/matches/respond"


@dataclass(frozen=True)
class MatchLinks:
    accept_url: str
    decline_url: str


def normalize_base_url(base_url: str) -> str:
    """Validate an http(s) base URL and drop any query string or fragment."""
    parts = urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"Invalid base URL: {base_url!r}")
    return urlunsplit((parts.scheme, parts.netloc, parts.path.rstrip("/"), "", ""))


def _fragment_url(base: str, token: str) -> str:
    return f"{base}{RESPOND_PATH}#token={quote(token, safe='')}"


def build_match_urls(
    codec: TokenCodec,
    base_url: str,
    request_id: str,
    student_id: str,
    selection_id: str,
    ttl_hours: float = MATCH_TOKEN_TTL_HOURS,
) -> MatchLinks:
    base = normalize_base_url(base_url)
    accept_token = codec.mint_match_token(
        request_id, student_id, selection_id, "accept", ttl_hours=ttl_hours
    )
    decline_token = codec.mint_match_token(
        request_id, student_id, selection_id, "decline", ttl_hours=ttl_hours
    )
    return MatchLinks(
        accept_url=_fragment_url(base, accept_token),
        decline_url=_fragment_url(base, decline_token),
    )
