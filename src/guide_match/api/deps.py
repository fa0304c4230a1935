"""FastAPI dependency injection for DB sessions and the core services."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from guide_match.config.settings import Settings, get_settings
from guide_match.db.session import get_session_factory
from guide_match.matching.arbiter import SelectionArbiter
from guide_match.notifications.fanout import LoggingEmailSender, NotificationFanout
from guide_match.reviews.scorer import ReliabilityScorer
from guide_match.tokens.codec import TokenCodec


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session for request handling."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


@lru_cache
def get_token_codec() -> TokenCodec:
    """Process-wide codec. Raises ConfigError when the secret is unusable."""
    return TokenCodec.from_settings(get_settings())


@lru_cache
def get_fanout() -> NotificationFanout:
    return NotificationFanout(
        LoggingEmailSender(), send_timeout_seconds=get_settings().email_timeout_seconds
    )


def get_arbiter(
    fanout: NotificationFanout = Depends(get_fanout),
    settings: Settings = Depends(get_settings),
) -> SelectionArbiter:
    return SelectionArbiter(fanout, timeout_seconds=settings.db_timeout_seconds)


def get_scorer(settings: Settings = Depends(get_settings)) -> ReliabilityScorer:
    return ReliabilityScorer(timeout_seconds=settings.db_timeout_seconds)
