from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine as sa_create_async_engine

from guide_match.config.settings import get_settings

_engine: AsyncEngine | None = None


def get_engine(echo: bool = False) -> AsyncEngine:
    """Return a cached async engine instance.

    Waiting for a pooled connection counts against the same budget as the
    transaction itself.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = sa_create_async_engine(
            settings.database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_timeout=settings.db_timeout_seconds,
        )
    return _engine


async def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
