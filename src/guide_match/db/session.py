"""Session factory shared by the API and the CLI."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guide_match.db.engine import dispose_engine, get_engine

_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return a cached session factory bound to the engine.

    Rows stay loaded after commit; the arbiter and scorer hand committed
    rows back to their callers.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def close_sessions() -> None:
    """Drop the cached factory and close pooled connections."""
    global _session_factory
    _session_factory = None
    await dispose_engine()
