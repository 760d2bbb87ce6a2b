from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def resolve_async_url(database_url: str) -> tuple[str, dict[str, Any]]:
    """Return (async url, engine kwargs) for a configured database URL.

    PostgreSQL runs on asyncpg, which does not accept psycopg params like
    sslmode/channel_binding; those are stripped and SSL is enabled via
    connect_args. SQLite runs on aiosqlite without pool sizing.
    """
    parsed = urlparse(database_url)
    if parsed.scheme.startswith("sqlite"):
        if parsed.scheme == "sqlite":
            return "sqlite+aiosqlite" + database_url[len("sqlite"):], {}
        return database_url, {}
    scheme = "postgresql+asyncpg" if parsed.scheme == "postgresql" else parsed.scheme
    query = parse_qs(parsed.query, keep_blank_values=True)
    require_ssl = query.pop("sslmode", ["disable"])[0] not in ("disable", "allow", "prefer")
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    url = urlunparse((scheme, parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment))
    options: dict[str, Any] = {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}
    if require_ssl:
        options["connect_args"] = {"ssl": True}
    return url, options


async_database_url, _engine_options = resolve_async_url(settings.database_url)

engine = create_async_engine(
    async_database_url,
    echo=settings.env == "development",
    **_engine_options,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
