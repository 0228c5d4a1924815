"""Async engine and session factory for the remote Postgres store."""

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from deliverytracker.core.config import settings


def _connect_args() -> dict[str, object]:
    args: dict[str, object] = {"command_timeout": settings.REMOTE_TIMEOUT_SEC}
    if settings.DB_SSL:
        # Hosted Postgres only accepts TLS connections.
        args["ssl"] = "require"
    return args


engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE,
    connect_args=_connect_args(),
    echo=settings.DEBUG,
)

SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)
