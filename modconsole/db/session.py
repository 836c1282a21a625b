"""Database engine, session factory, dependency injection and the outage breaker."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import sessionmaker, Session

from modconsole.core.clock import Clock, utcnow
from modconsole.core.config import settings
from modconsole.core.exceptions import ServiceUnavailableError
from modconsole.core.throttle import LogThrottle

logger = logging.getLogger("modconsole.db")

T = TypeVar("T")

OUTAGE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


def configure_sqlite(engine: Engine) -> Engine:
    """Make SQLite transactions take the write lock up front.

    pysqlite's implicit transaction handling is turned off so that SQLAlchemy
    emits ``BEGIN IMMEDIATE`` itself. This serializes writers the way a
    row lock would on a server database and keeps SAVEPOINT working.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine with dialect-appropriate options."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False, "timeout": 30})
        return configure_sqlite(create_engine(url, echo=settings.DATABASE_ECHO, **kwargs))
    return create_engine(
        url,
        pool_size=20,
        max_overflow=40,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=settings.DATABASE_ECHO,
        **kwargs,
    )


engine = build_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that provides a DB session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class CircuitBreaker:
    """Fail fast for a short window after the datastore stops answering.

    Owned by whoever talks to the store on the authentication path and passed
    in explicitly, so tests can build one with their own clock.
    """

    def __init__(
        self,
        open_seconds: Optional[int] = None,
        clock: Clock = utcnow,
        log_throttle: Optional[LogThrottle] = None,
    ):
        self.open_seconds = (
            settings.DB_CIRCUIT_BREAKER_SECONDS if open_seconds is None else open_seconds
        )
        self.clock = clock
        self.open_until: Optional[datetime] = None
        self.log_throttle = log_throttle or LogThrottle(settings.LOG_THROTTLE_SECONDS)

    @property
    def is_open(self) -> bool:
        return self.open_until is not None and self.clock() < self.open_until

    def trip(self, exc: BaseException) -> None:
        self.open_until = self.clock() + timedelta(seconds=self.open_seconds)
        self.log_throttle.error(
            logger, "datastore", "Datastore unavailable, failing fast for %ss: %s",
            self.open_seconds, exc,
        )

    def reset(self) -> None:
        self.open_until = None

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run ``fn``; outages open the breaker and surface as ServiceUnavailableError."""
        if self.is_open:
            raise ServiceUnavailableError()
        try:
            result = fn(*args, **kwargs)
        except OUTAGE_ERRORS as exc:
            self.trip(exc)
            raise ServiceUnavailableError() from exc
        self.open_until = None
        return result


db_breaker = CircuitBreaker()
