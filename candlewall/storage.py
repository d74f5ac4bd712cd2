import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from candlewall.errors import StoreUnavailable

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def create_db_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine for the key-value service.

    SQLite needs check_same_thread=False because FastAPI serves sync routes
    from a threadpool. In-memory SQLite databases share one connection
    through StaticPool, otherwise every new connection sees an empty database.
    """
    url = make_url(database_url)
    kwargs = {}
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, connect_args=connect_args, echo=False, **kwargs)


class SqlKeyValueStore:
    """
    Key-value service with list semantics on top of a SQL database.

    Supports the three operations the message store needs: read a whole
    list, push one element, and create a key with initial contents only
    if it does not exist yet. Every SQLAlchemy failure is raised as
    StoreUnavailable.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def init_db(self) -> None:
        """
        Create all tables. Called during application startup.
        """
        logger.debug(f"Initializing database with URL: {self.engine.url!r}")
        try:
            # Import models to register them with Base.metadata
            from candlewall import models  # noqa: F401

            Base.metadata.create_all(bind=self.engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def ping(self) -> bool:
        """
        Check if the database is reachable and schema is applied.

        Returns:
            True if DB is healthy and the kv tables exist, False otherwise.
        """
        logger.debug("Checking database health...")
        try:
            with self.SessionLocal() as db:
                db.execute(text("SELECT 1"))
            inspector = inspect(self.engine)
            for table in ("kv_keys", "kv_list_items"):
                if not inspector.has_table(table):
                    logger.error(f"Database schema not applied: '{table}' table not found")
                    return False
            logger.debug("Database health check passed")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def lrange(self, key: str) -> Optional[List[str]]:
        """
        Read every element stored under key, in insertion order.

        Returns:
            The list of values, or None if the key was never created.
        """
        from candlewall.models import KeyEntry, ListItem

        try:
            with self.SessionLocal() as db:
                if db.get(KeyEntry, key) is None:
                    logger.debug(f"Key not found: {key}")
                    return None
                rows = (
                    db.query(ListItem.value)
                    .filter(ListItem.key == key)
                    .order_by(ListItem.id.asc())
                    .all()
                )
                return [row.value for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to read key {key}: {e}")
            raise StoreUnavailable(f"read of {key!r} failed") from e

    def rpush(self, key: str, value: str) -> None:
        """
        Append one value to the end of the list under key.

        The key marker is created if missing; element insert and marker
        creation commit in the same transaction.
        """
        from candlewall.models import KeyEntry, ListItem

        try:
            with self.SessionLocal() as db:
                if db.get(KeyEntry, key) is None:
                    try:
                        db.add(KeyEntry(key=key, created_at=_now()))
                        db.flush()
                    except IntegrityError:
                        # created concurrently by another writer
                        db.rollback()
                db.add(ListItem(key=key, value=value, created_at=_now()))
                db.commit()
                logger.debug(f"Appended value to key {key}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to append to key {key}: {e}")
            raise StoreUnavailable(f"append to {key!r} failed") from e

    def seed(self, key: str, values: Iterable[str]) -> bool:
        """
        Create key holding values, unless the key already exists.

        Returns:
            True if this call created the key, False if another writer
            got there first (nothing is written in that case).
        """
        from candlewall.models import KeyEntry, ListItem

        try:
            with self.SessionLocal() as db:
                try:
                    created_at = _now()
                    db.add(KeyEntry(key=key, created_at=created_at))
                    db.flush()
                    db.add_all([
                        ListItem(key=key, value=value, created_at=created_at)
                        for value in values
                    ])
                    db.commit()
                    logger.info(f"Seeded key {key}")
                    return True
                except IntegrityError:
                    db.rollback()
                    logger.info(f"Key already seeded: {key}")
                    return False
        except SQLAlchemyError as e:
            logger.error(f"Failed to seed key {key}: {e}")
            raise StoreUnavailable(f"seed of {key!r} failed") from e
