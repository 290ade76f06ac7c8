import logging
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

log = logging.getLogger(__name__)

DEFAULT_CONNECTION = "sqlite:///tilelayer_local.db"

def _is_memory_sqlite(connection_string: str) -> bool:
    return connection_string in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in connection_string

class StoreClient:
    """
    A dialect-agnostic connection holder shared by the tile backend and the attribute store.
    """

    def __init__(self, connection_string: str = DEFAULT_CONNECTION, echo: bool = False):
        """
        Initializes the engine and session factory.

        In-memory SQLite databases are pinned to a single shared connection so every
        session sees the same data.

        Args:
            connection_string (str): The SQLAlchemy-formatted connection URI. Defaults to a local SQLite file.
            echo (bool): Log every emitted SQL statement.
        """
        engine_kwargs: dict = {}
        if _is_memory_sqlite(connection_string):
            engine_kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool
            }
        self.connection_string = connection_string
        self.engine = create_engine(connection_string, echo=echo, **engine_kwargs)
        self.SessionLocal = sessionmaker(autoflush=False, bind=self.engine)

    def initialize_database(self) -> bool:
        """
        Deploys the tile, attribute and pending-operation tables to the connected database.

        Returns:
            bool: True if the schema deployment was successful, False otherwise.
        """
        try:
            Base.metadata.create_all(bind=self.engine)
            log.info(f"tilelayer schema successfully deployed to {self.engine.name}.")
            return True
        except SQLAlchemyError as e:
            log.error(f"Failed to initialize database schema: {e}")
            return False

    def dispose(self) -> None:
        """Releases every pooled connection."""
        self.engine.dispose()

    def __enter__(self) -> "StoreClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"<StoreClient dialect={self.engine.name}>"
