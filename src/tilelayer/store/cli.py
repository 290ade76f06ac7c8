import argparse
import sys
import logging
import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from sqlalchemy.exc import SQLAlchemyError

from tilelayer.exceptions import TileLayerError

log = logging.getLogger(__name__)

DEFAULT_SQLITE_PATH = "tilelayer_local.db"

def setup_logging(level: int = logging.INFO) -> None:
    """
    Configures the standard logging format and level for the command-line interface.

    Args:
        level (int): The logging threshold level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

def resolve_connection(db_type: str, path: str) -> str:
    """
    Builds the SQLAlchemy URL for the requested dialect.

    PostgreSQL credentials come from DB_USER, DB_PASSWORD, DB_HOST, DB_PORT and DB_NAME,
    loaded from a .env file when one is found.

    Args:
        db_type (str): 'sqlite' or 'postgres'.
        path (str): File path of the SQLite database.
    """
    if db_type == "sqlite":
        return f"sqlite:///{path}"

    if db_type == "postgres":
        env_path = find_dotenv(usecwd=True)
        if env_path:
            load_dotenv(env_path)

        db_user = os.getenv("DB_USER")
        db_pass = os.getenv("DB_PASSWORD")
        db_host = os.getenv("DB_HOST", "localhost")
        db_port = os.getenv("DB_PORT", "5432")
        db_name = os.getenv("DB_NAME", "tilelayer")

        if not all([db_user, db_pass]):
            log.error("Missing DB_USER or DB_PASSWORD in environment variables. Cannot connect to PostgreSQL.")
            sys.exit(1)

        return f"postgresql+psycopg://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"

    log.error(f"Unsupported database type: {db_type}")
    sys.exit(1)

def _open_store(args: argparse.Namespace):
    from tilelayer.store import AttributeStore, StoreClient, TileBackend

    client = StoreClient(connection_string=resolve_connection(args.type, args.path))
    return client, AttributeStore(client), TileBackend(client)

def initialize_database(db_type: str, path: str, reset: bool = False) -> None:
    """
    Provisions the tile, attribute and pending-operation tables.

    Args:
        db_type (str): The requested database dialect ('sqlite' or 'postgres').
        path (str): The designated file path for local SQLite deployments.
        reset (bool): Delete an existing local database file before initialization.
    """
    from tilelayer.store import StoreClient

    if db_type == "sqlite" and reset and Path(path).exists():
        log.warning(f"Reset flag detected. Removing existing database at {path}.")
        os.remove(path)

    db_url = resolve_connection(db_type, path)
    log.info(f"Targeting database connection: {db_type.upper()}")

    with StoreClient(connection_string=db_url) as client:
        if not client.initialize_database():
            log.error("Database initialization encountered an error.")
            sys.exit(1)
    log.info("Database initialization sequence completed successfully.")

def list_layers(args: argparse.Namespace) -> None:
    from tilelayer.store import PendingOperations

    client, attribute_store, backend = _open_store(args)
    with client:
        pending = {layer_id: stage for layer_id, _, stage in PendingOperations(client).list()}
        for layer_id in attribute_store.list():
            metadata = attribute_store.lookup(layer_id)
            line = (
                f"{layer_id}\t{metadata.key_type}\t{metadata.value_type}\t"
                f"{metadata.key_index['type']}\t{backend.count(layer_id)} payloads"
            )
            if layer_id in pending:
                line += f"\tpending reindex ({pending[layer_id]})"
            print(line)

def delete_layer(args: argparse.Namespace) -> None:
    from tilelayer.store import LayerDeleter, LayerId

    client, attribute_store, backend = _open_store(args)
    with client:
        LayerDeleter(attribute_store, backend).delete(LayerId(args.name, args.zoom))

def recover_layer(args: argparse.Namespace) -> None:
    from tilelayer.store import LayerId, LayerReindexer

    client, attribute_store, backend = _open_store(args)
    with client:
        LayerReindexer(attribute_store, backend).recover(LayerId(args.name, args.zoom))

def main() -> None:
    """
    Parses command-line arguments and routes execution to the appropriate administrative subroutines.
    """
    connection = argparse.ArgumentParser(add_help=False)
    connection.add_argument(
        "--type",
        choices=["sqlite", "postgres"],
        default="sqlite",
        help="The database dialect. Defaults to sqlite."
    )
    connection.add_argument(
        "--path",
        type=str,
        default=DEFAULT_SQLITE_PATH,
        help="The SQLite database file."
    )

    layer = argparse.ArgumentParser(add_help=False)
    layer.add_argument("name", help="Layer name.")
    layer.add_argument("--zoom", type=int, default=0, help="Layer zoom level. Defaults to 0.")

    parser = argparse.ArgumentParser(
        prog="tilelayer",
        description="tilelayer store administration"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    db_parser = subparsers.add_parser(
        "init-db",
        parents=[connection],
        help="Deploys the layer store schema to the target database."
    )
    db_parser.add_argument(
        "--reset",
        action="store_true",
        help="Forcefully deletes the existing local database file before recreation."
    )
    subparsers.add_parser("layers", parents=[connection], help="Lists registered layers.")
    subparsers.add_parser("delete-layer", parents=[connection, layer], help="Deletes a layer and its tiles.")
    subparsers.add_parser(
        "recover",
        parents=[connection, layer],
        help="Rolls back or completes an interrupted reindex."
    )

    args = parser.parse_args()
    setup_logging()

    try:
        if args.command == "init-db":
            initialize_database(db_type=args.type, path=args.path, reset=args.reset)
        elif args.command == "layers":
            list_layers(args)
        elif args.command == "delete-layer":
            delete_layer(args)
        elif args.command == "recover":
            recover_layer(args)
    except (TileLayerError, SQLAlchemyError) as e:
        log.error(f"{args.command} failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
