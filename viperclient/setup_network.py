"""Prepare a database for use with the Viper Network."""

from __future__ import annotations

import argparse
import sys
from contextlib import contextmanager
from typing import Iterator, Sequence, TextIO

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import load_config
from .database import _normalise_url

VIPER_NETWORK_ENDPOINT = "http://127.0.0.1:8082"
_ENDPOINT_PATTERN = "%127.0.0.1:8082%"

_CHAIN_EXISTS = text("SELECT COUNT(*) FROM chain_static WHERE id = 0")
_INSERT_CHAIN = text(
    "INSERT INTO chain_static (id, name, description, created_at, updated_at) "
    "VALUES (0, 'Viper Network', 'Special chain ID for the Viper Network', "
    "CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
)
_ENDPOINT_COUNT = text(
    "SELECT COUNT(*) FROM rpc_endpoints WHERE chain_id = 0 AND endpoint_url LIKE :pattern"
)
_INSERT_ENDPOINT = text(
    "INSERT INTO rpc_endpoints "
    "(chain_id, endpoint_url, priority, health_status, created_at, updated_at) "
    "VALUES (0, :url, 1, 'active', CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
)
_LIST_ENDPOINTS = text(
    "SELECT id, endpoint_url, priority, health_status FROM rpc_endpoints WHERE chain_id = 0"
)


@contextmanager
def _step(message: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise RuntimeError(f"{message}: {exc}") from exc


def _has_table(engine: Engine, name: str) -> bool:
    return inspect(engine).has_table(name)


def _chain_static_table(metadata: MetaData) -> Table:
    return Table(
        "chain_static",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("name", String(50), nullable=False),
        Column("logo", Text),
        Column("description", Text),
        Column("created_at", DateTime, nullable=False, server_default=func.now()),
        Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    )


def _network_endpoints_table(metadata: MetaData) -> Table:
    return Table(
        "rpc_endpoints",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("chain_id", Integer, ForeignKey("chain_static.id"), nullable=False),
        Column("endpoint_url", String(255), nullable=False),
        Column("priority", Integer, nullable=False, server_default=text("1")),
        Column("health_status", String(20), nullable=False, server_default="active"),
        Column("created_at", DateTime, nullable=False, server_default=func.now()),
        Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    )


def setup_viper_network(
    engine: Engine, out: TextIO | None = None
) -> list[tuple[int, str, int, str]]:
    """Create the tables, the Viper Network chain and its default endpoint if missing.

    Returns the Viper Network endpoints as (id, url, priority, status) tuples.
    """
    out = out or sys.stdout
    metadata = MetaData()
    chain_static = _chain_static_table(metadata)
    rpc_endpoints = _network_endpoints_table(metadata)

    with _step("Error checking if chain_static table exists"):
        chain_table_exists = _has_table(engine, "chain_static")
    if not chain_table_exists:
        print("Creating chain_static table...", file=out)
        with _step("Error creating chain_static table"), engine.begin() as conn:
            chain_static.create(conn, checkfirst=True)
        print("Successfully created chain_static table", file=out)
    else:
        print("chain_static table already exists", file=out)

    with _step("Error checking for viper network chain"), engine.begin() as conn:
        chain_exists = conn.execute(_CHAIN_EXISTS).scalar_one() > 0
    if not chain_exists:
        print("Adding Viper Network chain to chain_static table...", file=out)
        with _step("Error inserting into chain_static"), engine.begin() as conn:
            conn.execute(_INSERT_CHAIN)
        print("Successfully added Viper Network chain to chain_static", file=out)
    else:
        print("Viper Network chain already exists in chain_static", file=out)

    with _step("Error checking if rpc_endpoints table exists"):
        endpoints_table_exists = _has_table(engine, "rpc_endpoints")
    if not endpoints_table_exists:
        print("Creating rpc_endpoints table...", file=out)
        with _step("Error creating rpc_endpoints table"), engine.begin() as conn:
            rpc_endpoints.create(conn, checkfirst=True)
        print("Successfully created rpc_endpoints table", file=out)
    else:
        print("rpc_endpoints table already exists", file=out)

    with _step("Error checking for existing endpoint"), engine.begin() as conn:
        count = conn.execute(_ENDPOINT_COUNT, {"pattern": _ENDPOINT_PATTERN}).scalar_one()
    if count > 0:
        print("Viper network endpoint already exists, skipping insertion", file=out)
    else:
        with _step("Error inserting viper network endpoint"), engine.begin() as conn:
            conn.execute(_INSERT_ENDPOINT, {"url": VIPER_NETWORK_ENDPOINT})
        print("Successfully added viper network endpoint", file=out)

    with _step("Error querying viper network endpoints"), engine.begin() as conn:
        endpoints = [
            (int(row[0]), str(row[1]), int(row[2]), str(row[3]))
            for row in conn.execute(_LIST_ENDPOINTS)
        ]

    print("\nViper Network Endpoints:", file=out)
    print("-------------------------", file=out)
    for endpoint_id, url, priority, status in endpoints:
        print(f"ID: {endpoint_id}, URL: {url}, Priority: {priority}, Status: {status}", file=out)

    print("\nViper Network is now configured for use with viper-client", file=out)
    print(
        "To change the viper-network endpoint, update the rpc_endpoints table in the database",
        file=out,
    )
    return endpoints


def ensure_database_setup(engine: Engine, out: TextIO | None = None) -> None:
    """Create the ``chains`` and ``rpc_endpoints`` tables when ``chains`` is missing."""
    out = out or sys.stdout
    with _step("error checking if chains table exists"):
        if _has_table(engine, "chains"):
            return

    print("Creating database schema...", file=out)
    metadata = MetaData()
    chains = Table(
        "chains",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("name", String(50), nullable=False),
        Column("description", Text),
        Column("created_at", DateTime, nullable=False),
        Column("updated_at", DateTime, nullable=False),
    )
    rpc_endpoints = Table(
        "rpc_endpoints",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("chain_id", Integer, ForeignKey("chains.id"), nullable=False),
        Column("endpoint_url", String(255), nullable=False),
        Column("priority", Integer, nullable=False, server_default=text("1")),
        Column("health_status", String(20), nullable=False, server_default="active"),
        Column("created_at", DateTime, nullable=False),
        Column("updated_at", DateTime, nullable=False),
    )

    with _step("error creating chains table"), engine.begin() as conn:
        chains.create(conn)
    with _step("error creating rpc_endpoints table"), engine.begin() as conn:
        rpc_endpoints.create(conn)
    print("Database schema created successfully", file=out)


def main(argv: Sequence[str] | None = None) -> int:
    """Connect to the configured database and set up the Viper Network entries."""
    parser = argparse.ArgumentParser(
        prog="setup-viper-network",
        description="Register the Viper Network chain and its default endpoint.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="database to configure (default: DATABASE_URL or the built-in default)",
    )
    args = parser.parse_args(argv)
    database_url = args.database_url or load_config().database_url

    try:
        engine = create_engine(_normalise_url(database_url))
    except (SQLAlchemyError, ImportError, ValueError) as exc:
        print(f"Error connecting to database: {exc}", file=sys.stderr)
        return 1

    try:
        try:
            with engine.connect():
                pass
        except SQLAlchemyError as exc:
            print(f"Error connecting to database: {exc}", file=sys.stderr)
            return 1
        print("Connected to database successfully")
        try:
            setup_viper_network(engine, sys.stdout)
        except RuntimeError as exc:
            print(str(exc), file=sys.stderr)
            return 1
        return 0
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())