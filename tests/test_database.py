import pytest
from sqlalchemy import text

from viperclient.database import (
    ChainInfo,
    ChainNotFoundError,
    Database,
    UserNotFoundError,
    parse_chain_id,
)

USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider_user_id TEXT NOT NULL,
    email TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

CHAINS_DDL = """
CREATE TABLE chain_static (
    id INTEGER PRIMARY KEY,
    chain_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    symbol TEXT NOT NULL,
    network_type TEXT NOT NULL,
    is_evm BOOLEAN NOT NULL
)
"""

CHAINS = [
    {"id": 1, "chain_id": 1, "name": "Ethereum", "symbol": "ETH", "network_type": "mainnet", "is_evm": True},
    {"id": 2, "chain_id": 137, "name": "Polygon", "symbol": "MATIC", "network_type": "mainnet", "is_evm": True},
    {"id": 3, "chain_id": 900, "name": "Solana", "symbol": "SOL", "network_type": "mainnet", "is_evm": False},
]


@pytest.fixture
def database(tmp_path):
    db = Database.connect(f"sqlite:///{tmp_path / 'viper.db'}")
    with db.engine.begin() as conn:
        conn.execute(text(USERS_DDL))
        conn.execute(text(CHAINS_DDL))
    yield db
    db.close()


@pytest.fixture
def chains(database):
    with database.engine.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO chain_static (id, chain_id, name, symbol, network_type, is_evm) "
                "VALUES (:id, :chain_id, :name, :symbol, :network_type, :is_evm)"
            ),
            CHAINS,
        )
    return database


def test_connect_reaches_database(database):
    with database.engine.connect() as conn:
        assert conn.execute(text("SELECT 1")).scalar() == 1


def test_connect_unreachable_database_raises(tmp_path):
    with pytest.raises(ConnectionError, match="failed to ping database"):
        Database.connect(f"sqlite:///{tmp_path / 'missing' / 'viper.db'}")


def test_user_repository(database):
    user = database.create_user("test-provider-id", "test@example.com", "Test User")
    assert user.id != 0
    assert user.provider_user_id == "test-provider-id"
    assert user.email == "test@example.com"
    assert user.name == "Test User"

    fetched = database.get_user_by_id(user.id)
    assert fetched.id == user.id
    assert fetched.provider_user_id == user.provider_user_id

    fetched = database.get_user_by_provider_id("test-provider-id")
    assert fetched.id == user.id
    assert fetched.email == user.email

    updated = database.update_user(user.id, "updated@example.com", "Updated User")
    assert updated.id == user.id
    assert updated.email == "updated@example.com"
    assert updated.name == "Updated User"

    with pytest.raises(UserNotFoundError):
        database.get_user_by_id(9999)
    with pytest.raises(UserNotFoundError):
        database.get_user_by_provider_id("non-existent-provider-id")


def test_get_user_by_email(database):
    created = database.create_user("", "new@example.com", "New User")
    assert database.get_user_by_email("new@example.com").id == created.id
    with pytest.raises(UserNotFoundError):
        database.get_user_by_email("nobody@example.com")


def test_update_missing_user_raises(database):
    with pytest.raises(UserNotFoundError):
        database.update_user(9999, "updated@example.com", "Updated User")


def test_created_user_has_timestamps(database):
    user = database.create_user("p", "t@example.com", "T")
    assert user.created_at.year >= 2000
    assert user.updated_at >= user.created_at


def test_get_chain_by_id(chains):
    assert chains.get_chain_by_id(2) == ChainInfo(2, 137, "Polygon", "MATIC", "mainnet", True)
    with pytest.raises(ChainNotFoundError):
        chains.get_chain_by_id(42)


def test_get_chain_by_chain_id(chains):
    assert chains.get_chain_by_chain_id(900).name == "Solana"
    assert chains.get_chain_by_chain_id(900).is_evm is False
    with pytest.raises(ChainNotFoundError):
        chains.get_chain_by_chain_id(5)


@pytest.mark.parametrize(
    "identifier, name",
    [("ethereum", "Ethereum"), ("ETH", "Ethereum"), ("matic", "Polygon"), ("1", "Ethereum"), ("0x89", "Polygon")],
)
def test_get_chain_by_identifier(chains, identifier, name):
    assert chains.get_chain_by_identifier(identifier).name == name


def test_identifier_decimal_takes_priority(chains):
    with pytest.raises(ChainNotFoundError):
        chains.get_chain_by_identifier("89")


def test_unknown_identifier_raises(chains):
    with pytest.raises(ChainNotFoundError):
        chains.get_chain_by_identifier("unknown")


def test_list_chains_ordered_by_name(chains):
    assert [chain.name for chain in chains.list_chains()] == ["Ethereum", "Polygon", "Solana"]


def test_list_chains_empty(database):
    assert database.list_chains() == []


@pytest.mark.parametrize(
    "text_value, expected",
    [("1", 1), ("137", 137), ("0x89", 137), ("0X89", 137), ("ff", 255), ("-5", -5)],
)
def test_parse_chain_id(text_value, expected):
    assert parse_chain_id(text_value) == expected


@pytest.mark.parametrize("text_value", ["", "ethereum", "0x", "0xzz", "99999999999999999999"])
def test_parse_chain_id_rejects(text_value):
    with pytest.raises(ValueError):
        parse_chain_id(text_value)