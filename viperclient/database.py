"""Database access for chains and users."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import Boolean, DateTime, Integer, String, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .models import User

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DECIMAL = re.compile(r"[+-]?[0-9]+")
_HEX = re.compile(r"[+-]?[0-9a-fA-F]+")

_CHAIN_COLUMNS = {
    "id": Integer,
    "chain_id": Integer,
    "name": String,
    "symbol": String,
    "network_type": String,
    "is_evm": Boolean,
}

_USER_COLUMNS = {
    "id": Integer,
    "provider_user_id": String,
    "email": String,
    "name": String,
    "created_at": DateTime,
    "updated_at": DateTime,
}

_CHAIN_SELECT = "SELECT id, chain_id, name, symbol, network_type, is_evm FROM chain_static"
_USER_SELECT = "SELECT id, provider_user_id, email, name, created_at, updated_at FROM users"
_USER_RETURNING = "RETURNING id, provider_user_id, email, name, created_at, updated_at"

_CHAIN_BY_ID = text(f"{_CHAIN_SELECT} WHERE id = :id").columns(**_CHAIN_COLUMNS)
_CHAIN_BY_CHAIN_ID = text(f"{_CHAIN_SELECT} WHERE chain_id = :chain_id").columns(
    **_CHAIN_COLUMNS
)
_CHAIN_BY_NAME_OR_SYMBOL = text(
    f"{_CHAIN_SELECT} WHERE LOWER(name) = LOWER(:ident) OR LOWER(symbol) = LOWER(:ident)"
).columns(**_CHAIN_COLUMNS)
_LIST_CHAINS = text(f"{_CHAIN_SELECT} ORDER BY name").columns(**_CHAIN_COLUMNS)

_USER_BY_ID = text(f"{_USER_SELECT} WHERE id = :id").columns(**_USER_COLUMNS)
_USER_BY_PROVIDER_ID = text(f"{_USER_SELECT} WHERE provider_user_id = :provider_id").columns(
    **_USER_COLUMNS
)
_USER_BY_EMAIL = text(f"{_USER_SELECT} WHERE email = :email").columns(**_USER_COLUMNS)
_CREATE_USER = text(
    "INSERT INTO users (provider_user_id, email, name) "
    f"VALUES (:provider_user_id, :email, :name) {_USER_RETURNING}"
).columns(**_USER_COLUMNS)
_UPDATE_USER = text(
    "UPDATE users SET email = :email, name = :name, updated_at = CURRENT_TIMESTAMP "
    f"WHERE id = :id {_USER_RETURNING}"
).columns(**_USER_COLUMNS)


class ChainNotFoundError(LookupError):
    """No chain matches the lookup."""

    def __init__(self, message: str = "chain not found") -> None:
        super().__init__(message)


class UserNotFoundError(LookupError):
    """No user matches the lookup."""

    def __init__(self, message: str = "user not found") -> None:
        super().__init__(message)


@dataclass
class ChainInfo:
    """Information about a blockchain network."""

    id: int = 0
    chain_id: int = 0
    name: str = ""
    symbol: str = ""
    network_type: str = ""
    is_evm: bool = False


def _parse_int64(text_value: str, pattern: re.Pattern[str], base: int) -> int:
    if not pattern.fullmatch(text_value):
        raise ValueError(f"invalid syntax: {text_value!r}")
    value = int(text_value, base)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text_value!r}")
    return value


def _parse_decimal_or_hex(text_value: str) -> int:
    if text_value.startswith("0x"):
        return _parse_int64(text_value[2:], _HEX, 16)
    try:
        return _parse_int64(text_value, _DECIMAL, 10)
    except ValueError:
        return _parse_int64(text_value, _HEX, 16)


def parse_chain_id(text: str) -> int:
    """Parse a chain ID written in decimal, or in hex with or without ``0x``."""
    cleaned = text.lower()
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    return _parse_decimal_or_hex(cleaned)


def _chain(row: Mapping[str, Any]) -> ChainInfo:
    return ChainInfo(
        id=row["id"],
        chain_id=row["chain_id"],
        name=row["name"],
        symbol=row["symbol"],
        network_type=row["network_type"],
        is_evm=bool(row["is_evm"]),
    )


def _user(row: Mapping[str, Any]) -> User:
    return User(
        id=row["id"],
        provider_user_id=row["provider_user_id"],
        email=row["email"],
        name=row["name"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _normalise_url(database_url: str) -> str:
    if database_url.startswith("postgres://"):
        return "postgresql://" + database_url[len("postgres://") :]
    return database_url


class Database:
    """A connection pool with queries for chains and users."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def connect(cls, database_url: str) -> Database:
        """Open a pool for ``database_url`` and check that it can be reached."""
        try:
            engine = create_engine(_normalise_url(database_url))
        except (SQLAlchemyError, ImportError, ValueError) as exc:
            raise ConnectionError(f"failed to open database connection: {exc}") from exc
        try:
            with engine.connect():
                pass
        except SQLAlchemyError as exc:
            engine.dispose()
            raise ConnectionError(f"failed to ping database: {exc}") from exc
        return cls(engine)

    def close(self) -> None:
        """Release every pooled connection."""
        self.engine.dispose()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _first(self, statement: Any, params: Mapping[str, Any]) -> Mapping[str, Any] | None:
        with self.engine.begin() as conn:
            rows = conn.execute(statement, dict(params)).mappings().all()
        return rows[0] if rows else None

    def _chain_or_raise(self, statement: Any, params: Mapping[str, Any]) -> ChainInfo:
        row = self._first(statement, params)
        if row is None:
            raise ChainNotFoundError()
        return _chain(row)

    def _user_or_raise(self, statement: Any, params: Mapping[str, Any]) -> User:
        row = self._first(statement, params)
        if row is None:
            raise UserNotFoundError()
        return _user(row)

    def get_chain_by_id(self, chain_pk: int) -> ChainInfo:
        """Return the chain with the internal ID ``chain_pk``."""
        return self._chain_or_raise(_CHAIN_BY_ID, {"id": chain_pk})

    def get_chain_by_chain_id(self, chain_id: int) -> ChainInfo:
        """Return the chain with the blockchain chain ID ``chain_id``."""
        return self._chain_or_raise(_CHAIN_BY_CHAIN_ID, {"chain_id": chain_id})

    def get_chain_by_identifier(self, identifier: str) -> ChainInfo:
        """Look a chain up by chain ID, or else by name or symbol, ignoring case."""
        try:
            chain_id = parse_chain_id(identifier)
        except ValueError:
            return self._chain_or_raise(_CHAIN_BY_NAME_OR_SYMBOL, {"ident": identifier})
        return self.get_chain_by_chain_id(chain_id)

    def list_chains(self) -> list[ChainInfo]:
        """Return every chain ordered by name."""
        with self.engine.begin() as conn:
            return [_chain(row) for row in conn.execute(_LIST_CHAINS).mappings()]

    def get_user_by_id(self, user_id: int) -> User:
        return self._user_or_raise(_USER_BY_ID, {"id": user_id})

    def get_user_by_provider_id(self, provider_id: str) -> User:
        return self._user_or_raise(_USER_BY_PROVIDER_ID, {"provider_id": provider_id})

    def get_user_by_email(self, email: str) -> User:
        return self._user_or_raise(_USER_BY_EMAIL, {"email": email})

    def create_user(self, provider_user_id: str, email: str, name: str) -> User:
        """Insert a user and return the stored row."""
        row = self._first(
            _CREATE_USER, {"provider_user_id": provider_user_id, "email": email, "name": name}
        )
        if row is None:
            raise RuntimeError("insert returned no row")
        return _user(row)

    def update_user(self, user_id: int, email: str, name: str) -> User:
        """Change a user's e-mail and name and return the stored row."""
        return self._user_or_raise(_UPDATE_USER, {"id": user_id, "email": email, "name": name})