"""Data models shared by the relay, RPC and database layers."""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")

_TIME_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)

_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def _marshal(obj: Any) -> bytes:
    """Encode ``obj`` as compact JSON with HTML-safe escaping."""
    text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    for raw, escaped in _JSON_ESCAPES:
        text = text.replace(raw, escaped)
    return text.encode("utf-8")


def _format_time(moment: datetime) -> str:
    """Format a datetime as RFC 3339 with trimmed fractional seconds."""
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += f".{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if offset is None or offset == timedelta(0):
        return text + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    hours, rest = divmod(abs(total), 3600)
    return f"{text}{sign}{hours:02d}:{rest // 60:02d}"


def _parse_time(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp; a missing value gives the zero time."""
    if value is None:
        return _ZERO_TIME
    if isinstance(value, datetime):
        return value
    match = _TIME_PATTERN.match(str(value))
    if match is None:
        raise ValueError(f"invalid timestamp: {value!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "").ljust(6, "0")[:6] or 0)
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    )


def _sorted_map(mapping: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if mapping is None:
        return None
    return dict(sorted(mapping.items()))


def _parse_element(element: str) -> int:
    if not _INT_PATTERN.fullmatch(element):
        raise ValueError(f"failed to parse integer: {element!r}")
    return int(element)


def parse_int_array(value: Any) -> list[int]:
    """Parse a PostgreSQL integer array literal such as ``{1,2,3}``."""
    if value is None:
        return []
    if isinstance(value, (bytes, bytearray, memoryview)):
        text = bytes(value).decode("utf-8")
    elif isinstance(value, str):
        text = value
    else:
        raise TypeError(f"failed to scan array value: {value!r}")
    text = text.strip("{}")
    if not text:
        return []
    return [_parse_element(element) for element in text.split(",")]


def format_int_array(values: list[int] | None) -> str:
    """Format integers as a PostgreSQL array literal."""
    if values is None:
        return "{}"
    return "{" + ",".join(str(int(v)) for v in values) + "}"


def hash_bytes(data: bytes) -> bytes:
    """Return the SHA3-256 digest of ``data``."""
    return hashlib.sha3_256(data).digest()


@dataclass
class App:
    """A decentralised application registered in the system."""

    id: int = 0
    app_identifier: str = ""
    user_id: int = 0
    name: str = ""
    description: str = ""
    allowed_origins: list[str] = field(default_factory=list)
    allowed_chains: list[int] = field(default_factory=list)
    api_key_hash: str = ""
    rate_limit: int = 0
    created_at: datetime = _ZERO_TIME
    updated_at: datetime = _ZERO_TIME

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "app_identifier": self.app_identifier,
            "user_id": self.user_id,
            "name": self.name,
        }
        if self.description:
            result["description"] = self.description
        if self.allowed_origins:
            result["allowed_origins"] = list(self.allowed_origins)
        if self.allowed_chains:
            result["allowed_chains"] = list(self.allowed_chains)
        result["api_key_hash"] = self.api_key_hash
        result["rate_limit"] = self.rate_limit
        result["created_at"] = _format_time(self.created_at)
        result["updated_at"] = _format_time(self.updated_at)
        return result


@dataclass
class ChainStatic:
    """A blockchain network configuration."""

    id: int = 0
    chain_id: int = 0
    name: str = ""
    symbol: str = ""
    network_type: str = ""
    is_evm: bool = False
    chain_details: Any = None
    created_at: datetime = _ZERO_TIME
    updated_at: datetime = _ZERO_TIME

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "chain_id": self.chain_id,
            "name": self.name,
            "symbol": self.symbol,
            "network_type": self.network_type,
            "is_evm": self.is_evm,
        }
        if self.chain_details is not None:
            result["chain_details"] = self.chain_details
        result["created_at"] = _format_time(self.created_at)
        result["updated_at"] = _format_time(self.updated_at)
        return result


@dataclass
class RelayPayload:
    """The data payload of a relay request."""

    data: str = ""
    method: str = ""
    path: str = ""
    headers: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "method": self.method,
            "path": self.path,
            "headers": _sorted_map(self.headers),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelayPayload:
        headers = data.get("headers")
        return cls(
            data=data.get("data", ""),
            method=data.get("method", ""),
            path=data.get("path", ""),
            headers=dict(headers) if headers is not None else None,
        )


@dataclass
class RelayMeta:
    """Metadata of a relay request."""

    block_height: int = 0
    subscription: bool = False
    ai: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "block_height": self.block_height,
            "subscription": self.subscription,
            "ai": self.ai,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelayMeta:
        return cls(
            block_height=int(data.get("block_height", 0)),
            subscription=bool(data.get("subscription", False)),
            ai=bool(data.get("ai", False)),
        )


@dataclass
class ViperAAT:
    """Application Authentication Token."""

    version: str = ""
    requestor_pub_key: str = ""
    client_pub_key: str = ""
    signature: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "requestor_pub_key": self.requestor_pub_key,
            "client_pub_key": self.client_pub_key,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ViperAAT:
        return cls(
            version=data.get("version", ""),
            requestor_pub_key=data.get("requestor_pub_key", ""),
            client_pub_key=data.get("client_pub_key", ""),
            signature=data.get("signature", ""),
        )

    def to_bytes(self) -> bytes:
        """JSON encoding of the token with the signature left empty."""
        unsigned = ViperAAT(self.version, self.requestor_pub_key, self.client_pub_key, "")
        return _marshal(unsigned.to_dict())

    def hash(self) -> bytes:
        """SHA3-256 digest of the unsigned token bytes."""
        return hash_bytes(self.to_bytes())


@dataclass
class RelayProof:
    """Proof information attached to a relay request."""

    request_hash: str = ""
    entropy: int = 0
    session_block_height: int = 0
    servicer_pub_key: str = ""
    blockchain: str = ""
    token: ViperAAT | None = None
    signature: str = ""
    geo_zone: str = ""
    num_servicers: int = 0
    relay_type: int = 0
    weight: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_hash": self.request_hash,
            "entropy": self.entropy,
            "session_block_height": self.session_block_height,
            "servicer_pub_key": self.servicer_pub_key,
            "blockchain": self.blockchain,
            "aat": self.token.to_dict() if self.token is not None else None,
            "signature": self.signature,
            "zone": self.geo_zone,
            "num_servicers": self.num_servicers,
            "relay_type": self.relay_type,
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelayProof:
        token = data.get("aat")
        return cls(
            request_hash=data.get("request_hash", ""),
            entropy=int(data.get("entropy", 0)),
            session_block_height=int(data.get("session_block_height", 0)),
            servicer_pub_key=data.get("servicer_pub_key", ""),
            blockchain=data.get("blockchain", ""),
            token=ViperAAT.from_dict(token) if token is not None else None,
            signature=data.get("signature", ""),
            geo_zone=data.get("zone", ""),
            num_servicers=int(data.get("num_servicers", 0)),
            relay_type=int(data.get("relay_type", 0)),
            weight=int(data.get("weight", 0)),
        )


@dataclass
class Relay:
    """A complete relay request."""

    payload: RelayPayload = field(default_factory=RelayPayload)
    meta: RelayMeta = field(default_factory=RelayMeta)
    proof: RelayProof = field(default_factory=RelayProof)

    def to_dict(self) -> dict[str, Any]:
        return {
            "payload": self.payload.to_dict(),
            "meta": self.meta.to_dict(),
            "proof": self.proof.to_dict(),
        }

    def to_json(self) -> bytes:
        return _marshal(self.to_dict())


@dataclass
class RelayResponse:
    """The response returned by a servicer for a relay."""

    signature: str = ""
    response: str = ""
    proof: RelayProof = field(default_factory=RelayProof)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelayResponse:
        return cls(
            signature=data.get("signature", ""),
            response=data.get("response", ""),
            proof=RelayProof.from_dict(data.get("proof") or {}),
        )


@dataclass
class Servicer:
    """A node in the viper network."""

    address: str = ""
    chains: list[str] = field(default_factory=list)
    geo_zone: list[str] = field(default_factory=list)
    jailed: bool = False
    paused: bool = False
    public_key: str = ""
    node_url: str = ""
    status: int = 0
    tokens: str = ""
    unstaking_time: datetime = _ZERO_TIME
    output_address: str = ""
    delegators: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Servicer:
        return cls(
            address=data.get("address", ""),
            chains=list(data.get("chains") or []),
            geo_zone=list(data.get("geo_zone") or []),
            jailed=bool(data.get("jailed", False)),
            paused=bool(data.get("paused", False)),
            public_key=data.get("public_key", ""),
            node_url=data.get("node_url", ""),
            status=int(data.get("status", 0)),
            tokens=data.get("tokens", ""),
            unstaking_time=_parse_time(data.get("unstaking_time")),
            output_address=data.get("output_address", ""),
            delegators={k: int(v) for k, v in (data.get("delegators") or {}).items()},
        )


@dataclass
class SessionHeader:
    """Header information of a dispatch session."""

    requestor_public_key: str = ""
    chain: str = ""
    geo_zone: str = ""
    num_servicers: int = 0
    session_height: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SessionHeader:
        return cls(
            requestor_public_key=data.get("requestor_public_key", ""),
            chain=data.get("chain", ""),
            geo_zone=data.get("zone", ""),
            num_servicers=int(data.get("num_servicers", 0)),
            session_height=int(data.get("session_height", 0)),
        )


@dataclass
class Session:
    """A dispatch session."""

    header: SessionHeader = field(default_factory=SessionHeader)
    key: str = ""
    fishermen_triggered: bool = False
    servicers: list[Servicer] = field(default_factory=list)
    fishermen: list[Servicer] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Session:
        return cls(
            header=SessionHeader.from_dict(data.get("header") or {}),
            key=data.get("key", ""),
            fishermen_triggered=bool(data.get("fishermen_triggered", False)),
            servicers=[Servicer.from_dict(s) for s in data.get("servicers") or []],
            fishermen=[Servicer.from_dict(s) for s in data.get("fishermen") or []],
        )


@dataclass
class DispatchResponse:
    """The response to a dispatch request."""

    session: Session | None = None
    block_height: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DispatchResponse:
        session = data.get("session")
        return cls(
            session=Session.from_dict(session) if session is not None else None,
            block_height=int(data.get("block_height", 0)),
        )


@dataclass
class RelayProofForSignature:
    """The form of a relay proof that gets hashed and signed."""

    entropy: int = 0
    session_block_height: int = 0
    servicer_pub_key: str = ""
    blockchain: str = ""
    signature: str = ""
    token: str = ""
    request_hash: str = ""
    geo_zone: str = ""
    num_servicers: int = 0
    relay_type: int = 0
    weight: int = 0

    def to_json(self) -> bytes:
        return _marshal(
            {
                "entropy": self.entropy,
                "session_block_height": self.session_block_height,
                "servicer_pub_key": self.servicer_pub_key,
                "blockchain": self.blockchain,
                "signature": self.signature,
                "token": self.token,
                "request_hash": self.request_hash,
                "zone": self.geo_zone,
                "num_servicers": self.num_servicers,
                "relay_type": self.relay_type,
                "weight": self.weight,
            }
        )


@dataclass
class RpcEndpoint:
    """A blockchain RPC endpoint."""

    id: int = 0
    chain_id: int = 0
    endpoint_url: str = ""
    provider: str = ""
    is_active: bool = False
    priority: int = 0
    health_check_timestamp: datetime | None = None
    health_status: str = ""
    created_at: datetime = _ZERO_TIME
    updated_at: datetime = _ZERO_TIME

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "chain_id": self.chain_id,
            "endpoint_url": self.endpoint_url,
        }
        if self.provider:
            result["provider"] = self.provider
        result["is_active"] = self.is_active
        result["priority"] = self.priority
        if self.health_check_timestamp is not None:
            result["health_check_timestamp"] = _format_time(self.health_check_timestamp)
        if self.health_status:
            result["health_status"] = self.health_status
        result["created_at"] = _format_time(self.created_at)
        result["updated_at"] = _format_time(self.updated_at)
        return result


@dataclass
class User:
    """A user of the system."""

    id: int = 0
    provider_user_id: str = ""
    email: str = ""
    name: str = ""
    created_at: datetime = _ZERO_TIME
    updated_at: datetime = _ZERO_TIME

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider_user_id": self.provider_user_id,
            "email": self.email,
            "name": self.name,
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
        }