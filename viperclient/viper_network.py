"""Viper Network requests and translation from and to JSON-RPC."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from .endpoint_manager import EndpointManager, NoEndpointsError, _record_health
from .models import _marshal

VIPER_NETWORK_CHAIN_ID = 1

HEIGHT_ENDPOINT = "/v1/query/height"
RELAY_ENDPOINT = "/v1/client/relay"
SUPPORTED_CHAINS_ENDPOINT = "/v1/query/supportedchains"
SERVICERS_ENDPOINT = "/v1/query/servicers"
BLOCK_ENDPOINT = "/v1/query/block"
TX_ENDPOINT = "/v1/query/tx"
ACCOUNT_ENDPOINT = "/v1/query/account"
DISPATCH_ENDPOINT = "/v1/client/dispatch"
CHALLENGE_ENDPOINT = "/v1/client/challenge"
WEBSOCKET_ENDPOINT = "/v1/client/websocket"

REQUEST_PATHS = {
    "height": HEIGHT_ENDPOINT,
    "relay": RELAY_ENDPOINT,
    "supportedchains": SUPPORTED_CHAINS_ENDPOINT,
    "servicers": SERVICERS_ENDPOINT,
    "block": BLOCK_ENDPOINT,
    "tx": TX_ENDPOINT,
    "account": ACCOUNT_ENDPOINT,
    "dispatch": DISPATCH_ENDPOINT,
    "challenge": CHALLENGE_ENDPOINT,
    "websocket": WEBSOCKET_ENDPOINT,
}

ETHEREUM_CHAIN = "0002"
DEFAULT_TIMEOUT = 15.0
_JSON_HEADERS = {"Content-Type": "application/json"}


class ViperNetworkError(Exception):
    """A request to or translation for the Viper Network failed."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON literal: {name}")


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def _loads(data: bytes | str) -> Any:
    """Decode JSON, rejecting NaN and Infinity literals."""
    text = data if isinstance(data, str) else bytes(data).decode("utf-8", errors="replace")
    return json.loads(text, parse_constant=_reject_constant)


def _canonical(obj: Any) -> Any:
    """Return ``obj`` with every mapping's keys in sorted order."""
    if isinstance(obj, Mapping):
        return {key: _canonical(obj[key]) for key in sorted(obj)}
    if isinstance(obj, list):
        return [_canonical(item) for item in obj]
    return obj


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


_FIELDS: tuple[tuple[str, str, Any], ...] = (
    ("height", "height", _is_int),
    ("blockchain", "blockchain", lambda v: isinstance(v, str)),
    ("data", "data", lambda v: isinstance(v, str)),
    ("method", "method", lambda v: isinstance(v, str)),
    ("path", "path", lambda v: isinstance(v, str)),
    (
        "headers",
        "headers",
        lambda v: isinstance(v, dict) and all(isinstance(x, str) for x in v.values()),
    ),
    ("proof", "proof", lambda v: isinstance(v, dict)),
    ("opts", "opts", lambda v: isinstance(v, dict)),
    ("hash", "hash", lambda v: isinstance(v, str)),
    ("address", "address", lambda v: isinstance(v, str)),
    ("pub_key", "pubkey", lambda v: isinstance(v, str)),
    ("chain_id", "chain_id", lambda v: isinstance(v, str)),
    ("subscription", "subscription", lambda v: isinstance(v, bool)),
    ("ai", "ai", lambda v: isinstance(v, bool)),
)


@dataclass
class ViperNetworkRequest:
    """The standard request body understood by the Viper Network."""

    height: int = 0
    blockchain: str = ""
    data: str = ""
    method: str = ""
    path: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    proof: dict[str, Any] = field(default_factory=dict)
    opts: dict[str, Any] = field(default_factory=dict)
    hash: str = ""
    address: str = ""
    pub_key: str = ""
    chain_id: str = ""
    subscription: bool = False
    ai: bool = False

    def to_dict(self) -> dict[str, Any]:
        """JSON form with empty fields left out."""
        result: dict[str, Any] = {}
        for attr, key, _ in _FIELDS:
            value = getattr(self, attr)
            if value:
                result[key] = _canonical(value) if isinstance(value, dict) else value
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ViperNetworkRequest:
        """Build a request from its JSON form; null fields keep their defaults."""
        kwargs: dict[str, Any] = {}
        for attr, key, valid in _FIELDS:
            value = data.get(key)
            if value is None:
                continue
            if not valid(value):
                raise ValueError(f"invalid value for field {key!r}: {value!r}")
            kwargs[attr] = dict(value) if isinstance(value, dict) else value
        return cls(**kwargs)


class ViperNetworkHandler:
    """Sends requests to the highest-priority Viper Network endpoint."""

    def __init__(self, manager: EndpointManager, http_client: httpx.Client | None = None) -> None:
        self._manager = manager
        self._client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT, follow_redirects=True)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ViperNetworkHandler:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def handle_viper_request(self, request_type: str, request_data: bytes | str) -> bytes:
        """Post ``request_data`` to the path for ``request_type`` and return the reply body."""
        body = _as_bytes(request_data)
        try:
            parsed = _loads(body)
            if parsed is not None:
                if not isinstance(parsed, dict):
                    raise ValueError("expected a JSON object")
                ViperNetworkRequest.from_dict(parsed)
        except ValueError as exc:
            raise ViperNetworkError(f"invalid viper network request format: {exc}") from exc

        endpoints = self._manager.get_active_endpoints(VIPER_NETWORK_CHAIN_ID)
        if not endpoints:
            raise NoEndpointsError()
        endpoint = endpoints[0]

        path = REQUEST_PATHS.get(request_type)
        if path is None:
            raise ViperNetworkError(f"unsupported viper network request type: {request_type}")

        try:
            response = self._client.post(
                endpoint.endpoint_url + path, content=body, headers=_JSON_HEADERS
            )
        except httpx.HTTPError:
            _record_health(self._manager, endpoint.id, "error")
            raise

        if response.status_code != 200:
            _record_health(self._manager, endpoint.id, "error")
            detail = response.content.decode("utf-8", errors="replace")
            raise ViperNetworkError(
                f"error from viper network: status {response.status_code}, body: {detail}"
            )

        _record_health(self._manager, endpoint.id, "healthy")
        return response.content


def _relay_request(data: str) -> ViperNetworkRequest:
    return ViperNetworkRequest(
        blockchain=ETHEREUM_CHAIN, data=data, method="POST", headers=dict(_JSON_HEADERS)
    )


def convert_jsonrpc_to_viper_format(jsonrpc_request: bytes | str) -> tuple[str, bytes]:
    """Translate a JSON-RPC request into a request type and a Viper Network body."""
    try:
        rpc = _loads(jsonrpc_request)
    except ValueError as exc:
        raise ViperNetworkError(f"invalid JSON-RPC request: {exc}") from exc
    if rpc is None:
        rpc = {}
    if not isinstance(rpc, dict):
        raise ViperNetworkError("invalid JSON-RPC request: expected a JSON object")

    method = rpc.get("method")
    if not isinstance(method, str):
        raise ViperNetworkError("missing or invalid method in JSON-RPC request")

    if method == "eth_blockNumber":
        request_type, request = "height", ViperNetworkRequest()
    elif method in ("eth_getBlockByNumber", "eth_getBlockByHash"):
        params = rpc.get("params")
        if not isinstance(params, list) or not params:
            raise ViperNetworkError("missing or invalid params for block request")
        # The block argument is not translated: height 0 asks for the latest block.
        request_type, request = "block", ViperNetworkRequest(height=0)
    elif method == "eth_sendRawTransaction":
        params = rpc.get("params")
        if not isinstance(params, list) or not params:
            raise ViperNetworkError("missing or invalid params for transaction request")
        tx_data = params[0]
        if not isinstance(tx_data, str):
            raise ViperNetworkError("invalid transaction data")
        request_type, request = "relay", _relay_request(tx_data)
    else:
        encoded = _marshal(_canonical(rpc)).decode("utf-8")
        request_type, request = "relay", _relay_request(encoded)

    return request_type, _marshal(request.to_dict())


def convert_viper_response_to_jsonrpc(
    viper_response: bytes | str, original_request: bytes | str
) -> bytes:
    """Wrap a Viper Network reply in a JSON-RPC response carrying the original id."""
    try:
        original = _loads(original_request)
        if original is not None and not isinstance(original, dict):
            raise ValueError("expected a JSON object")
    except ValueError as exc:
        raise ViperNetworkError(f"error parsing original request: {exc}") from exc
    request_id = (original or {}).get("id")

    try:
        data = _loads(viper_response)
    except ValueError:
        raw = viper_response if isinstance(viper_response, str) else bytes(
            viper_response
        ).decode("utf-8", errors="replace")
        return _marshal(_canonical({"jsonrpc": "2.0", "id": request_id, "result": raw}))

    response: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "result": data}
    if isinstance(data, dict) and "error" in data:
        response["error"] = data["error"]
        del response["result"]
    return _marshal(_canonical(response))