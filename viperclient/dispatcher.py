"""Forwarding of JSON-RPC requests to blockchain nodes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from .endpoint_manager import EndpointManager, NoEndpointsError, _record_health
from .viper_network import (
    VIPER_NETWORK_CHAIN_ID,
    ViperNetworkHandler,
    _as_bytes,
    _loads,
    convert_jsonrpc_to_viper_format,
    convert_viper_response_to_jsonrpc,
)

DEFAULT_TIMEOUT = 10.0


class InvalidRequestError(ValueError):
    """The request body is not a JSON-RPC request."""


@dataclass
class RPCRequest:
    """A JSON-RPC request."""

    jsonrpc: str = ""
    method: str = ""
    params: Any = None
    id: Any = None


@dataclass
class RPCResponse:
    """A JSON-RPC response."""

    jsonrpc: str = ""
    result: Any = None
    error: Any = None
    id: Any = None


def _parse_request(body: bytes) -> RPCRequest:
    failure = InvalidRequestError("invalid JSON-RPC request format")
    try:
        parsed = _loads(body)
    except ValueError as exc:
        raise failure from exc
    if parsed is None:
        return RPCRequest()
    if not isinstance(parsed, dict):
        raise failure
    jsonrpc = parsed.get("jsonrpc")
    method = parsed.get("method")
    if not isinstance(jsonrpc, (str, type(None))) or not isinstance(method, (str, type(None))):
        raise failure
    return RPCRequest(
        jsonrpc=jsonrpc or "",
        method=method or "",
        params=parsed.get("params"),
        id=parsed.get("id"),
    )


class Dispatcher:
    """Sends RPC requests to the best endpoint of the requested chain."""

    def __init__(
        self,
        manager: EndpointManager,
        *,
        http_client: httpx.Client | None = None,
        viper_handler: ViperNetworkHandler | None = None,
    ) -> None:
        self._manager = manager
        self._client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT, follow_redirects=True)
        self._viper = viper_handler or ViperNetworkHandler(manager)

    def close(self) -> None:
        self._client.close()
        self._viper.close()

    def __enter__(self) -> Dispatcher:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def forward(self, chain_id: int, request_body: bytes | str) -> bytes:
        """Forward a JSON-RPC request and return the endpoint's reply body."""
        body = _as_bytes(request_body)
        if chain_id == VIPER_NETWORK_CHAIN_ID:
            return self.forward_to_viper_network(body)

        _parse_request(body)

        endpoints = self._manager.get_active_endpoints(chain_id)
        if not endpoints:
            raise NoEndpointsError()
        endpoint = endpoints[0]

        try:
            response = self._client.post(
                endpoint.endpoint_url,
                content=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError:
            _record_health(self._manager, endpoint.id, "error")
            raise

        content = response.content
        _record_health(self._manager, endpoint.id, "healthy")
        return content

    def forward_to_viper_network(self, request_body: bytes | str) -> bytes:
        """Translate a JSON-RPC request for the Viper Network and translate the reply back."""
        body = _as_bytes(request_body)
        request_type, viper_request = convert_jsonrpc_to_viper_format(body)
        viper_response = self._viper.handle_viper_request(request_type, viper_request)
        return convert_viper_response_to_jsonrpc(viper_response, body)