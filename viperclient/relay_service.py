"""Dispatch, proof building and relaying through the Viper Network."""

from __future__ import annotations

import json
import secrets
from enum import IntEnum
from typing import Any, Mapping, Protocol, runtime_checkable

import httpx

from .crypto import sha3_hash
from .endpoint_manager import EndpointManager, NoEndpointsError, _record_health
from .models import (
    DispatchResponse,
    Relay,
    RelayMeta,
    RelayPayload,
    RelayProof,
    RelayResponse,
    Servicer,
    ViperAAT,
    _marshal,
)
from .viper_network import (
    DISPATCH_ENDPOINT,
    HEIGHT_ENDPOINT,
    RELAY_ENDPOINT,
    VIPER_NETWORK_CHAIN_ID,
)

DEFAULT_TIMEOUT = 30.0
AAT_VERSION = "1.0"
ENTROPY_LIMIT = 9_000_000_000_000_000_000
_JSON_HEADERS = {"Content-Type": "application/json"}


class RelayType(IntEnum):
    """Kinds of relay."""

    REGULAR = 1
    SUBSCRIPTION = 2


class RelayServiceError(Exception):
    """A relay operation failed."""


@runtime_checkable
class CryptoSigner(Protocol):
    """Signs messages and exposes the key's identity."""

    def sign(self, message: bytes) -> str:
        """Return the hex-encoded signature of ``message``."""

    def address(self) -> str:
        """Return the signer's address."""

    def public_key(self) -> str:
        """Return the hex-encoded public key."""


def _decode_object(content: bytes, what: str) -> Mapping[str, Any]:
    try:
        data = json.loads(content.decode("utf-8", errors="replace"))
    except ValueError as exc:
        raise RelayServiceError(f"invalid {what} response: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RelayServiceError(f"invalid {what} response: expected a JSON object")
    return data


class RelayService:
    """Talks to the Viper Network's relay system."""

    def __init__(
        self,
        manager: EndpointManager,
        signer: CryptoSigner,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._manager = manager
        self._signer = signer
        self._client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT, follow_redirects=True)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RelayService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _post_to_network(self, path: str, body: bytes) -> tuple[int, bytes]:
        """Post to the best Viper Network endpoint; return its id and the reply body."""
        endpoints = self._manager.get_active_endpoints(VIPER_NETWORK_CHAIN_ID)
        if not endpoints:
            raise NoEndpointsError()
        endpoint = endpoints[0]

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
            raise RelayServiceError(
                f"error from viper network: status {response.status_code}, body: {detail}"
            )
        return endpoint.id, response.content

    def get_height(self) -> int:
        """Fetch the current block height from the Viper Network."""
        endpoint_id, content = self._post_to_network(HEIGHT_ENDPOINT, b"{}")
        data = _decode_object(content, "height")
        height = data.get("height", 0)
        if not isinstance(height, int) or isinstance(height, bool):
            raise RelayServiceError(f"invalid height response: height {height!r}")
        _record_health(self._manager, endpoint_id, "healthy")
        return height

    def dispatch(
        self, pub_key: str, chain: str, geo_zone: str, num_servicers: int
    ) -> DispatchResponse:
        """Ask the Viper Network for a session."""
        body = _marshal(
            {
                "requestor_public_key": pub_key,
                "chain": chain,
                "geo_zone": geo_zone,
                "num_servicers": num_servicers,
                "session_block_height": 0,
            }
        )
        endpoint_id, content = self._post_to_network(DISPATCH_ENDPOINT, body)
        data = _decode_object(content, "dispatch")
        try:
            result = DispatchResponse.from_dict(data)
        except (TypeError, ValueError, AttributeError) as exc:
            raise RelayServiceError(f"invalid dispatch response: {exc}") from exc
        _record_health(self._manager, endpoint_id, "healthy")
        return result

    def generate_aat(self, requestor_pub_key: str, client_pub_key: str) -> ViperAAT:
        """Create an Application Authentication Token signed by this service's key."""
        aat = ViperAAT(
            version=AAT_VERSION,
            requestor_pub_key=requestor_pub_key,
            client_pub_key=client_pub_key,
        )
        message = f"{aat.version}{aat.requestor_pub_key}{aat.client_pub_key}"
        try:
            aat.signature = self._signer.sign(message.encode("utf-8"))
        except Exception as exc:
            raise RelayServiceError(f"error signing AAT: {exc}") from exc
        return aat

    def generate_entropy(self) -> int:
        """A random non-negative number below 9e18."""
        return secrets.randbelow(ENTROPY_LIMIT)

    def hash_request(self, payload: RelayPayload, meta: RelayMeta) -> str:
        """Hex SHA3-256 of the JSON encoding of payload and meta."""
        combined = {
            "payload": payload.to_dict() if payload is not None else None,
            "meta": meta.to_dict() if meta is not None else None,
        }
        return sha3_hash(_marshal(combined).decode("utf-8"))

    def build_relay_request(
        self,
        servicer: Servicer,
        blockchain: str,
        geo_zone: str,
        num_servicers: int,
        data: str,
        method: str,
        path: str,
        headers: Mapping[str, str] | None,
        aat: ViperAAT,
    ) -> Relay:
        """Build a relay for the current height with a signed proof."""
        try:
            height = self.get_height()
        except Exception as exc:
            raise RelayServiceError(f"error getting height: {exc}") from exc

        payload = RelayPayload(
            data=data,
            method=method,
            path=path,
            headers=dict(headers) if headers is not None else None,
        )
        meta = RelayMeta(block_height=height, subscription=False, ai=False)
        request_hash = self.hash_request(payload, meta)
        entropy = self.generate_entropy()

        proof = RelayProof(
            request_hash=request_hash,
            entropy=entropy,
            session_block_height=height,
            servicer_pub_key=servicer.public_key,
            blockchain=blockchain,
            token=aat,
            geo_zone=geo_zone,
            num_servicers=num_servicers,
            relay_type=int(RelayType.REGULAR),
            weight=1,
        )
        message = (
            f"{proof.request_hash}{proof.entropy}{proof.session_block_height}"
            f"{proof.servicer_pub_key}{proof.blockchain}{proof.geo_zone}"
            f"{aat.signature}{proof.num_servicers}{proof.relay_type}{proof.weight}"
            f"{self._signer.address()}"
        )
        try:
            proof.signature = self._signer.sign(message.encode("utf-8"))
        except Exception as exc:
            raise RelayServiceError(f"error signing relay proof: {exc}") from exc

        return Relay(payload=payload, meta=meta, proof=proof)

    def send_relay(self, relay: Relay, service_url: str) -> RelayResponse:
        """Post ``relay`` to the servicer at ``service_url``."""
        if not service_url:
            raise RelayServiceError("servicer URL is required")

        response = self._client.post(
            service_url + RELAY_ENDPOINT, content=relay.to_json(), headers=_JSON_HEADERS
        )
        if response.status_code != 200:
            detail = response.content.decode("utf-8", errors="replace")
            raise RelayServiceError(
                f"error from servicer: status {response.status_code}, body: {detail}"
            )
        data = _decode_object(response.content, "relay")
        try:
            return RelayResponse.from_dict(data)
        except (TypeError, ValueError, AttributeError) as exc:
            raise RelayServiceError(f"invalid relay response: {exc}") from exc

    def execute_relay(
        self,
        pub_key: str,
        blockchain: str,
        geo_zone: str,
        num_servicers: int,
        data: str,
        method: str,
        path: str,
        headers: Mapping[str, str] | None,
    ) -> RelayResponse:
        """Dispatch a session, build a relay and send it to the first servicer."""
        try:
            dispatched = self.dispatch(pub_key, blockchain, geo_zone, num_servicers)
        except Exception as exc:
            raise RelayServiceError(f"dispatch error: {exc}") from exc

        if dispatched.session is None or not dispatched.session.servicers:
            raise RelayServiceError("no servicers available in the dispatched session")

        try:
            aat = self.generate_aat(pub_key, self._signer.public_key())
        except Exception as exc:
            raise RelayServiceError(f"AAT generation error: {exc}") from exc

        first = dispatched.session.servicers[0]
        servicer = Servicer(
            address=first.address, public_key=first.public_key, node_url=first.node_url
        )

        try:
            relay = self.build_relay_request(
                servicer, blockchain, geo_zone, num_servicers, data, method, path, headers, aat
            )
        except Exception as exc:
            raise RelayServiceError(f"relay request build error: {exc}") from exc

        try:
            return self.send_relay(relay, servicer.node_url)
        except Exception as exc:
            raise RelayServiceError(f"relay send error: {exc}") from exc