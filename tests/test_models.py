import json
from datetime import datetime, timezone

import pytest

from viperclient.models import (
    App,
    DispatchResponse,
    Relay,
    RelayMeta,
    RelayPayload,
    RelayProof,
    RelayProofForSignature,
    RelayResponse,
    RpcEndpoint,
    Servicer,
    User,
    ViperAAT,
    format_int_array,
    hash_bytes,
    parse_int_array,
)

DISPATCH_BODY = {
    "session": {
        "key": "session_key",
        "header": {
            "requestor_public_key": "test_pubkey",
            "chain": "0001",
            "geo_zone": "0001",
            "num_servicers": 1,
            "session_block_height": 100,
        },
        "servicers": [
            {
                "address": "servicer_address",
                "public_key": "servicer_pubkey",
                "node_url": "http://servicer.example.com",
            }
        ],
    },
    "block_height": 100,
}


def _proof():
    aat = ViperAAT("0.0.1", "req", "cli", "sig")
    return RelayProof(
        request_hash="abc",
        entropy=42,
        session_block_height=100,
        servicer_pub_key="servicer_pubkey",
        blockchain="0001",
        token=aat,
        signature="proofsig",
        geo_zone="0001",
        num_servicers=1,
        relay_type=1,
        weight=0,
    )


def test_parse_int_array_text_and_bytes():
    assert parse_int_array("{1,2,3}") == [1, 2, 3]
    assert parse_int_array(b"{4,5}") == [4, 5]


@pytest.mark.parametrize("value", [None, "{}", b"{}", ""])
def test_parse_int_array_empty(value):
    assert parse_int_array(value) == []


def test_parse_int_array_bad_element():
    with pytest.raises(ValueError):
        parse_int_array("{1,x}")


def test_parse_int_array_rejects_spaces():
    with pytest.raises(ValueError):
        parse_int_array("{1, 2}")


def test_parse_int_array_bad_type():
    with pytest.raises(TypeError):
        parse_int_array(12)


def test_format_int_array():
    assert format_int_array([1, 2, 3]) == "{1,2,3}"
    assert format_int_array(None) == "{}"
    assert format_int_array([]) == "{}"


def test_int_array_round_trip():
    values = [7, -3, 0, 12]
    assert parse_int_array(format_int_array(values)) == values


def test_hash_bytes_empty():
    assert hash_bytes(b"").hex() == (
        "a7ffc6f8bf1ed76651c14756a061d662f580ff4de43b49fa82d80a4b80f8434a"
    )


def test_aat_bytes_drop_signature():
    aat = ViperAAT(version="0.0.1", requestor_pub_key="a", client_pub_key="b", signature="s")
    assert aat.to_bytes() == (
        b'{"version":"0.0.1","requestor_pub_key":"a","client_pub_key":"b","signature":""}'
    )


def test_aat_hash_ignores_signature():
    first = ViperAAT("0.0.1", "a", "b", "one")
    second = ViperAAT("0.0.1", "a", "b", "two")
    assert first.hash() == second.hash()
    assert first.hash() == hash_bytes(first.to_bytes())
    assert len(first.hash()) == 32


def test_aat_round_trip():
    aat = ViperAAT("0.0.1", "req", "cli", "sig")
    assert ViperAAT.from_dict(aat.to_dict()) == aat


def test_relay_proof_round_trip():
    proof = _proof()
    assert RelayProof.from_dict(proof.to_dict()) == proof
    assert proof.to_dict()["zone"] == "0001"
    assert proof.to_dict()["aat"]["signature"] == "sig"


def test_relay_proof_without_token():
    assert RelayProof().to_dict()["aat"] is None


def test_relay_json_matches_dict():
    relay = Relay(
        payload=RelayPayload("body", "POST", "/p", {"b": "2", "a": "1"}),
        meta=RelayMeta(block_height=5),
        proof=_proof(),
    )
    assert json.loads(relay.to_json()) == relay.to_dict()


def test_payload_headers_sorted():
    payload = RelayPayload(headers={"b": "2", "a": "1"})
    assert list(payload.to_dict()["headers"]) == ["a", "b"]
    assert payload.to_dict()["headers"] == {"a": "1", "b": "2"}


def test_payload_without_headers():
    assert RelayPayload().to_dict()["headers"] is None


def test_relay_json_escapes_html():
    relay = Relay(payload=RelayPayload(data="<a>&"))
    encoded = relay.to_json()
    assert b"<" not in encoded
    assert b"\\u003c" in encoded
    assert json.loads(encoded)["payload"]["data"] == "<a>&"


def test_payload_and_meta_round_trip():
    payload = RelayPayload("d", "GET", "/x", {"k": "v"})
    meta = RelayMeta(block_height=9, subscription=True, ai=True)
    assert RelayPayload.from_dict(payload.to_dict()) == payload
    assert RelayMeta.from_dict(meta.to_dict()) == meta


def test_dispatch_response_from_dict():
    resp = DispatchResponse.from_dict(DISPATCH_BODY)
    assert resp.block_height == 100
    assert resp.session.key == "session_key"
    assert resp.session.header.chain == "0001"
    assert resp.session.header.num_servicers == 1
    assert len(resp.session.servicers) == 1
    assert resp.session.servicers[0].public_key == "servicer_pubkey"
    assert resp.session.servicers[0].node_url == "http://servicer.example.com"


def test_session_header_reads_zone_key_only():
    resp = DispatchResponse.from_dict(DISPATCH_BODY)
    assert resp.session.header.geo_zone == ""


def test_dispatch_response_without_session():
    assert DispatchResponse.from_dict({"block_height": 3}).session is None


def test_servicer_parses_time():
    servicer = Servicer.from_dict(
        {"unstaking_time": "2024-01-02T03:04:05.123456789Z", "delegators": {"x": 3}}
    )
    assert servicer.unstaking_time == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)
    assert servicer.delegators == {"x": 3}


def test_servicer_bad_time():
    with pytest.raises(ValueError):
        Servicer.from_dict({"unstaking_time": "yesterday"})


def test_relay_response_from_dict():
    proof = _proof()
    resp = RelayResponse.from_dict(
        {"signature": "s", "response": "r", "proof": proof.to_dict()}
    )
    assert resp.signature == "s"
    assert resp.response == "r"
    assert resp.proof == proof


def test_proof_for_signature_key_order():
    encoded = RelayProofForSignature(entropy=1, token="token").to_json()
    assert list(json.loads(encoded)) == [
        "entropy",
        "session_block_height",
        "servicer_pub_key",
        "blockchain",
        "signature",
        "token",
        "request_hash",
        "zone",
        "num_servicers",
        "relay_type",
        "weight",
    ]


def test_app_to_dict_omits_empty():
    app = App(id=1, app_identifier="app", name="n")
    result = app.to_dict()
    assert "description" not in result
    assert "allowed_origins" not in result
    assert "allowed_chains" not in result
    assert result["created_at"] == "0001-01-01T00:00:00Z"


def test_app_to_dict_includes_set_fields():
    app = App(description="d", allowed_origins=["o"], allowed_chains=[1, 2])
    result = app.to_dict()
    assert result["description"] == "d"
    assert result["allowed_origins"] == ["o"]
    assert result["allowed_chains"] == [1, 2]


def test_rpc_endpoint_to_dict_optional_fields():
    bare = RpcEndpoint(id=1, endpoint_url="http://node.example.com").to_dict()
    assert "provider" not in bare
    assert "health_check_timestamp" not in bare
    assert "health_status" not in bare
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    full = RpcEndpoint(
        provider="p", health_check_timestamp=moment, health_status="healthy"
    ).to_dict()
    assert full["provider"] == "p"
    assert full["health_status"] == "healthy"
    assert full["health_check_timestamp"].startswith("2024-01-02T03:04:05")


def test_user_to_dict():
    user = User(id=1, provider_user_id="provider-123", email="test@example.com", name="Test User")
    result = user.to_dict()
    assert result["email"] == "test@example.com"
    assert result["provider_user_id"] == "provider-123"
    assert list(result) == ["id", "provider_user_id", "email", "name", "created_at", "updated_at"]