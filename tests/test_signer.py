import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from viperclient.signer import Signer

SEED_HEX = bytes(range(32)).hex()


def _verifies(public_key_hex, signature_hex, message):
    public = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
    try:
        public.verify(bytes.fromhex(signature_hex), message)
    except InvalidSignature:
        return False
    return True


def test_signature_verifies():
    signer = Signer.from_private_key(SEED_HEX)
    signature = signer.sign(b"hello")
    assert len(signature) == 128
    assert _verifies(signer.public_key(), signature, b"hello")
    assert not _verifies(signer.public_key(), signature, b"hellp")


def test_signing_is_deterministic():
    first = Signer.from_private_key(SEED_HEX).sign(b"msg")
    second = Signer.from_private_key(SEED_HEX).sign(b"msg")
    other = Signer.from_private_key(SEED_HEX).sign(b"msh")
    assert first == second
    assert first != other
    assert _verifies(Signer.from_private_key(SEED_HEX).public_key(), first, b"msg")


def test_private_key_layout():
    signer = Signer.from_private_key(SEED_HEX)
    full = signer.private_key()
    assert len(full) == 128
    assert full[:64] == SEED_HEX
    assert full[64:] == signer.public_key()


def test_full_key_round_trip():
    signer = Signer.random()
    again = Signer.from_private_key(signer.private_key())
    assert again.public_key() == signer.public_key()
    assert again.address() == signer.address()
    assert again.sign(b"x") == signer.sign(b"x")


def test_seed_and_full_key_agree():
    from_seed = Signer.from_private_key(SEED_HEX)
    from_full = Signer.from_private_key(from_seed.private_key())
    assert from_seed.public_key() == from_full.public_key()


def test_address_shape():
    signer = Signer.from_private_key(SEED_HEX)
    address = signer.address()
    assert len(address) == 40
    assert int(address, 16) >= 0
    assert Signer.from_private_key(SEED_HEX).address() == address


def test_random_signers_differ():
    first = Signer.random()
    second = Signer.random()
    assert first.public_key() != second.public_key()
    assert first.address() != second.address()


def test_invalid_hex():
    with pytest.raises(ValueError, match="invalid private key hex"):
        Signer.from_private_key("zz")


def test_invalid_size():
    with pytest.raises(ValueError, match="invalid private key size"):
        Signer.from_private_key("00" * 16)