"""
Unit tests for libp2p-compatible peer identities.
"""

from __future__ import annotations

import base64

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from p2pfuzz.primitives.identity import PeerIdentity, marshal_key, unmarshal_key


class TestGeneratedIdentity:
    def test_ed25519_ids_use_inline_multihash(self):
        identity = PeerIdentity.generate()
        assert identity.peer_id.startswith("12D3KooW")

    def test_identities_are_unique(self):
        ids = {PeerIdentity.generate().peer_id for _ in range(10)}
        assert len(ids) == 10

    def test_json_form_parses_back_to_same_id(self):
        identity = PeerIdentity.generate()
        parsed = PeerIdentity.from_json(identity.to_json())
        assert parsed == identity
        assert parsed.to_json() == identity.to_json()


class TestSuppliedIdentity:
    def test_rsa_key_is_hashed(self):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        der = key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        raw = {"privKey": base64.b64encode(marshal_key(0, der)).decode()}

        identity = PeerIdentity.from_json(raw)

        assert identity.peer_id.startswith("Qm")

    def test_mismatched_id_is_rejected(self):
        raw = PeerIdentity.generate().to_json()
        raw["id"] = PeerIdentity.generate().peer_id
        with pytest.raises(ValueError, match="does not match"):
            PeerIdentity.from_json(raw)

    def test_missing_private_key_is_rejected(self):
        with pytest.raises(ValueError):
            PeerIdentity.from_json({"id": "12D3KooWabc"})


class TestKeyEnvelope:
    def test_long_data_uses_multibyte_length(self):
        data = bytes(300)
        key_type, decoded = unmarshal_key(marshal_key(0, data))
        assert key_type == 0
        assert decoded == data

    def test_truncated_envelope_is_rejected(self):
        with pytest.raises(ValueError):
            unmarshal_key(marshal_key(1, bytes(32))[:-4])
