"""
P2P Fuzzer: Peer Identities

libp2p-compatible peer identities. Keys are marshalled in the libp2p
protobuf envelope (``KeyType`` + ``Data``) so the string form matches what a
libp2p node derives for the same key:

  - Ed25519 public keys are inlined with the identity multihash.
  - RSA public keys are hashed with the sha2-256 multihash.

The JSON form (``id`` / ``privKey`` / ``pubKey``) is the one peer nodes load.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Any

import base58
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

_KEY_TYPE_RSA = 0
_KEY_TYPE_ED25519 = 1

_MULTIHASH_IDENTITY = 0x00
_MULTIHASH_SHA2_256 = 0x12
_MAX_INLINE_KEY_LENGTH = 42


# Key envelopes follow the PublicKey / PrivateKey messages of libp2p's
# crypto.proto: field 1 `KeyType Type` (tag 0x08, varint), field 2
# `bytes Data` (tag 0x12, length-delimited). Varints are unsigned LEB128.


def _varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, offset: int) -> tuple[int, int]:
    shift = 0
    result = 0
    while True:
        if offset >= len(data):
            raise ValueError("Truncated varint in key envelope")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, offset
        shift += 7


def marshal_key(key_type: int, data: bytes) -> bytes:
    """Encode a key into the libp2p protobuf envelope."""
    return b"\x08" + _varint(key_type) + b"\x12" + _varint(len(data)) + data


def unmarshal_key(envelope: bytes) -> tuple[int, bytes]:
    """Decode a libp2p protobuf key envelope into (key_type, data)."""
    key_type: int | None = None
    data: bytes | None = None
    offset = 0
    while offset < len(envelope):
        tag, offset = _read_varint(envelope, offset)
        if tag == 0x08:
            key_type, offset = _read_varint(envelope, offset)
        elif tag == 0x12:
            length, offset = _read_varint(envelope, offset)
            data = envelope[offset:offset + length]
            if len(data) != length:
                raise ValueError("Truncated key data in key envelope")
            offset += length
        else:
            raise ValueError(f"Unexpected field tag {tag:#x} in key envelope")
    if key_type is None or data is None:
        raise ValueError("Key envelope is missing its type or data")
    return key_type, data


def _peer_id_from_public(marshalled_public: bytes) -> str:
    if len(marshalled_public) <= _MAX_INLINE_KEY_LENGTH:
        digest = bytes([_MULTIHASH_IDENTITY, len(marshalled_public)]) + marshalled_public
    else:
        digest = bytes([_MULTIHASH_SHA2_256, 32]) + hashlib.sha256(marshalled_public).digest()
    return base58.b58encode(digest).decode("ascii")


class PeerIdentity:
    """
    An opaque peer identity with a stable base58 string encoding.

    Construct via ``generate()`` or ``from_json()``.
    """

    __slots__ = ("_id", "_private", "_public")

    def __init__(self, peer_id: str, marshalled_private: bytes, marshalled_public: bytes) -> None:
        self._id = peer_id
        self._private = marshalled_private
        self._public = marshalled_public

    @classmethod
    def generate(cls) -> PeerIdentity:
        """Fresh Ed25519 identity."""
        key = Ed25519PrivateKey.generate()
        seed = key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public = key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        marshalled_public = marshal_key(_KEY_TYPE_ED25519, public)
        return cls(
            _peer_id_from_public(marshalled_public),
            marshal_key(_KEY_TYPE_ED25519, seed + public),
            marshalled_public,
        )

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> PeerIdentity:
        """
        Parse the libp2p JSON form.

        The public key is re-derived from the private key, and the resulting
        id must match the supplied ``id``.
        """
        if "privKey" not in raw:
            raise ValueError("Peer identity JSON is missing 'privKey'")
        marshalled_private = base64.b64decode(raw["privKey"])
        key_type, data = unmarshal_key(marshalled_private)

        if key_type == _KEY_TYPE_ED25519:
            key = Ed25519PrivateKey.from_private_bytes(data[:32])
            public = key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
            marshalled_public = marshal_key(_KEY_TYPE_ED25519, public)
        elif key_type == _KEY_TYPE_RSA:
            rsa_key = serialization.load_der_private_key(data, password=None)
            if not isinstance(rsa_key, rsa.RSAPrivateKey):
                raise ValueError("RSA key envelope does not hold an RSA private key")
            public = rsa_key.public_key().public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            marshalled_public = marshal_key(_KEY_TYPE_RSA, public)
        else:
            raise ValueError(f"Unsupported peer key type: {key_type}")

        peer_id = _peer_id_from_public(marshalled_public)
        if raw.get("id") and raw["id"] != peer_id:
            raise ValueError(f"Peer id {raw['id']} does not match its private key")
        return cls(peer_id, marshalled_private, marshalled_public)

    @property
    def peer_id(self) -> str:
        return self._id

    def to_json(self) -> dict[str, str]:
        return {
            "id": self._id,
            "privKey": base64.b64encode(self._private).decode("ascii"),
            "pubKey": base64.b64encode(self._public).decode("ascii"),
        }

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PeerIdentity) and other._id == self._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __str__(self) -> str:
        return self._id

    def __repr__(self) -> str:
        return f"PeerIdentity({self._id})"
