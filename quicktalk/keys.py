"""Elliptic-curve key material for the public-key exchange endpoint."""
from __future__ import annotations

import base64
from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


def generate_key_pair() -> Tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


def encode_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Return the base64 DER SubjectPublicKeyInfo encoding of ``public_key``."""

    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


def generate_public_key() -> str:
    _, public_key = generate_key_pair()
    return encode_public_key(public_key)


__all__ = ["encode_public_key", "generate_key_pair", "generate_public_key"]
