from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from braid.common.errors import InvalidSignature

CURVE = ec.SECP256K1()


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(CURVE)


def load_private_key(secret_hex: str) -> ec.EllipticCurvePrivateKey:
    return ec.derive_private_key(int(secret_hex, 16), CURVE)


def private_key_hex(key: ec.EllipticCurvePrivateKey) -> str:
    return format(key.private_numbers().private_value, "064x")


def public_key_bytes(key: ec.EllipticCurvePublicKey) -> bytes:
    return key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)


def address_for(key: ec.EllipticCurvePrivateKey | ec.EllipticCurvePublicKey) -> str:
    """Channel address: hex of the compressed secp256k1 public key."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        key = key.public_key()
    return public_key_bytes(key).hex()


def public_key_from_address(address: str) -> ec.EllipticCurvePublicKey:
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, bytes.fromhex(address))
    except ValueError as exc:
        raise InvalidSignature(f"Address {address!r} is not a secp256k1 public key") from exc
