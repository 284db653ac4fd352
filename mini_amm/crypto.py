"""
Hashing and key helpers for account and pool addresses.
"""
import hashlib
from Crypto.Hash import keccak
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

ADDRESS_LENGTH = 20
POOL_ADDRESS_DOMAIN = b"MINI_AMM_POOL:"


def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    return keccak.new(digest_bits=256, data=data).digest()

def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generates an ECDSA private/public key pair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    return private_key, public_key

def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Serializes a public key object into PEM format (string)."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

def deserialize_public_key(pem_data: str) -> ec.EllipticCurvePublicKey:
    """Deserializes a public key from a PEM formatted string."""
    return serialization.load_pem_public_key(pem_data.encode('utf-8'))

def public_key_to_address(public_key_pem: str) -> bytes:
    """Derives an account address from a public key PEM string."""
    public_key = deserialize_public_key(public_key_pem)
    der_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    address_hash = hashlib.sha256(der_bytes).digest()
    return address_hash[:ADDRESS_LENGTH]

def new_address() -> bytes:
    """Generates a fresh key pair and returns its address."""
    _, public_key = generate_key_pair()
    return public_key_to_address(serialize_public_key(public_key))

def pool_address(asset_low: bytes, asset_high: bytes) -> bytes:
    """
    Derives the ledger account of the pool for a canonically ordered pair.

    The same pair always maps to the same address, whichever order the
    caller named the assets in.
    """
    return generate_hash(POOL_ADDRESS_DOMAIN + asset_low + asset_high)[-ADDRESS_LENGTH:]
