"""
secp256k1 ECDSA over the Merkle root.

The root is serialised as 32 big-endian bytes and signed as a prehashed
digest, which is exactly what std::ecdsa_secp256k1::verify_signature checks
against root.to_be_bytes() inside the circuit. Signatures travel as 64-byte
r || s with a low s.
"""

from pathlib import Path
from typing import Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, utils

# order of the secp256k1 group
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

_ALGORITHM = ec.ECDSA(utils.Prehashed(hashes.SHA256()))


def root_to_bytes(root: int) -> bytes:
    return root.to_bytes(32, "big")


def generate_keypair():
    """
    Generate secp256k1 keypair for root signatures.

    Returns (private_key, public_key)
    """
    private_key = ec.generate_private_key(ec.SECP256K1())
    return private_key, private_key.public_key()


def save_keypair(private_key, public_key,
                 private_path="artifacts/signer_key.pem",
                 public_path="artifacts/signer_public_key.pem",
                 verbose=True):
    """Save keypair to PEM files."""
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )
    Path(private_path).write_bytes(private_pem)
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    Path(public_path).write_bytes(public_pem)

    if verbose:
        print(f"Signer private key saved to {private_path}")
        print(f"Signer public key saved to {public_path}")


def load_private_key(key_path="artifacts/signer_key.pem"):
    with open(key_path, 'rb') as f:
        private_key = serialization.load_pem_private_key(f.read(), password=None)
    if not isinstance(private_key, ec.EllipticCurvePrivateKey) or private_key.curve.name != "secp256k1":
        raise ValueError(f"{key_path} is not a secp256k1 private key")
    return private_key


def load_public_key(key_path="artifacts/signer_public_key.pem"):
    """load the signer's public key for signature verification"""
    with open(key_path, 'rb') as f:
        public_key = serialization.load_pem_public_key(f.read())
    return public_key


def public_key_coordinates(public_key) -> Tuple[bytes, bytes]:
    """32-byte big-endian x and y of an uncompressed public key"""
    numbers = public_key.public_numbers()
    return numbers.x.to_bytes(32, "big"), numbers.y.to_bytes(32, "big")


def sign_root(private_key, root: int) -> bytes:
    """sign the root and return the 64-byte r || s form"""
    der = private_key.sign(root_to_bytes(root), _ALGORITHM)
    r, s = utils.decode_dss_signature(der)
    if s > SECP256K1_N // 2:
        s = SECP256K1_N - s
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


def verify_root(public_key, root: int, signature: bytes) -> bool:
    """verify a 64-byte r || s signature over the root"""
    if len(signature) != 64:
        return False
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    try:
        public_key.verify(utils.encode_dss_signature(r, s), root_to_bytes(root), _ALGORITHM)
        return True
    except InvalidSignature:
        return False


def public_key_from_coordinates(x: bytes, y: bytes):
    numbers = ec.EllipticCurvePublicNumbers(int.from_bytes(x, "big"), int.from_bytes(y, "big"), ec.SECP256K1())
    return numbers.public_key()
