"""Tests for secp256k1 root signatures."""
from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from zksparql.signing import (
    SECP256K1_N, generate_keypair, load_private_key, load_public_key, public_key_coordinates,
    public_key_from_coordinates, save_keypair, sign_root, verify_root,
)

ROOT = 0x1234567890ABCDEF1234567890ABCDEF1234567890ABCDEF1234567890ABCD


class TestRootSignature:
    """Tests for sign_root / verify_root."""

    def test_sign_and_verify(self, keypair):
        """A signature over the root verifies with the matching key."""
        private_key, public_key = keypair
        signature = sign_root(private_key, ROOT)

        assert verify_root(public_key, ROOT, signature)

    def test_signature_shape(self, keypair):
        """Signatures are 64 bytes r || s with a low s."""
        signature = sign_root(keypair[0], ROOT)
        s = int.from_bytes(signature[32:], "big")

        assert len(signature) == 64
        assert 0 < s <= SECP256K1_N // 2

    def test_wrong_key(self, keypair):
        """Another key does not verify the signature."""
        signature = sign_root(keypair[0], ROOT)
        _, other_public = generate_keypair()

        assert not verify_root(other_public, ROOT, signature)

    def test_other_root(self, keypair):
        """A signature does not carry over to a different root."""
        private_key, public_key = keypair
        signature = sign_root(private_key, ROOT)

        assert not verify_root(public_key, ROOT + 1, signature)

    def test_truncated_signature(self, keypair):
        """Signatures of the wrong length are rejected."""
        signature = sign_root(keypair[0], ROOT)

        assert not verify_root(keypair[1], ROOT, signature[:63])


class TestKeys:
    """Tests for key export and loading."""

    def test_coordinates_roundtrip(self, keypair):
        """The public key can be rebuilt from its 32-byte coordinates."""
        x, y = public_key_coordinates(keypair[1])
        rebuilt = public_key_from_coordinates(x, y)

        assert len(x) == 32 and len(y) == 32
        assert rebuilt.public_numbers() == keypair[1].public_numbers()

    def test_pem_roundtrip(self, tmp_path, keypair):
        """Saved keys load back and still verify each other."""
        private_path = tmp_path / "signer_key.pem"
        public_path = tmp_path / "signer_public_key.pem"
        save_keypair(*keypair, private_path=str(private_path), public_path=str(public_path), verbose=False)

        private_key = load_private_key(private_path)
        public_key = load_public_key(public_path)

        assert verify_root(public_key, ROOT, sign_root(private_key, ROOT))

    def test_rejects_other_curves(self, tmp_path):
        """Only secp256k1 keys can sign roots."""
        key = ec.generate_private_key(ec.SECP256R1())
        private_path = tmp_path / "p256.pem"
        save_keypair(key, key.public_key(), private_path=str(private_path),
                     public_path=str(tmp_path / "p256_pub.pem"), verbose=False)

        with pytest.raises(ValueError):
            load_private_key(private_path)
