import os
from typing import Callable, NamedTuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from nacl import exceptions as nacl_exceptions
from nacl.public import Box, PrivateKey, PublicKey
from nacl.secret import SecretBox

from ..errors import WalletError


class CryptoError(WalletError):
    pass


class AuthenticationFailed(CryptoError):
    pass


HKDF_INFO = b"wallet-standard x25519-chacha20-poly1305"


def random_nonce(size: int) -> bytes:
    return os.urandom(size)


# ---------------- x25519-xsalsa20-poly1305 (NaCl box) ----------------

def box_shared_key(curve_secret: bytes, curve_public: bytes) -> bytes:
    try:
        return Box(PrivateKey(curve_secret), PublicKey(curve_public)).shared_key()
    except (nacl_exceptions.CryptoError, nacl_exceptions.TypeError, nacl_exceptions.ValueError) as e:
        raise CryptoError(f"Box key agreement failed: {e}") from e


def box_encrypt(shared_key: bytes, nonce: bytes, data: bytes) -> bytes:
    try:
        # box_afternm is secretbox keyed with the precomputed box key
        return SecretBox(shared_key).encrypt(data, nonce).ciphertext
    except (nacl_exceptions.CryptoError, nacl_exceptions.ValueError) as e:
        raise CryptoError(f"Box encrypt failed: {e}") from e


def box_decrypt(shared_key: bytes, nonce: bytes, data: bytes) -> bytes:
    try:
        return SecretBox(shared_key).decrypt(data, nonce)
    except nacl_exceptions.CryptoError as e:
        raise AuthenticationFailed("Message authentication failed.") from e


# ---------------- x25519-chacha20-poly1305 ----------------

def chacha_shared_key(curve_secret: bytes, curve_public: bytes) -> bytes:
    try:
        shared = X25519PrivateKey.from_private_bytes(curve_secret).exchange(
            X25519PublicKey.from_public_bytes(curve_public)
        )
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=HKDF_INFO,
        )
        return hkdf.derive(shared)
    except ValueError as e:
        raise CryptoError(f"X25519 key agreement failed: {e}") from e


def chacha_encrypt(shared_key: bytes, nonce: bytes, data: bytes) -> bytes:
    try:
        return ChaCha20Poly1305(shared_key).encrypt(nonce, data, None)
    except (ValueError, OverflowError) as e:
        raise CryptoError(f"ChaCha20-Poly1305 encrypt failed: {e}") from e


def chacha_decrypt(shared_key: bytes, nonce: bytes, data: bytes) -> bytes:
    try:
        return ChaCha20Poly1305(shared_key).decrypt(nonce, data, None)
    except InvalidTag as e:
        raise AuthenticationFailed("Message authentication failed.") from e


class CipherSuite(NamedTuple):
    name: str
    nonce_size: int
    derive_key: Callable[[bytes, bytes], bytes]
    encrypt: Callable[[bytes, bytes, bytes], bytes]
    decrypt: Callable[[bytes, bytes, bytes], bytes]


CIPHER_SUITES = {
    "x25519-xsalsa20-poly1305": CipherSuite(
        name="x25519-xsalsa20-poly1305",
        nonce_size=SecretBox.NONCE_SIZE,
        derive_key=box_shared_key,
        encrypt=box_encrypt,
        decrypt=box_decrypt,
    ),
    "x25519-chacha20-poly1305": CipherSuite(
        name="x25519-chacha20-poly1305",
        nonce_size=12,
        derive_key=chacha_shared_key,
        encrypt=chacha_encrypt,
        decrypt=chacha_decrypt,
    ),
}
