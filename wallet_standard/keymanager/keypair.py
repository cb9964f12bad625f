"""
Key custody for a single account.

A Keypair holds an Ed25519 signing key and only ever hands out derived
values: the public address, signatures, ciphertexts and cleartexts. The
X25519 keys used for encryption are converted from the Ed25519 keys, so a
counterparty is identified by its plain address.
"""
from typing import List, Sequence, Tuple

from nacl import exceptions as nacl_exceptions
from nacl.signing import SigningKey, VerifyKey

from ..base58 import b58encode
from .crypto_utils import CipherSuite, CryptoError, random_nonce

ADDRESS_LENGTH = 32
SIGNATURE_LENGTH = 64
SEED_LENGTH = 32


class Keypair:

    __slots__ = ("_signing_key", "_address")

    def __init__(self, signing_key: SigningKey):
        if not isinstance(signing_key, SigningKey):
            raise TypeError("signing_key must be a nacl.signing.SigningKey")
        self._signing_key = signing_key
        self._address = bytes(signing_key.verify_key)

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(SigningKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        if len(seed) != SEED_LENGTH:
            raise ValueError(f"Seed must be {SEED_LENGTH} bytes, got {len(seed)}")
        return cls(SigningKey(bytes(seed)))

    @property
    def address(self) -> bytes:
        return self._address

    # ---------------- Signing ----------------

    def sign(self, message: bytes) -> bytes:
        """Detached Ed25519 signature over the raw message bytes."""
        return self._signing_key.sign(bytes(message)).signature

    # ---------------- Encryption ----------------

    def _shared_key(self, peer_address: bytes, suite: CipherSuite) -> bytes:
        if len(peer_address) != ADDRESS_LENGTH:
            raise ValueError(f"Public key must be {ADDRESS_LENGTH} bytes, got {len(peer_address)}")
        try:
            peer_curve = bytes(VerifyKey(bytes(peer_address)).to_curve25519_public_key())
        except nacl_exceptions.CryptoError as e:
            raise CryptoError(f"Public key is not a valid Ed25519 point: {e}") from e
        own_curve = bytes(self._signing_key.to_curve25519_private_key())
        return suite.derive_key(own_curve, peer_curve)

    def seal(
        self,
        peer_address: bytes,
        suite: CipherSuite,
        cleartexts: Sequence[bytes],
    ) -> Tuple[List[bytes], List[bytes]]:
        """
        Encrypt cleartexts for a counterparty.

        The shared key is derived once; every cleartext gets its own fresh
        random nonce.

        Returns:
            (ciphertexts, nonces), parallel to cleartexts
        """
        shared_key = self._shared_key(peer_address, suite)
        ciphertexts = []
        nonces = []
        for cleartext in cleartexts:
            nonce = random_nonce(suite.nonce_size)
            ciphertexts.append(suite.encrypt(shared_key, nonce, bytes(cleartext)))
            nonces.append(nonce)
        return ciphertexts, nonces

    def open(
        self,
        peer_address: bytes,
        suite: CipherSuite,
        ciphertexts: Sequence[bytes],
        nonces: Sequence[bytes],
    ) -> List[bytes]:
        """
        Decrypt ciphertexts from a counterparty.

        Raises:
            AuthenticationFailed: If any ciphertext fails its integrity check
        """
        if len(ciphertexts) != len(nonces):
            raise ValueError(
                f"Got {len(ciphertexts)} ciphertexts but {len(nonces)} nonces"
            )
        for nonce in nonces:
            if len(nonce) != suite.nonce_size:
                raise ValueError(f"{suite.name} nonces must be {suite.nonce_size} bytes, got {len(nonce)}")

        shared_key = self._shared_key(peer_address, suite)
        return [
            suite.decrypt(shared_key, bytes(nonce), bytes(ciphertext))
            for ciphertext, nonce in zip(ciphertexts, nonces)
        ]

    # ---------------- Custody ----------------

    def __reduce__(self):
        raise TypeError("Keypair cannot be pickled or copied")

    def __eq__(self, other):
        if not isinstance(other, Keypair):
            return NotImplemented
        return self._address == other._address

    def __hash__(self):
        return hash(self._address)

    def __repr__(self):
        return f"<Keypair address={b58encode(self._address)}>"


def verify_message(address: bytes, message: bytes, signature: bytes) -> bool:
    """Check a detached signature against an address. Malformed input is simply invalid."""
    try:
        VerifyKey(bytes(address)).verify(bytes(message), bytes(signature))
        return True
    except (nacl_exceptions.BadSignatureError, nacl_exceptions.ValueError, nacl_exceptions.TypeError):
        return False
