"""
WalletAccount: one key pair bound to one chain.
Handles transaction signing, submission, message signing, encryption and decryption.
"""
import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from .base58 import b58encode
from .chain import ChainClient, SolanaRpcClient, Transaction, submit_with_timeout
from .config import Config
from .errors import InvalidTransactionEncoding, SubmissionFailed, UnknownSigner, UnsupportedCipher
from .interfaces import (
    Chain,
    Cipher,
    DecryptInput,
    DecryptOutput,
    EncryptInput,
    EncryptOutput,
    SignAndSendTransactionOutput,
    SignMessageOutput,
    SignTransactionOutput,
    SubmissionResult,
    default_cipher_of,
)
from .keymanager.crypto_utils import CIPHER_SUITES, CryptoError
from .keymanager.keypair import Keypair

logger = logging.getLogger(__name__)


class WalletAccount:
    """
    An account in the wallet that an app can be authorized to use.

    Each WalletAccount owns exactly one Keypair for its whole lifetime and can:
    - Sign serialized transactions, leaving other signers' slots intact
    - Sign and submit transactions, reporting each submission separately
    - Sign raw messages with detached signatures
    - Encrypt and decrypt for a counterparty address

    The secret key never leaves the Keypair; only the address, signatures,
    ciphertexts and cleartexts cross this boundary.

    Every operation takes a batch and returns results in input order. Apart
    from submission, a batch either fully succeeds or raises.
    """

    def __init__(
        self,
        chain: Chain,
        keypair: Optional[Keypair] = None,
        ciphers: Optional[Iterable[Cipher]] = None,
        default_cipher: Optional[Cipher] = None,
        client: Optional[ChainClient] = None,
        submit_timeout: Optional[float] = None,
    ):
        """
        Initialize a WalletAccount.

        Args:
            chain: Chain to sign and send transactions for
            keypair: Key pair to take custody of, generated if not provided
            ciphers: Ciphers this account supports (default: all known ciphers)
            default_cipher: Cipher used when a request names none
            client: Chain client for submission, built from Config if not provided
            submit_timeout: Per-transaction submission timeout in seconds
        """
        self._chain = Chain.parse(chain)
        self._keypair = keypair if keypair is not None else Keypair.generate()
        self._ciphers = frozenset(Cipher.parse(c) for c in (ciphers if ciphers is not None else Cipher))
        self._default_cipher = (
            Cipher.parse(default_cipher) if default_cipher is not None
            else default_cipher_of(self._ciphers) if self._ciphers else None
        )
        self._client = client
        self._owns_client = False
        self.submit_timeout = submit_timeout

        self._validate_config()

    @classmethod
    def generate(cls, chain: Chain, **kwargs) -> "WalletAccount":
        """Create an account with a freshly generated key pair."""
        return cls(chain, keypair=Keypair.generate(), **kwargs)

    @classmethod
    def from_seed(cls, seed: bytes, chain: Chain, **kwargs) -> "WalletAccount":
        """Create an account whose key pair is derived from a 32-byte seed."""
        return cls(chain, keypair=Keypair.from_seed(seed), **kwargs)

    def _validate_config(self):
        """Validate account configuration."""
        if not isinstance(self._keypair, Keypair):
            raise TypeError("keypair must be a Keypair instance")

        if not self._ciphers:
            raise ValueError("Account must support at least one cipher")

        if self._default_cipher not in self._ciphers:
            raise UnsupportedCipher(self._default_cipher, self._ciphers)

        if self.submit_timeout is not None and self.submit_timeout <= 0:
            raise ValueError(f"Invalid submit timeout: {self.submit_timeout}")

    # ============================================
    # Identity
    # ============================================

    @property
    def address(self) -> bytes:
        """Public key address, the account's stable identity."""
        return self._keypair.address

    @property
    def chain(self) -> Chain:
        return self._chain

    @property
    def ciphers(self) -> frozenset:
        return self._ciphers

    @property
    def default_cipher(self) -> Cipher:
        return self._default_cipher

    @property
    def client(self) -> ChainClient:
        """Lazy-load the chain client for this account's chain."""
        if self._client is None:
            network = Config().get_network(self._chain)
            self._client = SolanaRpcClient.from_config(network)
            self._owns_client = True
            if self.submit_timeout is None:
                self.submit_timeout = network.timeout_s
        return self._client

    async def close(self):
        """Close the chain client if this account built it. A client passed in stays open."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None
            self._owns_client = False

    def _negotiate(self, cipher: Optional[Cipher]) -> Cipher:
        if cipher is None:
            return self._default_cipher
        cipher = Cipher.parse(cipher, self._ciphers)
        if cipher not in self._ciphers:
            raise UnsupportedCipher(cipher, self._ciphers)
        return cipher

    # ============================================
    # Transactions
    # ============================================

    def _parse_and_sign(self, transactions: Sequence[bytes]) -> List[Transaction]:
        parsed = []
        for index, raw in enumerate(transactions):
            try:
                parsed.append(Transaction.from_bytes(raw))
            except InvalidTransactionEncoding as e:
                raise type(e)(str(e), index=index) from e

        for index, transaction in enumerate(parsed):
            try:
                transaction.partial_sign(self._keypair)
            except UnknownSigner as e:
                raise UnknownSigner(f"{e}: {b58encode(self.address)}", index=index) from e
        return parsed

    @staticmethod
    def _serialize_all(transactions: List[Transaction], require_all_signatures: bool) -> List[bytes]:
        serialized = []
        for index, transaction in enumerate(transactions):
            try:
                serialized.append(transaction.serialize(require_all_signatures=require_all_signatures))
            except InvalidTransactionEncoding as e:
                raise type(e)(str(e), index=index) from e
        return serialized

    async def sign_transaction(self, transactions: Sequence[bytes]) -> SignTransactionOutput:
        """
        Sign one or more serialized transactions with the account's key.

        Transactions may already be partially signed, even with a primary
        signature; existing signatures are kept.

        Args:
            transactions: Serialized transactions

        Returns:
            The re-serialized transactions, signed but not necessarily fully signed

        Raises:
            InvalidTransactionEncoding: If any transaction cannot be parsed
            UnknownSigner: If the account is not a required signer of any transaction
        """
        logger.debug("sign_transaction: %d transaction(s) for %s", len(transactions), b58encode(self.address))
        parsed = self._parse_and_sign(transactions)
        return SignTransactionOutput(transactions=self._serialize_all(parsed, require_all_signatures=False))

    async def sign_and_submit_transaction(
        self,
        transactions: Sequence[bytes],
        timeout: Optional[float] = None,
    ) -> SignAndSendTransactionOutput:
        """
        Sign one or more serialized transactions and send them to the network.

        Every transaction is parsed, signed and checked for completeness before
        anything is sent; a failure there aborts the whole call. Submissions
        then run concurrently and each reports its own outcome, because one
        that already landed cannot be undone by failing the others.

        Nothing is retried. A timed-out submission may still land, so
        resubmitting is left to the caller.

        Args:
            transactions: Serialized transactions
            timeout: Per-transaction timeout in seconds (default: submit_timeout)

        Returns:
            One SubmissionResult per transaction: the raw primary signature or the error
        """
        logger.debug(
            "sign_and_submit_transaction: %d transaction(s) for %s",
            len(transactions), b58encode(self.address),
        )
        parsed = self._parse_and_sign(transactions)
        serialized = self._serialize_all(parsed, require_all_signatures=True)

        client = self.client
        timeout = timeout if timeout is not None else self.submit_timeout

        async def submit(index: int, raw: bytes) -> SubmissionResult:
            try:
                signature = await submit_with_timeout(client, raw, timeout)
            except SubmissionFailed as e:
                error = e.at(index)
            except Exception as e:
                # Any client failure is still a per-item result; cancellation propagates
                error = SubmissionFailed(f"{type(e).__name__}: {e}", index=index)
                error.__cause__ = e
            else:
                return SubmissionResult(signature=signature)
            logger.warning("Submission failed: %s", error)
            return SubmissionResult(error=error)

        results = await asyncio.gather(*(submit(i, raw) for i, raw in enumerate(serialized)))
        return SignAndSendTransactionOutput(results=list(results))

    # ============================================
    # Messages
    # ============================================

    async def sign_message(self, messages: Sequence[bytes]) -> SignMessageOutput:
        """
        Sign one or more messages with the account's key.

        The raw bytes are signed as given, without any prefix or hashing.

        Returns:
            One 64-byte detached signature per message
        """
        logger.debug("sign_message: %d message(s) for %s", len(messages), b58encode(self.address))
        return SignMessageOutput(signatures=[self._keypair.sign(message) for message in messages])

    # ============================================
    # Encryption
    # ============================================

    async def encrypt(self, inputs: Sequence[EncryptInput]) -> List[EncryptOutput]:
        """
        Encrypt one or more groups of cleartexts, each for one counterparty.

        Raises:
            UnsupportedCipher: If any input names a cipher the account doesn't support
        """
        ciphers = [self._negotiate(params.cipher) for params in inputs]
        logger.debug("encrypt: %d input(s) for %s", len(inputs), b58encode(self.address))

        outputs = []
        for index, (params, cipher) in enumerate(zip(inputs, ciphers)):
            try:
                ciphertexts, nonces = self._keypair.seal(
                    params.public_key, CIPHER_SUITES[cipher.value], params.cleartexts
                )
            except (CryptoError, ValueError) as e:
                raise type(e)(f"Encrypt input {index}: {e}") from e
            outputs.append(EncryptOutput(ciphertexts=ciphertexts, nonces=nonces, cipher=cipher))
        return outputs

    async def decrypt(self, inputs: Sequence[DecryptInput]) -> List[DecryptOutput]:
        """
        Decrypt one or more groups of ciphertexts, each from one counterparty.

        Raises:
            UnsupportedCipher: If any input names a cipher the account doesn't support
            AuthenticationFailed: If any ciphertext fails its integrity check
        """
        ciphers = [self._negotiate(params.cipher) for params in inputs]
        logger.debug("decrypt: %d input(s) for %s", len(inputs), b58encode(self.address))

        outputs = []
        for index, (params, cipher) in enumerate(zip(inputs, ciphers)):
            try:
                cleartexts = self._keypair.open(
                    params.public_key, CIPHER_SUITES[cipher.value], params.ciphertexts, params.nonces
                )
            except (CryptoError, ValueError) as e:
                raise type(e)(f"Decrypt input {index}: {e}") from e
            outputs.append(DecryptOutput(cleartexts=cleartexts, cipher=cipher))
        return outputs

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self):
        return f"<WalletAccount chain={self._chain.value} address={b58encode(self.address)}>"

    def to_dict(self) -> dict:
        """Export the account's public description."""
        return {
            'address': b58encode(self.address),
            'chain': self._chain.value,
            'ciphers': sorted(c.value for c in self._ciphers),
            'default_cipher': self._default_cipher.value,
        }
