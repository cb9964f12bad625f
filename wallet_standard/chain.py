"""
Chain client used by accounts: Solana transaction wire format and submission.

Accounts never build transactions. They only need to parse one far enough to
find their signature slot, sign the message bytes, write the slot back, and
hand the bytes to a node.

Wire format:
    shortvec(num_signatures) || signature[64] * n || message
    message = [version prefix] || header[3] || shortvec(num_keys) || key[32] * k
              || recent_blockhash[32] || ... (opaque)
"""
from __future__ import annotations

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from .base58 import b58decode, b58encode  # noqa: F401  (re-exported)
from .errors import (
    InvalidTransactionEncoding,
    MissingSignatures,
    SubmissionFailed,
    SubmissionTimeout,
    UnknownSigner,
)

logger = logging.getLogger(__name__)

PACKET_DATA_SIZE = 1232
SIGNATURE_LENGTH = 64
PUBKEY_LENGTH = 32
BLOCKHASH_LENGTH = 32
VERSION_PREFIX_MASK = 0x80
EMPTY_SIGNATURE = bytes(SIGNATURE_LENGTH)


# ============================================
# Shortvec (compact-u16)
# ============================================

def encode_shortvec(value: int) -> bytes:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"shortvec value out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_shortvec(data: bytes, offset: int = 0):
    """
    Decode a compact-u16 at offset.

    Returns:
        (value, new_offset)
    """
    value = 0
    for i in range(3):
        if offset + i >= len(data):
            raise InvalidTransactionEncoding("truncated shortvec length")
        byte = data[offset + i]
        value |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            if i > 0 and byte == 0:
                raise InvalidTransactionEncoding("non-canonical shortvec length")
            if value > 0xFFFF:
                raise InvalidTransactionEncoding("shortvec length overflow")
            return value, offset + i + 1
    raise InvalidTransactionEncoding("shortvec length longer than 3 bytes")


# ============================================
# Transaction
# ============================================

class Transaction:
    """
    A parsed transaction: signature slots plus the opaque message they sign.

    Only the header and the signer keys are interpreted; everything after the
    recent blockhash is kept as-is.
    """

    def __init__(self, signatures: List[bytes], message: bytes, signers: List[bytes], version: Optional[int] = None):
        self.signatures = signatures
        self.message = message
        self.signers = signers
        self.version = version

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Transaction":
        raw = bytes(raw)
        if len(raw) > PACKET_DATA_SIZE:
            raise InvalidTransactionEncoding(
                f"transaction too large: {len(raw)} > {PACKET_DATA_SIZE} bytes"
            )

        num_signatures, offset = decode_shortvec(raw, 0)
        end = offset + num_signatures * SIGNATURE_LENGTH
        if end > len(raw):
            raise InvalidTransactionEncoding("truncated signatures")
        signatures = [
            raw[offset + i * SIGNATURE_LENGTH: offset + (i + 1) * SIGNATURE_LENGTH]
            for i in range(num_signatures)
        ]
        message = raw[end:]

        cursor = 0
        version = None
        if message and message[0] & VERSION_PREFIX_MASK:
            version = message[0] & 0x7F
            if version != 0:
                raise InvalidTransactionEncoding(f"unsupported transaction version: {version}")
            cursor = 1

        if len(message) < cursor + 3:
            raise InvalidTransactionEncoding("truncated message header")
        num_required_signatures = message[cursor]
        cursor += 3

        num_keys, cursor = decode_shortvec(message, cursor)
        keys_end = cursor + num_keys * PUBKEY_LENGTH
        if keys_end + BLOCKHASH_LENGTH > len(message):
            raise InvalidTransactionEncoding("truncated account keys or blockhash")
        if num_required_signatures == 0:
            raise InvalidTransactionEncoding("transaction has no required signers")
        if num_required_signatures > num_keys:
            raise InvalidTransactionEncoding(
                f"{num_required_signatures} required signers but only {num_keys} account keys"
            )
        if num_signatures != num_required_signatures:
            raise InvalidTransactionEncoding(
                f"{num_signatures} signatures for {num_required_signatures} required signers"
            )

        signers = [
            message[cursor + i * PUBKEY_LENGTH: cursor + (i + 1) * PUBKEY_LENGTH]
            for i in range(num_required_signatures)
        ]
        return cls(signatures, message, signers, version)

    @property
    def signature(self) -> bytes:
        """The primary signature: the fee payer's, which identifies the transaction."""
        return self.signatures[0]

    def is_signed_by(self, address: bytes) -> bool:
        address = bytes(address)
        return any(
            signer == address and signature != EMPTY_SIGNATURE
            for signer, signature in zip(self.signers, self.signatures)
        )

    def partial_sign(self, keypair) -> None:
        """Sign the message into the keypair's slot. Other slots stay untouched."""
        try:
            index = self.signers.index(keypair.address)
        except ValueError:
            raise UnknownSigner("account is not a required signer") from None
        self.signatures[index] = keypair.sign(self.message)

    def serialize(self, require_all_signatures: bool = True) -> bytes:
        if require_all_signatures:
            missing = [i for i, s in enumerate(self.signatures) if s == EMPTY_SIGNATURE]
            if missing:
                raise MissingSignatures(f"missing signatures for signer(s) {missing}")
        raw = encode_shortvec(len(self.signatures)) + b"".join(self.signatures) + self.message
        if len(raw) > PACKET_DATA_SIZE:
            raise InvalidTransactionEncoding(
                f"transaction too large: {len(raw)} > {PACKET_DATA_SIZE} bytes"
            )
        return raw

    def __repr__(self):
        signed = sum(1 for s in self.signatures if s != EMPTY_SIGNATURE)
        return f"<Transaction signers={len(self.signers)} signed={signed} version={self.version}>"


# ============================================
# Network submission
# ============================================

class ChainClient(ABC):
    """Submits fully signed, serialized transactions to a network."""

    @abstractmethod
    async def send_raw_transaction(self, raw: bytes) -> bytes:
        """
        Submit a transaction.

        Returns:
            The primary signature as raw bytes

        Raises:
            SubmissionFailed: If the network rejects the transaction
        """

    async def close(self) -> None:
        pass


class SolanaRpcClient(ChainClient):
    """
    JSON-RPC client for a Solana node.

    Sends each transaction once. The node is told not to rebroadcast either
    (maxRetries 0); resubmission is the caller's decision.

    Usage:
        client = SolanaRpcClient.from_config(Config().get_network(Chain.SOLANA_DEVNET))
        signature = await client.send_raw_transaction(raw)
        await client.close()
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0

    @classmethod
    def from_config(cls, network, transport: Optional[httpx.AsyncBaseTransport] = None) -> "SolanaRpcClient":
        return cls(
            rpc_url=network.rpc_url,
            commitment=network.commitment,
            timeout_s=network.timeout_s,
            transport=transport,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        try:
            response = await self._get_client().post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data: Dict[str, Any] = response.json()
        except httpx.HTTPStatusError as e:
            raise SubmissionFailed(
                f"HTTP error from {self.rpc_url}", code=e.response.status_code
            ) from e
        except httpx.TimeoutException as e:
            raise SubmissionTimeout(f"Request to {self.rpc_url} timed out; it may still land") from e
        except httpx.HTTPError as e:
            raise SubmissionFailed(f"Request to {self.rpc_url} failed: {e}") from e
        except ValueError as e:
            raise SubmissionFailed(f"Invalid JSON from {self.rpc_url}") from e

        if not isinstance(data, dict):
            raise SubmissionFailed("Unexpected RPC response shape")
        if "error" in data:
            error = data["error"] or {}
            if isinstance(error, dict):
                raise SubmissionFailed(
                    f"RPC error: {error.get('message', error)}", code=error.get("code")
                )
            raise SubmissionFailed(f"RPC error: {error}")
        return data.get("result")

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        options = {
            "encoding": "base64",
            "preflightCommitment": self.commitment,
            "maxRetries": 0,
        }
        encoded = base64.b64encode(bytes(raw)).decode("ascii")
        result = await self._rpc_call("sendTransaction", [encoded, options])

        if not isinstance(result, str) or not result:
            raise SubmissionFailed("No signature returned from sendTransaction")
        try:
            signature = b58decode(result)
        except ValueError as e:
            raise SubmissionFailed(f"Malformed signature returned: {result!r}") from e
        if len(signature) != SIGNATURE_LENGTH:
            raise SubmissionFailed(f"Malformed signature returned: {result!r}")

        logger.debug("Submitted transaction %s to %s", result, self.rpc_url)
        return signature


async def submit_with_timeout(client: ChainClient, raw: bytes, timeout: Optional[float]) -> bytes:
    """Submit once. A timeout becomes SubmissionTimeout and is not retried."""
    try:
        return await asyncio.wait_for(client.send_raw_transaction(raw), timeout)
    except asyncio.TimeoutError as e:
        raise SubmissionTimeout(f"Submission timed out after {timeout}s; it may still land") from e
