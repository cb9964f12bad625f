"""
Shared pytest fixtures for the wallet_standard test suite.
"""
import asyncio
import os

import pytest

from wallet_standard import (
    Chain,
    ChainClient,
    Config,
    SubmissionFailed,
    Transaction,
    WalletAccount,
    WalletDescriptor,
)
from wallet_standard.chain import encode_shortvec

ICON = "data:image/svg+xml;base64,PHN2ZyB4bWxucz0iaHR0cDovL3d3dy53My5vcmcvMjAwMC9zdmciLz4="


def build_transaction(signers, num_readonly_unsigned=1, version=None, data=b"\x02\x00\x00\x00"):
    """
    Serialize an unsigned transaction: signers first, then one program key,
    one instruction calling it with all signers as accounts.
    """
    program_id = os.urandom(32)
    keys = [bytes(s) for s in signers] + [program_id]
    message = bytes([len(signers), 0, num_readonly_unsigned])
    message += encode_shortvec(len(keys)) + b"".join(keys)
    message += os.urandom(32)  # recent blockhash
    message += encode_shortvec(1)
    message += bytes([len(keys) - 1])
    message += encode_shortvec(len(signers)) + bytes(range(len(signers)))
    message += encode_shortvec(len(data)) + data
    if version is not None:
        message = bytes([0x80 | version]) + message + encode_shortvec(0)  # no lookup tables
    return encode_shortvec(len(signers)) + bytes(64) * len(signers) + message


class FakeChainClient(ChainClient):
    """Records submissions; rejects, stalls or breaks the ones it's told to."""

    def __init__(self, reject=(), stall=(), broken=()):
        self.reject = set(reject)
        self.stall = set(stall)
        self.broken = set(broken)
        self.submitted = []
        self.closed = False

    async def send_raw_transaction(self, raw):
        index = len(self.submitted)
        self.submitted.append(bytes(raw))
        if index in self.stall:
            await asyncio.sleep(10)
        if index in self.reject:
            raise SubmissionFailed("Transaction simulation failed", code=-32002)
        if index in self.broken:
            raise ConnectionResetError("socket closed")
        return Transaction.from_bytes(raw).signature

    async def close(self):
        self.closed = True


@pytest.fixture
def make_transaction():
    return build_transaction


@pytest.fixture
def fake_client():
    return FakeChainClient()


@pytest.fixture
def descriptor():
    return WalletDescriptor(
        name="Test Wallet",
        icon=ICON,
        chains={Chain.SOLANA_MAINNET, Chain.SOLANA_DEVNET},
    )


@pytest.fixture
def alice(fake_client):
    """Deterministic account for Alice."""
    return WalletAccount.from_seed(b"\x01" * 32, Chain.SOLANA_DEVNET, client=fake_client)


@pytest.fixture
def bob():
    return WalletAccount.from_seed(b"\x02" * 32, Chain.SOLANA_DEVNET)


@pytest.fixture
def config(tmp_path):
    """Fresh Config singleton backed by a temporary file."""
    Config.reset()
    yield Config(config_path=str(tmp_path / "config.json"))
    Config.reset()
