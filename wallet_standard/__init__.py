"""
Wallet Standard - Account abstraction for apps and wallets

Core modules:
- Keypair: Key custody, signing and encryption for one account
- WalletAccount: Batched cryptographic operations on one chain
- Wallet: Capability descriptor, accounts, connect and events
- EventHub: Lifecycle event subscriptions
- Config: Per-chain RPC endpoint configuration
"""

from .errors import (
    WalletError,
    UnsupportedCipher,
    UnsupportedChain,
    InvalidTransactionEncoding,
    MissingSignatures,
    UnknownSigner,
    SubmissionFailed,
    SubmissionTimeout,
    UnauthorizedAccount,
)
from .keymanager.crypto_utils import CryptoError, AuthenticationFailed
from .keymanager.keypair import Keypair, verify_message
from .interfaces import (
    Version,
    Chain,
    Cipher,
    WalletEvent,
    WalletDescriptor,
    EncryptInput,
    EncryptOutput,
    DecryptInput,
    DecryptOutput,
    SignTransactionOutput,
    SignMessageOutput,
    SubmissionResult,
    SignAndSendTransactionOutput,
    ConnectParams,
    ConnectResult,
)
from .base58 import b58decode, b58encode
from .chain import ChainClient, SolanaRpcClient, Transaction
from .config import Config, NetworkConfig
from .events import EventHub
from .account import WalletAccount
from .wallet import Wallet

__version__ = "1.0.0"

__all__ = [
    # Errors
    "WalletError",
    "CryptoError",
    "AuthenticationFailed",
    "UnsupportedCipher",
    "UnsupportedChain",
    "InvalidTransactionEncoding",
    "MissingSignatures",
    "UnknownSigner",
    "SubmissionFailed",
    "SubmissionTimeout",
    "UnauthorizedAccount",

    # Key custody
    "Keypair",
    "verify_message",

    # Types
    "Version",
    "Chain",
    "Cipher",
    "WalletEvent",
    "WalletDescriptor",
    "EncryptInput",
    "EncryptOutput",
    "DecryptInput",
    "DecryptOutput",
    "SignTransactionOutput",
    "SignMessageOutput",
    "SubmissionResult",
    "SignAndSendTransactionOutput",
    "ConnectParams",
    "ConnectResult",

    # Chain client
    "ChainClient",
    "SolanaRpcClient",
    "Transaction",
    "b58encode",
    "b58decode",

    # Configuration
    "Config",
    "NetworkConfig",

    # Core Classes
    "EventHub",
    "WalletAccount",
    "Wallet",
]
