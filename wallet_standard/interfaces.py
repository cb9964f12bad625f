"""
Types shared by wallets, accounts and apps.

Chains, ciphers and events are closed enums: a value outside the set is
rejected when it enters the system instead of mismatching later.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Sequence, Union

from .errors import SubmissionFailed, UnauthorizedAccount, UnsupportedChain, UnsupportedCipher

BytesLike = Union[bytes, bytearray, memoryview]


class Version(str, Enum):
    """Versions of the Wallet API."""
    V1_0_0 = "1.0.0"


class Chain(str, Enum):
    """Chains supported by wallets for accounts and transactions."""
    SOLANA_MAINNET = "solana:mainnet"
    SOLANA_DEVNET = "solana:devnet"
    SOLANA_TESTNET = "solana:testnet"
    SOLANA_LOCALNET = "solana:localnet"

    @classmethod
    def parse(cls, value: Union["Chain", str], supported: Iterable["Chain"] = ()) -> "Chain":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedChain(value, supported or list(cls)) from None


class Cipher(str, Enum):
    """Ciphers supported by wallets for encryption and decryption."""
    X25519_XSALSA20_POLY1305 = "x25519-xsalsa20-poly1305"  # NaCl box
    X25519_CHACHA20_POLY1305 = "x25519-chacha20-poly1305"

    @classmethod
    def parse(cls, value: Union["Cipher", str], supported: Iterable["Cipher"] = ()) -> "Cipher":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedCipher(value, supported or list(cls)) from None


class WalletEvent(str, Enum):
    """Events emitted by wallets."""
    # Accounts in the wallet were added or removed; apps may call connect again
    ACCOUNTS_CHANGED = "accountsChanged"
    # The chains the wallet supports changed
    CHAINS_CHANGED = "chainsChanged"


def default_cipher_of(ciphers: Iterable[Cipher]) -> Cipher:
    ciphers = set(ciphers)
    if Cipher.X25519_XSALSA20_POLY1305 in ciphers:
        return Cipher.X25519_XSALSA20_POLY1305
    return sorted(ciphers, key=lambda c: c.value)[0]


def default_chain_of(chains: Iterable[Chain]) -> Chain:
    chains = set(chains)
    if Chain.SOLANA_MAINNET in chains:
        return Chain.SOLANA_MAINNET
    return sorted(chains, key=lambda c: c.value)[0]


@dataclass(frozen=True)
class WalletDescriptor:
    """
    Static capability metadata of a wallet.

    Attributes:
        name: Display name, canonical to the wallet
        icon: Data URL of a base64-encoded SVG or PNG image
        chains: Chains supported for accounts and transactions
        ciphers: Ciphers supported for encryption and decryption
        version: Wallet API version
    """
    name: str
    icon: str
    chains: FrozenSet[Chain]
    ciphers: FrozenSet[Cipher] = frozenset(Cipher)
    version: Version = Version.V1_0_0

    def __post_init__(self):
        if not self.name:
            raise ValueError("Wallet name cannot be empty")
        if not self.icon.startswith("data:image/") or ";base64," not in self.icon:
            raise ValueError("Wallet icon must be a base64 data URL")

        # Normalize strings to enum members (frozen, so bypass __setattr__)
        chains = frozenset(Chain.parse(c) for c in self.chains)
        ciphers = frozenset(Cipher.parse(c) for c in self.ciphers)
        if not chains:
            raise ValueError("Wallet must support at least one chain")
        if not ciphers:
            raise ValueError("Wallet must support at least one cipher")
        object.__setattr__(self, "chains", chains)
        object.__setattr__(self, "ciphers", ciphers)
        object.__setattr__(self, "version", Version(self.version))

    @property
    def default_chain(self) -> Chain:
        return default_chain_of(self.chains)

    @property
    def default_cipher(self) -> Cipher:
        return default_cipher_of(self.ciphers)

    def supports_chain(self, chain) -> bool:
        return chain in self.chains

    def to_dict(self) -> dict:
        return {
            "version": self.version.value,
            "name": self.name,
            "icon": self.icon,
            "chains": sorted(c.value for c in self.chains),
            "ciphers": sorted(c.value for c in self.ciphers),
        }


# ============================================
# Account operation inputs / outputs
# ============================================

@dataclass(frozen=True)
class EncryptInput:
    """
    Params for encryption.

    Attributes:
        public_key: Counterparty address to derive the shared key with
        cleartexts: One or more cleartexts to encrypt
        cipher: Cipher to use, the account's default if None
    """
    public_key: bytes
    cleartexts: Sequence[bytes]
    cipher: Optional[Cipher] = None


@dataclass(frozen=True)
class EncryptOutput:
    ciphertexts: List[bytes]
    nonces: List[bytes]  # one per ciphertext
    cipher: Cipher


@dataclass(frozen=True)
class DecryptInput:
    public_key: bytes
    ciphertexts: Sequence[bytes]
    nonces: Sequence[bytes]
    cipher: Optional[Cipher] = None


@dataclass(frozen=True)
class DecryptOutput:
    cleartexts: List[bytes]
    cipher: Cipher


@dataclass(frozen=True)
class SignTransactionOutput:
    """Signed, serialized transactions, not necessarily fully signed."""
    transactions: List[bytes]


@dataclass(frozen=True)
class SignMessageOutput:
    """Detached signatures as raw bytes."""
    signatures: List[bytes]


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of submitting one transaction: a signature or an error."""
    signature: Optional[bytes] = None
    error: Optional[SubmissionFailed] = None

    def __post_init__(self):
        if (self.signature is None) == (self.error is None):
            raise ValueError("SubmissionResult needs exactly one of signature or error")

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SignAndSendTransactionOutput:
    results: List[SubmissionResult]

    @property
    def signatures(self) -> List[Optional[bytes]]:
        """Primary signatures as raw bytes, None where submission failed."""
        return [r.signature for r in self.results]

    @property
    def errors(self) -> List[SubmissionFailed]:
        return [r.error for r in self.results if r.error is not None]

    @property
    def all_ok(self) -> bool:
        return all(r.ok for r in self.results)


# ============================================
# Connect
# ============================================

@dataclass(frozen=True)
class ConnectParams:
    """
    Options to configure connecting.

    Attributes:
        chain: Chain to discover accounts on, the wallet's default if None
        addresses: Accounts to authorize; the wallet picks when None
        silent: Never prompt the user, only return already authorized accounts
    """
    chain: Optional[Chain] = None
    addresses: Optional[Sequence[bytes]] = None
    silent: bool = False


@dataclass(frozen=True)
class ConnectResult:
    """
    Result of connecting.

    Attributes:
        accounts: Accounts the app has been authorized to use
        has_more_accounts: The wallet holds more accounts on the chain than returned
        omitted: Requested addresses that were not returned, with the reason
    """
    accounts: list
    has_more_accounts: bool
    omitted: List[UnauthorizedAccount] = field(default_factory=list)
