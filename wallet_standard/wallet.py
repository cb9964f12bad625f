"""
Wallet: the provider an app connects to.
Aggregates accounts, capability metadata and lifecycle events.
"""
import inspect
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

from .account import WalletAccount
from .base58 import b58encode
from .errors import UnauthorizedAccount, UnsupportedChain
from .events import EventHub, Listener, Unsubscribe
from .interfaces import (
    Chain,
    ConnectParams,
    ConnectResult,
    Version,
    WalletDescriptor,
    WalletEvent,
)

logger = logging.getLogger(__name__)

# Receives the accounts awaiting authorization, returns the approved addresses
Consent = Callable[[List[WalletAccount]], Union[Iterable[bytes], Awaitable[Iterable[bytes]]]]


async def approve_all(accounts: List[WalletAccount]) -> List[bytes]:
    return [account.address for account in accounts]


class Wallet:
    """
    Wallet holds accounts across chains and decides which an app may use.

    The Wallet is designed to:
    - Advertise its capabilities (chains, ciphers, version, display identity)
    - Maintain multiple WalletAccount instances per chain
    - Authorize accounts for an app through connect(), prompting via the
      consent callable unless the app asks for a silent connect
    - Notify subscribers when its accounts or chains change

    Usage:
        wallet = Wallet(WalletDescriptor(name="My Wallet", icon=ICON, chains={Chain.SOLANA_DEVNET}))
        wallet.create_account(Chain.SOLANA_DEVNET)

        off = wallet.on(WalletEvent.ACCOUNTS_CHANGED, on_accounts_changed)
        result = await wallet.connect(ConnectParams(chain=Chain.SOLANA_DEVNET))
        account = result.accounts[0]
        signed = await account.sign_message([b"hello"])
    """

    def __init__(
        self,
        descriptor: WalletDescriptor,
        consent: Optional[Consent] = None,
    ):
        """
        Initialize Wallet instance.

        Args:
            descriptor: Capability metadata advertised to apps
            consent: Opaque user-consent step, defaults to approving every account
        """
        if not isinstance(descriptor, WalletDescriptor):
            raise TypeError("descriptor must be a WalletDescriptor instance")

        self._descriptor = descriptor
        self._consent = consent or approve_all

        # Accounts: {chain: List[WalletAccount]}
        self._accounts: Dict[Chain, List[WalletAccount]] = {}

        # Addresses the app has been authorized to use
        self._authorized: Set[bytes] = set()

        self._events = EventHub()

    # ============================================
    # Capabilities
    # ============================================

    @property
    def descriptor(self) -> WalletDescriptor:
        return self._descriptor

    @property
    def version(self) -> Version:
        return self._descriptor.version

    @property
    def name(self) -> str:
        return self._descriptor.name

    @property
    def icon(self) -> str:
        return self._descriptor.icon

    @property
    def chains(self) -> frozenset:
        return self._descriptor.chains

    @property
    def ciphers(self) -> frozenset:
        return self._descriptor.ciphers

    @property
    def accounts(self) -> List[WalletAccount]:
        """Accounts the app is currently authorized to use."""
        return [
            account
            for account_list in self._accounts.values()
            for account in account_list
            if account.address in self._authorized
        ]

    def update_descriptor(self, descriptor: WalletDescriptor):
        """
        Replace the capability metadata.

        Emits chainsChanged when the supported chains differ.
        """
        if not isinstance(descriptor, WalletDescriptor):
            raise TypeError("descriptor must be a WalletDescriptor instance")

        previous = self._descriptor
        self._descriptor = descriptor
        if previous.chains != descriptor.chains:
            logger.info(
                "Wallet %s chains changed: %s",
                descriptor.name, sorted(c.value for c in descriptor.chains),
            )
            self._events.emit(WalletEvent.CHAINS_CHANGED)

    # ============================================
    # Account Management
    # ============================================

    def add_account(self, account: WalletAccount) -> WalletAccount:
        """
        Add an account to the wallet.

        Raises:
            UnsupportedChain: If the wallet doesn't support the account's chain
            ValueError: If an account with the same address already exists on that chain
        """
        if not isinstance(account, WalletAccount):
            raise TypeError("account must be a WalletAccount instance")

        if account.chain not in self.chains:
            raise UnsupportedChain(account.chain, self.chains)

        unsupported = account.ciphers - self.ciphers
        if unsupported:
            raise ValueError(
                f"Account supports ciphers the wallet doesn't advertise: "
                f"{sorted(c.value for c in unsupported)}"
            )

        account_list = self._accounts.setdefault(account.chain, [])
        for existing_account in account_list:
            if existing_account.address == account.address:
                raise ValueError(
                    f"Account {b58encode(account.address)} already exists on {account.chain.value}. "
                    f"Cannot add duplicate account."
                )

        account_list.append(account)
        self._events.emit(WalletEvent.ACCOUNTS_CHANGED)
        return account

    def create_account(self, chain: Chain, **kwargs) -> WalletAccount:
        """Generate a new account on a chain, using the wallet's ciphers."""
        chain = Chain.parse(chain, self.chains)
        kwargs.setdefault("ciphers", self.ciphers)
        return self.add_account(WalletAccount.generate(chain, **kwargs))

    def get_account(self, chain: Chain, address: Optional[bytes] = None, index: int = 0) -> WalletAccount:
        """
        Get an account by chain and optional address or index.

        Raises:
            KeyError: If the chain has no accounts or the address is not found
            IndexError: If index out of range
        """
        chain = Chain.parse(chain, self.chains)
        accounts = self._accounts.get(chain, [])
        if not accounts:
            raise KeyError(
                f"No accounts for chain '{chain.value}'. "
                f"Available chains: {[c.value for c in self.list_chains()]}"
            )

        if address is not None:
            for account in accounts:
                if account.address == bytes(address):
                    return account
            raise KeyError(f"Account {b58encode(bytes(address))} not found on {chain.value}")

        if index >= len(accounts):
            raise IndexError(
                f"Account index {index} out of range. "
                f"{chain.value} has {len(accounts)} account(s)"
            )

        return accounts[index]

    def get_accounts(self, chain: Chain) -> List[WalletAccount]:
        """All accounts on a chain, authorized or not (empty list if none)."""
        return list(self._accounts.get(Chain.parse(chain, self.chains), []))

    def list_chains(self) -> List[Chain]:
        """List all chains with accounts in this wallet."""
        return [chain for chain, accounts in self._accounts.items() if accounts]

    def remove_account(self, address: bytes, chain: Optional[Chain] = None) -> bool:
        """
        Remove an account from the wallet and revoke its authorization.

        Returns:
            True if an account was removed
        """
        address = bytes(address)
        removed = False
        chains = [Chain.parse(chain)] if chain is not None else list(self._accounts)
        for chain in chains:
            accounts = self._accounts.get(chain, [])
            remaining = [acc for acc in accounts if acc.address != address]
            if len(remaining) != len(accounts):
                removed = True
                if remaining:
                    self._accounts[chain] = remaining
                else:
                    del self._accounts[chain]

        if removed:
            self._authorized.discard(address)
            self._events.emit(WalletEvent.ACCOUNTS_CHANGED)
        return removed

    # ============================================
    # Connect
    # ============================================

    async def _ask_consent(self, candidates: List[WalletAccount]) -> Set[bytes]:
        approved = self._consent(candidates)
        if inspect.isawaitable(approved):
            approved = await approved
        return {bytes(address) for address in (approved or ())}

    async def connect(self, params: Optional[ConnectParams] = None) -> ConnectResult:
        """
        Connect an app to one or more accounts in the wallet.

        With addresses, only matching accounts are returned. Without, the
        wallet picks (all accounts the consent step approves). Already
        authorized accounts are returned without prompting; silent connects
        never prompt.

        Requested addresses that can't be returned are reported in
        ConnectResult.omitted rather than failing the call.

        Args:
            params: Params to configure connecting

        Returns:
            ConnectResult with the authorized accounts

        Raises:
            UnsupportedChain: If the wallet doesn't support the requested chain
        """
        params = params or ConnectParams()
        chain = self._descriptor.default_chain if params.chain is None else Chain.parse(params.chain, self.chains)
        if chain not in self.chains:
            raise UnsupportedChain(chain, self.chains)

        on_chain = self._accounts.get(chain, [])
        omitted: List[UnauthorizedAccount] = []

        if params.addresses is not None:
            requested = list(dict.fromkeys(bytes(a) for a in params.addresses))
            by_address = {account.address: account for account in on_chain}
            candidates = []
            for address in requested:
                if address in by_address:
                    candidates.append(by_address[address])
                else:
                    omitted.append(UnauthorizedAccount(address, UnauthorizedAccount.NOT_FOUND))
        else:
            candidates = list(on_chain)

        pending = [account for account in candidates if account.address not in self._authorized]
        if pending:
            if params.silent:
                reason = UnauthorizedAccount.SILENT
            else:
                approved = await self._ask_consent(pending)
                self._authorized.update(a.address for a in pending if a.address in approved)
                reason = UnauthorizedAccount.REFUSED

            if params.addresses is not None:
                omitted.extend(
                    UnauthorizedAccount(account.address, reason)
                    for account in pending
                    if account.address not in self._authorized
                )

        accounts = [account for account in candidates if account.address in self._authorized]
        has_more_accounts = len(on_chain) > len(accounts)

        logger.info(
            "Connect on %s (silent=%s): %d account(s) authorized, %d omitted, more=%s",
            chain.value, params.silent, len(accounts), len(omitted), has_more_accounts,
        )
        return ConnectResult(accounts=accounts, has_more_accounts=has_more_accounts, omitted=omitted)

    def disconnect(self, addresses: Optional[Sequence[bytes]] = None):
        """Revoke the app's authorization for the given addresses, or for all."""
        if addresses is None:
            self._authorized.clear()
        else:
            self._authorized.difference_update(bytes(a) for a in addresses)

    def is_authorized(self, address: bytes) -> bool:
        return bytes(address) in self._authorized

    async def close(self):
        """Close the chain clients the wallet's accounts built for themselves."""
        for account_list in self._accounts.values():
            for account in account_list:
                await account.close()

    # ============================================
    # Events
    # ============================================

    def on(self, event: WalletEvent, listener: Listener) -> Unsubscribe:
        """
        Add an event listener to subscribe to events.

        Args:
            event: Event name to listen for
            listener: Function called with no arguments when the event is emitted

        Returns:
            Function to remove the event listener and unsubscribe
        """
        return self._events.subscribe(event, listener)

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self):
        total_accounts = sum(len(accounts) for accounts in self._accounts.values())
        return (
            f"<Wallet name={self.name} "
            f"total_accounts={total_accounts} "
            f"chains={[c.value for c in self._accounts]}>"
        )

    def summary(self) -> dict:
        """
        Get a summary of the wallet state.

        Returns:
            Dict with capabilities and base58 account addresses per chain
        """
        summary = self._descriptor.to_dict()
        summary.pop('icon')
        summary['accounts'] = {
            chain.value: [b58encode(account.address) for account in account_list]
            for chain, account_list in self._accounts.items()
        }
        summary['authorized'] = len(self._authorized)
        return summary
