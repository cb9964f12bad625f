"""
Error kinds raised by wallets and accounts.

Callers make different recovery decisions per kind (retry, abort,
re-request authorization), so each failure mode has its own class.
"""
from typing import Optional

from .base58 import b58encode


class WalletError(Exception):
    """Base class for every error raised by this package."""


class UnsupportedCipher(WalletError, ValueError):
    def __init__(self, cipher, supported=()):
        self.cipher = cipher
        self.supported = tuple(supported)
        names = ", ".join(sorted(str(getattr(c, "value", c)) for c in self.supported))
        super().__init__(f"Unsupported cipher: {getattr(cipher, 'value', cipher)!r} (supported: {names or 'none'})")


class UnsupportedChain(WalletError, ValueError):
    def __init__(self, chain, supported=()):
        self.chain = chain
        self.supported = tuple(supported)
        names = ", ".join(sorted(str(getattr(c, "value", c)) for c in self.supported))
        super().__init__(f"Unsupported chain: {getattr(chain, 'value', chain)!r} (supported: {names or 'none'})")


class InvalidTransactionEncoding(WalletError, ValueError):
    """A serialized transaction could not be parsed or re-serialized."""

    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        if index is not None:
            message = f"Transaction {index}: {message}"
        super().__init__(message)


class MissingSignatures(InvalidTransactionEncoding):
    """A transaction still has empty signature slots where all are required."""


class UnknownSigner(WalletError):
    """The account is not one of the transaction's required signers."""

    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        if index is not None:
            message = f"Transaction {index}: {message}"
        super().__init__(message)


class SubmissionFailed(WalletError):
    """
    The network rejected (or never acknowledged) a submitted transaction.

    Attributes:
        code: JSON-RPC or HTTP error code when the node returned one
        index: Position of the transaction in the submitted batch
    """

    def __init__(self, message: str, code: Optional[int] = None, index: Optional[int] = None):
        self.code = code
        self.index = index
        self.reason = message
        super().__init__(message)

    def at(self, index: int) -> "SubmissionFailed":
        """
        Return a copy of this error tagged with its batch position.

        The copy keeps the original's cause, so the low-level error stays chained.
        """
        tagged = type(self)(self.reason, code=self.code, index=index)
        tagged.__cause__ = self.__cause__ if self.__cause__ is not None else self
        return tagged

    def __str__(self):
        prefix = f"Transaction {self.index}: " if self.index is not None else ""
        suffix = f" (code {self.code})" if self.code is not None else ""
        return f"{prefix}{self.reason}{suffix}"


class SubmissionTimeout(SubmissionFailed):
    """Submission did not complete in time. The transaction may still land."""


class UnauthorizedAccount(WalletError):
    """A requested address was not authorized for the app."""

    NOT_FOUND = "not found"
    REFUSED = "refused"
    SILENT = "silent"

    def __init__(self, address: bytes, reason: str):
        self.address = bytes(address)
        self.reason = reason
        super().__init__(f"Account {b58encode(self.address)} not authorized: {reason}")
