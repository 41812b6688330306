"""
Wallet error taxonomy.

InputValidationError subclasses mean the caller must fix its input.
CryptoError subclasses abort the current operation without side effects.
MissingSigningKey / UnresolvableAddress indicate a UTXO set that does not
match the active key ring and are not retried.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for all wallet core errors."""


class InputValidationError(WalletError):
    pass


class InvalidMnemonic(InputValidationError):
    pass


class InvalidSeedFormat(InputValidationError):
    pass


class InvalidEncodedKey(InputValidationError):
    pass


class MalformedBackup(InputValidationError):
    pass


class EncryptedBackupUnsupported(InputValidationError):
    pass


class MissingSeed(InputValidationError):
    pass


class InvalidAmount(InputValidationError):
    pass


class InvalidLockTime(InputValidationError):
    pass


class CryptoError(WalletError):
    pass


class DecryptionFailed(CryptoError):
    """Wrong passphrase or corrupted blob. The two are never distinguished."""

    def __init__(self, message: str = "Unable to decrypt wallet") -> None:
        super().__init__(message)


class SigningError(CryptoError):
    pass


class InsufficientFunds(WalletError):
    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds for amount + fee: need at least {required}, have {available}"
        )


class MissingSigningKey(WalletError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Missing signing key for address {address}")


class UnresolvableAddress(WalletError):
    def __init__(self, address: str, reason: str = "") -> None:
        self.address = address
        detail = f": {reason}" if reason else ""
        super().__init__(f"Unable to derive script for address {address}{detail}")


class StorageError(WalletError):
    pass


class WalletStateError(WalletError):
    pass


class CannotExtendImportedKey(WalletError):
    def __init__(self) -> None:
        super().__init__("Cannot derive additional addresses for imported private keys")
