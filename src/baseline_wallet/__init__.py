"""
baseline_wallet - Non-custodial light wallet core for the Baseline chain

Provides key derivation, encrypted storage, coin selection and legacy
P2PKH transaction signing, plus a JSON-RPC chain backend.
"""

__version__ = "0.1.0"

from baseline_wallet.constants import (
    BASELINE_NETWORK,
    COIN,
    DUST_THRESHOLD,
    NetworkParams,
    from_liners,
    to_liners,
)
from baseline_wallet.errors import (
    CannotExtendImportedKey,
    CryptoError,
    DecryptionFailed,
    InputValidationError,
    InsufficientFunds,
    MissingSigningKey,
    StorageError,
    UnresolvableAddress,
    WalletError,
    WalletStateError,
)
from baseline_wallet.wallet.builder import build_and_sign
from baseline_wallet.wallet.selection import select_utxos
from baseline_wallet.wallet.session import WalletSession, WalletStatus
from baseline_wallet.wallet.storage import WalletStore

__all__ = [
    "BASELINE_NETWORK",
    "COIN",
    "CannotExtendImportedKey",
    "CryptoError",
    "DUST_THRESHOLD",
    "DecryptionFailed",
    "InputValidationError",
    "InsufficientFunds",
    "MissingSigningKey",
    "NetworkParams",
    "StorageError",
    "UnresolvableAddress",
    "WalletError",
    "WalletSession",
    "WalletStateError",
    "WalletStatus",
    "WalletStore",
    "build_and_sign",
    "from_liners",
    "select_utxos",
    "to_liners",
]
