"""
Wallet session state machine.

    EMPTY  --create / import-->  READY
    LOCKED --import-->           READY
    LOCKED --unlock-->           READY
    READY  --lock-->             LOCKED
    READY  --add_address-->      READY
    any    --clear-->            EMPTY

The session holds the only in-memory copy of private keys. Every mutation
re-encrypts and replaces the stored blob before the in-memory state changes,
so a failed persist leaves the session as it was.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import ValidationError

from baseline_wallet.constants import BASELINE_NETWORK, DEFAULT_ADDRESS_BATCH, NetworkParams
from baseline_wallet.errors import (
    CannotExtendImportedKey,
    DecryptionFailed,
    InvalidMnemonic,
    WalletStateError,
)
from baseline_wallet.wallet.derivation import (
    build_key_ring,
    derive_from_mnemonic,
    derive_from_raw_seed,
    generate_mnemonic,
    key_from_encoded,
    normalize_mnemonic,
    parse_seed_backup_file,
    validate_mnemonic,
)
from baseline_wallet.wallet.models import (
    DerivedKey,
    KeyRing,
    MnemonicSecrets,
    PersistedMnemonic,
    PersistedRawKeys,
    PersistedSeedBackup,
    PersistedWallet,
    RawKeySecrets,
    SeedBackupSecrets,
    StoredKey,
    WalletSecrets,
    persisted_wallet_adapter,
)
from baseline_wallet.wallet.storage import (
    DEFAULT_ITERATIONS,
    WalletStore,
    decrypt_payload,
    encrypt_payload,
)


class WalletStatus(str, Enum):
    EMPTY = "empty"
    LOCKED = "locked"
    READY = "ready"


def to_persisted(secrets: WalletSecrets) -> PersistedWallet:
    """Strip re-derivable keys; only the authoritative secret is stored."""
    if isinstance(secrets, MnemonicSecrets):
        return PersistedMnemonic(mnemonic=secrets.mnemonic, next_index=secrets.next_index)
    if isinstance(secrets, SeedBackupSecrets):
        return PersistedSeedBackup(seed_hex=secrets.seed_hex, next_index=secrets.next_index)
    return PersistedRawKeys(
        keys=[
            StoredKey(address=k.address, wif=k.wif, path=k.path, label=k.label)
            for k in secrets.keys
        ]
    )


def runtime_from_persisted(
    data: PersistedWallet, network: NetworkParams = BASELINE_NETWORK
) -> WalletSecrets:
    """Rebuild in-memory secrets, re-deriving keys from the mnemonic or seed."""
    if isinstance(data, PersistedMnemonic):
        count = max(data.next_index, DEFAULT_ADDRESS_BATCH)
        keys = derive_from_mnemonic(data.mnemonic, count, network=network)
        return MnemonicSecrets(mnemonic=data.mnemonic, next_index=count, keys=keys)
    if isinstance(data, PersistedSeedBackup):
        count = max(data.next_index, DEFAULT_ADDRESS_BATCH)
        keys = derive_from_raw_seed(data.seed_hex, count, network=network)
        return SeedBackupSecrets(seed_hex=data.seed_hex, next_index=count, keys=keys)
    return RawKeySecrets(
        keys=[DerivedKey(address=k.address, wif=k.wif, path=k.path, label=k.label) for k in data.keys]
    )


def _without_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def build_backup_payload(secrets: WalletSecrets) -> dict[str, Any]:
    """Backup document in the canonical shape for each secret kind."""
    if isinstance(secrets, SeedBackupSecrets):
        return {
            "version": 1,
            "encrypted": False,
            "seed": secrets.seed_hex,
            "next_index": secrets.next_index,
            "addresses": {
                k.address: {"index": idx, "watch_only": False, "label": k.label or ""}
                for idx, k in enumerate(secrets.keys)
            },
        }
    if isinstance(secrets, MnemonicSecrets):
        return {
            "kind": "mnemonic",
            "mnemonic": secrets.mnemonic,
            "next_index": secrets.next_index,
            "addresses": [
                _without_none({"address": k.address, "path": k.path, "label": k.label})
                for k in secrets.keys
            ],
        }
    return {
        "kind": "wif",
        "keys": [
            _without_none({"address": k.address, "wif": k.wif, "label": k.label})
            for k in secrets.keys
        ],
    }


class WalletSession:
    """
    Orchestrates create/import/unlock/lock/add-address/clear over a
    WalletStore. One session per wallet file.
    """

    def __init__(
        self,
        store: WalletStore,
        network: NetworkParams = BASELINE_NETWORK,
        kdf_iterations: int = DEFAULT_ITERATIONS,
    ):
        self.store = store
        self.network = network
        self.kdf_iterations = kdf_iterations

        self._secrets: WalletSecrets | None = None
        self._passphrase: str | None = None
        self._key_ring: KeyRing = {}

        self.status = WalletStatus.LOCKED if store.load() is not None else WalletStatus.EMPTY
        logger.debug(f"Wallet session initialized: {self.status.value}")

    @property
    def secrets(self) -> WalletSecrets | None:
        return self._secrets

    @property
    def keys(self) -> list[DerivedKey]:
        return list(self._secrets.keys) if self._secrets is not None else []

    @property
    def addresses(self) -> list[str]:
        return [k.address for k in self.keys]

    @property
    def key_ring(self) -> KeyRing:
        return dict(self._key_ring)

    @property
    def is_ready(self) -> bool:
        return self.status == WalletStatus.READY

    def _require(self, *allowed: WalletStatus) -> None:
        if self.status not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise WalletStateError(
                f"Operation requires wallet state {names}; current state is {self.status.value}"
            )

    def _persist(self, secrets: WalletSecrets, passphrase: str) -> None:
        payload = to_persisted(secrets).model_dump(by_alias=True, exclude_none=True)
        blob = encrypt_payload(passphrase, payload, iterations=self.kdf_iterations)
        self.store.persist(blob)

    def _activate(self, secrets: WalletSecrets, passphrase: str) -> None:
        self._key_ring = build_key_ring(secrets.keys, self.network)
        self._secrets = secrets
        self._passphrase = passphrase
        self.status = WalletStatus.READY

    def _persist_and_activate(self, secrets: WalletSecrets, passphrase: str) -> WalletSecrets:
        self._persist(secrets, passphrase)
        self._activate(secrets, passphrase)
        return secrets

    def create(self, passphrase: str) -> MnemonicSecrets:
        """Generate a new 12-word wallet and persist it."""
        self._require(WalletStatus.EMPTY)
        mnemonic = generate_mnemonic(128)
        keys = derive_from_mnemonic(mnemonic, DEFAULT_ADDRESS_BATCH, network=self.network)
        secrets = MnemonicSecrets(mnemonic=mnemonic, next_index=DEFAULT_ADDRESS_BATCH, keys=keys)
        self._persist_and_activate(secrets, passphrase)
        logger.info(f"Created new wallet with {len(keys)} addresses")
        return secrets

    def import_mnemonic(self, mnemonic: str, passphrase: str) -> MnemonicSecrets:
        self._require(WalletStatus.EMPTY, WalletStatus.LOCKED)
        normalized = normalize_mnemonic(mnemonic)
        if not validate_mnemonic(normalized):
            raise InvalidMnemonic("Mnemonic is not valid")
        keys = derive_from_mnemonic(normalized, DEFAULT_ADDRESS_BATCH, network=self.network)
        secrets = MnemonicSecrets(mnemonic=normalized, next_index=DEFAULT_ADDRESS_BATCH, keys=keys)
        self._persist_and_activate(secrets, passphrase)
        logger.info("Imported wallet from mnemonic")
        return secrets

    def import_encoded_key(
        self, wif: str, passphrase: str, label: str | None = None
    ) -> RawKeySecrets:
        self._require(WalletStatus.EMPTY, WalletStatus.LOCKED)
        key = key_from_encoded(wif.strip(), label=label, network=self.network)
        secrets = RawKeySecrets(keys=[key])
        self._persist_and_activate(secrets, passphrase)
        logger.info(f"Imported private key for {key.address}")
        return secrets

    def import_seed_backup(self, json_text: str, passphrase: str) -> SeedBackupSecrets:
        self._require(WalletStatus.EMPTY, WalletStatus.LOCKED)
        seed_hex, next_index = parse_seed_backup_file(json_text)
        count = max(DEFAULT_ADDRESS_BATCH, next_index)
        keys = derive_from_raw_seed(seed_hex, count, network=self.network)
        secrets = SeedBackupSecrets(seed_hex=seed_hex, next_index=count, keys=keys)
        self._persist_and_activate(secrets, passphrase)
        logger.info(f"Imported wallet.json backup with {count} addresses")
        return secrets

    def unlock(self, passphrase: str) -> WalletSecrets:
        """
        Decrypt the stored wallet and re-derive its keys.

        Raises:
            DecryptionFailed: Wrong passphrase or corrupted wallet file
            WalletStateError: Not locked, or the stored wallet disappeared
        """
        self._require(WalletStatus.LOCKED)
        blob = self.store.load()
        if blob is None:
            self.status = WalletStatus.EMPTY
            raise WalletStateError("No stored wallet to unlock")

        payload = decrypt_payload(passphrase, blob)
        try:
            data = persisted_wallet_adapter.validate_python(payload)
        except ValidationError as e:
            # Authenticated but not a wallet: treat like any other bad blob
            raise DecryptionFailed() from e

        secrets = runtime_from_persisted(data, self.network)
        self._activate(secrets, passphrase)
        logger.info(f"Unlocked wallet with {len(secrets.keys)} addresses")
        return secrets

    def lock(self) -> None:
        self._require(WalletStatus.READY)
        self._forget()
        self.status = WalletStatus.LOCKED
        logger.info("Wallet locked")

    def add_address(self) -> DerivedKey:
        """Derive, persist and return the key at next_index."""
        self._require(WalletStatus.READY)
        secrets = self._secrets
        if secrets is None or self._passphrase is None:
            raise WalletStateError("Wallet secrets are not loaded")

        if isinstance(secrets, RawKeySecrets):
            raise CannotExtendImportedKey()

        index = secrets.next_index
        updated: WalletSecrets
        if isinstance(secrets, MnemonicSecrets):
            (new_key,) = derive_from_mnemonic(secrets.mnemonic, 1, index, network=self.network)
            updated = MnemonicSecrets(
                mnemonic=secrets.mnemonic, next_index=index + 1, keys=[*secrets.keys, new_key]
            )
        else:
            (new_key,) = derive_from_raw_seed(secrets.seed_hex, 1, index, network=self.network)
            updated = SeedBackupSecrets(
                seed_hex=secrets.seed_hex, next_index=index + 1, keys=[*secrets.keys, new_key]
            )

        self._persist_and_activate(updated, self._passphrase)
        logger.info(f"Added address #{index}: {new_key.address}")
        return new_key

    def clear(self) -> None:
        """Erase the stored wallet and all in-memory secrets. Irreversible."""
        try:
            self.store.clear()
        finally:
            self._forget()
            self.status = WalletStatus.EMPTY

    def export_backup(self) -> str:
        self._require(WalletStatus.READY)
        if self._secrets is None:
            raise WalletStateError("Wallet secrets are not loaded")
        return json.dumps(build_backup_payload(self._secrets), indent=2)

    def _forget(self) -> None:
        self._secrets = None
        self._passphrase = None
        self._key_ring = {}
