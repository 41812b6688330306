"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Literal

from coincurve import PrivateKey
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


@dataclass(frozen=True)
class DerivedKey:
    """An address together with its WIF-encoded private key"""

    address: str
    wif: str
    path: str | None = None  # "m/44'/0'/0'/0/3" or "baseline:3"; None for imported keys
    label: str | None = None


@dataclass(frozen=True)
class KeyPair:
    """Signing key for one address"""

    private_key: PrivateKey
    compressed: bool = True

    @property
    def public_key(self) -> bytes:
        return self.private_key.public_key.format(compressed=self.compressed)


KeyRing = dict[str, KeyPair]


@dataclass
class MnemonicSecrets:
    mnemonic: str
    next_index: int
    keys: list[DerivedKey] = field(default_factory=list)


@dataclass
class RawKeySecrets:
    """Imported private keys. Not re-derivable: keys are the only source of truth."""

    keys: list[DerivedKey] = field(default_factory=list)


@dataclass
class SeedBackupSecrets:
    seed_hex: str
    next_index: int
    keys: list[DerivedKey] = field(default_factory=list)


WalletSecrets = MnemonicSecrets | RawKeySecrets | SeedBackupSecrets


@dataclass
class SpendableUtxo:
    txid: str  # display (big-endian) hex
    vout: int
    value: int  # liners
    script_pubkey: str  # hex, may be empty
    address: str


@dataclass
class SpendPlan:
    """Result of coin selection"""

    selected: list[SpendableUtxo]
    change: int  # 0 when below dust
    fee: int

    @property
    def total_value(self) -> int:
        return sum(u.value for u in self.selected)


@dataclass
class BuildRequest:
    utxos: list[SpendableUtxo]
    to_address: str
    amount: int
    change_address: str
    fee_rate_liners_per_kb: int
    lock_time: int | None = None


@dataclass
class SignedTransaction:
    hex: str
    txid: str
    fee: int
    vsize: int
    change: int
    inputs_used: int
    lock_time: int | None = None


@dataclass
class ActivityItem:
    """Net effect of one transaction on the wallet"""

    txid: str
    net_liners: int  # received minus spent; 0 when the transaction could not be loaded
    height: int | None = None
    block_hash: str | None = None
    confirmations: int | None = None
    time: int | None = None


@dataclass
class TransactionStatus:
    txid: str
    found: bool
    confirmations: int = 0

    @property
    def confirmed(self) -> bool:
        return self.confirmations > 0


# Encrypted payload shapes. Field aliases keep the on-disk names
# used by existing wallet files.


class StoredKey(BaseModel):
    address: str
    wif: str
    path: str | None = None
    label: str | None = None


class PersistedMnemonic(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["mnemonic"] = "mnemonic"
    mnemonic: str
    next_index: int = Field(alias="nextIndex", ge=0)


class PersistedRawKeys(BaseModel):
    kind: Literal["wif"] = "wif"
    keys: list[StoredKey]


class PersistedSeedBackup(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["baseline-json"] = "baseline-json"
    seed_hex: str = Field(alias="seedHex", min_length=64, max_length=64)
    next_index: int = Field(alias="nextIndex", ge=0)


PersistedWallet = Annotated[
    PersistedMnemonic | PersistedRawKeys | PersistedSeedBackup,
    Field(discriminator="kind"),
]

persisted_wallet_adapter: TypeAdapter[PersistedWallet] = TypeAdapter(PersistedWallet)
