"""
Shared fixtures for wallet tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from baseline_wallet.backends.base import (
    AddressBalance,
    AddressTxid,
    BlockchainInfo,
    ChainBackend,
    ChainTransaction,
    FeeEstimate,
    RpcError,
)
from baseline_wallet.config import Settings
from baseline_wallet.wallet.derivation import derive_from_mnemonic
from baseline_wallet.wallet.models import SpendableUtxo
from baseline_wallet.wallet.session import WalletSession
from baseline_wallet.wallet.signing import deserialize_transaction
from baseline_wallet.wallet.storage import WalletStore

# Low KDF cost so session tests stay fast
TEST_ITERATIONS = 1_000

TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
TEST_SEED_HEX = "0f0e0d0c0b0a090807060504030201000102030405060708090a0b0c0d0e0f00"


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (not for production use!)."""
    return TEST_MNEMONIC


@pytest.fixture
def wallet_path(tmp_path: Path) -> Path:
    return tmp_path / "wallet.json"


@pytest.fixture
def store(wallet_path: Path) -> WalletStore:
    return WalletStore(wallet_path)


@pytest.fixture
def settings(wallet_path: Path) -> Settings:
    return Settings(
        wallet_file=wallet_path,
        kdf_iterations=TEST_ITERATIONS,
        utxo_page_size=2,
        _env_file=None,
    )


@pytest.fixture
def session(store: WalletStore) -> WalletSession:
    return WalletSession(store, kdf_iterations=TEST_ITERATIONS)


@pytest.fixture
def ready_session(session: WalletSession, test_mnemonic: str) -> WalletSession:
    session.import_mnemonic(test_mnemonic, "hunter2")
    return session


@pytest.fixture
def mnemonic_keys(test_mnemonic: str):
    return derive_from_mnemonic(test_mnemonic, 5)


def make_utxo(address: str, value: int, n: int = 0) -> SpendableUtxo:
    return SpendableUtxo(
        txid=f"{n:064x}",
        vout=n % 4,
        value=value,
        script_pubkey="",
        address=address,
    )


class FakeBackend(ChainBackend):
    """In-memory chain backend that records every call."""

    def __init__(
        self,
        utxos=None,
        fee_rate: int | None = 10_000,
        fail_fee: bool = False,
        txids: list[AddressTxid] | None = None,
        transactions: dict[str, ChainTransaction] | None = None,
    ):
        self.utxos = list(utxos or [])
        self.txids = list(txids or [])
        self.transactions = dict(transactions or {})
        self.failing_txids: set[str] = set()
        self.raw_calls: list[str] = []
        self.fee_rate = fee_rate
        self.fail_fee = fail_fee
        self.utxo_calls: list[tuple[list[str], int | None, int]] = []
        self.fee_calls: list[int] = []
        self.broadcasts: list[str] = []
        self.closed = False

    async def get_utxos(self, addresses, limit=None, offset=0):
        self.utxo_calls.append((list(addresses), limit, offset))
        matching = [u for u in self.utxos if u.address in addresses]
        end = None if limit is None else offset + limit
        return matching[offset:end]

    async def broadcast_transaction(self, tx_hex):
        self.broadcasts.append(tx_hex)
        return deserialize_transaction(bytes.fromhex(tx_hex)).txid

    async def estimate_fee_rate(self, target_blocks):
        self.fee_calls.append(target_blocks)
        if self.fail_fee:
            raise RpcError("Method not found", -32601)
        return FeeEstimate(feerate_liners_per_kb=self.fee_rate, blocks=target_blocks)

    async def get_address_balance(self, addresses):
        total = sum(u.value for u in self.utxos if u.address in addresses)
        return AddressBalance(balance=total, received=total)

    async def get_blockchain_info(self):
        return BlockchainInfo(chain="main", blocks=1, headers=1, verification_progress=1.0)

    async def get_address_txids(self, addresses):
        return list(self.txids)

    async def get_raw_transaction(self, txid, block_hash=None):
        self.raw_calls.append(txid)
        if txid in self.failing_txids:
            raise RpcError("Work queue depth exceeded", -1)
        return self.transactions.get(txid)

    async def close(self):
        self.closed = True
