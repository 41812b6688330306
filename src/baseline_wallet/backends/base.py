"""
Base chain backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from baseline_wallet.wallet.models import SpendableUtxo


class RpcError(Exception):
    """HTTP or JSON-RPC level failure talking to the node."""

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


@dataclass
class FeeEstimate:
    feerate_liners_per_kb: int | None  # None when the node has no estimate
    blocks: int
    errors: list[str] = field(default_factory=list)


@dataclass
class AddressBalance:
    balance: int  # liners
    received: int  # liners


@dataclass
class BlockchainInfo:
    chain: str
    blocks: int
    headers: int
    verification_progress: float
    pruned: bool = False


@dataclass
class AddressTxid:
    """One entry of getaddresstxids"""

    txid: str
    height: int | None = None
    block_hash: str | None = None


@dataclass
class ChainTxInput:
    txid: str | None  # None for coinbase inputs
    vout: int | None


@dataclass
class ChainTxOutput:
    n: int
    value: int  # liners
    script_pubkey: str  # hex


@dataclass
class ChainTransaction:
    """Decoded transaction as reported by the node"""

    txid: str
    confirmations: int
    inputs: list[ChainTxInput] = field(default_factory=list)
    outputs: list[ChainTxOutput] = field(default_factory=list)
    block_hash: str | None = None
    time: int | None = None

    def output(self, n: int) -> ChainTxOutput | None:
        return next((out for out in self.outputs if out.n == n), None)


class ChainBackend(ABC):
    """
    Abstract chain backend.
    Implementations query an address-indexed node; the wallet never needs
    node-side wallet functionality.
    """

    @abstractmethod
    async def get_utxos(
        self, addresses: list[str], limit: int | None = None, offset: int = 0
    ) -> list[SpendableUtxo]:
        """Get a page of UTXOs for the given addresses"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    @abstractmethod
    async def estimate_fee_rate(self, target_blocks: int) -> FeeEstimate:
        """Estimate fee rate in liners/kB for the confirmation target"""

    @abstractmethod
    async def get_address_balance(self, addresses: list[str]) -> AddressBalance:
        """Get combined balance for addresses"""

    @abstractmethod
    async def get_blockchain_info(self) -> BlockchainInfo:
        """Get node chain status"""

    @abstractmethod
    async def get_address_txids(self, addresses: list[str]) -> list[AddressTxid]:
        """Get txids touching the addresses, in node order"""

    @abstractmethod
    async def get_raw_transaction(
        self, txid: str, block_hash: str | None = None
    ) -> ChainTransaction | None:
        """Get a decoded transaction, or None if the node does not know it"""

    async def close(self) -> None:
        """Release network resources"""
