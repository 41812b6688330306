"""
Chain backend implementations.

Available backends:
- RpcBackend: Address-indexed Baseline node over JSON-RPC
"""

from baseline_wallet.backends.base import (
    AddressBalance,
    AddressTxid,
    BlockchainInfo,
    ChainBackend,
    ChainTransaction,
    ChainTxInput,
    ChainTxOutput,
    FeeEstimate,
    RpcError,
)
from baseline_wallet.backends.rpc import RpcBackend

__all__ = [
    "AddressBalance",
    "AddressTxid",
    "BlockchainInfo",
    "ChainBackend",
    "ChainTransaction",
    "ChainTxInput",
    "ChainTxOutput",
    "FeeEstimate",
    "RpcBackend",
    "RpcError",
]
