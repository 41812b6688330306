"""
Baseline network constants.

Baseline is a Bitcoin-derived chain with its own address version bytes.
Never reuse Bitcoin mainnet constants here: a P2PKH address on Baseline
starts with 'N' (version 0x35), not '1'.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

# Smallest unit is the "liner"
COIN = 100_000_000  # liners per coin

# Number of addresses derived when a wallet is created or imported
DEFAULT_ADDRESS_BATCH = 5

# Legacy P2PKH dust limit enforced by Baseline nodes
DUST_THRESHOLD = 550  # liners


@dataclass(frozen=True)
class NetworkParams:
    """Version bytes and policy constants for a Baseline-style network."""

    name: str
    pubkey_hash_version: int
    script_hash_version: int
    wif_version: int
    bip32_public_version: int
    bip32_private_version: int
    message_prefix: bytes
    dust_threshold_liners: int


BASELINE_NETWORK = NetworkParams(
    name="baseline",
    pubkey_hash_version=0x35,
    script_hash_version=0x05,
    wif_version=0x80,
    bip32_public_version=0x0488B21E,
    bip32_private_version=0x0488ADE4,
    message_prefix=b"\x18Baseline Signed Message:\n",
    dust_threshold_liners=DUST_THRESHOLD,
)


def to_liners(amount: Decimal | str | int | float) -> int:
    """Convert a coin amount to integer liners (half-up rounding)."""
    # str() first so floats like 0.1 don't drag binary noise into Decimal
    value = Decimal(str(amount)) * COIN
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_liners(value: int) -> Decimal:
    """Convert liners to a coin amount."""
    return Decimal(value) / COIN
