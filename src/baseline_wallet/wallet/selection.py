"""
Greedy largest-first coin selection for legacy P2PKH transactions.
"""

from __future__ import annotations

from loguru import logger

from baseline_wallet.constants import BASELINE_NETWORK, NetworkParams
from baseline_wallet.errors import InsufficientFunds, InvalidAmount
from baseline_wallet.wallet.models import SpendableUtxo, SpendPlan

# Legacy size estimate components (bytes)
TX_OVERHEAD_SIZE = 10
P2PKH_INPUT_SIZE = 148
P2PKH_OUTPUT_SIZE = 34


def estimate_legacy_size(input_count: int, output_count: int) -> int:
    return TX_OVERHEAD_SIZE + input_count * P2PKH_INPUT_SIZE + output_count * P2PKH_OUTPUT_SIZE


def fee_for_size(size: int, fee_rate_liners_per_kb: int) -> int:
    """ceil(size * rate / 1000), in integers."""
    return -(-size * fee_rate_liners_per_kb // 1000)


def select_utxos(
    utxos: list[SpendableUtxo],
    amount: int,
    fee_rate_liners_per_kb: int,
    network: NetworkParams = BASELINE_NETWORK,
) -> SpendPlan:
    """
    Pick inputs largest-first until they cover amount + fee.

    Change below the dust threshold is not paid out; it is added to the fee.
    The result always satisfies total_in == amount + change + fee.

    Raises:
        InvalidAmount: Non-positive amount or negative fee rate
        InsufficientFunds: All UTXOs together do not cover amount + fee
    """
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    if fee_rate_liners_per_kb < 0:
        raise InvalidAmount(f"Fee rate must not be negative, got {fee_rate_liners_per_kb}")

    dust = network.dust_threshold_liners
    ordered = sorted(utxos, key=lambda u: u.value, reverse=True)

    selected: list[SpendableUtxo] = []
    total = 0

    for utxo in ordered:
        selected.append(utxo)
        total += utxo.value

        fee = fee_for_size(estimate_legacy_size(len(selected), 1), fee_rate_liners_per_kb)
        change = total - amount - fee
        outputs = 2 if change >= dust else 1

        fee = fee_for_size(estimate_legacy_size(len(selected), outputs), fee_rate_liners_per_kb)
        change = total - amount - fee

        if change >= 0:
            change_value = change if change >= dust else 0
            plan = SpendPlan(
                selected=selected, change=change_value, fee=total - amount - change_value
            )
            logger.debug(
                f"Selected {len(selected)} of {len(utxos)} UTXOs: "
                f"total={total}, change={plan.change}, fee={plan.fee}"
            )
            return plan

    full_size = estimate_legacy_size(max(len(ordered), 1), 1)
    required = amount + fee_for_size(full_size, fee_rate_liners_per_kb)
    raise InsufficientFunds(required=required, available=total)
