"""
Transaction builder for legacy P2PKH spends.

Pure function of the supplied UTXOs and keys: selects coins, assembles the
transaction, signs every input and serializes it. Never touches the network.
"""

from __future__ import annotations

from loguru import logger

from baseline_wallet.constants import BASELINE_NETWORK, NetworkParams
from baseline_wallet.errors import InvalidLockTime, MissingSigningKey, SigningError
from baseline_wallet.wallet.address import script_for_address
from baseline_wallet.wallet.models import BuildRequest, KeyRing, SignedTransaction
from baseline_wallet.wallet.selection import select_utxos
from baseline_wallet.wallet.signing import (
    DEFAULT_SEQUENCE,
    LOCKTIME_SEQUENCE,
    MAX_LOCK_TIME,
    SIGHASH_ALL,
    Transaction,
    TxInput,
    TxOutput,
    create_p2pkh_script_sig,
    sign_p2pkh_input,
)


def build_and_sign(
    request: BuildRequest,
    key_ring: KeyRing,
    network: NetworkParams = BASELINE_NETWORK,
) -> SignedTransaction:
    """
    Build and sign a transaction paying `request.amount` to `request.to_address`.

    Raises:
        InvalidAmount / InsufficientFunds: From coin selection
        InvalidLockTime: lock_time does not fit in 32 bits
        UnresolvableAddress: Destination or change address is not P2PKH on this network
        MissingSigningKey: A selected UTXO's address is not in the key ring
    """
    if request.lock_time is not None and not 0 <= request.lock_time <= MAX_LOCK_TIME:
        raise InvalidLockTime(f"lock_time must be between 0 and {MAX_LOCK_TIME}")

    plan = select_utxos(request.utxos, request.amount, request.fee_rate_liners_per_kb, network)

    # Resolve scripts before doing any signing work
    to_script = script_for_address(request.to_address, network)
    change_script = script_for_address(request.change_address, network) if plan.change > 0 else b""

    sequence = LOCKTIME_SEQUENCE if request.lock_time is not None else DEFAULT_SEQUENCE
    tx = Transaction(locktime=request.lock_time or 0)

    for utxo in plan.selected:
        tx.inputs.append(TxInput(txid=utxo.txid, vout=utxo.vout, sequence=sequence))

    tx.outputs.append(TxOutput(value=request.amount, script_pubkey=to_script))
    if plan.change > 0:
        tx.outputs.append(TxOutput(value=plan.change, script_pubkey=change_script))

    # All signatures are computed over the unsigned transaction, then applied
    script_sigs: list[bytes] = []
    for idx, utxo in enumerate(plan.selected):
        key = key_ring.get(utxo.address)
        if key is None:
            raise MissingSigningKey(utxo.address)

        prev_script = (
            bytes.fromhex(utxo.script_pubkey)
            if utxo.script_pubkey
            else script_for_address(utxo.address, network)
        )
        signature = sign_p2pkh_input(tx, idx, prev_script, key, SIGHASH_ALL)
        script_sigs.append(create_p2pkh_script_sig(signature, key.public_key))

    for inp, script_sig in zip(tx.inputs, script_sigs, strict=True):
        inp.script_sig = script_sig

    total_in = plan.total_value
    total_out = sum(out.value for out in tx.outputs)
    fee = total_in - total_out
    if fee != plan.fee:
        raise SigningError(f"Fee drift: selected {plan.fee}, built {fee}")

    raw = tx.serialize()
    txid = tx.txid
    logger.info(
        f"Built transaction {txid}: {len(tx.inputs)} inputs, {len(tx.outputs)} outputs, "
        f"fee={fee}, size={len(raw)}"
    )

    return SignedTransaction(
        hex=raw.hex(),
        txid=txid,
        fee=fee,
        vsize=len(raw),
        change=plan.change,
        inputs_used=len(plan.selected),
        lock_time=request.lock_time,
    )
