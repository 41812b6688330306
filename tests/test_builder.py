"""
Tests for building and signing spends.
"""

import pytest
from conftest import make_utxo

from baseline_wallet.constants import COIN
from baseline_wallet.errors import (
    InsufficientFunds,
    InvalidLockTime,
    MissingSigningKey,
    SigningError,
    UnresolvableAddress,
)
from baseline_wallet.wallet import builder
from baseline_wallet.wallet.address import script_for_address
from baseline_wallet.wallet.builder import build_and_sign
from baseline_wallet.wallet.derivation import build_key_ring
from baseline_wallet.wallet.models import BuildRequest, SpendPlan
from baseline_wallet.wallet.signing import (
    DEFAULT_SEQUENCE,
    LOCKTIME_SEQUENCE,
    deserialize_transaction,
    verify_input_signature,
)


@pytest.fixture
def key_ring(mnemonic_keys):
    return build_key_ring(mnemonic_keys)


@pytest.fixture
def addresses(mnemonic_keys):
    return [k.address for k in mnemonic_keys]


def _request(addresses, utxos, amount, lock_time=None, rate=1000):
    return BuildRequest(
        utxos=utxos,
        to_address=addresses[1],
        amount=amount,
        change_address=addresses[0],
        fee_rate_liners_per_kb=rate,
        lock_time=lock_time,
    )


def _verify_all(tx, utxos_by_outpoint):
    for idx, inp in enumerate(tx.inputs):
        utxo = utxos_by_outpoint[(inp.txid, inp.vout)]
        assert verify_input_signature(tx, idx, script_for_address(utxo.address))


class TestBuildAndSign:
    def test_locktime_scenario(self, addresses, key_ring):
        utxo = make_utxo(addresses[0], int(1.5 * COIN))
        signed = build_and_sign(_request(addresses, [utxo], COIN, lock_time=50_000), key_ring)

        tx = deserialize_transaction(bytes.fromhex(signed.hex))
        assert tx.version == 1
        assert tx.locktime == 50_000
        assert [inp.sequence for inp in tx.inputs] == [LOCKTIME_SEQUENCE]
        assert utxo.value - sum(out.value for out in tx.outputs) == signed.fee
        assert signed.fee == 226
        assert signed.change == 49_999_774
        assert signed.lock_time == 50_000
        assert signed.txid == tx.txid
        _verify_all(tx, {(utxo.txid, utxo.vout): utxo})

    def test_outputs_order_and_scripts(self, addresses, key_ring):
        utxo = make_utxo(addresses[0], int(1.5 * COIN))
        signed = build_and_sign(_request(addresses, [utxo], COIN), key_ring)
        tx = deserialize_transaction(bytes.fromhex(signed.hex))

        assert tx.outputs[0].value == COIN
        assert tx.outputs[0].script_pubkey == script_for_address(addresses[1])
        assert tx.outputs[1].value == signed.change
        assert tx.outputs[1].script_pubkey == script_for_address(addresses[0])

    def test_no_locktime_uses_final_sequence(self, addresses, key_ring):
        utxo = make_utxo(addresses[0], COIN)
        signed = build_and_sign(_request(addresses, [utxo], COIN // 2), key_ring)
        tx = deserialize_transaction(bytes.fromhex(signed.hex))
        assert tx.locktime == 0
        assert all(inp.sequence == DEFAULT_SEQUENCE for inp in tx.inputs)
        assert signed.lock_time is None

    def test_multiple_inputs_from_different_addresses(self, addresses, key_ring):
        utxos = [
            make_utxo(addresses[2], 40_000, 1),
            make_utxo(addresses[3], 30_000, 2),
            make_utxo(addresses[4], 20_000, 3),
        ]
        signed = build_and_sign(_request(addresses, utxos, 65_000), key_ring)
        tx = deserialize_transaction(bytes.fromhex(signed.hex))

        assert signed.inputs_used == 2
        assert len(tx.inputs) == 2
        _verify_all(tx, {(u.txid, u.vout): u for u in utxos})
        assert 70_000 - sum(out.value for out in tx.outputs) == signed.fee

    def test_sub_dust_change_has_single_output(self, addresses, key_ring):
        amount = 100_000
        utxo = make_utxo(addresses[0], amount + 192 + 100)
        signed = build_and_sign(_request(addresses, [utxo], amount), key_ring)
        tx = deserialize_transaction(bytes.fromhex(signed.hex))
        assert len(tx.outputs) == 1
        assert signed.change == 0
        assert signed.fee == 292

    def test_vsize_is_serialized_length(self, addresses, key_ring):
        utxo = make_utxo(addresses[0], COIN)
        signed = build_and_sign(_request(addresses, [utxo], 10_000), key_ring)
        assert signed.vsize == len(bytes.fromhex(signed.hex))

    def test_uses_utxo_script_when_present(self, addresses, key_ring):
        utxo = make_utxo(addresses[0], COIN)
        utxo.script_pubkey = script_for_address(addresses[0]).hex()
        signed = build_and_sign(_request(addresses, [utxo], 10_000), key_ring)
        tx = deserialize_transaction(bytes.fromhex(signed.hex))
        _verify_all(tx, {(utxo.txid, utxo.vout): utxo})

    def test_missing_key(self, addresses, key_ring):
        foreign = make_utxo("NbczVeGRYn1NYNvstzcSKpoW8LYeBR8CEt", COIN)
        with pytest.raises(MissingSigningKey) as exc_info:
            build_and_sign(_request(addresses, [foreign], 10_000), key_ring)
        assert exc_info.value.address == foreign.address

    def test_bad_destination(self, addresses, key_ring):
        request = _request(addresses, [make_utxo(addresses[0], COIN)], 10_000)
        request.to_address = "1BoatSLRHtKNngkdXEeobR76b53LETtpyT"
        with pytest.raises(UnresolvableAddress):
            build_and_sign(request, key_ring)

    def test_insufficient(self, addresses, key_ring):
        with pytest.raises(InsufficientFunds):
            build_and_sign(_request(addresses, [make_utxo(addresses[0], 1_000)], 5_000), key_ring)

    @pytest.mark.parametrize("lock_time", [-1, 2**32])
    def test_lock_time_out_of_range(self, addresses, key_ring, lock_time):
        request = _request(addresses, [make_utxo(addresses[0], COIN)], 10_000, lock_time=lock_time)
        with pytest.raises(InvalidLockTime):
            build_and_sign(request, key_ring)

    def test_max_lock_time_accepted(self, addresses, key_ring):
        request = _request(
            addresses, [make_utxo(addresses[0], COIN)], 10_000, lock_time=0xFFFFFFFF
        )
        signed = build_and_sign(request, key_ring)
        assert deserialize_transaction(bytes.fromhex(signed.hex)).locktime == 0xFFFFFFFF

    def test_fee_mismatch_with_plan_raises(self, addresses, key_ring, monkeypatch):
        utxo = make_utxo(addresses[0], COIN)
        monkeypatch.setattr(
            builder,
            "select_utxos",
            lambda *args, **kwargs: SpendPlan(selected=[utxo], change=0, fee=5),
        )
        with pytest.raises(SigningError, match="Fee drift"):
            build_and_sign(_request(addresses, [utxo], 10_000), key_ring)

    def test_deterministic_signatures(self, addresses, key_ring):
        utxo = make_utxo(addresses[0], COIN)
        a = build_and_sign(_request(addresses, [utxo], 10_000), key_ring)
        b = build_and_sign(_request(addresses, [utxo], 10_000), key_ring)
        assert a.hex == b.hex
