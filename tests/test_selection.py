"""
Tests for coin selection.
"""

import pytest
from conftest import make_utxo

from baseline_wallet.constants import COIN, DUST_THRESHOLD
from baseline_wallet.errors import InsufficientFunds, InvalidAmount
from baseline_wallet.wallet.selection import estimate_legacy_size, fee_for_size, select_utxos

ADDR = "Nfk9TC8B9eXypnBLFgjiyKFBEFyYJXTxb8"


def _check_balance(plan, amount):
    assert plan.total_value == amount + plan.change + plan.fee
    assert plan.change == 0 or plan.change >= DUST_THRESHOLD


class TestSizeAndFee:
    def test_size_formula(self):
        assert estimate_legacy_size(1, 1) == 192
        assert estimate_legacy_size(1, 2) == 226
        assert estimate_legacy_size(3, 2) == 10 + 3 * 148 + 2 * 34

    def test_fee_rounds_up(self):
        assert fee_for_size(226, 1000) == 226
        assert fee_for_size(192, 1001) == 193
        assert fee_for_size(1, 1) == 1
        assert fee_for_size(226, 0) == 0


class TestSelectUtxos:
    def test_single_input_with_change(self):
        utxos = [make_utxo(ADDR, int(1.5 * COIN))]
        plan = select_utxos(utxos, COIN, 1000)
        assert plan.fee == 226
        assert plan.change == 49_999_774
        assert len(plan.selected) == 1
        _check_balance(plan, COIN)

    def test_largest_first(self):
        utxos = [make_utxo(ADDR, 30_000, 1), make_utxo(ADDR, 50_000, 2), make_utxo(ADDR, 20_000, 3)]
        plan = select_utxos(utxos, 60_000, 1000)
        assert [u.value for u in plan.selected] == [50_000, 30_000]
        assert plan.fee == 374
        assert plan.change == 19_626
        _check_balance(plan, 60_000)

    def test_stops_at_first_covering_prefix(self):
        utxos = [make_utxo(ADDR, 10 * COIN, 1), make_utxo(ADDR, COIN, 2)]
        plan = select_utxos(utxos, COIN, 1000)
        assert [u.value for u in plan.selected] == [10 * COIN]

    def test_sub_dust_change_goes_to_fee(self):
        amount = 100_000
        utxos = [make_utxo(ADDR, amount + 192 + 300)]
        plan = select_utxos(utxos, amount, 1000)
        assert plan.change == 0
        assert plan.fee == 492
        _check_balance(plan, amount)

    def test_change_dropping_below_dust_after_second_output(self):
        amount = 100_000
        utxos = [make_utxo(ADDR, amount + 192 + 560)]
        plan = select_utxos(utxos, amount, 1000)
        assert plan.change == 0
        assert plan.fee == 752
        _check_balance(plan, amount)

    def test_exact_change_at_dust(self):
        amount = 100_000
        utxos = [make_utxo(ADDR, amount + 226 + DUST_THRESHOLD)]
        plan = select_utxos(utxos, amount, 1000)
        assert plan.change == DUST_THRESHOLD
        _check_balance(plan, amount)

    def test_zero_fee_rate(self):
        plan = select_utxos([make_utxo(ADDR, 10_000)], 5_000, 0)
        assert plan.fee == 0
        assert plan.change == 5_000

    def test_insufficient_funds(self):
        with pytest.raises(InsufficientFunds) as exc_info:
            select_utxos([make_utxo(ADDR, 1_000)], 5_000, 1000)
        assert exc_info.value.available == 1_000
        assert exc_info.value.required == 5_192

    def test_insufficient_funds_empty(self):
        with pytest.raises(InsufficientFunds) as exc_info:
            select_utxos([], 5_000, 1000)
        assert exc_info.value.available == 0

    def test_amount_plus_fee_must_be_covered(self):
        # Covers the amount but not the fee
        with pytest.raises(InsufficientFunds):
            select_utxos([make_utxo(ADDR, 5_000)], 5_000, 1000)

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount(self, amount):
        with pytest.raises(InvalidAmount):
            select_utxos([make_utxo(ADDR, 10_000)], amount, 1000)

    def test_negative_fee_rate(self):
        with pytest.raises(InvalidAmount):
            select_utxos([make_utxo(ADDR, 10_000)], 1_000, -1)

    def test_input_list_not_mutated(self):
        utxos = [make_utxo(ADDR, 1_000, 1), make_utxo(ADDR, 9_000, 2)]
        select_utxos(utxos, 500, 1000)
        assert [u.value for u in utxos] == [1_000, 9_000]
