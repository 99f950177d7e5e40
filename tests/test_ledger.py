from decimal import Decimal

import pytest

from services import ledger


def test_commission_and_net_for_example_order():
    assert ledger.commission_for(Decimal('200.00'), Decimal('0.15')) == Decimal('30.00')
    assert ledger.net_payout(Decimal('200.00'), Decimal('0.15')) == Decimal('170.00')


def test_commission_rounds_half_up_to_paise():
    # 10.10 * 0.15 = 1.515
    assert ledger.commission_for('10.10', '0.15') == Decimal('1.52')
    # 10.03 * 0.15 = 1.5045
    assert ledger.commission_for('10.03', '0.15') == Decimal('1.50')


def test_float_inputs_do_not_leak_binary_noise():
    assert ledger.to_money(0.1 + 0.2) == Decimal('0.30')
    assert ledger.effective_rate(0.15) == Decimal('0.15')


def test_effective_rate_falls_back_to_default():
    assert ledger.effective_rate(None) == ledger.DEFAULT_PLATFORM_RATE
    assert ledger.effective_rate(None, '0.2') == Decimal('0.2')
    assert ledger.effective_rate(Decimal('0.1'), '0.2') == Decimal('0.1')
    assert ledger.effective_rate(Decimal('0'), '0.2') == Decimal('0')


def test_summarize_matches_single_order_math():
    count, gross, commission, net = ledger.summarize([Decimal('200.00')], Decimal('0.15'))
    assert (count, gross, commission, net) == (1, Decimal('200.00'), Decimal('30.00'), Decimal('170.00'))


def test_summarize_empty():
    assert ledger.summarize([], Decimal('0.15')) == (0, Decimal('0.00'), Decimal('0.00'), Decimal('0.00'))


def test_per_order_exact_commissions_agree_with_aggregate():
    amounts = [Decimal('33.33'), Decimal('33.33'), Decimal('33.34'), Decimal('10.10'), Decimal('0.07')]
    rate = Decimal('0.175')
    per_order = ledger.to_money(sum(ledger.exact_commission(a, rate) for a in amounts))
    _, gross, commission, net = ledger.summarize(amounts, rate)
    assert per_order == commission
    assert net == gross - commission


@pytest.mark.parametrize("raw, expected", [
    (20, Decimal('0.20')),
    ('20', Decimal('0.20')),
    (0.5, Decimal('0.5')),
    (150, Decimal('1')),
    (-5, Decimal('0')),
    (100, Decimal('1')),
    (1, Decimal('1')),
    (0, Decimal('0')),
    ('12.5', Decimal('0.125')),
])
def test_normalize_commission_rate(raw, expected):
    assert ledger.normalize_commission_rate(raw) == expected


@pytest.mark.parametrize("raw", [None, '', '   '])
def test_blank_rate_means_platform_default(raw):
    assert ledger.normalize_commission_rate(raw) is None


@pytest.mark.parametrize("raw", [True, 'abc', 'nan', 'Infinity'])
def test_normalize_rejects_non_numbers(raw):
    with pytest.raises(ValueError):
        ledger.normalize_commission_rate(raw)


@pytest.mark.parametrize("amounts", [['10.10'], ['10.03', '0.01'], ['99.99', '0.005', '12.345']])
def test_summarize_net_is_gross_less_commission(amounts):
    count, gross, commission, net = ledger.summarize(amounts, '0.15')
    assert count == len(amounts)
    assert net == ledger.net_payout(gross, '0.15') == gross - commission
