from decimal import Decimal

from disperse import AssetMode, build_request, calculate_aggregate, format_amount, parse_recipients

from conftest import ALICE, BOB, NFT


def test_native_total_and_remaining():
    text = f"{ALICE}=1.5\n{BOB} 2.5"
    request = build_request(text, AssetMode.NATIVE, None, 18, balance=Decimal("10"))
    agg = request.aggregate
    assert agg.count == 2
    assert agg.total_display == "4.00000"
    assert agg.remaining_display == "6.00000"
    assert request.total_units == 4 * 10 ** 18


def test_remaining_goes_negative():
    request = build_request(f"{ALICE}=3\n{BOB}=3", AssetMode.NATIVE, None, 18, balance=Decimal("5"))
    assert request.aggregate.remaining == Decimal("-1")
    assert request.aggregate.remaining_display == "-1.00000"


def test_unknown_balance_has_no_remaining():
    agg = build_request(f"{ALICE}=1", AssetMode.NATIVE, None, 18).aggregate
    assert agg.balance is None
    assert agg.remaining is None
    assert agg.remaining_display == ""


def test_invalid_lines_excluded_from_totals():
    text = f"{ALICE}=1\n{BOB}=oops\n{BOB}=2"
    request = build_request(text, AssetMode.NATIVE, None, 18, balance=Decimal("5"))
    assert request.aggregate.count == 2
    assert request.aggregate.total == Decimal("3")
    assert len(request.errors) == 1


def test_nft_mode_counts_only():
    request = build_request(f"{ALICE}=1\n{BOB}=2", AssetMode.NFT, NFT, 0, balance=Decimal("4"))
    agg = request.aggregate
    assert agg.count == 2
    assert agg.total is None
    assert agg.remaining is None
    assert request.values == [1, 2]


def test_empty_input():
    agg = calculate_aggregate(parse_recipients("", AssetMode.NATIVE).entries, AssetMode.NATIVE, Decimal("1"))
    assert agg.count == 0
    assert agg.total_display == "0.00000"
    assert agg.remaining_display == "1.00000"


def test_display_rounds_half_up():
    assert format_amount(Decimal("0.000005")) == "0.00001"
    assert format_amount(Decimal("1.234564")) == "1.23456"
    assert format_amount(Decimal("2")) == "2.00000"
