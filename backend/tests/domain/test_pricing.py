import pytest
from trekslots.domain import pricing


def test_discount_applied_before_tax() -> None:
    discount = pricing.voucher_discount(2000, discount_percent=10, maximum_discount=150)
    price = pricing.compute(1000, 2, discount)
    assert price.base_amount == 2000
    assert price.discount_amount == 150
    # 5% of 1850 is 92.5, rounded half-up
    assert price.gst_amount == 93
    assert price.final_amount == 1943


def test_no_discount() -> None:
    price = pricing.compute(12500, 3)
    assert price == pricing.PriceBreakdown(
        base_amount=37500,
        gst_amount=1875,
        discount_amount=0,
        final_amount=39375,
    )


def test_discount_never_exceeds_base() -> None:
    price = pricing.compute(100, 1, 500)
    assert price.discount_amount == 100
    assert price.final_amount == 0


def test_voucher_discount_rounds_half_up() -> None:
    # 15% of 1010 is 151.5
    assert pricing.voucher_discount(1010, discount_percent=15, maximum_discount=None) == 152


def test_custom_gst_rate() -> None:
    assert pricing.compute(1000, 1, gst_percent=18).gst_amount == 180


@pytest.mark.parametrize(
    ("base_price", "participants", "discount"),
    [(-1, 1, 0), (1000, 0, 0), (1000, 1, -5)],
)
def test_rejects_invalid_inputs(base_price: int, participants: int, discount: int) -> None:
    with pytest.raises(ValueError):
        pricing.compute(base_price, participants, discount)
