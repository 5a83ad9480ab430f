from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


@dataclass(frozen=True)
class FeeSplit:
    gross: Decimal
    platform_fee: Decimal
    salon_amount: Decimal
    fee_percentage: Decimal


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 499.99 from turning into binary noise
    return Decimal(str(value))


def compute_fee_split(gross, fee_percentage) -> FeeSplit:
    """Split a captured amount into platform commission and salon share.

    The fee is rounded (half up, to the paisa) and the salon receives the
    remainder, so ``platform_fee + salon_amount == gross`` always holds.
    """
    gross = to_decimal(gross).quantize(CENT)
    pct = to_decimal(fee_percentage)

    platform_fee = (gross * pct).quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 100
    platform_fee = platform_fee.quantize(CENT)
    salon_amount = gross - platform_fee

    return FeeSplit(
        gross=gross,
        platform_fee=platform_fee,
        salon_amount=salon_amount,
        fee_percentage=pct,
    )


def to_minor_units(amount) -> int:
    """Rupees to paise, as the gateway expects."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount) -> Decimal:
    return (Decimal(int(amount or 0)) / 100).quantize(CENT)
