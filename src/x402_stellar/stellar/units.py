"""XLM / stroop conversion (1 XLM = 10^7 stroops)."""

from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Union

STROOPS_PER_XLM = 10_000_000


def _to_decimal(value: Union[str, int, Decimal], name: str) -> Decimal:
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid {name} amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid {name} amount: {value!r}")
    return amount


def xlm_to_stroops(xlm: Union[str, int, Decimal]) -> str:
    """Convert XLM to stroops, rounding down to a whole stroop.

    >>> xlm_to_stroops("0.1")
    '1000000'
    """
    amount = _to_decimal(xlm, "XLM") * STROOPS_PER_XLM
    return str(int(amount.to_integral_value(rounding=ROUND_FLOOR)))


def stroops_to_xlm(stroops: Union[str, int]) -> str:
    """Convert stroops to XLM, without trailing zeros.

    >>> stroops_to_xlm("1000000")
    '0.1'
    """
    amount = _to_decimal(stroops, "stroop")
    if amount != amount.to_integral_value():
        raise ValueError(f"Invalid stroop amount: {stroops!r}")
    xlm = amount / STROOPS_PER_XLM
    return format(xlm.normalize(), "f")
