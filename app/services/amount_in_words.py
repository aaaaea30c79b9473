"""Rupee amounts in words using Indian grouping (thousand, lakh, crore)."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union


ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
    "Seventeen", "Eighteen", "Nineteen",
]
TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

CRORE = 10_000_000
LAKH = 100_000
THOUSAND = 1_000


def _below_hundred(num: int) -> str:
    if num < 20:
        return ONES[num]
    return TENS[num // 10] + (" " + ONES[num % 10] if num % 10 else "")


def _below_thousand(num: int) -> str:
    hundreds, rest = divmod(num, 100)
    if not hundreds:
        return _below_hundred(rest)
    words = f"{ONES[hundreds]} Hundred"
    if rest:
        words += " and " + _below_hundred(rest)
    return words


def integer_to_words(num: int) -> str:
    """
    Spell a non-negative integer in Indian numbering.

    >>> integer_to_words(101000)
    'One Lakh One Thousand'
    >>> integer_to_words(1234567890)
    'One Hundred and Twenty Three Crore Forty Five Lakh Sixty Seven Thousand Eight Hundred and Ninety'
    """
    if num == 0:
        return "Zero"

    parts = []
    crores, num = divmod(num, CRORE)
    if crores:
        # Above 99 crore the crore count is itself spelled in Indian grouping
        parts.append(integer_to_words(crores) + " Crore")
    lakhs, num = divmod(num, LAKH)
    if lakhs:
        parts.append(_below_hundred(lakhs) + " Lakh")
    thousands, num = divmod(num, THOUSAND)
    if thousands:
        parts.append(_below_hundred(thousands) + " Thousand")
    if num:
        parts.append(_below_thousand(num))
    return " ".join(parts)


def amount_to_words(amount: Union[Decimal, int, float, str]) -> str:
    """
    Convert an amount to words for printing on invoices.

    The amount is rounded half-up to paise first, so 10.999 reads as
    Eleven Rupees.

    >>> amount_to_words(Decimal("1180.00"))
    'One Thousand One Hundred and Eighty Rupees only'
    >>> amount_to_words("12.50")
    'Twelve Rupees and Fifty Paise only'
    """
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    prefix = ""
    if value < 0:
        prefix = "Minus "
        value = -value

    rupees = int(value)
    paise = int((value - rupees) * 100)

    words = f"{prefix}{integer_to_words(rupees)} Rupees"
    if paise:
        words += f" and {integer_to_words(paise)} Paise"
    return words + " only"
