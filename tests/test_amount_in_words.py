from decimal import Decimal

import pytest

from app.services.amount_in_words import ONES, TENS, amount_to_words, integer_to_words


@pytest.mark.parametrize("amount,words", [
    (0, "Zero Rupees only"),
    (1, "One Rupees only"),
    (15, "Fifteen Rupees only"),
    (40, "Forty Rupees only"),
    (100, "One Hundred Rupees only"),
    (105, "One Hundred and Five Rupees only"),
    (1180, "One Thousand One Hundred and Eighty Rupees only"),
    (100000, "One Lakh Rupees only"),
    (101000, "One Lakh One Thousand Rupees only"),
    (
        12345678,
        "One Crore Twenty Three Lakh Forty Five Thousand Six Hundred and Seventy Eight Rupees only",
    ),
    (1000000000, "One Hundred Crore Rupees only"),
])
def test_whole_rupees(amount, words):
    assert amount_to_words(amount) == words


@pytest.mark.parametrize("amount,words", [
    ("12.50", "Twelve Rupees and Fifty Paise only"),
    ("0.05", "Zero Rupees and Five Paise only"),
    ("10.999", "Eleven Rupees only"),
    ("10.005", "Ten Rupees and One Paise only"),
    ("-820", "Minus Eight Hundred and Twenty Rupees only"),
    ("-0.50", "Minus Zero Rupees and Fifty Paise only"),
])
def test_paise_rounding_and_sign(amount, words):
    assert amount_to_words(Decimal(amount)) == words


def test_accepts_floats_and_strings():
    assert amount_to_words(0.1 + 0.2) == "Zero Rupees and Thirty Paise only"
    assert amount_to_words("2500") == "Two Thousand Five Hundred Rupees only"


def test_large_crore_counts_use_indian_grouping():
    assert integer_to_words(1234567890) == (
        "One Hundred and Twenty Three Crore Forty Five Lakh Sixty Seven Thousand "
        "Eight Hundred and Ninety"
    )
    assert integer_to_words(10 ** 12) == "One Lakh Crore"


# --- Reading the words back ---

_UNITS = {word: value for value, word in enumerate(ONES) if word}
_UNITS.update({word: value * 10 for value, word in enumerate(TENS) if word})
_GROUPS = {"Thousand": 1_000, "Lakh": 100_000}


def _words_to_int(words):
    total, current = 0, 0
    for word in words.split():
        if word in ("and", "Zero"):
            continue
        if word in _UNITS:
            current += _UNITS[word]
        elif word == "Hundred":
            current *= 100
        elif word in _GROUPS:
            total += current * _GROUPS[word]
            current = 0
        elif word == "Crore":
            total = (total + current) * 10_000_000
            current = 0
        else:
            raise AssertionError(f"unexpected word {word!r}")
    return total + current


def _words_to_amount(text):
    assert text.endswith(" only")
    text = text[: -len(" only")]
    sign = 1
    if text.startswith("Minus "):
        sign, text = -1, text[len("Minus "):]
    rupees, _, paise = text.partition(" Rupees")
    value = Decimal(_words_to_int(rupees))
    if paise:
        assert paise.startswith(" and ") and paise.endswith(" Paise")
        value += Decimal(_words_to_int(paise[len(" and "): -len(" Paise")])) / 100
    return sign * value


@pytest.mark.parametrize("amount", [
    "0", "7", "13", "20", "21", "99", "100", "101", "110", "999",
    "1000", "1001", "9999", "10000", "99999", "100000", "100001",
    "999999.99", "1000000", "9999999", "10000000", "10000001",
    "123456789.01", "999999999.99", "98765432101.50", "-4321.09",
])
def test_words_read_back_to_the_amount(amount):
    assert _words_to_amount(amount_to_words(Decimal(amount))) == Decimal(amount)
