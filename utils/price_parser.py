"""
Price token grammar shared by every extraction stage

A price token is an optional currency marker followed by digit groups with
optional thousands separators and an optional two-digit decimal part. The
last separator is decimal only when it is followed by one or two digits;
any other separator is a thousands grouping:

    "66.791"    -> 66791.0
    "1.234,56"  -> 1234.56
    "$ 89.500"  -> 89500.0
"""
import math
import re
from typing import Optional

# Letter codes only count as whole tokens ("cars" holds no ARS marker)
CURRENCY_MARKER = r"(?:(?<![A-Za-z])(?:U\$S|US\$|USD|ARS)(?![A-Za-z])|\$)"

_AMOUNT = r"(?<![\d.,])(?:\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{2})?|\d+(?:[.,]\d{2})?)(?![\d])"

# Currency marker mandatory: used by the line scanners, where a bare number
# is far more likely to be a dimension or a model figure than a price.
CURRENCY_PRICE_PATTERN = re.compile(
    rf"(?P<currency>{CURRENCY_MARKER})\s*(?P<amount>{_AMOUNT})",
    re.IGNORECASE,
)

# Currency marker optional
PRICE_PATTERN = re.compile(
    rf"(?P<currency>{CURRENCY_MARKER})?\s*(?P<amount>{_AMOUNT})",
    re.IGNORECASE,
)

_NON_NUMERIC = re.compile(r"[^\d.,\-]")


def find_price(text: str, require_currency: bool = True) -> Optional[re.Match]:
    """Return the first price token in ``text``, or None"""
    pattern = CURRENCY_PRICE_PATTERN if require_currency else PRICE_PATTERN
    return pattern.search(text)


def parse_price(value) -> Optional[float]:
    """
    Parse a price token into a float

    Args:
        value: Raw token such as "$ 1.234,56"; anything else is stringified

    Returns:
        Parsed value, or None when no finite number can be recovered
    """
    if value is None:
        return None

    try:
        cleaned = _NON_NUMERIC.sub("", str(value))
    except ValueError:
        # int past the interpreter's str conversion limit
        return None
    negative = cleaned.startswith("-")
    cleaned = cleaned.replace("-", "")

    if not any(ch.isdigit() for ch in cleaned):
        return None

    last_sep = max(cleaned.rfind("."), cleaned.rfind(","))
    if last_sep == -1:
        number = cleaned
    else:
        integer_digits = re.sub(r"[.,]", "", cleaned[:last_sep]) or "0"
        fraction = re.sub(r"[.,]", "", cleaned[last_sep + 1:])
        if 0 < len(fraction) <= 2:
            number = f"{integer_digits}.{fraction}"
        else:
            number = integer_digits + fraction

    try:
        parsed = float(number)
    except ValueError:
        return None

    if not math.isfinite(parsed):
        return None
    return -parsed if negative else parsed
