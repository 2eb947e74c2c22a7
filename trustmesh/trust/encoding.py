"""
Token Encoding Helpers

Tokens are the base64 encoding of a number's decimal text, truncated.
The decimal text uses shortest round-trip formatting with the exponent
rules of ECMAScript Number::toString (``0`` not ``0.0``, ``1e-7`` not
``1e-07``, plain notation for 1e-6 <= |x| < 1e21), so the same inputs yield
the same tokens regardless of which runtime stamped the record.
"""

from __future__ import annotations

import base64
import math
from decimal import Decimal

# Plain (non-exponential) notation holds for decimal point positions in
# (PLAIN_MIN_POINT, PLAIN_MAX_POINT].
PLAIN_MIN_POINT = -6
PLAIN_MAX_POINT = 21


def number_text(value: float) -> str:
    """Shortest round-trip decimal text of value."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    if value < 0:
        return "-" + number_text(-value)

    _, digit_tuple, exponent = Decimal(repr(float(value))).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1

    s = "".join(str(d) for d in digits)
    k = len(s)
    n = exponent + k  # value == 0.s * 10**n

    if k <= n <= PLAIN_MAX_POINT:
        return s + "0" * (n - k)
    if 0 < n <= PLAIN_MAX_POINT:
        return s[:n] + "." + s[n:]
    if PLAIN_MIN_POINT < n <= 0:
        return "0." + "0" * (-n) + s

    e = n - 1
    suffix = f"e{'+' if e >= 0 else '-'}{abs(e)}"
    if k == 1:
        return s + suffix
    return s[0] + "." + s[1:] + suffix


def encode_number(value: float, length: int) -> str:
    """Base64 (standard alphabet) of number_text(value), first `length` chars."""
    encoded = base64.b64encode(number_text(value).encode("ascii")).decode("ascii")
    return encoded[:length]
