"""Character allow-listing and amount normalization for payment files"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from cashless_refunds.domain.exceptions import AmountValidationError

MAX_TEXT_LENGTH = 70

CENT = Decimal("0.01")
DEFAULT_MINIMUM_AMOUNT = CENT
DEFAULT_MAXIMUM_AMOUNT = Decimal("999999999.99")

# Latin letters incl. accented (U+00C0-U+00FF minus multiplication/division signs),
# digits, space and the bank's punctuation set
ALLOWED_CHARACTERS = "A-Za-z0-9À-ÖØ-öø-ÿ/\\-?:().,'+ "

_ALLOWED_TEXT = re.compile(f"^[{ALLOWED_CHARACTERS}]*$")
_DISALLOWED_CHAR = re.compile(f"[^{ALLOWED_CHARACTERS}]")
_WHITESPACE_RUN = re.compile(r"\s+")


def contains_only_allowed(text: str) -> bool:
    return bool(_ALLOWED_TEXT.match(text or ""))


def sanitize_text(text: Any, max_length: int = MAX_TEXT_LENGTH) -> str:
    """
    Make free text safe for the payment file.

    Disallowed characters become spaces, whitespace runs collapse to one
    space, and the result is trimmed and capped at ``max_length``.
    """
    if not text:
        return ""
    cleaned = _DISALLOWED_CHAR.sub(" ", str(text))
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()
    return cleaned[:max_length].rstrip()


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(CENT, rounding=ROUND_HALF_UP):.2f}"


def normalize_amount(
    value: Any,
    minimum: Decimal = DEFAULT_MINIMUM_AMOUNT,
    maximum: Decimal = DEFAULT_MAXIMUM_AMOUNT,
) -> Decimal:
    """
    Validate a monetary value and return it with exactly two decimals.

    Raises:
        AmountValidationError: non-numeric, non-finite, below ``minimum``,
            above ``maximum`` or carrying sub-cent digits
    """
    if isinstance(value, bool) or value is None:
        raise AmountValidationError(f"Amount must be numeric, got {value!r}")

    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise AmountValidationError(f"Amount must be numeric, got {value!r}")

    if not amount.is_finite():
        raise AmountValidationError(f"Amount must be finite, got {value!r}")

    if amount < minimum:
        raise AmountValidationError(f"Amount {amount} is below the minimum of {format_amount(minimum)}")

    if amount > maximum:
        raise AmountValidationError(f"Amount {amount} exceeds the maximum of {format_amount(maximum)}")

    if amount != amount.quantize(CENT, rounding=ROUND_HALF_UP):
        raise AmountValidationError(f"Amount {amount} has more than 2 decimal digits")

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)
