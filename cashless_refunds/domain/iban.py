"""IBAN structural and MOD-97 checksum validation"""

import logging
import re
from typing import Dict, Iterable, Optional, Pattern

logger = logging.getLogger(__name__)

# Fixed length and layout per supported country; ASCII digits only
IBAN_PATTERNS: Dict[str, Pattern[str]] = {
    "BE": re.compile(r"^BE\d{14}$", re.ASCII),  # 16 chars
    "FR": re.compile(r"^FR\d{12}[A-Z0-9]{11}\d{2}$", re.ASCII),  # 27 chars
    "DE": re.compile(r"^DE\d{20}$", re.ASCII),  # 22 chars
    "NL": re.compile(r"^NL\d{2}[A-Z]{4}\d{10}$", re.ASCII),  # 18 chars
    "IT": re.compile(r"^IT\d{2}[A-Z]\d{10}[A-Z0-9]{12}$", re.ASCII),  # 27 chars
    "ES": re.compile(r"^ES\d{22}$", re.ASCII),  # 24 chars
    "PT": re.compile(r"^PT\d{23}$", re.ASCII),  # 25 chars
    "LU": re.compile(r"^LU\d{5}[A-Z0-9]{13}$", re.ASCII),  # 20 chars
    "AT": re.compile(r"^AT\d{18}$", re.ASCII),  # 20 chars
    "CH": re.compile(r"^CH\d{7}[A-Z0-9]{12}$", re.ASCII),  # 21 chars
}


def normalize_account(raw: Optional[str]) -> str:
    """Strip all whitespace and upper-case"""
    if not raw:
        return ""
    return re.sub(r"\s+", "", raw).upper()


def checksum_remainder(iban: str) -> int:
    """
    Remainder of the rearranged IBAN numeral modulo 97.

    The first four characters move to the end and each letter becomes
    ord(letter) - 55 (A=10 ... Z=35). The remainder is folded one digit at
    a time so the numeral never has to be materialised as an integer.
    """
    rearranged = iban[4:] + iban[:4]
    numeral = "".join(str(ord(ch) - 55) if ch.isalpha() else ch for ch in rearranged)

    remainder = 0
    for digit in numeral:
        remainder = (remainder * 10 + int(digit)) % 97
    return remainder


def is_valid_account(raw: Optional[str], countries: Optional[Iterable[str]] = None) -> bool:
    """
    Validate an IBAN against its country pattern and the MOD-97 checksum.

    Args:
        raw: Account number as entered (spaces and lower case tolerated)
        countries: Optional restriction on accepted country codes

    Returns:
        True only when the structure matches and the remainder equals 1.
        Never raises; unsupported countries fail closed.
    """
    iban = normalize_account(raw)
    if len(iban) < 4:
        return False

    country = iban[:2]
    pattern = IBAN_PATTERNS.get(country)
    if pattern is None or (countries is not None and country not in set(countries)):
        logger.debug("Unsupported IBAN country", extra={"country": country})
        return False

    if not pattern.match(iban):
        logger.debug("IBAN does not match country layout", extra={"country": country})
        return False

    return checksum_remainder(iban) == 1
