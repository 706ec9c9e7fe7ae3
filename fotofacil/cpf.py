"""
CPF helpers: checksum validation and the 000.000.000-00 input mask.

A CPF has 11 digits. The 10th and 11th are mod-11 check digits computed
over the first 9 and first 10 digits, with weights counting down from 10
and 11 respectively. Sequences of one repeated digit satisfy the checksum
but are not issued, so they are rejected explicitly.
"""

import re

_NON_DIGITS = re.compile(r"\D")


def only_digits(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def _check_digit(digits, length):
    total = sum(int(d) * weight for d, weight in zip(digits[:length], range(length + 1, 1, -1)))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def validate_cpf(cpf: str) -> bool:
    digits = only_digits(cpf)
    if len(digits) != 11:
        return False
    if digits == digits[0] * 11:
        return False
    if _check_digit(digits, 9) != int(digits[9]):
        return False
    return _check_digit(digits, 10) == int(digits[10])


def format_cpf(value: str) -> str:
    """Applies the CPF mask progressively while the user types."""
    digits = only_digits(value)[:11]
    if len(digits) <= 3:
        return digits
    if len(digits) <= 6:
        return f"{digits[:3]}.{digits[3:]}"
    if len(digits) <= 9:
        return f"{digits[:3]}.{digits[3:6]}.{digits[6:]}"
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def mask_cpf(cpf: str) -> str:
    """Log-safe rendition of a CPF."""
    return "***" if cpf else ""
