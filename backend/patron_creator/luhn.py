"""Luhn check-digit helpers for patron barcodes."""

from __future__ import annotations


def checksum(code: str | int) -> int:
    """Return the Luhn sum modulo 10 of *code*, check digit included.

    The rightmost digit is taken as the check digit; every second digit to
    its left is doubled and reduced modulo 9, a multiple of 9 counting as 9
    (so a doubled 0 adds 9).
    """
    digits = [int(ch) for ch in reversed(str(code))]
    if not digits:
        raise ValueError("Cannot compute a Luhn checksum of an empty code")
    check_digit, rest = digits[0], digits[1:]
    total = check_digit
    for index, digit in enumerate(rest):
        if index % 2 == 0:
            total += (digit * 2) % 9 or 9
        else:
            total += digit
    return total % 10


def check_digit(partial: str | int) -> int:
    return (10 - checksum(f"{partial}0")) % 10


def calculate(partial: str | int) -> str:
    """Return *partial* with its Luhn check digit appended."""
    return f"{partial}{check_digit(partial)}"


def validate(code: str | int) -> bool:
    code = str(code)
    if not code.isdigit():
        return False
    return checksum(code) == 0


def next_in_sequence(barcode: str) -> str:
    """Return the Luhn-valid barcode following *barcode* in its sequence.

    The check digit is stripped, the remaining digits incremented by one
    (keeping their width) and a fresh check digit appended.
    """
    partial = barcode[:-1]
    following = str(int(partial) + 1).zfill(len(partial))
    if len(following) != len(partial):
        raise ValueError(f"Barcode sequence exhausted after {barcode}")
    return calculate(following)
