"""Checksum validators used to reject structurally invalid matches."""


def luhn_check(value: str) -> bool:
    """
    Validate a number with the Luhn algorithm.

    Non-digit characters (spaces, dashes) are ignored.
    """
    digits = [int(c) for c in value if c.isdigit()]
    if len(digits) < 2:
        return False

    total = 0
    for index, digit in enumerate(reversed(digits)):
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_credit_card(value: str) -> bool:
    """Card numbers are 13-19 digits, not all identical, and Luhn-valid."""
    digits = "".join(c for c in value if c.isdigit())
    if not 13 <= len(digits) <= 19:
        return False
    if len(set(digits)) == 1:
        return False
    return luhn_check(digits)


def validate_ssn(value: str) -> bool:
    """Reject SSNs with area 000, 666, or 9xx, group 00, or serial 0000."""
    digits = "".join(c for c in value if c.isdigit())
    if len(digits) != 9:
        return False
    area, group, serial = digits[:3], digits[3:5], digits[5:]
    if area in ("000", "666") or area.startswith("9"):
        return False
    return group != "00" and serial != "0000"
