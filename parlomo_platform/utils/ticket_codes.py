"""
Generators for ticket codes, ticket numbers, barcodes and order numbers.
"""

import re
import secrets
from datetime import datetime
from typing import Optional, Set

TICKET_CODE_PREFIX = "TKT-"
TICKET_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TICKET_CODE_LENGTH = 9
TICKET_CODE_PATTERN = re.compile(r"^TKT-[A-Z0-9]{9}$")

BARCODE_PREFIX = "200"


def generate_ticket_code() -> str:
    """Random human-friendly ticket code, e.g. ``TKT-7KQ2M9XHP``."""
    suffix = "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(TICKET_CODE_LENGTH))
    return f"{TICKET_CODE_PREFIX}{suffix}"


def generate_ticket_codes(count: int, existing: Optional[Set[str]] = None) -> list[str]:
    """Generate ``count`` distinct codes that are not in ``existing``."""
    taken = set(existing or ())
    codes: list[str] = []
    while len(codes) < count:
        code = generate_ticket_code()
        if code in taken:
            continue
        taken.add(code)
        codes.append(code)
    return codes


def is_valid_ticket_code(code: Optional[str]) -> bool:
    return bool(code) and bool(TICKET_CODE_PATTERN.match(code))


def parse_ticket_code(code: Optional[str]) -> Optional[str]:
    """Return the random part of a ticket code, or None when malformed."""
    if not code:
        return None
    normalized = code.strip().upper()
    if not is_valid_ticket_code(normalized):
        return None
    return normalized[len(TICKET_CODE_PREFIX):]


def ean13_check_digit(first_twelve: str) -> int:
    """EAN-13 check digit for a 12 digit string."""
    if len(first_twelve) != 12 or not first_twelve.isdigit():
        raise ValueError("EAN-13 body must be exactly 12 digits")
    total = sum(
        int(digit) * (3 if index % 2 else 1)
        for index, digit in enumerate(first_twelve)
    )
    return (10 - total % 10) % 10


def generate_barcode_number(prefix: str = BARCODE_PREFIX) -> str:
    """Random in-store EAN-13 number (``200`` prefix range)."""
    body_length = 12 - len(prefix)
    body = prefix + "".join(secrets.choice("0123456789") for _ in range(body_length))
    return f"{body}{ean13_check_digit(body)}"


def is_valid_barcode(barcode: str) -> bool:
    if len(barcode) != 13 or not barcode.isdigit():
        return False
    return ean13_check_digit(barcode[:12]) == int(barcode[12])


def format_order_number(year: int, sequence: int) -> str:
    """Order number such as ``ORD-2026-000042``."""
    return f"ORD-{year}-{sequence:06d}"


def order_number_prefix(moment: Optional[datetime] = None) -> str:
    year = (moment or datetime.now()).year
    return f"ORD-{year}-"
