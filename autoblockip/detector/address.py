# AutoBlockIP - IPv4 address validation
from __future__ import annotations

from autoblockip.errors import ValidationError


def is_valid_ipv4(value: str | None) -> bool:
    """True for a dotted quad whose four parts are integers in 0-255."""
    if value is None or not value.strip():
        return False
    parts = value.split(".")
    if len(parts) != 4:
        return False
    for part in parts:
        # str.isdigit() also accepts superscripts and other unicode digits
        if not part or not part.isascii() or not part.isdigit():
            return False
        if int(part) > 255:
            return False
    return True


def require_ipv4(value: str | None) -> str:
    if not is_valid_ipv4(value):
        raise ValidationError(f"Not an IPv4 address: {value!r}")
    return value
