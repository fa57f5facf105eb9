"""Parsing utilities for chain data."""


def parse_hex_int(hex_value: str | None, default: int = 0) -> int:
    """Parse hex string to integer.

    Args:
        hex_value: Hex-encoded string or None
        default: Default value if hex_value is None

    Returns:
        int: Parsed integer value

    Example:
        >>> parse_hex_int("0xff")
        255
        >>> parse_hex_int(None, 0)
        0
    """
    if hex_value is None:
        return default
    return int(hex_value, 16)


def hex_to_bytes(hex_value: str) -> bytes:
    """Decode a hex string with or without a ``0x`` prefix.

    Raises:
        ValueError: If the string is not valid hex
    """
    return bytes.fromhex(hex_value.removeprefix("0x"))


def normalize_hex(hex_value: str) -> str:
    """Lower-case a hex string and make sure it carries a ``0x`` prefix.

    Example:
        >>> normalize_hex("ABCD")
        '0xabcd'
    """
    return "0x" + hex_value.lower().removeprefix("0x")


__all__ = [
    "hex_to_bytes",
    "normalize_hex",
    "parse_hex_int",
]
