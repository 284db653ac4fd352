"""
Address encoding helpers.
"""
from mini_amm.crypto import ADDRESS_LENGTH


def to_address(value) -> bytes:
    """
    Normalize an address given as raw bytes or a hex string.

    Accepts 20 raw bytes, or 40 hex digits with or without a ``0x`` prefix.
    Raises ValueError for anything else.
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value[:2].lower() == '0x' else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise ValueError(f"Invalid hex address: {value!r}") from e
    else:
        raise ValueError(f"Unsupported address type: {type(value).__name__}")

    if len(raw) != ADDRESS_LENGTH:
        raise ValueError(
            f"Address must be {ADDRESS_LENGTH} bytes, got {len(raw)}"
        )
    return raw

def address_to_hex(address: bytes) -> str:
    """Render an address as a 0x-prefixed hex string."""
    return '0x' + address.hex()
