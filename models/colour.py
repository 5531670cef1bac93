"""Colour conversion from controller hex strings to Hue xy coordinates.

The conversion is a lossy, gamut-unaware approximation: it applies sRGB
gamma expansion and a fixed wide-gamut RGB to XYZ matrix, then projects to
chromaticity. It does not clamp the result into a lamp's colour gamut, so it
is not colorimetrically exact. The bridge maps out-of-gamut points to the
nearest reproducible colour itself.
"""

import string

from core.errors import InvalidFormat

# Fallback chromaticity for pure black (X + Y + Z == 0)
NEUTRAL_XY = (0.33, 0.33)

# Wide-gamut RGB -> XYZ (D65)
RGB_TO_XYZ = (
    (0.664511, 0.154324, 0.162028),
    (0.283881, 0.668433, 0.047685),
    (0.000088, 0.072310, 0.986039),
)

_HEX_DIGITS = set(string.hexdigits)


def parse_hex(value: str) -> tuple[int, int, int]:
    """Split a 6-digit hex string (optionally prefixed with '#') into channels.

    Raises:
        InvalidFormat: If the value is not exactly six hex digits
    """
    if not isinstance(value, str):
        raise InvalidFormat(str(value))

    digits = value[1:] if value.startswith('#') else value
    if len(digits) != 6 or not all(c in _HEX_DIGITS for c in digits):
        raise InvalidFormat(value)

    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def gamma_expand(channel: float) -> float:
    """sRGB companding: linear below 0.04045, power law (2.4) above."""
    if channel > 0.04045:
        return ((channel + 0.055) / 1.055) ** 2.4
    return channel / 12.92


def hex_to_xy(value: str) -> tuple[float, float]:
    """Convert an RGB hex string like '#FF5500' to Hue xy coordinates.

    Args:
        value: Six hex digits, with or without a leading '#'

    Returns:
        (x, y) chromaticity pair, each within 0..1

    Raises:
        InvalidFormat: If the value is not exactly six hex digits
    """
    rgb = [gamma_expand(c / 255.0) for c in parse_hex(value)]

    X, Y, Z = (sum(k * c for k, c in zip(row, rgb)) for row in RGB_TO_XYZ)

    total = X + Y + Z
    if total == 0:
        return NEUTRAL_XY

    return X / total, Y / total
