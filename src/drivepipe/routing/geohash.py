"""Geohash encoding.

Standard base-32 geohash: bits interleave longitude and latitude bisection,
longitude first, five bits per character. The output is used as an
equality key for route matching, so it must match other conforming
encoders byte for byte.
"""

from __future__ import annotations

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"


def encode(latitude: float, longitude: float, precision: int = 5) -> str:
    """Encode a coordinate as a geohash of exactly *precision* characters.

    Parameters
    ----------
    latitude : float
        Latitude in degrees, ``[-90, 90]``.
    longitude : float
        Longitude in degrees, ``[-180, 180]``.
    precision : int
        Number of output characters. Must be positive.

    Returns
    -------
    str
        Geohash string.
    """
    if precision < 1:
        raise ValueError(f"precision must be positive (got {precision})")

    lat_lo, lat_hi = -90.0, 90.0
    lng_lo, lng_hi = -180.0, 180.0
    chars: list[str] = []
    bits = 0
    bit_count = 0
    even = True

    while len(chars) < precision:
        if even:
            mid = (lng_lo + lng_hi) / 2
            if longitude >= mid:
                bits = (bits << 1) | 1
                lng_lo = mid
            else:
                bits <<= 1
                lng_hi = mid
        else:
            mid = (lat_lo + lat_hi) / 2
            if latitude >= mid:
                bits = (bits << 1) | 1
                lat_lo = mid
            else:
                bits <<= 1
                lat_hi = mid
        even = not even
        bit_count += 1

        if bit_count == 5:
            chars.append(BASE32[bits])
            bits = 0
            bit_count = 0

    return "".join(chars)


def decode_bounds(geohash: str) -> tuple[float, float, float, float]:
    """Return ``(lat_min, lat_max, lng_min, lng_max)`` of a geohash cell."""
    lat_lo, lat_hi = -90.0, 90.0
    lng_lo, lng_hi = -180.0, 180.0
    even = True
    for char in geohash:
        index = BASE32.find(char)
        if index < 0:
            raise ValueError(f"Invalid geohash character {char!r}")
        for shift in range(4, -1, -1):
            bit = (index >> shift) & 1
            if even:
                mid = (lng_lo + lng_hi) / 2
                if bit:
                    lng_lo = mid
                else:
                    lng_hi = mid
            else:
                mid = (lat_lo + lat_hi) / 2
                if bit:
                    lat_lo = mid
                else:
                    lat_hi = mid
            even = not even
    return lat_lo, lat_hi, lng_lo, lng_hi
