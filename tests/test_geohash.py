from __future__ import annotations

import pytest

from drivepipe.routing import geohash


def test_origin_encodes_to_known_cell() -> None:
    assert geohash.encode(0.0, 0.0, 5) == "s0000"


def test_known_city_cells() -> None:
    # Reference values from the published geohash algorithm.
    assert geohash.encode(57.64911, 10.40744, 11) == "u4pruydqqvj"
    assert geohash.encode(42.6, -5.6, 5) == "ezs42"


def test_encode_is_deterministic_and_exact_length() -> None:
    first = geohash.encode(39.7392, -104.9903)
    second = geohash.encode(39.7392, -104.9903)
    assert first == second
    assert len(first) == 5
    assert set(first) <= set(geohash.BASE32)


def test_nearby_points_share_a_cell() -> None:
    # ~50 m apart in downtown Denver; precision 5 cells are ~5 km wide.
    assert geohash.encode(39.7392, -104.9903) == geohash.encode(39.7396, -104.9899)


def test_distant_points_differ() -> None:
    assert geohash.encode(39.7392, -104.9903) != geohash.encode(40.0150, -105.2705)


def test_decode_bounds_contain_the_encoded_point() -> None:
    lat, lng = 39.7392, -104.9903
    lat_min, lat_max, lng_min, lng_max = geohash.decode_bounds(geohash.encode(lat, lng, 7))
    assert lat_min <= lat <= lat_max
    assert lng_min <= lng <= lng_max


def test_invalid_precision_rejected() -> None:
    with pytest.raises(ValueError):
        geohash.encode(0.0, 0.0, 0)


def test_invalid_character_rejected() -> None:
    with pytest.raises(ValueError):
        geohash.decode_bounds("s0a00")
