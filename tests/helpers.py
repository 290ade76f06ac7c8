# tests/helpers.py

import numpy as np

def tile(value, shape=(4, 4), dtype="float32"):
    """Constant tile, handy for telling records apart."""
    return np.full(shape, value, dtype=dtype)

def as_mapping(records):
    """Key -> tile dict, asserting no key appears twice."""
    mapping = {}
    for key, value in records:
        assert key not in mapping, f"Duplicate key {key} in read result"
        mapping[key] = value
    return mapping

def assert_same_records(left, right):
    """Order-independent equality of two (key, tile) collections."""
    a, b = as_mapping(left), as_mapping(right)
    assert set(a) == set(b), f"Key sets differ: {set(a) ^ set(b)}"
    for key in a:
        assert np.array_equal(a[key], b[key]), f"Tile mismatch for key {key}"

def assert_exact_cover(windows, cols, rows):
    """Every pixel of the cols x rows grid is covered by exactly one window."""
    hits = np.zeros((rows, cols), dtype=int)
    for w in windows:
        assert 0 <= w.col_min <= w.col_max < cols
        assert 0 <= w.row_min <= w.row_max < rows
        hits[w.row_min:w.row_max + 1, w.col_min:w.col_max + 1] += 1
    assert (hits == 1).all(), "Windows leave gaps or overlap"
