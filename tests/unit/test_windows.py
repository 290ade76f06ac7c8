# tests/unit/test_windows.py

import pytest
from rasterio.transform import from_bounds
from shapely.geometry import Polygon, box, mapping

from tilelayer.exceptions import InvalidWindowError
from tilelayer.raster import (
    Extent,
    GridBounds,
    RasterizeOptions,
    best_factor,
    foreach_cell_by_geometry,
    plan_geometry,
    plan_grid,
    plan_segment_windows,
    window_step
)
from helpers import assert_exact_cover

def test_plan_grid_ten_by_ten_example():
    """planGrid(10, 10, 4) yields the documented 3x3 layout in row-major order."""
    windows = plan_grid(10, 10, 4)

    expected = [
        (0, 0, 3, 3), (4, 0, 7, 3), (8, 0, 9, 3),
        (0, 4, 3, 7), (4, 4, 7, 7), (8, 4, 9, 7),
        (0, 8, 3, 9), (4, 8, 7, 9), (8, 8, 9, 9),
    ]
    assert [(w.col_min, w.row_min, w.col_max, w.row_max) for w in windows] == expected

def test_plan_grid_without_size_is_single_window():
    assert plan_grid(37, 12) == [GridBounds(0, 0, 36, 11)]

def test_plan_grid_large_size_is_single_window():
    assert plan_grid(5, 5, 50) == [GridBounds(0, 0, 4, 4)]

@pytest.mark.parametrize("cols, rows", [(0, 10), (10, 0), (0, 0)])
def test_empty_grid_yields_no_windows(cols, rows):
    assert plan_grid(cols, rows, 4) == []
    assert plan_grid(cols, rows) == []
    assert plan_segment_windows(cols, rows, 4, 2, 2) == []

@pytest.mark.parametrize("cols, rows, size", [
    (1, 1, 1), (10, 10, 4), (17, 5, 3), (64, 33, 16), (7, 100, 8), (3, 3, 100)
])
def test_plan_grid_coverage(cols, rows, size):
    """Windows are disjoint and cover the grid exactly once."""
    assert_exact_cover(plan_grid(cols, rows, size), cols, rows)

@pytest.mark.parametrize("cols, rows, size, seg_cols, seg_rows", [
    (100, 100, 7, 100, 100),
    (300, 200, 64, 16, 16),
    (513, 257, 100, 32, 1),
    (90, 45, 10, 30, 15),
])
def test_plan_segment_windows_coverage(cols, rows, size, seg_cols, seg_rows):
    assert_exact_cover(plan_segment_windows(cols, rows, size, seg_cols, seg_rows), cols, rows)

@pytest.mark.parametrize("size, seg", [(32, 16), (50, 16), (100, 8), (256, 128)])
def test_segment_alignment(size, seg):
    """With maxSize >= 2 x segment every non-final window spans whole segments."""
    cols = rows = 1000
    windows = plan_segment_windows(cols, rows, size, seg, seg)

    for w in windows:
        assert w.width <= size
        if w.col_max < cols - 1:
            assert w.width % seg == 0
        if w.row_max < rows - 1:
            assert w.height % seg == 0

def test_fallback_when_segment_has_no_small_divisor():
    """planGrid(100, 100, 7) on 100x100 segments falls back to 7-pixel windows."""
    windows = plan_segment_windows(100, 100, 7, 100, 100)

    assert all(w.width <= 7 and w.height <= 7 for w in windows)
    assert_exact_cover(windows, 100, 100)

def test_window_step_branches():
    assert window_step(100, 16) == 96
    assert window_step(20, 16) == 16
    assert window_step(16, 16) == 16
    # 12 is not a divisor quotient of 16, 8 is
    assert window_step(12, 16) == 8

def test_window_step_rejects_non_positive():
    with pytest.raises(ValueError):
        window_step(0, 16)
    with pytest.raises(ValueError):
        window_step(16, 0)

def test_best_factor_includes_square_root():
    assert best_factor(5, 25) == 5
    assert best_factor(4, 25) == 4

def test_segment_of_one_uses_max_size():
    assert window_step(5, 1) == 5
    windows = plan_segment_windows(12, 12, 5, 1, 1)
    assert windows[0] == GridBounds(0, 0, 4, 4)
    assert_exact_cover(windows, 12, 12)

def test_plan_geometry_selects_intersecting_windows():
    """A box over the upper-left corner of a 100x100 map picks the upper-left windows only."""
    extent = Extent(0, 0, 100, 100)
    geometry = box(1, 70, 29, 99)

    windows = plan_geometry(100, 100, 32, extent, 16, 16, geometry, RasterizeOptions(include_partial=True))

    assert windows
    assert all(w.col_min < 32 and w.row_min < 32 for w in windows)
    assert GridBounds(0, 0, 31, 31) in windows

def test_plan_geometry_edge_windows_are_clamped():
    extent = Extent(0, 0, 100, 100)
    windows = plan_geometry(100, 100, 32, extent, 16, 16, box(97, 1, 99, 3))

    assert windows == [GridBounds(96, 96, 99, 99)]

def test_plan_geometry_is_symmetric_in_rows_and_columns():
    """Row and column sizing follow the same rules for transposed inputs."""
    calls = []

    def fake_rasterizer(geometry, out_shape, transform, options, callback):
        calls.append(out_shape)
        rows, cols = out_shape
        callback(cols - 1, rows - 1)

    a = plan_geometry(200, 50, 40, Extent(0, 0, 200, 50), 16, 10, None, rasterizer=fake_rasterizer)
    b = plan_geometry(50, 200, 40, Extent(0, 0, 50, 200), 10, 16, None, rasterizer=fake_rasterizer)

    assert calls[0] == calls[1][::-1]
    wa, wb = a[0], b[0]
    assert (wa.col_min, wa.col_max, wa.row_min, wa.row_max) == (wb.row_min, wb.row_max, wb.col_min, wb.col_max)

def test_plan_geometry_empty_grid():
    assert plan_geometry(0, 10, 4, Extent(0, 0, 1, 1), 2, 2, box(0, 0, 1, 1)) == []

def test_plan_geometry_drops_cells_outside_the_grid():
    def stray_rasterizer(geometry, out_shape, transform, options, callback):
        rows, cols = out_shape
        callback(0, 0)
        callback(cols, rows)

    windows = plan_geometry(10, 10, 4, Extent(0, 0, 10, 10), 1, 1, None, rasterizer=stray_rasterizer)
    assert windows == [GridBounds(0, 0, 3, 3)]

def test_grid_bounds_intersection():
    a = GridBounds(0, 0, 5, 5)

    assert a.intersection(GridBounds(4, 3, 9, 9)) == GridBounds(4, 3, 5, 5)
    assert a.intersection(GridBounds(6, 0, 8, 2)) is None
    assert a.intersects(GridBounds(5, 5, 5, 5))
    assert a.size == 36
    assert GridBounds.from_dict(a.to_dict()) == a

def test_grid_bounds_validation():
    with pytest.raises(InvalidWindowError):
        GridBounds(3, 0, 2, 5)
    with pytest.raises(InvalidWindowError):
        GridBounds(-1, 0, 2, 5)

def test_rasterizer_accepts_mappings_and_skips_empty_geometries():
    transform = from_bounds(0, 0, 4, 4, 4, 4)
    cells = []
    collect = lambda c, r: cells.append((c, r))

    foreach_cell_by_geometry(mapping(box(0.2, 3.2, 0.8, 3.8)), (4, 4), transform, RasterizeOptions(), collect)
    assert cells == [(0, 0)]

    foreach_cell_by_geometry(Polygon(), (4, 4), transform, RasterizeOptions(), collect)
    assert cells == [(0, 0)]
