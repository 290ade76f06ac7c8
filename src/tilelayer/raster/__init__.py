# src/tilelayer/raster/__init__.py
#
# Copyright (c) The tilelayer project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The raster subpackage provides windowed extraction from geospatial rasters,
including window planning, header and window decoding, result keying,
memory-aware sizing and the extraction engine.
"""
# Value types
from .grid import (
    GridBounds,
    Extent,
    ProjectedExtent,
    TemporalProjectedExtent
)

# Window planning
from .windows import (
    best_factor,
    window_step,
    plan_windows,
    plan_grid,
    plan_segment_windows,
    plan_geometry
)

from .rasterize import (
    RasterizeOptions,
    foreach_cell_by_geometry
)

# Decoding
from .options import (
    ReadOptions
)

from .codec import (
    RasterInfo,
    TileCodec,
    RasterioCodec,
    open_source
)

from .reader import (
    ResultShape,
    RasterReader,
    SinglebandReader,
    MultibandReader,
    TemporalSinglebandReader,
    TemporalMultibandReader,
    get_reader
)

# Layout
from .layout import (
    LayoutDefinition
)

# Resources
from .resources import (
    SegmentStructure,
    MemoryEstimate,
    analyze_structure,
    estimate_window_memory,
    determine_window_size
)

# Engine
from .engine import (
    ExtractConfig,
    plan_extraction,
    extract_windows
)

__all__ = [
    # Value types
    "GridBounds",
    "Extent",
    "ProjectedExtent",
    "TemporalProjectedExtent",

    # Windows
    "best_factor",
    "window_step",
    "plan_windows",
    "plan_grid",
    "plan_segment_windows",
    "plan_geometry",
    "RasterizeOptions",
    "foreach_cell_by_geometry",

    # Decoding
    "ReadOptions",
    "RasterInfo",
    "TileCodec",
    "RasterioCodec",
    "open_source",
    "ResultShape",
    "RasterReader",
    "SinglebandReader",
    "MultibandReader",
    "TemporalSinglebandReader",
    "TemporalMultibandReader",
    "get_reader",

    # Layout
    "LayoutDefinition",

    # Resources
    "SegmentStructure",
    "MemoryEstimate",
    "analyze_structure",
    "estimate_window_memory",
    "determine_window_size",

    # Engine
    "ExtractConfig",
    "plan_extraction",
    "extract_windows"
]
