# src/tilelayer/raster/options.py

"""
Per-read configuration for the raster readers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

from rasterio.crs import CRS

from tilelayer.exceptions import MissingTagError, ParseError

log = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_TIME_TAG",
    "DEFAULT_TIME_FORMAT",
    "ReadOptions"
]

DEFAULT_TIME_TAG = "TIFFTAG_DATETIME"
DEFAULT_TIME_FORMAT = "%Y:%m:%d %H:%M:%S"

@dataclass(frozen=True)
class ReadOptions:
    """
    Options supplied with every read call.

    Args:
        crs: CRS to stamp on results. None keeps the raster's embedded CRS.
        time_tag: Header tag holding the acquisition timestamp.
        time_format: strptime pattern of the timestamp. Values without an
            offset are taken as UTC.
    """
    crs: Optional[CRS] = None
    time_tag: str = DEFAULT_TIME_TAG
    time_format: str = DEFAULT_TIME_FORMAT

    def resolve_crs(self, raster_crs: Optional[CRS]) -> Optional[CRS]:
        return self.crs if self.crs is not None else raster_crs

    def parse_time(self, tags: Mapping[str, str]) -> datetime:
        """
        Read the acquisition time from raster header tags.

        Raises:
            MissingTagError: If time_tag is not among the tags.
            ParseError: If the tag value does not match time_format.
        """
        if self.time_tag not in tags:
            raise MissingTagError(self.time_tag)

        value = tags[self.time_tag]
        try:
            parsed = datetime.strptime(str(value).strip(), self.time_format)
        except ValueError as e:
            raise ParseError(value, self.time_format) from e

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
