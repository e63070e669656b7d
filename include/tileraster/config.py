# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Advanced Micro Devices, Inc. All rights reserved.

"""
Configuration dataclasses for tile rasterization.

A rasterizer is described by three frozen (and therefore hashable) values:

- ProblemShape: logical tile grid extent (tiles_m x tiles_n x batches)
- ClusterShape: tiles per cluster along m and n
- RasterOptions: swizzle cap and raster order preference

Normalisation that the rasterizer applies (cluster 0 -> 1, swizzle cap
floored into {1, 2, 4, 8}) is not done here so that the caller's values are
kept exactly as given. Only programmer errors are rejected.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class RasterOrder(str, Enum):
    """Resolved traversal axis. The named axis is the major (outer) one."""

    ALONG_M = "AlongM"
    ALONG_N = "AlongN"


class RasterOrderOption(str, Enum):
    """Requested traversal axis; HEURISTIC picks one from the padded extent."""

    HEURISTIC = "Heuristic"
    ALONG_M = "AlongM"
    ALONG_N = "AlongN"


def _check_extent(owner: str, name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{owner}.{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{owner}.{name} must be >= 0, got {value}")


@dataclass(frozen=True)
class ProblemShape:
    """
    Logical (unpadded) tile grid.

    Attributes:
        tiles_m: Number of tiles along M
        tiles_n: Number of tiles along N
        batches: Number of independent batches (L)
    """

    tiles_m: int
    tiles_n: int
    batches: int = 1

    def __post_init__(self):
        for name in ("tiles_m", "tiles_n", "batches"):
            _check_extent("ProblemShape", name, getattr(self, name))

    @property
    def num_tiles(self) -> int:
        return self.tiles_m * self.tiles_n * self.batches


@dataclass(frozen=True)
class ClusterShape:
    """
    Tiles that form one cluster, the unit always given contiguous indices.

    A value of 0 is accepted and treated as 1 by the rasterizer.
    """

    m: int = 1
    n: int = 1

    def __post_init__(self):
        for name in ("m", "n"):
            _check_extent("ClusterShape", name, getattr(self, name))


@dataclass(frozen=True)
class RasterOptions:
    """
    Traversal options.

    Attributes:
        max_swizzle_size: Upper bound on the swizzle width. Any positive int is
            accepted; the effective cap is the largest of 1, 2, 4, 8 not above it.
        raster_order: RasterOrderOption or its string value
            ("Heuristic", "AlongM", "AlongN").
    """

    max_swizzle_size: int = 1
    raster_order: Union[RasterOrderOption, str] = RasterOrderOption.HEURISTIC

    def __post_init__(self):
        if isinstance(self.max_swizzle_size, bool) or not isinstance(self.max_swizzle_size, int):
            raise TypeError(
                f"RasterOptions.max_swizzle_size must be an int, "
                f"got {type(self.max_swizzle_size).__name__}"
            )
        try:
            order = RasterOrderOption(self.raster_order)
        except ValueError:
            valid = ", ".join(repr(o.value) for o in RasterOrderOption)
            raise ValueError(
                f"RasterOptions.raster_order must be one of {valid}, got {self.raster_order!r}"
            ) from None
        # frozen dataclass: store the coerced enum
        object.__setattr__(self, "raster_order", order)
