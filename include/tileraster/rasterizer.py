# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Advanced Micro Devices, Inc. All rights reserved.

"""
Linear work index <-> (m, n, l) tile coordinate mapping.

The rasterizer pads the logical tile grid so that swizzle groups of clusters
always divide it evenly, picks a raster order, and exposes an exact bijection
between a physical linear index (as a scheduler would hand it to a program)
and a tile coordinate over the padded grid.

Within one batch the physical index is split, from fastest to slowest
varying, into:

    minor offset inside a cluster
    major offset inside a cluster
    swizzled cluster id

and the swizzled cluster id walks ``swizzle_size`` clusters along the minor
axis before stepping one cluster along the major axis.

Example usage:
    r = Rasterizer(ProblemShape(127, 93, 2), ClusterShape(2, 2), RasterOptions(8))

    for linear_idx in range(r.total_tiles):
        tile = r.decode(linear_idx)
        if not tile.in_bounds:
            continue  # padding tile, no work
        ...
"""

import functools
import operator
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import triton

from .config import (
    ClusterShape,
    ProblemShape,
    RasterOptions,
    RasterOrder,
    RasterOrderOption,
)

# Returned by encode() for any coordinate it cannot map.
INVALID_LINEAR_INDEX = (1 << 64) - 1


# ---------------------------------------------------------------------------
# Selection helpers
# ---------------------------------------------------------------------------

def round_up(value: int, multiple: int) -> int:
    """Round ``value`` up to a multiple of ``multiple`` (unchanged for 0)."""
    if multiple == 0:
        return value
    return triton.cdiv(value, multiple) * multiple


def clamp_max_swizzle(max_swizzle_size: int) -> int:
    """Floor a requested swizzle cap into {1, 2, 4, 8}."""
    if max_swizzle_size >= 8:
        return 8
    if max_swizzle_size >= 4:
        return 4
    if max_swizzle_size >= 2:
        return 2
    return 1


def select_log_swizzle_size(tiles_m: int, tiles_n: int, max_swizzle_size: int) -> int:
    """
    Pick log2 of the swizzle width for a logical grid.

    Small grids get narrow swizzles so padding does not dominate them.

    Args:
        tiles_m: Logical tiles along M
        tiles_n: Logical tiles along N
        max_swizzle_size: Already clamped cap (1, 2, 4 or 8)

    Returns:
        0, 1, 2 or 3
    """
    min_dim = min(tiles_m, tiles_n)
    if max_swizzle_size >= 8 and min_dim >= 6:
        return 3
    if max_swizzle_size >= 4 and min_dim >= 3:
        return 2
    if max_swizzle_size >= 2 and min_dim >= 2:
        return 1
    return 0


def select_raster_order(tiles_m: int, tiles_n: int, option) -> RasterOrder:
    """
    Resolve a raster order option against the padded grid.

    HEURISTIC rasters along M only when the grid is wider than tall; ties go
    to ALONG_N.
    """
    option = RasterOrderOption(option)
    if option is RasterOrderOption.HEURISTIC:
        return RasterOrder.ALONG_M if tiles_n > tiles_m else RasterOrder.ALONG_N
    if option is RasterOrderOption.ALONG_N:
        return RasterOrder.ALONG_N
    return RasterOrder.ALONG_M


# ---------------------------------------------------------------------------
# Decode results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DecodeTrace:
    """Intermediate values of one decode, in the order they are computed."""

    linear_idx: int
    batch: int
    idx_in_batch: int
    minor_offset: int
    blk_per_grid_dim: int
    cluster_id_swizzled: int
    major_offset: int
    cluster_major_idx: int
    cluster_minor_idx: int
    major: int
    minor: int

    def lines(self) -> List[str]:
        return [
            f"linear = {self.linear_idx}  (batch={self.batch}, local={self.idx_in_batch})",
            f"idx_in_batch = {self.idx_in_batch}",
            f"minor_offset = {self.minor_offset}, blk_per_grid_dim = {self.blk_per_grid_dim}",
            f"cluster_id_swizzled = {self.cluster_id_swizzled}, major_offset = {self.major_offset}",
            f"cluster_major_idx = {self.cluster_major_idx}, "
            f"cluster_minor_idx = {self.cluster_minor_idx}",
            f"major = {self.major}, minor = {self.minor}",
        ]


@dataclass(frozen=True)
class TileCoord:
    """
    Result of Rasterizer.decode().

    Attributes:
        m, n, l: Tile coordinate (all 0 when not valid)
        valid: Linear index was inside [0, total_tiles)
        in_bounds: Coordinate also lies inside the logical problem. A valid
            coordinate that is not in bounds is a padding tile: skip it.
        trace: DecodeTrace when requested, else None
    """

    m: int = 0
    n: int = 0
    l: int = 0
    valid: bool = False
    in_bounds: bool = False
    trace: Optional[DecodeTrace] = None

    def coord(self) -> Tuple[int, int, int]:
        return self.m, self.n, self.l


_INVALID_TILE = TileCoord()


# ---------------------------------------------------------------------------
# Rasterizer
# ---------------------------------------------------------------------------

class Rasterizer:
    """
    Bijection between physical linear indices and padded tile coordinates.

    All derived state is computed by init(); afterwards every method only
    reads it, so one instance can be shared by any number of readers.
    Re-running init() on a shared instance is not safe while others decode
    from it; build a new Rasterizer (or use make_rasterizer) instead.
    Instances returned by make_rasterizer are shared and refuse init().
    """

    def __init__(
        self,
        problem: ProblemShape,
        cluster: Optional[ClusterShape] = None,
        options: Optional[RasterOptions] = None,
    ):
        self._shared = False
        self.init(problem, cluster, options)

    def init(
        self,
        problem: ProblemShape,
        cluster: Optional[ClusterShape] = None,
        options: Optional[RasterOptions] = None,
    ) -> None:
        """
        (Re)build every derived field from scratch.

        Args:
            problem: Logical tile grid
            cluster: Cluster extents, 0 is treated as 1 (default: 1x1)
            options: Swizzle cap and raster order (default: RasterOptions())
        """
        if self._shared:
            raise TypeError(
                "cannot re-init a shared Rasterizer from make_rasterizer(), "
                "construct a new Rasterizer instead"
            )
        cluster = cluster if cluster is not None else ClusterShape()
        options = options if options is not None else RasterOptions()

        logical = ProblemShape(problem.tiles_m, problem.tiles_n, problem.batches)
        cluster = ClusterShape(max(1, cluster.m), max(1, cluster.n))

        log_swizzle_size = select_log_swizzle_size(
            logical.tiles_m,
            logical.tiles_n,
            clamp_max_swizzle(options.max_swizzle_size),
        )
        swizzle_size = 1 << log_swizzle_size

        padded = ProblemShape(
            round_up(logical.tiles_m, swizzle_size * cluster.m),
            round_up(logical.tiles_n, swizzle_size * cluster.n),
            logical.batches,
        )

        raster_order = select_raster_order(padded.tiles_m, padded.tiles_n, options.raster_order)

        if raster_order is RasterOrder.ALONG_N:
            cluster_major, cluster_minor = cluster.n, cluster.m
            clusters_along_major = padded.tiles_n // cluster.n
            clusters_along_minor = padded.tiles_m // cluster.m
        else:
            cluster_major, cluster_minor = cluster.m, cluster.n
            clusters_along_major = padded.tiles_m // cluster.m
            clusters_along_minor = padded.tiles_n // cluster.n

        tiles_per_batch = padded.tiles_m * padded.tiles_n

        # Assign only once everything is computed.
        self._logical = logical
        self._cluster = cluster
        self._options = options
        self._padded = padded
        self._log_swizzle_size = log_swizzle_size
        self._swizzle_size = swizzle_size
        self._raster_order = raster_order
        self._cluster_major = cluster_major
        self._cluster_minor = cluster_minor
        self._clusters_along_major = clusters_along_major
        self._clusters_along_minor = clusters_along_minor
        self._tiles_per_batch = tiles_per_batch
        self._total_tiles = tiles_per_batch * padded.batches

    # -- accessors ---------------------------------------------------------

    @property
    def logical_shape(self) -> ProblemShape:
        return self._logical

    @property
    def padded_shape(self) -> ProblemShape:
        return self._padded

    @property
    def cluster_shape(self) -> ClusterShape:
        return self._cluster

    @property
    def options(self) -> RasterOptions:
        return self._options

    @property
    def raster_order(self) -> RasterOrder:
        return self._raster_order

    @property
    def swizzle_size(self) -> int:
        return self._swizzle_size

    @property
    def log_swizzle_size(self) -> int:
        return self._log_swizzle_size

    @property
    def cluster_major(self) -> int:
        return self._cluster_major

    @property
    def cluster_minor(self) -> int:
        return self._cluster_minor

    @property
    def clusters_along_major(self) -> int:
        return self._clusters_along_major

    @property
    def clusters_along_minor(self) -> int:
        return self._clusters_along_minor

    @property
    def tiles_per_batch(self) -> int:
        return self._tiles_per_batch

    @property
    def total_tiles(self) -> int:
        return self._total_tiles

    @property
    def logical_tile_count(self) -> int:
        return self._logical.num_tiles

    def has_valid_extent(self) -> bool:
        return (
            self._cluster_major > 0
            and self._cluster_minor > 0
            and self._clusters_along_major > 0
            and self._padded.batches > 0
            and self._tiles_per_batch > 0
        )

    def linear_index(self, batch: int, local_idx: int) -> int:
        """Physical index of the ``local_idx``-th tile visited in ``batch``."""
        return batch * self._tiles_per_batch + local_idx

    # -- bijection ---------------------------------------------------------

    def decode(self, linear_idx: int, trace: bool = False) -> TileCoord:
        """
        Map a physical linear index to its tile coordinate.

        Args:
            linear_idx: Index over the padded, flattened grid
            trace: Attach a DecodeTrace with every intermediate value

        Returns:
            TileCoord. ``valid`` is False (and the coordinate zero) for an
            invalid extent or an index outside [0, total_tiles).
        """
        linear_idx = operator.index(linear_idx)
        if not self.has_valid_extent():
            return _INVALID_TILE
        if linear_idx < 0 or linear_idx >= self._total_tiles:
            return _INVALID_TILE

        l, idx_in_batch = divmod(linear_idx, self._tiles_per_batch)
        blk_per_grid_dim, minor_offset = divmod(idx_in_batch, self._cluster_minor)
        cluster_id_swizzled, major_offset = divmod(blk_per_grid_dim, self._cluster_major)

        cluster_major_idx, cluster_minor_idx = self.decode_swizzled_cluster_id(cluster_id_swizzled)
        major = cluster_major_idx * self._cluster_major + major_offset
        minor = cluster_minor_idx * self._cluster_minor + minor_offset

        if self._raster_order is RasterOrder.ALONG_N:
            m, n = minor, major
        else:
            m, n = major, minor

        in_bounds = m < self._logical.tiles_m and n < self._logical.tiles_n and l < self._logical.batches

        decode_trace = None
        if trace:
            decode_trace = DecodeTrace(
                linear_idx=linear_idx,
                batch=l,
                idx_in_batch=idx_in_batch,
                minor_offset=minor_offset,
                blk_per_grid_dim=blk_per_grid_dim,
                cluster_id_swizzled=cluster_id_swizzled,
                major_offset=major_offset,
                cluster_major_idx=cluster_major_idx,
                cluster_minor_idx=cluster_minor_idx,
                major=major,
                minor=minor,
            )
        return TileCoord(m, n, l, True, in_bounds, decode_trace)

    def encode(self, tile_m: int, tile_n: int, tile_l: int, allow_padded: bool = False) -> int:
        """
        Map a tile coordinate back to its physical linear index.

        Args:
            tile_m, tile_n, tile_l: Tile coordinate
            allow_padded: Accept padding tiles (bound by the padded grid
                instead of the logical one). The batch is always bound by the
                logical batch count.

        Returns:
            Linear index, or INVALID_LINEAR_INDEX when the coordinate is out
            of range (negative included) or the extent is invalid.
        """
        tile_m = operator.index(tile_m)
        tile_n = operator.index(tile_n)
        tile_l = operator.index(tile_l)
        if not self.has_valid_extent():
            return INVALID_LINEAR_INDEX
        if tile_l < 0 or tile_l >= self._logical.batches:
            return INVALID_LINEAR_INDEX

        bound = self._padded if allow_padded else self._logical
        if tile_m < 0 or tile_n < 0 or tile_m >= bound.tiles_m or tile_n >= bound.tiles_n:
            return INVALID_LINEAR_INDEX

        if self._raster_order is RasterOrder.ALONG_N:
            major, minor = tile_n, tile_m
        else:
            major, minor = tile_m, tile_n

        cluster_major_idx, major_offset = divmod(major, self._cluster_major)
        cluster_minor_idx, minor_offset = divmod(minor, self._cluster_minor)

        cluster_id_swizzled = self.encode_swizzled_cluster_id(cluster_major_idx, cluster_minor_idx)
        blk_per_grid_dim = cluster_id_swizzled * self._cluster_major + major_offset
        idx_in_batch = blk_per_grid_dim * self._cluster_minor + minor_offset

        return tile_l * self._tiles_per_batch + idx_in_batch

    def decode_swizzled_cluster_id(self, cluster_id_swizzled: int) -> Tuple[int, int]:
        """
        Split a swizzled cluster id into (cluster_major_idx, cluster_minor_idx).

        The low ``log_swizzle_size`` bits select the cluster inside a swizzle
        strip along minor; the rest walks the strip along major, then moves
        to the next strip.
        """
        swizzle_mask = self._swizzle_size - 1
        offset = cluster_id_swizzled & swizzle_mask
        extra = cluster_id_swizzled >> self._log_swizzle_size

        strip, cluster_major_idx = divmod(extra, self._clusters_along_major)
        cluster_minor_idx = strip * self._swizzle_size + offset
        return cluster_major_idx, cluster_minor_idx

    def encode_swizzled_cluster_id(self, cluster_major_idx: int, cluster_minor_idx: int) -> int:
        """Inverse of decode_swizzled_cluster_id()."""
        swizzle_mask = self._swizzle_size - 1
        cluster_minor_div_swizzle = cluster_minor_idx >> self._log_swizzle_size
        offset = cluster_minor_idx & swizzle_mask

        extra = cluster_minor_div_swizzle * self._clusters_along_major + cluster_major_idx
        return (extra << self._log_swizzle_size) | offset

    # -- reporting ---------------------------------------------------------

    def describe(self) -> List[Tuple[str, str]]:
        """Derived state as (label, value) rows."""
        logical = self._logical
        padded = self._padded
        return [
            ("Logical", f"{logical.tiles_m} x {logical.tiles_n} x {logical.batches}"),
            ("Padded", f"{padded.tiles_m} x {padded.tiles_n} x {padded.batches}"),
            ("Raster", self._raster_order.value),
            ("Swizzle", f"{self._swizzle_size} (log2={self._log_swizzle_size})"),
            ("Tiles/Batch", str(self._tiles_per_batch)),
            ("Total Tiles", str(self._total_tiles)),
            ("Logical Tiles", str(self.logical_tile_count)),
            ("Cluster Major", str(self._cluster_major)),
            ("Cluster Minor", str(self._cluster_minor)),
            ("Clusters Major", str(self._clusters_along_major)),
            ("Clusters Minor", str(self._clusters_along_minor)),
        ]

    def to_kernel_kwargs(self) -> Dict[str, int]:
        """
        Derived constants as scheduling-loop keyword arguments.

        Returns:
            Dictionary of upper-case constants; RASTER_ALONG_N is 1 or 0.
        """
        return {
            "TILES_M": self._logical.tiles_m,
            "TILES_N": self._logical.tiles_n,
            "BATCHES": self._logical.batches,
            "PADDED_TILES_M": self._padded.tiles_m,
            "PADDED_TILES_N": self._padded.tiles_n,
            "SWIZZLE_SIZE": self._swizzle_size,
            "LOG_SWIZZLE_SIZE": self._log_swizzle_size,
            "CLUSTER_MAJOR": self._cluster_major,
            "CLUSTER_MINOR": self._cluster_minor,
            "CLUSTERS_ALONG_MAJOR": self._clusters_along_major,
            "CLUSTERS_ALONG_MINOR": self._clusters_along_minor,
            "TILES_PER_BATCH": self._tiles_per_batch,
            "TOTAL_TILES": self._total_tiles,
            "RASTER_ALONG_N": int(self._raster_order is RasterOrder.ALONG_N),
        }

    def __repr__(self):
        return (
            f"Rasterizer(logical={self._logical!r}, cluster={self._cluster!r}, "
            f"padded={self._padded!r}, raster_order={self._raster_order.value}, "
            f"swizzle_size={self._swizzle_size})"
        )


# Identical configurations share one instance, which is locked against init().
@functools.lru_cache(maxsize=1024)
def make_rasterizer(
    problem: ProblemShape,
    cluster: Optional[ClusterShape] = None,
    options: Optional[RasterOptions] = None,
) -> Rasterizer:
    rasterizer = Rasterizer(problem, cluster, options)
    rasterizer._shared = True
    return rasterizer


def format_decode_trace(rasterizer: Rasterizer, linear_idx: int) -> str:
    """
    Multi-line explanation of how ``linear_idx`` decodes and re-encodes.

    Returns "Invalid decode state." when the index does not decode.
    """
    tile = rasterizer.decode(linear_idx, trace=True)
    if not tile.valid:
        return "Invalid decode state."

    if tile.in_bounds:
        encode_logical = rasterizer.encode(tile.m, tile.n, tile.l, False)
    else:
        encode_logical = INVALID_LINEAR_INDEX
    encode_padded = rasterizer.encode(tile.m, tile.n, tile.l, True)

    def _show(idx):
        return "INVALID" if idx == INVALID_LINEAR_INDEX else str(idx)

    lines = tile.trace.lines()
    lines += [
        f"tile = (m={tile.m}, n={tile.n}, l={tile.l})",
        f"valid={tile.valid} in_bounds={tile.in_bounds}",
        f"encode(logical) = {_show(encode_logical)}",
        f"encode(padded) = {_show(encode_padded)}",
    ]
    return "\n".join(lines)
