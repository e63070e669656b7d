# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Advanced Micro Devices, Inc. All rights reserved.

"""
Host-side views of a rasterizer's traversal.

- self_check: logical round-trip and coverage check, bounded by a budget
- batch_traversal: visit order of every tile in one batch
- get_tile_mapping: visit order -> (tile_m, tile_n) as a list of dicts
- classify_transition / transition_summary: operand reuse between
  consecutively visited tiles
- cluster_rank_map: visit rank of every cluster in the cluster grid
"""

import os
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

import torch

from .rasterizer import INVALID_LINEAR_INDEX, Rasterizer

DEFAULT_SELF_CHECK_BUDGET = 600000
SELF_CHECK_BUDGET_ENV = "TILERASTER_SELF_CHECK_BUDGET"


# ---------------------------------------------------------------------------
# Self check
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SelfCheckResult:
    """
    Outcome of self_check().

    Attributes:
        skipped: Check was not run because it exceeded the budget
        reason: Why it was skipped (empty otherwise)
        mismatches: Logical coordinates whose encode/decode round-trip failed
        in_bounds_count: Physical indices that decoded in bounds
        expected_in_bounds: Logical tile count
    """

    skipped: bool
    reason: str = ""
    mismatches: int = 0
    in_bounds_count: int = 0
    expected_in_bounds: int = 0

    @property
    def ok(self) -> bool:
        return (
            not self.skipped
            and self.mismatches == 0
            and self.in_bounds_count == self.expected_in_bounds
        )


def _self_check_budget(budget: Optional[int]) -> int:
    if budget is not None:
        return budget
    value = os.environ.get(SELF_CHECK_BUDGET_ENV, "")
    if not value:
        return DEFAULT_SELF_CHECK_BUDGET
    try:
        return int(value)
    except ValueError:
        raise ValueError(
            f"{SELF_CHECK_BUDGET_ENV} must be an integer, got {value!r}"
        ) from None


def self_check(rasterizer: Rasterizer, budget: Optional[int] = None) -> SelfCheckResult:
    """
    Round-trip every logical tile and count in-bounds physical indices.

    Args:
        rasterizer: Rasterizer to check
        budget: Max encode + decode calls; defaults to
            $TILERASTER_SELF_CHECK_BUDGET or 600000.

    Returns:
        SelfCheckResult
    """
    logical = rasterizer.logical_shape
    logical_count = rasterizer.logical_tile_count
    total_tiles = rasterizer.total_tiles
    budget = _self_check_budget(budget)

    if logical_count + total_tiles > budget:
        return SelfCheckResult(
            skipped=True,
            reason=f"Skipped for large problem size ({logical_count + total_tiles} iterations).",
            expected_in_bounds=logical_count,
        )

    mismatches = 0
    for l in range(logical.batches):
        for m in range(logical.tiles_m):
            for n in range(logical.tiles_n):
                linear_idx = rasterizer.encode(m, n, l, False)
                if linear_idx == INVALID_LINEAR_INDEX:
                    mismatches += 1
                    continue
                tile = rasterizer.decode(linear_idx)
                if not (tile.valid and tile.in_bounds and tile.coord() == (m, n, l)):
                    mismatches += 1

    in_bounds_count = sum(
        1 for linear_idx in range(total_tiles) if rasterizer.decode(linear_idx).in_bounds
    )

    return SelfCheckResult(
        skipped=False,
        mismatches=mismatches,
        in_bounds_count=in_bounds_count,
        expected_in_bounds=logical_count,
    )


# ---------------------------------------------------------------------------
# Batch traversal
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TraversalStep:
    order: int
    m: int
    n: int
    in_bounds: bool


@dataclass(frozen=True)
class BatchTraversal:
    """
    Visit order of one batch.

    Attributes:
        batch: Batch index
        sequence: Every padded tile, in visit order
        logical_sequence: In-bounds tiles only, in visit order
        order_map: int64 [padded_m, padded_n], local visit order of each cell
        in_bounds_mask: bool [padded_m, padded_n]
    """

    batch: int
    sequence: List[TraversalStep]
    logical_sequence: List[TraversalStep]
    order_map: torch.Tensor
    in_bounds_mask: torch.Tensor


def batch_traversal(rasterizer: Rasterizer, batch: int) -> BatchTraversal:
    """
    Decode every local index of ``batch`` in physical order.

    Raises:
        ValueError: If batch is outside [0, logical batches)
    """
    logical = rasterizer.logical_shape
    padded = rasterizer.padded_shape
    if batch < 0 or batch >= logical.batches:
        raise ValueError(f"batch must be in [0, {logical.batches}), got {batch}")

    order_map = torch.zeros((padded.tiles_m, padded.tiles_n), dtype=torch.int64)
    in_bounds_mask = torch.zeros((padded.tiles_m, padded.tiles_n), dtype=torch.bool)
    sequence = []
    logical_sequence = []

    if rasterizer.has_valid_extent():
        for local_idx in range(rasterizer.tiles_per_batch):
            tile = rasterizer.decode(rasterizer.linear_index(batch, local_idx))
            step = TraversalStep(local_idx, tile.m, tile.n, tile.in_bounds)
            sequence.append(step)
            if tile.in_bounds:
                logical_sequence.append(step)
            order_map[tile.m, tile.n] = local_idx
            in_bounds_mask[tile.m, tile.n] = tile.in_bounds

    return BatchTraversal(batch, sequence, logical_sequence, order_map, in_bounds_mask)


def get_tile_mapping(rasterizer: Rasterizer, batch: int = 0) -> List[Dict]:
    """
    Compute visit order -> (tile_m, tile_n) for one batch as a list of dicts.

    Returns [{"order": int, "tile_m": int, "tile_n": int, "in_bounds": bool}, ...]
    ordered by visit order.
    """
    return [
        {"order": s.order, "tile_m": s.m, "tile_n": s.n, "in_bounds": s.in_bounds}
        for s in batch_traversal(rasterizer, batch).sequence
    ]


# ---------------------------------------------------------------------------
# Operand reuse between consecutive tiles
# ---------------------------------------------------------------------------

class TransitionKind(str, Enum):
    NONE = "none"
    BOTH = "both"
    REUSE_A = "reuseA"  # same m: row panel of A stays hot
    REUSE_B = "reuseB"  # same n: column panel of B stays hot
    NEITHER = "neither"


def classify_transition(prev, cur) -> TransitionKind:
    """Classify the step from ``prev`` to ``cur`` (anything with .m and .n, or None)."""
    if prev is None or cur is None:
        return TransitionKind.NONE
    same_m = prev.m == cur.m
    same_n = prev.n == cur.n
    if same_m and same_n:
        return TransitionKind.BOTH
    if same_m:
        return TransitionKind.REUSE_A
    if same_n:
        return TransitionKind.REUSE_B
    return TransitionKind.NEITHER


def transition_summary(steps: Iterable) -> Dict[TransitionKind, int]:
    """Count each TransitionKind over consecutive pairs of ``steps``."""
    steps = list(steps)
    counts = Counter(classify_transition(a, b) for a, b in zip(steps, steps[1:]))
    return {kind: counts.get(kind, 0) for kind in TransitionKind}


# ---------------------------------------------------------------------------
# Cluster grid
# ---------------------------------------------------------------------------

def cluster_rank_map(rasterizer: Rasterizer) -> torch.Tensor:
    """
    Visit rank of every cluster.

    Returns:
        int64 tensor [clusters_along_minor, clusters_along_major]; entry
        [minor, major] is the position of that cluster when all clusters are
        sorted by swizzled cluster id.
    """
    minor_count = rasterizer.clusters_along_minor
    major_count = rasterizer.clusters_along_major
    ranks = torch.zeros((minor_count, major_count), dtype=torch.int64)

    clusters = sorted(
        (rasterizer.encode_swizzled_cluster_id(major, minor), major, minor)
        for minor in range(minor_count)
        for major in range(major_count)
    )
    for rank, (_, major, minor) in enumerate(clusters):
        ranks[minor, major] = rank
    return ranks
