"""Tests for the host-side traversal views in tileraster.schedule.

CPU only: order and rank maps are checked as torch tensors.
"""

import pytest
import torch

from tileraster import (
    ClusterShape,
    ProblemShape,
    RasterOptions,
    Rasterizer,
    TransitionKind,
    TraversalStep,
    batch_traversal,
    classify_transition,
    cluster_rank_map,
    get_tile_mapping,
    self_check,
    transition_summary,
)
from tileraster.schedule import SELF_CHECK_BUDGET_ENV


def _swizzle2_4x4():
    return Rasterizer(ProblemShape(4, 4, 1), ClusterShape(1, 1), RasterOptions(2))


class TestSelfCheck:

    def test_scenario_127x93_passes(self):
        r = Rasterizer(ProblemShape(127, 93, 2), ClusterShape(2, 2), RasterOptions(8))
        result = self_check(r)
        assert not result.skipped
        assert result.mismatches == 0
        assert result.in_bounds_count == 23622
        assert result.ok

    def test_budget_skip(self):
        result = self_check(_swizzle2_4x4(), budget=10)
        assert result.skipped
        assert result.reason == "Skipped for large problem size (32 iterations)."
        assert not result.ok

    def test_budget_from_environment(self, monkeypatch):
        monkeypatch.setenv(SELF_CHECK_BUDGET_ENV, "5")
        assert self_check(_swizzle2_4x4()).skipped
        monkeypatch.setenv(SELF_CHECK_BUDGET_ENV, "32")
        assert self_check(_swizzle2_4x4()).ok

    def test_bad_budget_environment(self, monkeypatch):
        monkeypatch.setenv(SELF_CHECK_BUDGET_ENV, "lots")
        with pytest.raises(ValueError, match=SELF_CHECK_BUDGET_ENV):
            self_check(_swizzle2_4x4())

    def test_invalid_extent(self):
        r = Rasterizer(ProblemShape(0, 4, 1))
        result = self_check(r)
        assert not result.skipped
        assert result.mismatches == 0
        assert result.in_bounds_count == 0
        assert result.ok


class TestBatchTraversal:

    def test_order_map(self):
        traversal = batch_traversal(_swizzle2_4x4(), 0)
        assert traversal.order_map.shape == (4, 4)
        assert traversal.order_map.dtype == torch.int64
        assert traversal.order_map[1, 0].item() == 1
        assert traversal.order_map[0, 1].item() == 2
        assert traversal.order_map[2, 0].item() == 8
        assert traversal.order_map[3, 3].item() == 15
        assert sorted(traversal.order_map.flatten().tolist()) == list(range(16))

    def test_padding_cells(self):
        r = Rasterizer(ProblemShape(3, 3, 1), ClusterShape(1, 1), RasterOptions(2))
        traversal = batch_traversal(r, 0)
        assert len(traversal.sequence) == 16
        assert len(traversal.logical_sequence) == 9
        assert traversal.in_bounds_mask.sum().item() == 9
        assert not traversal.in_bounds_mask[3, 0].item()
        assert traversal.sequence[9] == TraversalStep(9, 3, 0, False)
        assert all(s.in_bounds for s in traversal.logical_sequence)

    def test_second_batch_matches_first(self):
        r = Rasterizer(ProblemShape(5, 6, 2), ClusterShape(1, 2), RasterOptions(4))
        first = batch_traversal(r, 0)
        second = batch_traversal(r, 1)
        assert torch.equal(first.order_map, second.order_map)

    @pytest.mark.parametrize("batch", [-1, 1])
    def test_batch_out_of_range(self, batch):
        with pytest.raises(ValueError, match="batch must be in"):
            batch_traversal(_swizzle2_4x4(), batch)

    def test_invalid_extent_is_empty(self):
        r = Rasterizer(ProblemShape(0, 4, 1))
        traversal = batch_traversal(r, 0)
        assert traversal.sequence == []
        assert traversal.order_map.numel() == 0

    def test_get_tile_mapping(self):
        mapping = get_tile_mapping(_swizzle2_4x4())
        assert len(mapping) == 16
        assert mapping[0] == {"order": 0, "tile_m": 0, "tile_n": 0, "in_bounds": True}
        assert mapping[1] == {"order": 1, "tile_m": 1, "tile_n": 0, "in_bounds": True}
        assert [d["order"] for d in mapping] == list(range(16))


class TestTransitions:

    @pytest.mark.parametrize("prev, cur, kind", [
        (None, TraversalStep(0, 0, 0, True), TransitionKind.NONE),
        (TraversalStep(0, 1, 2, True), None, TransitionKind.NONE),
        (TraversalStep(0, 1, 2, True), TraversalStep(1, 1, 2, True), TransitionKind.BOTH),
        (TraversalStep(0, 1, 2, True), TraversalStep(1, 1, 3, True), TransitionKind.REUSE_A),
        (TraversalStep(0, 1, 2, True), TraversalStep(1, 0, 2, True), TransitionKind.REUSE_B),
        (TraversalStep(0, 1, 2, True), TraversalStep(1, 0, 3, True), TransitionKind.NEITHER),
    ])
    def test_classify_transition(self, prev, cur, kind):
        assert classify_transition(prev, cur) is kind

    def test_summary_swizzle_two(self):
        traversal = batch_traversal(_swizzle2_4x4(), 0)
        summary = transition_summary(traversal.logical_sequence)
        assert summary[TransitionKind.REUSE_B] == 8
        assert summary[TransitionKind.NEITHER] == 7
        assert summary[TransitionKind.REUSE_A] == 0
        assert summary[TransitionKind.BOTH] == 0
        assert sum(summary.values()) == 15

    def test_summary_row_major(self):
        r = Rasterizer(ProblemShape(4, 4, 1), ClusterShape(1, 1), RasterOptions(1))
        summary = transition_summary(batch_traversal(r, 0).logical_sequence)
        assert summary[TransitionKind.REUSE_A] == 12
        assert summary[TransitionKind.NEITHER] == 3

    def test_summary_short_sequences(self):
        assert sum(transition_summary([]).values()) == 0
        assert sum(transition_summary([TraversalStep(0, 0, 0, True)]).values()) == 0


class TestClusterRankMap:

    def test_unit_clusters_match_order_map(self):
        r = _swizzle2_4x4()
        ranks = cluster_rank_map(r)
        assert ranks.shape == (r.clusters_along_minor, r.clusters_along_major)
        # AlongN with 1x1 clusters: minor is m, major is n
        assert torch.equal(ranks, batch_traversal(r, 0).order_map)

    def test_ranks_are_a_permutation(self):
        r = Rasterizer(ProblemShape(127, 93, 1), ClusterShape(2, 2), RasterOptions(8))
        ranks = cluster_rank_map(r)
        assert ranks.shape == (64, 48)
        assert sorted(ranks.flatten().tolist()) == list(range(64 * 48))
        # the first swizzle strip covers 8 minor clusters of major column 0
        assert ranks[:8, 0].tolist() == list(range(8))
        assert ranks[0, 1].item() == 8

    def test_empty_grid(self):
        ranks = cluster_rank_map(Rasterizer(ProblemShape(0, 0, 1)))
        assert ranks.numel() == 0
