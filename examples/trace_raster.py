import argparse

import tileraster


def trace_raster(tiles_m, tiles_n, batches, cluster_m, cluster_n, max_swizzle, raster_order,
                 batch, index):
    problem = tileraster.ProblemShape(tiles_m, tiles_n, batches)
    cluster = tileraster.ClusterShape(cluster_m, cluster_n)
    options = tileraster.RasterOptions(max_swizzle, raster_order)
    r = tileraster.Rasterizer(problem, cluster, options)

    # Derived state
    width = max(len(label) for label, _ in r.describe())
    for label, value in r.describe():
        print(f"{label:<{width}}  {value}")

    check = tileraster.self_check(r)
    if check.skipped:
        print(f"Self Check: {check.reason}")
    else:
        print(f"Round-trip mismatches: {check.mismatches}")
        print(f"Decoded in-bounds:     {check.in_bounds_count} / {check.expected_in_bounds}")

    if not r.has_valid_extent():
        print("Invalid extent, nothing to trace.")
        return
    if not 0 <= batch < batches:
        print(f"--batch must be in [0, {batches}), got {batch}")
        return

    print()
    print(tileraster.format_decode_trace(r, r.linear_index(batch, index)))

    print()
    traversal = tileraster.batch_traversal(r, batch)
    summary = tileraster.transition_summary(traversal.logical_sequence)
    print(f"Transitions in batch {batch} ({len(traversal.logical_sequence)} tiles):")
    for kind, count in summary.items():
        print(f"  {kind.value:<8} {count}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Print the derived rasterization state and the decode of one tile index."
    )
    parser.add_argument("--tiles-m", type=int, default=8, help="Logical tiles along M (default: 8)")
    parser.add_argument("--tiles-n", type=int, default=16, help="Logical tiles along N (default: 16)")
    parser.add_argument("--batches", type=int, default=1, help="Batches (default: 1)")
    parser.add_argument("--cluster-m", type=int, default=1, help="Cluster tiles along M (default: 1)")
    parser.add_argument("--cluster-n", type=int, default=2, help="Cluster tiles along N (default: 2)")
    parser.add_argument("--max-swizzle", type=int, default=2, help="Swizzle cap (default: 2)")
    parser.add_argument("--raster-order", type=str, default="Heuristic",
                        choices=[o.value for o in tileraster.RasterOrderOption],
                        help="Raster order (default: Heuristic)")
    parser.add_argument("--batch", type=int, default=0, help="Batch to trace (default: 0)")
    parser.add_argument("--index", type=int, default=0,
                        help="Local index within the batch to decode (default: 0)")
    args = parser.parse_args()
    trace_raster(args.tiles_m, args.tiles_n, args.batches, args.cluster_m, args.cluster_n,
                 args.max_swizzle, args.raster_order, args.batch, args.index)
