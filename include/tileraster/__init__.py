from .config import ProblemShape, ClusterShape, RasterOptions, RasterOrder, RasterOrderOption
from .rasterizer import Rasterizer, TileCoord, DecodeTrace, INVALID_LINEAR_INDEX
from .rasterizer import make_rasterizer, format_decode_trace
from .rasterizer import round_up, clamp_max_swizzle, select_log_swizzle_size, select_raster_order
from .schedule import self_check, SelfCheckResult
from .schedule import batch_traversal, get_tile_mapping, BatchTraversal, TraversalStep
from .schedule import classify_transition, transition_summary, TransitionKind
from .schedule import cluster_rank_map
