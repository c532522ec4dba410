"""Engine tunables: layout geometry, collision search and spacing.

All values read from environment variables with defaults matching the
editor's canvas. Import from here instead of hardcoding.

Server binding and log location stay in flowgraph/config.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _bool(key: str, default: bool) -> bool:
    return os.getenv(key, str(default)).lower() in ("true", "1", "yes")


# =====================================================================
# Canvas geometry
# =====================================================================

# Grid step every returned coordinate is rounded to
GRID_SNAP = _int("FLOWGRAPH_GRID_SNAP", 15)

# Nominal node bounding box used for collision checks
NODE_WIDTH = _float("FLOWGRAPH_NODE_WIDTH", 300.0)
NODE_HEIGHT = _float("FLOWGRAPH_NODE_HEIGHT", 120.0)

# Distance between a parent and a node placed above/below/beside it
SPACING_VERTICAL = _float("FLOWGRAPH_SPACING_VERTICAL", 120.0)
SPACING_HORIZONTAL = _float("FLOWGRAPH_SPACING_HORIZONTAL", 200.0)

# Horizontal offset of the two slots of a two-way branch (left = -offset)
BRANCH_OFFSET = _float("FLOWGRAPH_BRANCH_OFFSET", 125.0)

# Default start position of the first node of an empty workflow
DEFAULT_START_X = _float("FLOWGRAPH_DEFAULT_START_X", 270.0)
DEFAULT_START_Y = _float("FLOWGRAPH_DEFAULT_START_Y", 120.0)


# =====================================================================
# Collision resolution
# =====================================================================

# Extra clearance around the bounding box
COLLISION_MARGIN = _float("FLOWGRAPH_COLLISION_MARGIN", 20.0)

# Ring count probed around a blocked position (8 candidates per ring)
COLLISION_MAX_ATTEMPTS = _int("FLOWGRAPH_COLLISION_MAX_ATTEMPTS", 20)


# =====================================================================
# Spacing engine
# =====================================================================

SPACING_MIN_GAP = _float("FLOWGRAPH_SPACING_MIN_GAP", 30.0)
SPACING_FALLBACK_HEIGHT = _float("FLOWGRAPH_SPACING_FALLBACK_HEIGHT", 160.0)
SPACING_DEBOUNCE_MS = _int("FLOWGRAPH_SPACING_DEBOUNCE_MS", 150)

# Live height probes are opt-in; variant estimates are used otherwise
SPACING_USE_ACTUAL_HEIGHT = _bool("FLOWGRAPH_SPACING_USE_ACTUAL_HEIGHT", False)

# Positions closer than this to the expected y are left alone
SPACING_TOLERANCE = _float("FLOWGRAPH_SPACING_TOLERANCE", 1.0)


# =====================================================================
# Analysis and transfer
# =====================================================================

# Hop cap for simple-path enumeration
PATH_MAX_DEPTH = _int("FLOWGRAPH_PATH_MAX_DEPTH", 10)

# Vertical spacing between steps stacked under a branch slot
TRANSFER_VERTICAL_SPACING = _float("FLOWGRAPH_TRANSFER_VERTICAL_SPACING", 120.0)

# Complexity thresholds (total planned operations)
COMPLEXITY_SIMPLE_MAX = _int("FLOWGRAPH_COMPLEXITY_SIMPLE_MAX", 5)
COMPLEXITY_MODERATE_MAX = _int("FLOWGRAPH_COMPLEXITY_MODERATE_MAX", 15)

# Transfers larger than this get a "balance your branches" suggestion
LARGE_TRANSFER_STEPS = _int("FLOWGRAPH_LARGE_TRANSFER_STEPS", 5)

# Plans removing more edges than this get a review requirement
MANY_EDGE_CHANGES = _int("FLOWGRAPH_MANY_EDGE_CHANGES", 10)
