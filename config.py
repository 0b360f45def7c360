"""
Configuration constants for the MPR reconstruction core.
All tolerances and configurable parameters are centralized here.
"""

# ==========================================
# Loader Settings
# ==========================================

LOADER_MAX_WORKERS = 4            # Number of parallel threads for file reading
LOADER_PROGRESS_EVERY = 20        # Report read progress every N files

# ==========================================
# Volume Construction
# ==========================================

# Fallbacks used when a slice does not carry the attribute
DEFAULT_PIXEL_SPACING = (1.0, 1.0)    # (row, column) mm
DEFAULT_SLICE_THICKNESS = 1.0         # mm
DEFAULT_RESCALE_SLOPE = 1.0
DEFAULT_RESCALE_INTERCEPT = 0.0

VOLUME_PROGRESS_EVERY = 16        # Report assembly progress every N slices

# ==========================================
# Coordinate System
# ==========================================

# Geometry reported before any volume is loaded
DEFAULT_ORIGIN = (0.0, 0.0, 0.0)
DEFAULT_SPACING = (1.0, 1.0, 1.0)
DEFAULT_DIMENSIONS = (1, 1, 1)

# Position updates smaller than this (mm) are ignored
POSITION_HYSTERESIS_MM = 0.01

# Scroll velocity estimate (slices / second)
SCROLL_VELOCITY_IDLE_TIMEOUT_S = 0.2   # Velocity reads as zero after this idle time
SCROLL_VELOCITY_MIN_CHANGE = 0.5       # Only replace the estimate on larger changes
SCROLL_VELOCITY_MIN_INTERVAL_S = 0.001

# Optional fixed-interval re-sampling for reformatted planes.
# None keeps voxel-based indexing on every plane.
MPR_RESAMPLE_INTERVAL_MM = None
MPR_RESAMPLED_PLANES = ("sagittal", "coronal")

# ==========================================
# Slice Extraction
# ==========================================
EXTRACT_MAX_WORKERS = 3           # One worker per orthogonal plane

# ==========================================
# ROI / Contours
# ==========================================
DEFAULT_CONTOUR_TOLERANCE_MM = 1.0
DEFAULT_ROI_COLOR = (1.0, 0.0, 0.0)
DEFAULT_ROI_OPACITY = 0.5
DEFAULT_OVERLAY_OPACITY = 0.7

# Colors assigned to ROIs without ROIDisplayColor
ROI_COLOR_CYCLE = [
    (1.0, 0.0, 0.0),
    (0.0, 1.0, 0.0),
    (0.0, 0.0, 1.0),
    (1.0, 1.0, 0.0),
    (1.0, 0.0, 1.0),
    (0.0, 1.0, 1.0),
    (1.0, 0.5, 0.0),
    (0.5, 0.0, 1.0),
]

# ==========================================
# Window / Level Presets (center, width) in HU
# ==========================================
WINDOW_PRESETS = {
    "soft_tissue": (40.0, 400.0),
    "lung": (-600.0, 1600.0),
    "bone": (500.0, 2000.0),
    "brain": (40.0, 80.0),
    "liver": (60.0, 150.0),
    "mediastinum": (50.0, 350.0),
    "stroke": (35.0, 35.0),
    "subdural": (75.0, 150.0),
}

DEFAULT_WINDOW_PRESET = "soft_tissue"
