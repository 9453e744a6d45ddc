from __future__ import annotations

# Hardware ceiling for one reel: total cue points and source length.
MAX_SPLICE_MARKERS = 300
MAX_DURATION_S = 174.0

# Two marker times closer than this are the same marker.
MARKER_TOLERANCE_S = 0.01

ZERO_CROSSING_WINDOW_S = 0.01
MARKER_PROXIMITY_THRESHOLD_S = 0.1

# Only the first 20 markers have playback shortcuts.
MAX_PLAYABLE_MARKER_INDEX = 20

# Staged region placement as fractions of the duration.
CROP_DEFAULT_START_RATIO = 0.25
CROP_DEFAULT_END_RATIO = 0.75
FADE_RATIO = 0.1
CROSSFADE_DEFAULT_DURATION_S = 1.0

NORMALIZE_DEFAULT_DB = -1.0
SILENCE_PEAK = 1e-6

TRANSIENT_DEFAULT_SENSITIVITY = 50.0
TRANSIENT_DEFAULT_FRAME_MS = 20.0
TRANSIENT_DEFAULT_OVERLAP_PERCENT = 75.0
TRANSIENT_MIN_INTERVAL_S = 0.05

MIN_SLICE_DURATION_S = 0.01
BPM_MAX_POSITIONS = 10000
