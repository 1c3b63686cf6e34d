DEFAULT_ROOM_ID = "default"

DEFAULT_GRID_SIZE = 30
MIN_GRID_SIZE = 8
MAX_GRID_SIZE = 64
DEFAULT_APPLE_COUNT = 2
MIN_APPLE_COUNT = 1
MAX_APPLE_COUNT = 4

# Tick interval curve (milliseconds)
BASE_TICK_MS = 110
MIN_TICK_MS = 50
TICK_STEP_MS = 4

SEED_LIMIT = 1_000_000_000
CONNECTION_ID_LENGTH = 12
ROOM_NAME_MAX_LENGTH = 40

# Client-side cadence (seconds)
PREVIEW_INTERVAL_SECONDS = 0.25
COUNTDOWN_POLL_SECONDS = 0.25
AUTO_RESTART_MIN_INTERVAL_SECONDS = 1.0
CREATE_RETRY_ATTEMPTS = 3
CREATE_RETRY_STEP_SECONDS = 0.4
DEEP_LINK_RETRY_ATTEMPTS = 3
DEEP_LINK_RETRY_STEP_SECONDS = 1.0
