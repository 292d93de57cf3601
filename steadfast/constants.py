DEFAULT_MAX_RETRY_PER_STEP = 3
DEFAULT_STEP_TIMEOUT = 300.0
CANCELLED_STEP_NAME = "Cancelled"
MAX_HANOI_DISCS = 25
