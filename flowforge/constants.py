"""Default values shared across the engine."""

DEFAULT_ACTION_TIMEOUT = 30.0
DEFAULT_TIMEZONE = "UTC"

# Guard and sweep tuning; both are overridable from configuration.
DEFAULT_DUPLICATE_WINDOW_SECONDS = 30.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 5.0

DEFAULT_ISOLATION_TIMEOUT_SECONDS = 300.0

DUPLICATE_EXECUTION_ERROR = "duplicate execution stopped"
CANCELLED_EXECUTION_ERROR = "Execution cancelled"

EXTERNAL_SCHEDULE_LABEL_PREFIX = "workflow-"
SIGNATURE_HEADER = "Upstash-Signature"
