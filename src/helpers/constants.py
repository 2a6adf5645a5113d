"""Common configuration constants used across the application."""

# Batch Size Constants
MAX_BATCH_SIZE = 10
"""Recipients per distribution transaction (relay contract instruction budget)"""

# Ledger Constants
I128_MAX = 2**127 - 1
"""Largest amount representable by a Soroban i128"""

BASE_FEE = 2000
"""Inclusion fee in stroops for submitted transactions"""

SIMULATION_FEE = 100
"""Inclusion fee in stroops for read-only simulations"""

TX_TIMEOUT_SECONDS = 300
"""Validity window set on submitted transactions"""

SIMULATION_TIMEOUT_SECONDS = 30
"""Validity window set on read-only simulations"""

POLL_INTERVAL = 2.0
"""Delay between getTransaction polls in seconds"""

RATE_REFERENCE_WHOLE_TOKENS = 10
"""Whole share tokens used as the reference quantity for conversion rates"""

DEFAULT_DECIMALS = 7
"""Decimal places assumed when a token does not report them"""

# HTTP and Network Constants
DEFAULT_TIMEOUT = 30.0
"""Default HTTP request timeout in seconds"""

CONNECTION_TIMEOUT = 3.0
"""Timeout for establishing connections"""

# Retry Configuration
MAX_RETRIES = 5
"""Default maximum number of retry attempts"""

RETRY_BASE_DELAY = 1.0
"""Base delay for exponential backoff in seconds"""

RETRY_MAX_DELAY = 60.0
"""Maximum delay between retries in seconds"""

# HTTP Connection Pooling
MAX_KEEPALIVE_CONNECTIONS = 5
"""Maximum number of keepalive connections in pool"""

MAX_CONNECTIONS = 10
"""Maximum total number of connections"""

# Output
DEFAULT_OUTPUT_DIR = "output"
"""Root directory for audit logs and generated CSV/JSON files"""


__all__ = [
    "BASE_FEE",
    "CONNECTION_TIMEOUT",
    "DEFAULT_DECIMALS",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_TIMEOUT",
    "I128_MAX",
    "MAX_BATCH_SIZE",
    "MAX_CONNECTIONS",
    "MAX_KEEPALIVE_CONNECTIONS",
    "MAX_RETRIES",
    "POLL_INTERVAL",
    "RATE_REFERENCE_WHOLE_TOKENS",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
    "SIMULATION_FEE",
    "SIMULATION_TIMEOUT_SECONDS",
    "TX_TIMEOUT_SECONDS",
]
