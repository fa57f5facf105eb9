"""Common configuration constants used across the fee sweeper."""

# Indexing
LAST_INDEXED_BLOCK_KEY = "latest_block"
"""Metadata key under which the per-chain checkpoint is stored"""

DEFAULT_BLOCK_RANGE_SIZE = 10_000
"""Maximum number of blocks requested in a single eth_getLogs call"""

DEFAULT_START_BLOCK = 1
"""Block to start from when a chain has no checkpoint yet"""

# HTTP and Network Constants
DEFAULT_TIMEOUT = 30.0
"""Default HTTP request timeout in seconds"""

USER_AGENT = "fee-sweeper"
"""User agent sent to the relayer"""

# Retry Configuration
MAX_RETRIES = 5
"""Default maximum number of retry attempts"""

RETRY_BASE_DELAY = 1.0
"""Base delay for exponential backoff in seconds"""

RETRY_MAX_DELAY = 60.0
"""Maximum delay between retries in seconds"""

REDEMPTION_MAX_ATTEMPTS = 3
"""Attempts at a redemption before a transport failure is recorded as terminal"""

# Relayer auth
SIG_EXPIRATION_BUFFER_MS = 5000
"""Lifetime of a request signature in milliseconds"""

AUTH_HEADER_NAME = "x-renegade-auth"
"""Header carrying the base64 request signature"""

SIG_EXPIRATION_HEADER_NAME = "x-renegade-auth-expiration"
"""Header carrying the signature expiration timestamp (ms)"""

# Relayer task polling
POLL_INTERVAL_MS = 1000
"""Interval between task status queries in milliseconds"""

MAX_POLL_SECONDS = 300.0
"""Maximum time spent waiting on a single relayer task"""

# Relayer routes
GET_WALLET_ROUTE = "/wallet/:wallet_id"
FIND_WALLET_ROUTE = "/wallet/find"
CREATE_WALLET_ROUTE = "/wallet/create"
REDEEM_NOTE_ROUTE = "/wallet/:wallet_id/redeem-note"
GET_TASK_STATUS_ROUTE = "/task/:task_id/status"
PRICE_REPORT_ROUTE = "/price_report"

# Database Limits
DB_BATCH_SIZE = 1000
"""Number of notes written per INSERT statement"""

# Concurrency Limits
DEFAULT_MAX_CONCURRENT_WALLETS = 4
"""Number of wallets whose notes are redeemed in parallel"""


__all__ = [
    "AUTH_HEADER_NAME",
    "CREATE_WALLET_ROUTE",
    "DB_BATCH_SIZE",
    "DEFAULT_BLOCK_RANGE_SIZE",
    "DEFAULT_MAX_CONCURRENT_WALLETS",
    "DEFAULT_START_BLOCK",
    "DEFAULT_TIMEOUT",
    "FIND_WALLET_ROUTE",
    "GET_TASK_STATUS_ROUTE",
    "GET_WALLET_ROUTE",
    "LAST_INDEXED_BLOCK_KEY",
    "MAX_POLL_SECONDS",
    "MAX_RETRIES",
    "POLL_INTERVAL_MS",
    "PRICE_REPORT_ROUTE",
    "REDEEM_NOTE_ROUTE",
    "REDEMPTION_MAX_ATTEMPTS",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
    "SIG_EXPIRATION_BUFFER_MS",
    "SIG_EXPIRATION_HEADER_NAME",
    "USER_AGENT",
]
